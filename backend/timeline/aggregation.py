"""
Read-side view models for a booklet: calendar grouping for the timeline
and the summary counts shown on patient lists. Nothing here is stored;
each read recomputes from the current rows.
"""
from dataclasses import dataclass, asdict
from datetime import date
from typing import Optional

from core import dates
from medications import engine


def _value(item, field):
    if callable(field):
        return field(item)
    if isinstance(item, dict):
        return item.get(field)
    return getattr(item, field)


def group_by_calendar_date(items, date_field):
    """
    ``[(day, [items...]), ...]`` with the most recent day first. Items keep
    their incoming order inside a day; items without a date are left out.
    """
    groups = {}
    for item in items:
        day = dates.date_key(_value(item, date_field))
        if day is None:
            continue
        groups.setdefault(day, []).append(item)
    return sorted(groups.items(), key=lambda pair: pair[0], reverse=True)


def default_selection(days) -> Optional[date]:
    keys = [dates.date_key(day) for day in days if day is not None]
    return max(keys) if keys else None


def resolve_selection(days, requested=None) -> Optional[date]:
    """A requested day wins when it is one of ``days``; otherwise the most recent."""
    keys = {dates.date_key(day) for day in days if day is not None}
    if requested is not None:
        requested = dates.date_key(requested)
        if requested in keys:
            return requested
    return default_selection(keys)


@dataclass
class BookletSummary:
    booklet_id: str
    active_medication_count: int
    pending_lab_count: int
    has_allergies: bool
    last_visit_date: Optional[date]
    next_appointment: Optional[date]
    latest_vitals: Optional[dict]
    current_risk_level: Optional[str]
    aog: Optional[str]

    def as_dict(self):
        return asdict(self)


def summarize(booklet, entries, medications, lab_requests, today=None) -> BookletSummary:
    today = dates.date_key(today) if today is not None else dates.today()

    past_visits = [e for e in entries if dates.date_key(e.visit_date) <= today]
    last_visit = max((dates.date_key(e.visit_date) for e in past_visits), default=None)
    upcoming = [
        dates.date_key(e.follow_up_date) for e in entries
        if e.follow_up_date is not None and dates.date_key(e.follow_up_date) > today
    ]

    latest_vitals = None
    with_vitals = [e for e in past_visits if e.vitals]
    if with_vitals:
        latest = max(with_vitals, key=lambda e: (dates.date_key(e.visit_date), e.created_at))
        latest_vitals = dict(latest.vitals)

    return BookletSummary(
        booklet_id=str(booklet.pk),
        active_medication_count=sum(1 for m in medications if engine.is_active_on(m, today)),
        pending_lab_count=sum(1 for lab in lab_requests if lab.status == 'PENDING'),
        has_allergies=bool(booklet.allergies),
        last_visit_date=last_visit,
        next_appointment=min(upcoming, default=None),
        latest_vitals=latest_vitals,
        current_risk_level=booklet.current_risk_level,
        aog=dates.format_aog(booklet.aog_on(today)),
    )


def summarize_booklet(booklet, today=None) -> BookletSummary:
    return summarize(
        booklet,
        list(booklet.entries.all()),
        list(booklet.medications.all()),
        list(booklet.lab_requests.all()),
        today=today,
    )
