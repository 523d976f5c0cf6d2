"""
Calendar-day helpers.

Everything clinical in a booklet is pinned to the patient's local calendar
day, so every comparison goes through :func:`date_key` first. The local zone
is ``settings.TIME_ZONE``; instants arriving as UTC timestamps are converted
to that zone before the time of day is dropped.
"""
import re
from datetime import date, datetime, timedelta, timezone as dt_timezone
from typing import NamedTuple, Optional

from dateutil import parser as date_parser
from django.utils import timezone

# Naegele's rule: due date = LMP + 280 days.
FULL_TERM_DAYS = 280
# Gestational ages beyond this are treated as out of range.
MAX_GESTATION_WEEKS = 45

_PLAIN_DATE = re.compile(r'^\d{4}-\d{2}-\d{2}$')


class Gestation(NamedTuple):
    weeks: int
    days: int

    @property
    def total_days(self):
        return self.weeks * 7 + self.days

    def __str__(self):
        return format_aog(self)


def today() -> date:
    return timezone.localdate()


def date_key(value) -> Optional[date]:
    """
    Normalize a date, datetime, epoch-millisecond number or ISO string to a
    local calendar day. Returns ``None`` for ``None``; raises ``ValueError``
    for anything it cannot read.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if timezone.is_aware(value):
            return timezone.localtime(value).date()
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a date: {value!r}")
    if isinstance(value, (int, float)):
        try:
            instant = datetime.fromtimestamp(value / 1000, tz=dt_timezone.utc)
        except (OverflowError, OSError) as exc:
            raise ValueError(f"Not a date: {value!r}") from exc
        return timezone.localtime(instant).date()
    if isinstance(value, str):
        text = value.strip()
        if _PLAIN_DATE.match(text):
            return date.fromisoformat(text)
        if text.lstrip('-').isdigit():
            return date_key(int(text))
        try:
            parsed = date_parser.isoparse(text)
        except (ValueError, OverflowError) as exc:
            raise ValueError(f"Not a date: {value!r}") from exc
        return date_key(parsed)
    raise ValueError(f"Not a date: {value!r}")


def same_day(a, b) -> bool:
    return date_key(a) == date_key(b)


def due_date_from_lmp(last_menstrual_period) -> Optional[date]:
    lmp = date_key(last_menstrual_period)
    if lmp is None:
        return None
    return lmp + timedelta(days=FULL_TERM_DAYS)


def compute_aog(due_date, visit_date=None) -> Optional[Gestation]:
    """
    Gestational age at ``visit_date`` (default today) given the expected due
    date. Post-term visits keep counting up. Returns ``None`` when there is
    no due date or the result falls outside 0..45 weeks, e.g. a visit dated
    before conception.
    """
    due = date_key(due_date)
    if due is None:
        return None
    visit = date_key(visit_date) if visit_date is not None else today()

    total_days = FULL_TERM_DAYS - (due - visit).days
    if total_days < 0 or total_days > MAX_GESTATION_WEEKS * 7:
        return None
    return Gestation(total_days // 7, total_days % 7)


def compute_aog_from_lmp(last_menstrual_period, visit_date=None) -> Optional[Gestation]:
    return compute_aog(due_date_from_lmp(last_menstrual_period), visit_date)


def format_aog(gestation: Optional[Gestation]) -> Optional[str]:
    if gestation is None:
        return None
    weeks = f"{gestation.weeks} week{'' if gestation.weeks == 1 else 's'}"
    days = f"{gestation.days} day{'' if gestation.days == 1 else 's'}"
    return f"{weeks} {days}"


def days_remaining(target, reference=None) -> Optional[int]:
    """Whole days from ``reference`` (default today) to ``target``; negative once past."""
    target_day = date_key(target)
    if target_day is None:
        return None
    reference_day = date_key(reference) if reference is not None else today()
    return (target_day - reference_day).days


def format_days_remaining(days: Optional[int]) -> str:
    if days is None:
        return "no end date"
    if days < 0:
        return "ended"
    if days == 0:
        return "ends today"
    if days == 1:
        return "1 day left"
    return f"{days} days left"
