"""
Medication window engine.

Pure functions over a medication's stored fields and a query date. Nothing
here touches the database: every screen recomputes the same answers from
the same inputs, so the mother's and the doctor's views cannot drift.
The functions accept model instances or any object with the same
attributes.
"""
from dataclasses import dataclass, asdict
from datetime import timedelta
from typing import Optional

from core import dates
from core.exceptions import DomainValidationError

AS_NEEDED = 4

DEFAULT_DOSE_TIMES = {
    1: ['08:00'],
    2: ['08:00', '20:00'],
    3: ['08:00', '14:00', '20:00'],
    AS_NEEDED: [],
}


@dataclass(frozen=True)
class MedicationUpdate:
    end_date: Optional[object]
    is_active: bool

    def as_fields(self):
        return asdict(self)


def is_active_on(medication, on) -> bool:
    """Active flag set, started on or before ``on`` and not ended before it."""
    day = dates.date_key(on)
    start = dates.date_key(medication.start_date)
    end = dates.date_key(medication.end_date)
    return bool(medication.is_active) and start <= day and (end is None or end >= day)


def medication_status(medication, on=None) -> str:
    day = dates.date_key(on) if on is not None else dates.today()
    if not medication.is_active:
        return 'stopped'
    if is_active_on(medication, day):
        return 'active'
    if dates.date_key(medication.start_date) > day:
        return 'scheduled'
    return 'expired'


def dose_schedule(medication):
    """Times of day for each dose slot; "as needed" medications have none."""
    if medication.times_of_day:
        return list(medication.times_of_day)
    return list(DEFAULT_DOSE_TIMES.get(medication.frequency_per_day, []))


def _log_status(log):
    status = log['status'] if isinstance(log, dict) else log.status
    return str(status).upper()


def _log_date(log):
    return dates.date_key(log['scheduled_date'] if isinstance(log, dict) else log.scheduled_date)


def compute_adherence(medication, intake_logs, window_days=7, today=None) -> float:
    """
    Share of expected doses logged as taken over the trailing ``window_days``.

    Only days the medication was actually running count toward the expected
    total, so a course that started yesterday is not measured against a full
    week. Missed and skipped doses both count as not taken. Returns 0.0 when
    nothing was expected yet.
    """
    today = dates.date_key(today) if today is not None else dates.today()
    start = dates.date_key(medication.start_date)
    end = dates.date_key(medication.end_date)

    window_start = today - timedelta(days=window_days)
    effective_start = max(start, window_start)
    if end is None or end >= today:
        effective_end = today
        last_log_day = today - timedelta(days=1)
    else:
        effective_end = end + timedelta(days=1)
        last_log_day = end

    active_days = (effective_end - effective_start).days
    if active_days <= 0:
        return 0.0

    expected = active_days * medication.frequency_per_day
    taken = sum(
        1 for log in intake_logs
        if _log_status(log) == 'TAKEN' and effective_start <= _log_date(log) <= last_log_day
    )
    return min(1.0, taken / expected)


def extend(medication, new_end_date, today=None) -> MedicationUpdate:
    """
    Push the end date out. The new date must fall after today (or after the
    current end date when that is further out) and after the start date.
    """
    new_end = dates.date_key(new_end_date)
    if new_end is None:
        raise DomainValidationError("A new end date is required.", field='end_date')
    if not medication.is_active:
        raise DomainValidationError("A stopped medication cannot be extended; prescribe it again.", field='end_date')

    today = dates.date_key(today) if today is not None else dates.today()
    start = dates.date_key(medication.start_date)
    end = dates.date_key(medication.end_date)
    reference = max(today, end) if end is not None else today

    if new_end <= start:
        raise DomainValidationError("End date must be after the start date.", field='end_date')
    if new_end <= reference:
        raise DomainValidationError(
            f"New end date must be after {reference.isoformat()}.", field='end_date'
        )
    return MedicationUpdate(end_date=new_end, is_active=True)


def stop(medication, effective_date=None) -> MedicationUpdate:
    """
    End the course on ``effective_date`` (default today). Re-stopping is a
    no-op, and an end date already earlier than ``effective_date`` is kept.
    """
    if not medication.is_active:
        return MedicationUpdate(end_date=dates.date_key(medication.end_date), is_active=False)

    effective = dates.date_key(effective_date) if effective_date is not None else dates.today()
    start = dates.date_key(medication.start_date)
    end = dates.date_key(medication.end_date)
    if effective < start:
        raise DomainValidationError("Stop date cannot be before the start date.", field='end_date')
    if end is not None and end < effective:
        effective = end
    return MedicationUpdate(end_date=effective, is_active=False)
