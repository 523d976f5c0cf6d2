from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from core.exceptions import DomainValidationError
from medications import engine


def make_med(start, end=None, is_active=True, frequency=2, times=None):
    return SimpleNamespace(
        start_date=start, end_date=end, is_active=is_active,
        frequency_per_day=frequency, times_of_day=times or [],
    )


def taken(day, status='TAKEN'):
    return SimpleNamespace(scheduled_date=day, status=status)


def test_active_window_bounds():
    med = make_med(date(2024, 1, 1), date(2024, 1, 10))
    assert engine.is_active_on(med, date(2024, 1, 5))
    assert engine.is_active_on(med, date(2024, 1, 1))
    assert engine.is_active_on(med, date(2024, 1, 10))
    assert not engine.is_active_on(med, date(2024, 1, 15))
    assert not engine.is_active_on(med, date(2023, 12, 31))


def test_open_ended_and_stopped():
    open_ended = make_med(date(2024, 1, 1))
    assert engine.is_active_on(open_ended, date(2030, 1, 1))

    stopped = make_med(date(2024, 1, 1), date(2024, 1, 10), is_active=False)
    assert not engine.is_active_on(stopped, date(2024, 1, 5))


def test_status_labels():
    med = make_med(date(2024, 1, 10), date(2024, 1, 20))
    assert engine.medication_status(med, date(2024, 1, 5)) == 'scheduled'
    assert engine.medication_status(med, date(2024, 1, 15)) == 'active'
    assert engine.medication_status(med, date(2024, 1, 25)) == 'expired'
    med.is_active = False
    assert engine.medication_status(med, date(2024, 1, 15)) == 'stopped'


def test_dose_schedule_defaults():
    assert engine.dose_schedule(make_med(date(2024, 1, 1), frequency=1)) == ['08:00']
    assert engine.dose_schedule(make_med(date(2024, 1, 1), frequency=3)) == ['08:00', '14:00', '20:00']
    assert engine.dose_schedule(make_med(date(2024, 1, 1), frequency=4)) == []
    assert engine.dose_schedule(make_med(date(2024, 1, 1), times=['07:00', '19:00'])) == ['07:00', '19:00']


def test_adherence_counts_only_active_days():
    today = date(2024, 5, 20)
    med = make_med(today - timedelta(days=4), frequency=2)
    logs = [taken(today - timedelta(days=n)) for n in (4, 3, 3, 2, 1)]
    assert engine.compute_adherence(med, logs, window_days=7, today=today) == pytest.approx(0.625)


def test_adherence_ignores_missed_skipped_and_out_of_window_logs():
    today = date(2024, 5, 20)
    med = make_med(today - timedelta(days=30), frequency=1)
    logs = [
        taken(today - timedelta(days=1)),
        taken(today - timedelta(days=2), 'MISSED'),
        taken(today - timedelta(days=3), 'SKIPPED'),
        taken(today - timedelta(days=20)),
    ]
    assert engine.compute_adherence(med, logs, window_days=7, today=today) == pytest.approx(1 / 7)


def test_adherence_is_zero_before_anything_was_expected():
    today = date(2024, 5, 20)
    assert engine.compute_adherence(make_med(today), [taken(today)], today=today) == 0.0
    assert engine.compute_adherence(make_med(today + timedelta(days=3)), [], today=today) == 0.0


def test_adherence_never_exceeds_one():
    today = date(2024, 5, 20)
    med = make_med(today - timedelta(days=1), frequency=1)
    logs = [taken(today - timedelta(days=1)), taken(today - timedelta(days=1)), taken(today)]
    assert engine.compute_adherence(med, logs, today=today) == 1.0


def test_dose_taken_today_does_not_cover_a_missed_day():
    today = date(2024, 5, 20)
    med = make_med(today - timedelta(days=30), frequency=1)
    logs = [taken(today - timedelta(days=n)) for n in (7, 6, 5, 4, 3, 2, 0)]
    assert engine.compute_adherence(med, logs, window_days=7, today=today) == pytest.approx(6 / 7)


def test_adherence_stops_counting_after_end_date():
    today = date(2024, 5, 20)
    med = make_med(today - timedelta(days=6), today - timedelta(days=4), frequency=1)
    logs = [taken(today - timedelta(days=n)) for n in (6, 5, 4, 2)]
    # three running days, the log after the end date does not count
    assert engine.compute_adherence(med, logs, window_days=7, today=today) == 1.0


def test_extend_requires_a_later_date():
    today = date(2024, 5, 20)
    med = make_med(date(2024, 5, 1), date(2024, 5, 25))
    update = engine.extend(med, date(2024, 6, 1), today=today)
    assert update == engine.MedicationUpdate(end_date=date(2024, 6, 1), is_active=True)
    # the input is not touched
    assert med.end_date == date(2024, 5, 25)

    with pytest.raises(DomainValidationError):
        engine.extend(med, date(2024, 5, 24), today=today)
    with pytest.raises(DomainValidationError):
        engine.extend(med, date(2024, 5, 25), today=today)


def test_extend_past_medication_must_pass_today():
    today = date(2024, 5, 20)
    med = make_med(date(2024, 5, 1), date(2024, 5, 10))
    with pytest.raises(DomainValidationError):
        engine.extend(med, date(2024, 5, 15), today=today)
    assert engine.extend(med, date(2024, 5, 21), today=today).end_date == date(2024, 5, 21)


def test_extend_rejects_stopped_medication():
    med = make_med(date(2024, 5, 1), date(2024, 5, 10), is_active=False)
    with pytest.raises(DomainValidationError):
        engine.extend(med, date(2024, 6, 1), today=date(2024, 5, 20))


def test_stop_today_deactivates():
    today = date(2024, 5, 20)
    med = make_med(date(2024, 5, 1))
    update = engine.stop(med, today)
    med.end_date, med.is_active = update.end_date, update.is_active
    assert not engine.is_active_on(med, today)


def test_stop_is_idempotent_and_keeps_earlier_end():
    med = make_med(date(2024, 5, 1), date(2024, 5, 10))
    first = engine.stop(med, date(2024, 5, 20))
    assert first.end_date == date(2024, 5, 10)

    med.end_date, med.is_active = first.end_date, first.is_active
    assert engine.stop(med, date(2024, 6, 1)) == first


def test_stop_before_start_is_rejected():
    med = make_med(date(2024, 5, 10))
    with pytest.raises(DomainValidationError):
        engine.stop(med, date(2024, 5, 1))
