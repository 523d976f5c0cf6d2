from datetime import date, datetime, timedelta, timezone as dt_timezone

import pytest

from core import dates


def test_lmp_gives_due_date_and_aog():
    lmp = date(2024, 1, 1)
    due = dates.due_date_from_lmp(lmp)
    assert due == date(2024, 10, 7)

    aog = dates.compute_aog(due, date(2024, 4, 1))
    assert aog == dates.Gestation(13, 0)
    assert dates.format_aog(aog) == "13 weeks 0 days"
    assert dates.compute_aog_from_lmp(lmp, date(2024, 4, 1)) == aog


def test_aog_keeps_counting_post_term():
    due = date(2024, 10, 7)
    assert dates.compute_aog(due, date(2024, 10, 17)) == dates.Gestation(41, 3)


def test_aog_out_of_range_is_none():
    due = date(2024, 10, 7)
    # before the LMP
    assert dates.compute_aog(due, date(2023, 12, 1)) is None
    # past 45 weeks
    assert dates.compute_aog(due, due + timedelta(weeks=6)) is None
    assert dates.compute_aog(None, date(2024, 4, 1)) is None


def test_format_aog_singular():
    assert dates.format_aog(dates.Gestation(1, 1)) == "1 week 1 day"
    assert dates.format_aog(None) is None


def test_date_key_normalizes_boundary_values():
    assert dates.date_key("2024-04-01") == date(2024, 4, 1)
    assert dates.date_key(date(2024, 4, 1)) == date(2024, 4, 1)
    assert dates.date_key(None) is None

    # 2024-03-31T20:00Z is already April 1st in Manila (UTC+8)
    instant = datetime(2024, 3, 31, 20, 0, tzinfo=dt_timezone.utc)
    assert dates.date_key(instant) == date(2024, 4, 1)
    assert dates.date_key(int(instant.timestamp() * 1000)) == date(2024, 4, 1)
    assert dates.date_key("2024-03-31T20:00:00Z") == date(2024, 4, 1)


@pytest.mark.parametrize("value", ["not a date", True, [2024, 4, 1], 10**30, "9" * 40])
def test_date_key_rejects_garbage(value):
    with pytest.raises(ValueError):
        dates.date_key(value)


def test_days_remaining_goes_negative():
    ref = date(2024, 4, 10)
    assert dates.days_remaining(date(2024, 4, 15), ref) == 5
    assert dates.days_remaining(date(2024, 4, 10), ref) == 0
    assert dates.days_remaining(date(2024, 4, 7), ref) == -3
    assert dates.days_remaining(None, ref) is None


def test_format_days_remaining():
    assert dates.format_days_remaining(None) == "no end date"
    assert dates.format_days_remaining(-2) == "ended"
    assert dates.format_days_remaining(0) == "ends today"
    assert dates.format_days_remaining(1) == "1 day left"
    assert dates.format_days_remaining(9) == "9 days left"
