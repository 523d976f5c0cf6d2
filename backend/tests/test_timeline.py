from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from core import dates
from lab import services as lab_services
from medical.services import save_visit
from medications import services as medication_services
from timeline.aggregation import (
    default_selection, group_by_calendar_date, resolve_selection, summarize_booklet,
)


def test_groups_newest_first_and_keep_order():
    items = [
        {'id': 1, 'visit_date': date(2024, 3, 1)},
        {'id': 2, 'visit_date': date(2024, 5, 1)},
        {'id': 3, 'visit_date': date(2024, 3, 1)},
        {'id': 4, 'visit_date': None},
    ]
    groups = group_by_calendar_date(items, 'visit_date')
    assert [day for day, _ in groups] == [date(2024, 5, 1), date(2024, 3, 1)]
    assert [item['id'] for item in groups[1][1]] == [1, 3]


def test_groups_work_on_objects():
    items = [SimpleNamespace(requested_date='2024-03-01'), SimpleNamespace(requested_date='2024-03-02')]
    groups = group_by_calendar_date(items, 'requested_date')
    assert groups[0][0] == date(2024, 3, 2)


def test_default_selection_is_most_recent():
    days = [date(2024, 3, 1), date(2024, 5, 1), date(2024, 4, 1)]
    assert default_selection(days) == date(2024, 5, 1)
    assert default_selection([]) is None


def test_requested_selection_overrides_default():
    days = [date(2024, 3, 1), date(2024, 5, 1)]
    assert resolve_selection(days, '2024-03-01') == date(2024, 3, 1)
    assert resolve_selection(days, '2024-04-01') == date(2024, 5, 1)


@pytest.mark.django_db
def test_summary_counts(booklet, doctor):
    today = dates.today()
    follow_up = today + timedelta(days=10)

    save_visit(
        booklet.pk, doctor, visit_date=today - timedelta(days=30),
        entry_fields={'entry_type': 'PRENATAL_CHECKUP', 'vitals': {'blood_pressure': '110/70'}},
        medication_drafts=[{'name': 'Old course', 'dosage': '1 tab', 'frequency_per_day': 1,
                            'end_date': today - timedelta(days=20)}],
    )
    result = save_visit(
        booklet.pk, doctor, visit_date=today,
        entry_fields={'entry_type': 'PRENATAL_CHECKUP', 'follow_up_date': follow_up,
                      'vitals': {'blood_pressure': '120/80', 'weight': 61.5}},
        medication_drafts=[
            {'name': 'Iron', 'dosage': '325 mg', 'frequency_per_day': 1},
            {'name': 'Folic acid', 'dosage': '5 mg', 'frequency_per_day': 1},
        ],
        lab_drafts=[{'description': 'CBC'}, {'description': 'Urinalysis'}],
    )
    medication_services.stop_medication(result.medications[1], today)
    lab_services.cancel_lab_request(result.lab_requests[1])

    summary = summarize_booklet(booklet)
    assert summary.active_medication_count == 1
    assert summary.pending_lab_count == 1
    assert summary.has_allergies is True
    assert summary.last_visit_date == today
    assert summary.next_appointment == follow_up
    assert summary.latest_vitals == {'blood_pressure': '120/80', 'weight': 61.5}


@pytest.mark.django_db
def test_empty_booklet_summary(mother):
    from booklets.services import create_booklet_for_patient

    booklet = create_booklet_for_patient(mother, 'Empty')
    summary = summarize_booklet(booklet)
    assert summary.active_medication_count == 0
    assert summary.pending_lab_count == 0
    assert summary.has_allergies is False
    assert summary.last_visit_date is None
    assert summary.next_appointment is None
    assert summary.aog is None
