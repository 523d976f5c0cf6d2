from datetime import date, timedelta

import pytest
from django.utils import timezone

from booklets import services
from booklets.models import Booklet, BookletAccess, AccessToken
from core.exceptions import (
    DomainValidationError, InvariantConflict, RecordNotFound,
    StaleRecordError, TransitionNotAllowed,
)


@pytest.mark.django_db
def test_second_active_booklet_is_rejected(booklet, mother):
    with pytest.raises(InvariantConflict) as excinfo:
        services.create_booklet_for_patient(mother, 'Second pregnancy')
    assert excinfo.value.detail['conflicting_id'] == str(booklet.pk)
    assert 'First pregnancy' in str(excinfo.value)
    assert Booklet.objects.filter(mother=mother).count() == 1


@pytest.mark.django_db
def test_new_booklet_allowed_after_completion(booklet, mother):
    services.complete_booklet(booklet, date(2024, 10, 1))
    second = services.create_booklet_for_patient(mother, 'Second pregnancy')
    assert second.status == 'ACTIVE'
    booklet.refresh_from_db()
    assert booklet.status == 'COMPLETED'
    assert booklet.actual_delivery_date == date(2024, 10, 1)


@pytest.mark.django_db
def test_due_date_derived_from_lmp(mother):
    booklet = services.create_booklet_for_patient(mother, 'Derived', last_menstrual_period='2024-01-01')
    assert booklet.expected_due_date == date(2024, 10, 7)
    assert booklet.aog_on(date(2024, 4, 1)) == (13, 0)


@pytest.mark.django_db
def test_booklet_requires_mother_and_label(doctor, mother):
    with pytest.raises(DomainValidationError):
        services.create_booklet_for_patient(doctor, 'Wrong owner')
    with pytest.raises(DomainValidationError):
        services.create_booklet_for_patient(mother, '   ')
    with pytest.raises(DomainValidationError):
        services.create_booklet_for_patient(
            mother, 'Bad dates', last_menstrual_period='2024-05-01', expected_due_date='2024-04-01'
        )


@pytest.mark.django_db
def test_booklet_transitions_only_leave_active(booklet):
    services.archive_booklet(booklet)
    with pytest.raises(TransitionNotAllowed):
        services.complete_booklet(booklet)


@pytest.mark.django_db
def test_update_booklet_checks_version(booklet):
    version = booklet.version
    updated = services.update_booklet(booklet, {'notes': 'Mild anemia'}, expected_version=version)
    assert updated.version == version + 1

    with pytest.raises(StaleRecordError):
        services.update_booklet(booklet, {'notes': 'Again'}, expected_version=version)


@pytest.mark.django_db
def test_update_rejects_status_change(booklet):
    with pytest.raises(DomainValidationError):
        services.update_booklet(booklet, {'status': 'ARCHIVED'})


@pytest.mark.django_db
def test_duplicate_grant_conflicts(booklet, doctor):
    with pytest.raises(InvariantConflict):
        services.grant_access(booklet, doctor)
    assert BookletAccess.objects.filter(booklet=booklet, doctor=doctor).count() == 1


@pytest.mark.django_db
def test_revoke_keeps_history_and_allows_regrant(booklet, doctor):
    revoked = services.revoke_access(booklet, doctor)
    assert revoked.revoked_at is not None
    assert booklet.active_access_for(doctor) is None

    regranted = services.grant_access(booklet, doctor)
    assert regranted.pk != revoked.pk
    assert BookletAccess.objects.filter(booklet=booklet, doctor=doctor).count() == 2


@pytest.mark.django_db
def test_revoke_without_access_is_not_found(booklet, other_doctor):
    with pytest.raises(RecordNotFound):
        services.revoke_access(booklet, other_doctor)


@pytest.mark.django_db
def test_patient_label_is_per_doctor(booklet, doctor, other_doctor):
    services.grant_access(booklet, other_doctor)
    services.set_patient_label(booklet, doctor, '  P-001 ')
    services.set_patient_label(booklet, other_doctor, 'P-001')

    assert booklet.active_access_for(doctor).patient_label == 'P-001'
    assert booklet.active_access_for(other_doctor).patient_label == 'P-001'

    with pytest.raises(DomainValidationError):
        services.set_patient_label(booklet, doctor, '   ')
    assert services.set_patient_label(booklet, doctor, None).patient_label is None


@pytest.mark.django_db
def test_access_token_redeem_once(booklet, mother, other_doctor):
    token = services.issue_access_token(booklet, mother)
    access = services.redeem_access_token(token.pk, other_doctor)
    assert access.doctor == other_doctor
    assert booklet.is_visible_to(other_doctor)

    with pytest.raises(DomainValidationError):
        services.redeem_access_token(token.pk, other_doctor)


@pytest.mark.django_db
def test_expired_token_is_rejected_and_purged(booklet, mother, other_doctor):
    token = services.issue_access_token(booklet, mother)
    AccessToken.objects.filter(pk=token.pk).update(expires_at=timezone.now() - timedelta(minutes=1))

    with pytest.raises(DomainValidationError):
        services.redeem_access_token(token.pk, other_doctor)
    assert services.purge_expired_tokens() == 1


@pytest.mark.django_db
def test_only_owner_can_issue_token(booklet, other_mother):
    with pytest.raises(DomainValidationError):
        services.issue_access_token(booklet, other_mother)


@pytest.mark.django_db
def test_lmp_update_keeps_existing_due_date(booklet, mother):
    due = booklet.expected_due_date
    services.update_booklet(booklet, {'last_menstrual_period': '2024-01-01'})
    booklet.refresh_from_db()
    assert booklet.expected_due_date == due


@pytest.mark.django_db
def test_lmp_update_fills_missing_due_date(other_mother):
    booklet = services.create_booklet_for_patient(other_mother, 'Undated')
    services.update_booklet(booklet, {'last_menstrual_period': '2024-01-01'})
    booklet.refresh_from_db()
    assert booklet.expected_due_date == date(2024, 10, 7)
