"""
Booklet access and identity rules.

A mother has at most one ACTIVE booklet. A (booklet, doctor) pair has at
most one active access record; revoking stamps ``revoked_at`` and a later
grant creates a fresh record so the history stays intact.
"""
import logging

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.dates import date_key, due_date_from_lmp
from core.exceptions import (
    DomainValidationError, InvariantConflict, RecordNotFound,
    TransitionNotAllowed, get_or_not_found,
)
from .models import Booklet, BookletAccess, AccessToken

logger = logging.getLogger(__name__)


def require_role(user, role, field):
    if user is None or getattr(user, 'role', None) != role:
        raise DomainValidationError(f"{field} must reference a {role.lower()} account.", field=field)


def _clean_allergies(allergies):
    cleaned = []
    for item in allergies or []:
        text = str(item).strip()
        if text and text not in cleaned:
            cleaned.append(text)
    return cleaned


def _clean_history(history):
    cleaned = []
    for item in history or []:
        if not isinstance(item, dict) or not str(item.get('condition', '')).strip():
            raise DomainValidationError("Each medical history item needs a condition.", field='medical_history')
        cleaned.append({
            'condition': item['condition'].strip(),
            'notes': item.get('notes') or None,
            'diagnosed_year': item.get('diagnosed_year'),
        })
    return cleaned


def _check_pregnancy_dates(lmp, due):
    if lmp and due and due <= lmp:
        raise DomainValidationError("Expected due date must be after the last menstrual period.", field='expected_due_date')


def active_booklet_for(mother):
    return Booklet.objects.filter(mother=mother, status='ACTIVE').first()


def create_booklet_for_patient(mother, label, doctor=None, status='ACTIVE', last_menstrual_period=None,
                               expected_due_date=None, notes='', allergies=None, medical_history=None):
    """
    Open a booklet for ``mother``. When ``doctor`` is given (the "add
    patient" flow) the doctor is granted access in the same transaction.
    """
    require_role(mother, 'MOTHER', 'mother')
    if doctor is not None:
        require_role(doctor, 'DOCTOR', 'doctor')
    label = (label or '').strip()
    if not label:
        raise DomainValidationError("Booklet label is required.", field='label')
    if status not in dict(Booklet.STATUS_CHOICES):
        raise DomainValidationError(f"Unknown booklet status '{status}'.", field='status')

    lmp = date_key(last_menstrual_period)
    due = date_key(expected_due_date) or due_date_from_lmp(lmp)
    _check_pregnancy_dates(lmp, due)

    with transaction.atomic():
        if status == 'ACTIVE':
            existing = active_booklet_for(mother)
            if existing is not None:
                logger.warning("Rejected second active booklet for mother %s (existing %s)", mother.pk, existing.pk)
                raise InvariantConflict(
                    f"{mother} already has an active booklet '{existing.label}'. "
                    f"Complete or archive it before opening a new one.",
                    conflicting_id=existing.pk,
                )
        try:
            with transaction.atomic():
                booklet = Booklet.objects.create(
                    mother=mother,
                    label=label,
                    status=status,
                    last_menstrual_period=lmp,
                    expected_due_date=due,
                    notes=notes or '',
                    allergies=_clean_allergies(allergies),
                    medical_history=_clean_history(medical_history),
                )
        except IntegrityError:
            # Lost a race with a concurrent create
            existing = active_booklet_for(mother)
            raise InvariantConflict(
                f"{mother} already has an active booklet.",
                conflicting_id=existing.pk if existing else None,
            )

        if doctor is not None:
            BookletAccess.objects.create(booklet=booklet, doctor=doctor)

    logger.info("Created booklet %s for mother %s", booklet.pk, mother.pk)
    return booklet


def update_booklet(booklet, fields, expected_version=None):
    """Partial update of the descriptive fields. Status has its own transitions."""
    allowed = {'label', 'last_menstrual_period', 'expected_due_date', 'notes', 'allergies', 'medical_history'}
    unknown = set(fields) - allowed
    if unknown:
        raise DomainValidationError(f"Cannot update {', '.join(sorted(unknown))} here.", field=sorted(unknown)[0])

    booklet.check_version(expected_version)
    if 'label' in fields:
        label = (fields['label'] or '').strip()
        if not label:
            raise DomainValidationError("Booklet label is required.", field='label')
        booklet.label = label
    if 'last_menstrual_period' in fields:
        booklet.last_menstrual_period = date_key(fields['last_menstrual_period'])
        if ('expected_due_date' not in fields and booklet.expected_due_date is None
                and booklet.last_menstrual_period):
            booklet.expected_due_date = due_date_from_lmp(booklet.last_menstrual_period)
    if 'expected_due_date' in fields:
        booklet.expected_due_date = date_key(fields['expected_due_date'])
    if 'notes' in fields:
        booklet.notes = fields['notes'] or ''
    if 'allergies' in fields:
        booklet.allergies = _clean_allergies(fields['allergies'])
    if 'medical_history' in fields:
        booklet.medical_history = _clean_history(fields['medical_history'])

    _check_pregnancy_dates(booklet.last_menstrual_period, booklet.expected_due_date)
    booklet.save()
    return booklet


def _leave_active(booklet, target):
    if booklet.status != 'ACTIVE':
        raise TransitionNotAllowed('Booklet', booklet.status, target)
    booklet.status = target


def complete_booklet(booklet, actual_delivery_date=None):
    _leave_active(booklet, 'COMPLETED')
    delivered = date_key(actual_delivery_date)
    if delivered is not None:
        booklet.actual_delivery_date = delivered
    booklet.save()
    logger.info("Booklet %s completed", booklet.pk)
    return booklet


def archive_booklet(booklet):
    _leave_active(booklet, 'ARCHIVED')
    booklet.save()
    logger.info("Booklet %s archived", booklet.pk)
    return booklet


def grant_access(booklet, doctor):
    require_role(doctor, 'DOCTOR', 'doctor')
    existing = booklet.active_access_for(doctor)
    if existing is not None:
        raise InvariantConflict(
            f"{doctor} already has active access to booklet '{booklet.label}'.",
            conflicting_id=existing.pk,
        )
    try:
        with transaction.atomic():
            access = BookletAccess.objects.create(booklet=booklet, doctor=doctor)
    except IntegrityError:
        existing = booklet.active_access_for(doctor)
        raise InvariantConflict(
            f"{doctor} already has active access to booklet '{booklet.label}'.",
            conflicting_id=existing.pk if existing else None,
        )
    logger.info("Granted doctor %s access to booklet %s", doctor.pk, booklet.pk)
    return access


def revoke_access(booklet, doctor):
    access = booklet.active_access_for(doctor)
    if access is None:
        raise RecordNotFound('BookletAccess', f"{booklet.pk}/{doctor.pk}")
    access.revoked_at = timezone.now()
    access.save(update_fields=['revoked_at', 'updated_at'])
    logger.info("Revoked doctor %s access to booklet %s", doctor.pk, booklet.pk)
    return access


def set_patient_label(booklet, doctor, label):
    """
    Set the doctor's own patient identifier for this booklet. ``None`` clears
    it; a blank string is rejected. Labels are per doctor and never unique.
    """
    access = booklet.active_access_for(doctor)
    if access is None:
        raise RecordNotFound('BookletAccess', f"{booklet.pk}/{doctor.pk}")
    if label is not None:
        label = label.strip()
        if not label:
            raise DomainValidationError("Patient ID cannot be blank; send null to clear it.", field='patient_label')
    access.patient_label = label
    access.save(update_fields=['patient_label', 'updated_at'])
    return access


def issue_access_token(booklet, mother):
    if booklet.mother_id != mother.pk:
        raise DomainValidationError("Only the booklet owner can share it.", field='booklet')
    return AccessToken.objects.create(booklet=booklet)


def redeem_access_token(token_id, doctor):
    """Use a hand-off token. An existing active grant is reused, not duplicated."""
    require_role(doctor, 'DOCTOR', 'doctor')
    with transaction.atomic():
        token = get_or_not_found(AccessToken, token_id, queryset=AccessToken.objects.select_for_update())
        now = timezone.now()
        if token.used_at is not None:
            raise DomainValidationError("This code has already been used.", field='token')
        if token.is_expired(now):
            raise DomainValidationError("This code has expired. Ask the patient for a new one.", field='token')

        token.used_at = now
        token.used_by = doctor
        token.save(update_fields=['used_at', 'used_by', 'updated_at'])

        access = token.booklet.active_access_for(doctor)
        if access is None:
            access = BookletAccess.objects.create(booklet=token.booklet, doctor=doctor)
            logger.info("Doctor %s redeemed token %s for booklet %s", doctor.pk, token.pk, token.booklet_id)
    return access


def purge_expired_tokens(now=None):
    deleted, _ = AccessToken.objects.filter(expires_at__lt=now or timezone.now(), used_at__isnull=True).delete()
    return deleted
