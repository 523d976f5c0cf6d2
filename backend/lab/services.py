import logging

from django.db import transaction

from booklet_cms.sio import emit_booklet_update
from core import dates
from core.exceptions import DomainValidationError
from . import transitions
from .models import LabRequest

logger = logging.getLogger(__name__)


def build_lab_request(booklet, description, requested_date, requested_by=None, priority=None,
                      due_date=None, notes='', medical_entry=None, client_key=None):
    """Validated, unsaved ``LabRequest`` in PENDING."""
    description = (description or '').strip()
    if not description:
        raise DomainValidationError("Lab description is required.", field='description')
    if priority is not None:
        priority = str(priority).upper()
        if priority not in dict(LabRequest.PRIORITY_CHOICES):
            raise DomainValidationError(f"Unknown lab priority '{priority}'.", field='priority')
    requested = dates.date_key(requested_date)
    if requested is None:
        raise DomainValidationError("Requested date is required.", field='requested_date')
    due = dates.date_key(due_date)
    if due is not None and due < requested:
        raise DomainValidationError("Due date cannot be before the requested date.", field='due_date')

    return LabRequest(
        booklet=booklet,
        medical_entry=medical_entry,
        requested_by=requested_by,
        client_key=client_key,
        description=description,
        priority=priority,
        due_date=due,
        requested_date=requested,
        notes=notes or '',
    )


def create_lab_request(booklet, doctor, description, requested_date=None, **kwargs):
    lab = build_lab_request(booklet, description, requested_date or dates.today(), requested_by=doctor, **kwargs)
    with transaction.atomic():
        lab.save()
        emit_booklet_update(booklet.pk, 'lab', lab_id=lab.pk)
    logger.info("Lab request %s created on booklet %s", lab.pk, booklet.pk)
    return lab


def _apply(lab, build_fields, expected_version):
    with transaction.atomic():
        locked = LabRequest.objects.select_for_update().get(pk=lab.pk)
        locked.check_version(expected_version)
        for field, value in build_fields(locked).items():
            setattr(locked, field, value)
        locked.save()
        emit_booklet_update(locked.booklet_id, 'lab', lab_id=locked.pk)
    return locked


def complete_lab_request(lab, results=None, attachments=None, completed_date=None, expected_version=None):
    lab = _apply(
        lab,
        lambda locked: transitions.complete(locked, results, attachments, completed_date),
        expected_version,
    )
    logger.info("Lab request %s completed", lab.pk)
    return lab


def upload_results(lab, mother, attachments=None, results=None, completed_date=None, expected_version=None):
    """The patient supplies the result herself; the ordering doctor stays on record."""
    if getattr(mother, 'role', None) != 'MOTHER' or lab.booklet.mother_id != mother.pk:
        raise DomainValidationError("Only the booklet owner can upload lab results.", field='uploaded_by_mother')
    lab = _apply(
        lab,
        lambda locked: transitions.complete(locked, results, attachments, completed_date, uploaded_by_mother=mother),
        expected_version,
    )
    logger.info("Lab request %s completed by patient upload", lab.pk)
    return lab


def cancel_lab_request(lab, reason=None, expected_version=None):
    lab = _apply(lab, lambda locked: transitions.cancel(locked, reason), expected_version)
    logger.info("Lab request %s cancelled", lab.pk)
    return lab


def pending_for_doctor(doctor):
    """Pending labs this doctor ordered, on booklets the doctor can still open."""
    return LabRequest.objects.filter(
        requested_by=doctor,
        status='PENDING',
        booklet__access_records__doctor=doctor,
        booklet__access_records__revoked_at__isnull=True,
    ).select_related('booklet', 'booklet__mother').distinct().order_by('due_date', 'requested_date')
