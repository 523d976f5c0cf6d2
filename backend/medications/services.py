"""
Medication writes. Every date rule lives in ``medications.engine``; this
module loads, applies and persists the updates it returns.
"""
import logging

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from booklet_cms.sio import emit_booklet_update
from core import dates
from core.exceptions import DomainValidationError
from . import engine
from .models import Medication, MedicationIntakeLog

logger = logging.getLogger(__name__)

INTAKE_STATUSES = dict(MedicationIntakeLog.STATUS_CHOICES)


def validate_medication_fields(name, dosage, frequency_per_day, start_date, end_date):
    if not (name or '').strip():
        raise DomainValidationError("Medication name is required.", field='name')
    if not (dosage or '').strip():
        raise DomainValidationError("Dosage is required.", field='dosage')
    if frequency_per_day not in dict(Medication.FREQUENCY_CHOICES):
        raise DomainValidationError("Frequency must be between 1 and 4 doses a day.", field='frequency_per_day')
    start = dates.date_key(start_date)
    end = dates.date_key(end_date)
    if start is None:
        raise DomainValidationError("Start date is required.", field='start_date')
    if end is not None and end < start:
        raise DomainValidationError("End date cannot be before the start date.", field='end_date')


def build_medication(booklet, name, dosage, frequency_per_day, start_date, end_date=None,
                     instructions='', generic_name='', times_of_day=None, medical_entry=None, client_key=None):
    """Validated, unsaved ``Medication``."""
    validate_medication_fields(name, dosage, frequency_per_day, start_date, end_date)
    return Medication(
        booklet=booklet,
        medical_entry=medical_entry,
        client_key=client_key,
        name=name.strip(),
        generic_name=(generic_name or '').strip(),
        dosage=dosage.strip(),
        instructions=instructions or '',
        frequency_per_day=frequency_per_day,
        start_date=dates.date_key(start_date),
        end_date=dates.date_key(end_date),
        times_of_day=list(times_of_day or []),
    )


def _apply(medication, update, expected_version):
    with transaction.atomic():
        locked = Medication.objects.select_for_update().get(pk=medication.pk)
        locked.check_version(expected_version)
        for field, value in update.as_fields().items():
            setattr(locked, field, value)
        locked.save()
        emit_booklet_update(locked.booklet_id, 'medication', medication_id=locked.pk)
    return locked


def extend_medication(medication, new_end_date, expected_version=None, today=None):
    update = engine.extend(medication, new_end_date, today=today)
    medication = _apply(medication, update, expected_version)
    logger.info("Extended medication %s to %s", medication.pk, medication.end_date)
    return medication


def stop_medication(medication, effective_date=None, expected_version=None):
    update = engine.stop(medication, effective_date)
    if not medication.is_active and update.end_date == dates.date_key(medication.end_date):
        return medication
    medication = _apply(medication, update, expected_version)
    logger.info("Stopped medication %s effective %s", medication.pk, medication.end_date)
    return medication


def log_intake(medication, dose_index, status, user=None, scheduled_date=None, notes=''):
    """
    Record what happened to one dose slot. A second log for the same
    (date, dose) replaces the first.
    """
    status = str(status or '').upper()
    if status not in INTAKE_STATUSES:
        raise DomainValidationError(f"Unknown intake status '{status}'.", field='status')

    day = dates.date_key(scheduled_date) or dates.today()
    if not engine.is_active_on(medication, day):
        raise DomainValidationError(f"{medication.name} is not scheduled on {day.isoformat()}.", field='scheduled_date')

    try:
        dose_index = int(dose_index)
    except (TypeError, ValueError):
        raise DomainValidationError("dose_index must be a number.", field='dose_index')
    slots = medication.frequency_per_day
    if dose_index < 0:
        raise DomainValidationError("dose_index cannot be negative.", field='dose_index')
    if slots != engine.AS_NEEDED and dose_index >= slots:
        raise DomainValidationError(f"dose_index must be between 0 and {slots - 1}.", field='dose_index')

    with transaction.atomic():
        log, created = MedicationIntakeLog.objects.update_or_create(
            medication=medication,
            scheduled_date=day,
            dose_index=dose_index,
            defaults={
                'status': status,
                'taken_at': timezone.now() if status == 'TAKEN' else None,
                'recorded_by': user,
                'notes': notes or '',
            }
        )
        emit_booklet_update(medication.booklet_id, 'intake', medication_id=medication.pk)

    logger.info("%s intake %s for medication %s on %s #%s",
                "Logged" if created else "Updated", status, medication.pk, day, dose_index)
    return log


def adherence_for(medication, window_days=None, today=None):
    window = window_days if window_days is not None else settings.ADHERENCE_WINDOW_DAYS
    logs = medication.intake_logs.all()
    return engine.compute_adherence(medication, logs, window_days=window, today=today)


def delete_medications(queryset):
    """Delete medications together with their intake logs."""
    ids = list(queryset.values_list('pk', flat=True))
    MedicationIntakeLog.objects.filter(medication_id__in=ids).delete()
    Medication.objects.filter(pk__in=ids).delete()
    return ids
