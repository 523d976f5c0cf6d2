"""
Visit entry lifecycle.

``save_visit`` is the single write path for a doctor's visit: it creates
or amends one entry and reconciles the medications and lab requests drafted
with it. Everything is validated before the first write, and all writes run
in one transaction, so readers see the entry together with its children or
not at all.
"""
import logging
import uuid
from dataclasses import dataclass, field, fields as dataclass_fields
from datetime import date
from typing import List, Optional

from django.db import DatabaseError, transaction
from rest_framework.exceptions import PermissionDenied

from booklet_cms.sio import emit_booklet_update
from booklets.models import Booklet
from booklets.services import require_role
from core import dates
from core.exceptions import DomainValidationError, SaveVisitFailed, get_or_not_found
from lab.models import LabRequest
from lab.services import build_lab_request
from lab.transitions import clean_attachments
from medications.models import Medication
from medications.services import build_medication, delete_medications
from .models import MedicalEntry

logger = logging.getLogger(__name__)

ENTRY_FIELDS = (
    'entry_type', 'notes', 'vitals', 'diagnosis', 'recommendations',
    'risk_level', 'follow_up_date', 'attachments',
)


@dataclass
class MedicationDraft:
    name: str
    dosage: str
    frequency_per_day: int
    client_key: Optional[str] = None
    id: Optional[str] = None
    generic_name: str = ''
    instructions: str = ''
    end_date: Optional[date] = None
    times_of_day: List[str] = field(default_factory=list)


@dataclass
class LabDraft:
    description: str
    client_key: Optional[str] = None
    id: Optional[str] = None
    priority: Optional[str] = None
    due_date: Optional[date] = None
    notes: str = ''


@dataclass
class SaveVisitResult:
    entry: MedicalEntry
    created: bool
    medications: List[Medication]
    lab_requests: List[LabRequest]
    deleted_medication_ids: List[uuid.UUID]
    deleted_lab_ids: List[uuid.UUID]


def _as_draft(cls, value):
    if isinstance(value, cls):
        return value
    if not isinstance(value, dict):
        raise DomainValidationError(f"Each {cls.__name__} must be an object.", field='drafts')
    known = {f.name for f in dataclass_fields(cls)}
    unknown = set(value) - known
    if unknown:
        raise DomainValidationError(f"Unknown draft field(s): {', '.join(sorted(unknown))}.", field=sorted(unknown)[0])
    try:
        return cls(**value)
    except TypeError:
        raise DomainValidationError(f"{cls.__name__} is missing required fields.", field='drafts')


def _as_ids(values, field_name):
    ids = []
    for value in values or []:
        try:
            ids.append(value if isinstance(value, uuid.UUID) else uuid.UUID(str(value)))
        except ValueError:
            raise DomainValidationError(f"'{value}' is not a valid id.", field=field_name)
    return list(dict.fromkeys(ids))


def _clean_vitals(vitals):
    if vitals is None:
        return {}
    if not isinstance(vitals, dict):
        raise DomainValidationError("Vitals must be an object.", field='vitals')
    unknown = set(vitals) - set(MedicalEntry.VITAL_KEYS)
    if unknown:
        raise DomainValidationError(f"Unknown vital(s): {', '.join(sorted(unknown))}.", field='vitals')
    return {key: value for key, value in vitals.items() if value not in (None, '')}


def _clean_entry_fields(entry_fields, creating):
    entry_fields = dict(entry_fields or {})
    unknown = set(entry_fields) - set(ENTRY_FIELDS)
    if unknown:
        raise DomainValidationError(f"Cannot set {', '.join(sorted(unknown))} on an entry.", field=sorted(unknown)[0])

    cleaned = {}
    if 'entry_type' in entry_fields or creating:
        entry_type = str(entry_fields.get('entry_type') or '').upper()
        if entry_type not in dict(MedicalEntry.ENTRY_TYPE_CHOICES):
            raise DomainValidationError("A valid entry type is required.", field='entry_type')
        cleaned['entry_type'] = entry_type
    if 'risk_level' in entry_fields:
        risk = entry_fields['risk_level']
        risk = str(risk).upper() if risk else None
        if risk is not None and risk not in dict(MedicalEntry.RISK_CHOICES):
            raise DomainValidationError(f"Unknown risk level '{risk}'.", field='risk_level')
        cleaned['risk_level'] = risk
    if 'vitals' in entry_fields:
        cleaned['vitals'] = _clean_vitals(entry_fields['vitals'])
    if 'attachments' in entry_fields:
        cleaned['attachments'] = clean_attachments(entry_fields['attachments'])
    if 'follow_up_date' in entry_fields:
        try:
            cleaned['follow_up_date'] = dates.date_key(entry_fields['follow_up_date'])
        except ValueError:
            raise DomainValidationError("Follow-up date is not a valid date.", field='follow_up_date')
    for text_field in ('notes', 'diagnosis', 'recommendations'):
        if text_field in entry_fields:
            cleaned[text_field] = entry_fields[text_field] or ''
    return cleaned


def _check_deletions(model, ids, entry, field_name):
    if not ids:
        return []
    if entry is None:
        raise DomainValidationError("Nothing can be deleted while creating a new entry.", field=field_name)
    owned = set(model.objects.filter(pk__in=ids, medical_entry=entry).values_list('pk', flat=True))
    stray = [str(pk) for pk in ids if pk not in owned]
    if stray:
        raise DomainValidationError(
            f"{', '.join(stray)} do not belong to this entry.", field=field_name
        )
    return ids


def _pending_drafts(model, drafts, entry, field_name):
    """
    Drop drafts that are already persisted on this entry (by id or by
    client key) and repeated client keys within the same call.
    """
    if not drafts:
        return []
    existing_ids = set()
    existing_keys = set()
    if entry is not None:
        for pk, key in model.objects.filter(medical_entry=entry).values_list('pk', 'client_key'):
            existing_ids.add(pk)
            if key:
                existing_keys.add(key)

    pending, seen_keys = [], set()
    for draft in drafts:
        if draft.id is not None:
            draft_id = _as_ids([draft.id], field_name)[0]
            if draft_id not in existing_ids:
                raise DomainValidationError(f"{draft.id} does not belong to this entry.", field=field_name)
            continue
        if draft.client_key:
            if draft.client_key in existing_keys or draft.client_key in seen_keys:
                continue
            seen_keys.add(draft.client_key)
        pending.append(draft)
    return pending


def todays_entry(booklet, doctor, on=None):
    """The doctor's own entry on this booklet for ``on`` (default today), if any."""
    day = dates.date_key(on) if on is not None else dates.today()
    return MedicalEntry.objects.filter(booklet=booklet, doctor=doctor, visit_date=day).order_by('-created_at').first()


def save_visit(booklet_id, doctor, visit_date=None, entry_fields=None, medication_drafts=(), lab_drafts=(),
               deleted_medication_ids=(), deleted_lab_ids=(), entry_id=None, expected_version=None):
    """
    Create (no ``entry_id``) or update (``entry_id`` given) a visit entry and
    reconcile its medications and lab requests.

    Only today's entry can be updated. In update mode only the keys present
    in ``entry_fields`` change, and ``deleted_*_ids`` must all belong to the
    entry. Drafts already stored on the entry are left alone, so re-sending
    the same call inserts nothing new. A medication draft without an end date
    runs until the entry's follow-up date when there is one.
    """
    booklet = get_or_not_found(Booklet, booklet_id, resource='Booklet')
    require_role(doctor, 'DOCTOR', 'doctor')
    if booklet.active_access_for(doctor) is None:
        raise PermissionDenied("You do not have access to this booklet.")
    if booklet.status == 'ARCHIVED':
        raise DomainValidationError("Archived booklets are read-only.", field='booklet')

    creating = entry_id is None
    entry = None
    try:
        day = dates.date_key(visit_date)
    except ValueError:
        raise DomainValidationError("Visit date is not a valid date.", field='visit_date')

    if not creating:
        entry = get_or_not_found(MedicalEntry, entry_id, resource='Medical entry')
        if entry.booklet_id != booklet.pk:
            raise DomainValidationError("This entry belongs to a different booklet.", field='entry_id')
        if entry.doctor_id != doctor.pk:
            raise PermissionDenied("Only the doctor who wrote this entry can edit it.")
        if day is not None and not dates.same_day(day, entry.visit_date):
            raise DomainValidationError(
                f"This entry is for {entry.visit_date.isoformat()}; start a new entry for another day.",
                field='visit_date',
            )
        if entry.visit_date != dates.today():
            raise DomainValidationError(
                "Entries from past days are final; only today's entry can be edited here.", field='entry_id',
            )
        day = entry.visit_date
        entry.check_version(expected_version)
    elif day is None:
        day = dates.today()

    cleaned = _clean_entry_fields(entry_fields, creating)
    follow_up = cleaned.get('follow_up_date', entry.follow_up_date if entry else None)
    if follow_up is not None and follow_up < day:
        raise DomainValidationError("Follow-up date cannot be before the visit.", field='follow_up_date')

    med_ids = _check_deletions(Medication, _as_ids(deleted_medication_ids, 'deleted_medication_ids'),
                               entry, 'deleted_medication_ids')
    lab_ids = _check_deletions(LabRequest, _as_ids(deleted_lab_ids, 'deleted_lab_ids'),
                               entry, 'deleted_lab_ids')
    if lab_ids and LabRequest.objects.filter(pk__in=lab_ids).exclude(status='PENDING').exists():
        raise DomainValidationError("Only pending lab requests can be withdrawn; cancel the others.",
                                    field='deleted_lab_ids')

    med_drafts = _pending_drafts(Medication, [_as_draft(MedicationDraft, d) for d in medication_drafts or []],
                                 entry, 'medication_drafts')
    lab_drafts = _pending_drafts(LabRequest, [_as_draft(LabDraft, d) for d in lab_drafts or []],
                                 entry, 'lab_drafts')

    new_medications = [
        build_medication(
            booklet,
            name=draft.name,
            dosage=draft.dosage,
            frequency_per_day=draft.frequency_per_day,
            start_date=day,
            end_date=draft.end_date or follow_up,
            instructions=draft.instructions,
            generic_name=draft.generic_name,
            times_of_day=draft.times_of_day,
            client_key=draft.client_key,
        )
        for draft in med_drafts
    ]
    new_labs = [
        build_lab_request(
            booklet,
            description=draft.description,
            requested_date=day,
            requested_by=doctor,
            priority=draft.priority,
            due_date=draft.due_date,
            notes=draft.notes,
            client_key=draft.client_key,
        )
        for draft in lab_drafts
    ]

    step = 'creating_entry' if creating else 'updating_entry'
    try:
        with transaction.atomic():
            if creating:
                entry = MedicalEntry.objects.create(booklet=booklet, doctor=doctor, visit_date=day, **cleaned)
            elif cleaned:
                for name, value in cleaned.items():
                    setattr(entry, name, value)
                entry.save()

            step = 'deleting_medications'
            delete_medications(Medication.objects.filter(pk__in=med_ids))

            step = 'deleting_labs'
            LabRequest.objects.filter(pk__in=lab_ids).delete()

            step = 'inserting_medications'
            for medication in new_medications:
                medication.medical_entry = entry
                medication.save()

            step = 'inserting_labs'
            for lab in new_labs:
                lab.medical_entry = entry
                lab.save()

            step = 'syncing_risk_level'
            risk = cleaned.get('risk_level')
            if risk and booklet.current_risk_level != risk:
                booklet.current_risk_level = risk
                booklet.save(update_fields=['current_risk_level'])

            emit_booklet_update(booklet.pk, 'visit', entry_id=entry.pk)
    except DatabaseError as exc:
        logger.exception("save_visit failed on booklet %s while %s", booklet.pk, step)
        raise SaveVisitFailed(step, entry_saved=False, entry_id=entry_id, cause=exc)

    logger.info(
        "%s entry %s on booklet %s: +%d medications, +%d labs, -%d medications, -%d labs",
        "Created" if creating else "Updated", entry.pk, booklet.pk,
        len(new_medications), len(new_labs), len(med_ids), len(lab_ids),
    )
    return SaveVisitResult(
        entry=entry,
        created=creating,
        medications=new_medications,
        lab_requests=new_labs,
        deleted_medication_ids=med_ids,
        deleted_lab_ids=lab_ids,
    )
