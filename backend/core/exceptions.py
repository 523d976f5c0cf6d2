"""
Error taxonomy shared by every app.

Each error is an ``APIException`` so services raise them directly and DRF
renders them; the ``detail`` is a plain dict so callers can show a specific
message (which field, which conflicting record) instead of a generic one.
"""
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import status
from rest_framework.exceptions import APIException


class BookletError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = 'error'
    default_detail = 'Request could not be completed.'

    def __init__(self, message=None, **extra):
        self.message = message or self.default_detail
        self.extra = extra
        self.detail = {'code': self.default_code, 'message': self.message}
        self.detail.update(extra)

    def __str__(self):
        return self.message


class DomainValidationError(BookletError):
    """Malformed input or a rule violation; nothing has been written."""
    default_code = 'validation_error'
    default_detail = 'Invalid input.'

    def __init__(self, message=None, field=None, **extra):
        self.field = field
        super().__init__(message, field=field, **extra)


class InvariantConflict(BookletError):
    status_code = status.HTTP_409_CONFLICT
    default_code = 'conflict'
    default_detail = 'Conflicts with an existing record.'

    def __init__(self, message=None, conflicting_id=None, **extra):
        self.conflicting_id = conflicting_id
        super().__init__(message, conflicting_id=str(conflicting_id) if conflicting_id else None, **extra)


class StaleRecordError(BookletError):
    status_code = status.HTTP_409_CONFLICT
    default_code = 'stale_record'
    default_detail = 'The record was changed by someone else.'

    def __init__(self, record, expected_version, current_version):
        super().__init__(
            f"{type(record).__name__} {record.pk} is at version {current_version}, "
            f"not {expected_version}. Reload and try again.",
            record_id=str(record.pk),
            expected_version=expected_version,
            current_version=current_version,
        )


class RecordNotFound(BookletError):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = 'not_found'
    default_detail = 'This record no longer exists.'

    def __init__(self, resource, record_id):
        self.resource = resource
        self.record_id = record_id
        super().__init__(
            f"{resource} {record_id} does not exist.",
            resource=resource,
            record_id=str(record_id),
        )


class TransitionNotAllowed(BookletError):
    status_code = status.HTTP_409_CONFLICT
    default_code = 'invalid_transition'
    default_detail = 'This status change is not allowed.'

    def __init__(self, resource, from_status, to_status):
        super().__init__(
            f"{resource} cannot move from '{from_status}' to '{to_status}'.",
            from_status=from_status,
            to_status=to_status,
        )


class SaveVisitFailed(BookletError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = 'save_visit_failed'
    default_detail = 'The visit could not be saved.'

    def __init__(self, step, entry_saved=False, entry_id=None, cause=None):
        self.step = step
        self.entry_saved = entry_saved
        self.entry_id = entry_id
        message = f"Saving the visit failed while {step.replace('_', ' ')}."
        if cause is not None:
            message = f"{message} {cause}"
        super().__init__(
            message,
            step=step,
            entry_saved=entry_saved,
            entry_id=str(entry_id) if entry_id else None,
        )


def get_or_not_found(model, pk, resource=None, queryset=None):
    """Point lookup that raises ``RecordNotFound`` instead of ``DoesNotExist``."""
    qs = queryset if queryset is not None else model.objects.all()
    try:
        return qs.get(pk=pk)
    except (model.DoesNotExist, DjangoValidationError, ValueError, TypeError):
        # malformed ids are reported the same way as missing ones
        raise RecordNotFound(resource or model.__name__, pk)
