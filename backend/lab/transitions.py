"""
Lab request state machine.

PENDING moves to COMPLETED or CANCELLED and stops there; there is no way
back to PENDING. These functions validate a move and return the fields to
write, leaving persistence to ``lab.services``.
"""
from core import dates
from core.exceptions import DomainValidationError, TransitionNotAllowed

ALLOWED_TRANSITIONS = {
    'PENDING': {'COMPLETED', 'CANCELLED'},
    'COMPLETED': set(),
    'CANCELLED': set(),
}


def check_transition(lab, to_status):
    if to_status not in ALLOWED_TRANSITIONS.get(lab.status, set()):
        raise TransitionNotAllowed('Lab request', lab.status, to_status)


def clean_attachments(attachments):
    cleaned = []
    for ref in attachments or []:
        ref = str(ref).strip()
        if not ref:
            raise DomainValidationError("Attachment references cannot be blank.", field='attachments')
        cleaned.append(ref)
    return cleaned


def complete(lab, results=None, attachments=None, completed_date=None, uploaded_by_mother=None):
    """
    Results text, attachments or both are required. New attachments are
    added to any already on the request.
    """
    check_transition(lab, 'COMPLETED')
    results = (results or '').strip()
    new_attachments = clean_attachments(attachments)
    if not results and not new_attachments:
        raise DomainValidationError("Add results or at least one attachment to complete this lab.", field='results')

    fields = {
        'status': 'COMPLETED',
        'results': results or lab.results,
        'attachments': list(lab.attachments or []) + new_attachments,
        'completed_date': dates.date_key(completed_date) or dates.today(),
    }
    if uploaded_by_mother is not None:
        fields['uploaded_by_mother'] = uploaded_by_mother
    return fields


def cancel(lab, reason=None):
    check_transition(lab, 'CANCELLED')
    fields = {'status': 'CANCELLED'}
    if reason:
        fields['notes'] = f"{lab.notes}\n{reason}".strip() if lab.notes else reason
    return fields
