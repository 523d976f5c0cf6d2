from django.core.exceptions import PermissionDenied
from django.http import Http404
from rest_framework import exceptions
from rest_framework.views import exception_handler


def api_exception_handler(exc, context):
    """
    DRF's default handler, with every error body normalized to carry a
    machine-readable ``code`` and a human-readable ``message``.
    """
    if isinstance(exc, Http404):
        exc = exceptions.NotFound()
    elif isinstance(exc, PermissionDenied):
        exc = exceptions.PermissionDenied()

    response = exception_handler(exc, context)
    if response is None:
        return None

    data = response.data
    if isinstance(exc, exceptions.ValidationError):
        # Serializer field errors
        response.data = {
            'code': 'validation_error',
            'message': 'Invalid input.',
            'errors': data,
        }
        return response

    if isinstance(data, dict):
        data.setdefault('code', getattr(exc, 'default_code', 'error'))
        if 'message' not in data:
            data['message'] = str(data.pop('detail', exc))
    return response
