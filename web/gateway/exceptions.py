"""DRF exception handler that renders framework errors like domain errors.

Authentication, permission and throttling failures raised by DRF are
reported with the same ``{"detail": CODE, "message": text}`` body the
views use for ``OrderError``.
"""

from rest_framework import exceptions
from rest_framework.views import exception_handler

CODES = (
    (exceptions.NotAuthenticated, "UNAUTHENTICATED"),
    (exceptions.AuthenticationFailed, "UNAUTHENTICATED"),
    (exceptions.PermissionDenied, "FORBIDDEN"),
    (exceptions.Throttled, "THROTTLED"),
    (exceptions.MethodNotAllowed, "METHOD_NOT_ALLOWED"),
    (exceptions.ParseError, "VALIDATION_ERROR"),
)


def api_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is None:
        return None
    for exc_type, code in CODES:
        if isinstance(exc, exc_type):
            response.data = {"detail": code, "message": str(exc.detail)}
            break
    return response
