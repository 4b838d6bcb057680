"""Typed failures raised by the order lifecycle engine.

Every public operation of ``OrderService`` either returns its result or
raises exactly one of these. Views catch ``OrderError`` and render the
``code`` and message as JSON with the matching HTTP status, so callers
never see an unstructured fault.
"""


class OrderError(Exception):
    """Base class for structured order failures.

    Attributes:
        code: Short machine-readable error code (e.g. ``NOT_FOUND``).
        http_status: HTTP status the transport layer should answer with.
        message: Human-readable description.
    """

    code = "ORDER_ERROR"
    http_status = 400

    def __init__(self, message: str | None = None, code: str | None = None, **context):
        if code:
            self.code = code
        self.message = message or self.code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"detail": self.code, "message": self.message}
        if self.context:
            body.update({k: str(v) for k, v in self.context.items()})
        return body


class NotFound(OrderError):
    code = "NOT_FOUND"
    http_status = 404


class Forbidden(OrderError):
    code = "FORBIDDEN"
    http_status = 403


class InvalidTransition(OrderError):
    code = "INVALID_TRANSITION"
    http_status = 409


class InvalidState(OrderError):
    code = "INVALID_STATE"
    http_status = 409


class AlreadyComplete(OrderError):
    code = "ALREADY_COMPLETE"
    http_status = 409


class CodeMismatch(OrderError):
    code = "CODE_MISMATCH"
    http_status = 422


class ValidationFailed(OrderError):
    code = "VALIDATION_ERROR"
    http_status = 400


class DependencyFailure(OrderError):
    code = "DEPENDENCY_FAILURE"
    http_status = 503
