"""Domain errors raised by the booking and settlement services.

Each error carries a stable code and the HTTP status the API layer maps it to.
Services never build HTTP responses themselves.
"""

from motocare.core.error_codes import ErrorCode


class DomainException(Exception):
    code = ErrorCode.VALIDATION_ERROR
    http_status = 400

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class ValidationError(DomainException):
    code = ErrorCode.VALIDATION_ERROR
    http_status = 400


class NotFoundError(DomainException):
    code = ErrorCode.NOT_FOUND
    http_status = 404


class UnauthorizedActorError(DomainException):
    """Caller holds no role at all on the target appointment."""

    code = ErrorCode.UNAUTHORIZED_ACTOR
    http_status = 403


class InvalidTransitionError(DomainException):
    code = ErrorCode.INVALID_TRANSITION
    http_status = 400


class ForbiddenTransitionError(DomainException):
    code = ErrorCode.FORBIDDEN_TRANSITION
    http_status = 403


class AdmissionRejectedError(DomainException):
    code = ErrorCode.ADMISSION_REJECTED
    http_status = 409


class LockedError(DomainException):
    code = ErrorCode.LOCKED
    http_status = 409


class RedemptionLimitError(DomainException):
    code = ErrorCode.REDEMPTION_LIMIT
    http_status = 400


class ConflictError(DomainException):
    code = ErrorCode.CONFLICT
    http_status = 409
