"""
Custom exceptions for loyalty ledger business logic.

Each exception carries a machine-readable kind (its ``code``) and the HTTP
status the API boundary should answer with. Services raise these; the error
handlers registered in create_app() turn them into JSON responses.
"""
from .errors import ErrorCode


class LoyaltyError(Exception):
    """Base exception for all loyalty ledger business logic errors."""

    code = ErrorCode.INTERNAL
    status_code = 500

    def __init__(self, message: str, code: ErrorCode = None):
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)


class UnauthenticatedError(LoyaltyError):
    """No caller identity on the request."""

    code = ErrorCode.UNAUTHENTICATED
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class PermissionDeniedError(LoyaltyError):
    """Caller lacks the required role or does not own the resource."""

    code = ErrorCode.PERMISSION_DENIED
    status_code = 403

    def __init__(self, message: str = "Not authorized for this operation"):
        super().__init__(message)


class InvalidArgumentError(LoyaltyError):
    """Malformed or out-of-range input."""

    code = ErrorCode.INVALID_ARGUMENT
    status_code = 400

    def __init__(self, message: str, field: str = None):
        self.field = field
        super().__init__(message)


class NotFoundError(LoyaltyError):
    """Target user, reward, or redemption code does not exist."""

    code = ErrorCode.NOT_FOUND
    status_code = 404

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} {identifier} not found"
        super().__init__(message)


class FailedPreconditionError(LoyaltyError):
    """Business rule violation."""

    code = ErrorCode.FAILED_PRECONDITION
    status_code = 400


class InsufficientPointsError(FailedPreconditionError):
    """Not enough points for the operation."""

    def __init__(self, current: int, required: int):
        self.current = current
        self.required = required
        super().__init__(f"Insufficient points. Current: {current}, Required: {required}")


class AlreadyExistsError(LoyaltyError):
    """Resource already exists."""

    code = ErrorCode.ALREADY_EXISTS
    status_code = 409


class ResourceExhaustedError(LoyaltyError):
    """Rate limit exceeded."""

    code = ErrorCode.RESOURCE_EXHAUSTED
    status_code = 429

    def __init__(self, message: str = "Too many requests. Please try again later."):
        super().__init__(message)


class AbortedError(LoyaltyError):
    """Transaction gave up after repeated write conflicts."""

    code = ErrorCode.ABORTED
    status_code = 409

    def __init__(self, message: str = "The operation conflicted with a concurrent update. Please retry."):
        super().__init__(message)


class InternalError(LoyaltyError):
    """Unexpected failure, including unreachable collaborators."""

    code = ErrorCode.INTERNAL
    status_code = 500

    def __init__(self, message: str = "An unexpected error occurred"):
        super().__init__(message)
