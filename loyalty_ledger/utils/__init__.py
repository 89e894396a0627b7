"""
Utility modules for the loyalty ledger.
"""
from .logging_config import setup_logging
from .errors import (
    ErrorCode,
    error_response,
    bad_request,
    unauthorized,
    not_found,
    internal_error
)
from .exceptions import (
    LoyaltyError,
    UnauthenticatedError,
    PermissionDeniedError,
    InvalidArgumentError,
    NotFoundError,
    FailedPreconditionError,
    InsufficientPointsError,
    AlreadyExistsError,
    ResourceExhaustedError,
    AbortedError,
    InternalError
)
