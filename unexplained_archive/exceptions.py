"""
unexplained_archive/exceptions.py
Typed exceptions for the case lifecycle coordinator.

Every exception carries the HTTP status it maps to and a user-facing message.
Services raise these; route handlers never catch them, the handlers in
`errors.py` turn them into the standard error envelope.
"""
from typing import Any, Dict, Optional


class ArchiveException(Exception):
    """Base exception for Unexplained Archive"""
    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    error: str = "Internal Error"

    def __init__(self, message: str, status_code: int = None, details: Optional[Dict[str, Any]] = None):
        self.message = message
        if status_code:
            self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class ValidationFailedError(ArchiveException):
    """
    Raised before any remote call when input is invalid.

    Examples:
    - Amount below the minimum
    - Reward split not summing to 100
    - Missing required field
    """
    status_code = 400
    code = "VALIDATION_ERROR"
    error = "Validation Error"


class AuthenticationRequiredError(ArchiveException):
    """Raised when a mutating action is attempted without a session."""
    status_code = 401
    code = "AUTH_REQUIRED"
    error = "Unauthorized"

    def __init__(self, message: str = "Please log in to continue"):
        super().__init__(message)


class PermissionDeniedError(ArchiveException):
    """
    Raised when the session may not perform an action.

    Examples:
    - Investigator not yet approved
    - Non-submitter accepting a resolution
    - Non-leader editing the reward split
    """
    status_code = 403
    code = "FORBIDDEN"
    error = "Forbidden"


class NotFoundError(ArchiveException):
    """Raised when a requested resource doesn't exist."""
    status_code = 404
    code = "NOT_FOUND"
    error = "Not Found"

    def __init__(self, resource: str, identifier: Any = None):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(message)


class ConflictError(ArchiveException):
    """
    Raised when the request conflicts with current state.

    Also used for `{success: false, error}` payloads from the backend; the
    backend's error text is kept verbatim as the message.
    """
    status_code = 409
    code = "CONFLICT"
    error = "Conflict"


class InvalidTransitionError(ConflictError):
    """Raised when a case status transition is not allowed."""
    code = "STATE_TRANSITION_INVALID"
    error = "Invalid State"


class InsufficientFundsError(ConflictError):
    """Raised when the wallet balance does not cover an amount."""
    code = "INSUFFICIENT_FUNDS"

    def __init__(self, message: str = "Insufficient wallet balance"):
        super().__init__(message)


class RateLimitedError(ArchiveException):
    """Raised when a per-user quota is exhausted."""
    status_code = 429
    code = "RATE_LIMITED"
    error = "Rate Limited"


class RemoteServiceError(ArchiveException):
    """Raised on transient/network failure of a remote call. Never retried."""
    status_code = 502
    code = "SERVICE_UNAVAILABLE"
    error = "Service Unavailable"

    def __init__(self, message: str = "Request failed, please try again.", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details=details)


class CheckoutUnavailableError(RemoteServiceError):
    """Raised when a checkout session comes back without a redirect URL."""
    code = "CHECKOUT_UNAVAILABLE"

    def __init__(self, message: str = "Invalid payment session. Please contact support."):
        super().__init__(message)
