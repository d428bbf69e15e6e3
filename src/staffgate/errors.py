"""
Error taxonomy for StaffGate.

Every error raised by the core carries the HTTP-equivalent status and a
client-facing message. Internal detail (SQL errors, signing failures) is
logged, never put in ``message``.
"""

from typing import Any, Dict, List, Optional


class StaffGateError(Exception):
    """
    Base class for all StaffGate errors.

    Attributes:
        status: HTTP-equivalent status code
        code: Stable machine-readable error code
        message: Client-facing message
        details: Optional structured detail (field errors, etc.)
    """

    status = 500
    code = "error"
    default_message = "Request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Any] = None,
    ):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        if self.details is not None:
            body["details"] = self.details
        return body


class ConfigurationError(StaffGateError):
    """Raised at startup when required configuration is missing or invalid."""

    code = "configuration_error"
    default_message = "Invalid configuration"


class ValidationError(StaffGateError):
    """Malformed input: weak password, bad email shape, missing fields."""

    status = 400
    code = "validation_error"
    default_message = "Validation failed"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message, details=details)

    @classmethod
    def for_field(cls, field: str, problems: List[str], message: Optional[str] = None):
        """Build a ValidationError carrying one entry per problem on ``field``."""
        return cls(
            message,
            details=[{"field": field, "message": problem} for problem in problems],
        )


class AuthenticationError(StaffGateError):
    """
    Authentication failed.

    ``staff_id`` is set when the failure can be attributed to a known
    account (wrong password, locked account). It is only used for the
    activity trail and never sent to the client.
    """

    status = 401
    code = "authentication_failed"
    default_message = "Authentication required"

    def __init__(self, message: Optional[str] = None, *, staff_id: Optional[str] = None):
        super().__init__(message)
        self.staff_id = staff_id


class Unauthenticated(AuthenticationError):
    code = "unauthenticated"
    default_message = "No authentication token provided"


class InvalidCredentials(AuthenticationError):
    code = "invalid_credentials"
    default_message = "Invalid email or password"


class InvalidToken(AuthenticationError):
    code = "invalid_token"
    default_message = "Invalid or expired authentication token"


class AccountLocked(AuthenticationError):
    status = 403
    code = "account_locked"
    default_message = "Account is temporarily locked due to multiple failed login attempts"


class AccountNotActive(AuthenticationError):
    status = 403
    code = "account_not_active"
    default_message = "Account is not active"


class AuthorizationError(StaffGateError):
    status = 403
    code = "forbidden"
    default_message = "Access denied"


class InsufficientPermissions(AuthorizationError):
    """
    Raised when an authenticated staff member lacks a required scope.

    Attributes:
        staff_id: The staff member who was denied
        required: The scope (or "superuser") that was required
    """

    code = "insufficient_permissions"
    default_message = "Insufficient permissions"

    def __init__(self, staff_id: Optional[str] = None, required: Optional[str] = None):
        super().__init__()
        self.staff_id = staff_id
        self.required = required


class NotFoundError(StaffGateError):
    status = 404
    code = "not_found"
    default_message = "Resource not found"


class ConflictError(StaffGateError):
    """Uniqueness or state conflict; ``field`` names the conflicting attribute."""

    status = 409
    code = "conflict"
    default_message = "Conflict"

    def __init__(self, message: Optional[str] = None, *, field: Optional[str] = None):
        super().__init__(message, details={"field": field} if field else None)
        self.field = field


class InfrastructureError(StaffGateError):
    """Store unreachable, pool exhausted, signing failure. Opaque to clients."""

    status = 500
    code = "internal_error"
    default_message = "Internal server error"

    def __init__(self, internal_detail: str = ""):
        super().__init__()
        self.internal_detail = internal_detail


class RateLimitExceeded(StaffGateError):
    """Too many requests from one client address within the window."""

    status = 429
    code = "rate_limited"
    default_message = "Too many requests from this IP, please try again later"
