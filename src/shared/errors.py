"""Error taxonomy shared by every service.

Each error carries the HTTP status and the machine-readable code it is
rendered with. ``message`` is the only text that reaches the caller, so
authentication and authorization errors keep it generic.
"""

from typing import Any


class ServiceError(Exception):
    """Base class for errors rendered as structured JSON failures."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None, **context: Any):
        self.message = message or self.default_message
        # Server-side detail for logs only, never rendered
        self.context = context
        super().__init__(self.message)


# =============================================================================
# Authentication (401)
# =============================================================================


class AuthenticationError(ServiceError):
    """Missing, invalid or expired credential."""

    status_code = 401
    error_code = "UNAUTHORIZED"
    default_message = "Invalid or expired token"


class MissingCredentialError(AuthenticationError):
    """No bearer credential on the request."""

    default_message = "Authorization header missing"


class InvalidCredentialError(AuthenticationError):
    """Malformed, expired or wrongly signed credential."""


class UnknownSubjectError(AuthenticationError):
    """Credential decoded but no live user matches it."""


# =============================================================================
# Authorization (403)
# =============================================================================


class AuthorizationError(ServiceError):
    """Valid identity, insufficient rights."""

    status_code = 403
    error_code = "FORBIDDEN"
    default_message = "Insufficient permissions"


# =============================================================================
# Store errors
# =============================================================================


class NotFoundError(ServiceError):
    """Unknown or inactive role, permission, module or edge."""

    status_code = 404
    error_code = "NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(ServiceError):
    """Duplicate active grant, assignment or unique name."""

    status_code = 409
    error_code = "CONFLICT"
    default_message = "Resource already exists"


class IntegrityError(ServiceError):
    """Storage constraint violation other than active-uniqueness."""

    status_code = 409
    error_code = "INTEGRITY_ERROR"
    default_message = "Storage constraint violated"


# =============================================================================
# Gateway errors
# =============================================================================


class UpstreamError(ServiceError):
    """Gateway could not reach or parse a backend."""

    status_code = 502
    error_code = "Bad Gateway"
    default_message = "The upstream service could not be reached"


class UpstreamTimeoutError(UpstreamError):
    """Backend did not answer within the configured timeout."""

    status_code = 504
    error_code = "Gateway Timeout"
    default_message = "The upstream service did not respond in time"


class UpstreamResponseError(UpstreamError):
    """Backend answered with a body the gateway cannot relay as JSON."""

    error_code = "Service unavailable"
    default_message = "The service returned a non-JSON response"
