"""Service error taxonomy.

Every error carries the HTTP status it maps to and the message returned to the
caller. The API layer turns them into ``{"success": false, "error": message}``.
"""
from __future__ import annotations


class ServiceError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 500
    default_message: str = "Server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class MissingCredential(ServiceError):
    status_code = 401
    default_message = "Authorization header must be of the form 'Bearer <token>'"


class EmptyCredential(ServiceError):
    status_code = 401
    default_message = "Token is required"


class InvalidCredential(ServiceError):
    status_code = 401
    default_message = "Invalid or expired token"


class RateLimited(ServiceError):
    status_code = 429
    default_message = "Too many login attempts, please try again later"

    def __init__(self, retry_after: int, message: str | None = None) -> None:
        self.retry_after = retry_after
        super().__init__(message)


class ValidationError(ServiceError):
    status_code = 400
    default_message = "Invalid request"

    def __init__(self, violations: list[str] | str) -> None:
        if isinstance(violations, str):
            violations = [violations]
        self.violations = list(violations)
        super().__init__("; ".join(self.violations))


class DuplicateManualRegistration(ServiceError):
    status_code = 400
    default_message = "User already registered with this email"


class WrongProvider(ServiceError):
    status_code = 401
    default_message = "Please log in with your original sign-in method"


class Forbidden(ServiceError):
    status_code = 403
    default_message = "Access denied"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Not found"


class NoValidFields(ServiceError):
    status_code = 400
    default_message = "No valid fields to update"


class UpstreamFailure(ServiceError):
    """Identity oracle or profile store unreachable or failing internally."""

    status_code = 502
    default_message = "Upstream service failure"


class OracleRejected(Exception):
    """The identity oracle refused a credential or a lookup.

    Never shown to callers as-is: the gate and the login flow translate it into
    a uniform ``InvalidCredential``.
    """
