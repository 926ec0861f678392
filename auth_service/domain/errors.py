"""Authentication failures surfaced to API callers."""

from __future__ import annotations

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"


class AuthError(Exception):
    """Base class carrying the HTTP status and the caller-facing message."""

    status_code: int = 400
    default_message: str = "Authentication failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthError):
    status_code = 400
    default_message = "Please provide email and password"


class InvalidCredentials(AuthError):
    """Unknown email or wrong password; the two cases are indistinguishable."""

    status_code = 401
    default_message = INVALID_CREDENTIALS_MESSAGE


class AccountLocked(AuthError):
    status_code = 423
    default_message = (
        "Account is temporarily locked due to too many failed login attempts. "
        "Please try again later."
    )


class AccountDeactivated(AuthError):
    status_code = 401
    default_message = "Your account has been deactivated. Please contact support."


class InvalidToken(AuthError):
    status_code = 401
    default_message = "Invalid token"


class RateLimited(AuthError):
    status_code = 429
    default_message = "Too many authentication attempts, please try again later."

    def __init__(self, retry_after: int, message: str | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after
