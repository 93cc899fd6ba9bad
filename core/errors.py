"""
Error taxonomy for the credential lifecycle.

Services raise these; main.py maps them to HTTP responses in one handler.
Credential failures always carry a generic message so callers cannot tell
"no such user" from "wrong code" or "revoked token".
"""

from typing import Optional


class AuthError(Exception):
    """Base class for errors that map to a client-facing response."""

    status_code: int = 400
    error_code: str = "auth_error"
    default_message: str = "Request failed"
    default_headers: dict[str, str] = {}

    def __init__(self, message: Optional[str] = None, *, headers: Optional[dict[str, str]] = None):
        self.message = message or self.default_message
        self.headers = {**self.default_headers, **(headers or {})}
        super().__init__(self.message)


class ValidationError(AuthError):
    """Malformed or policy-violating input the client can correct."""
    status_code = 400
    error_code = "validation_error"
    default_message = "Invalid request"


class CredentialError(AuthError):
    status_code = 401
    error_code = "invalid_credentials"
    default_message = "Invalid credentials"


class InvalidCredentials(CredentialError):
    pass


class InvalidAccessToken(CredentialError):
    error_code = "invalid_token"
    default_message = "Invalid or expired token"
    # Clients treat this header as "refresh and retry"
    default_headers = {"WWW-Authenticate": 'Bearer error="invalid_token"'}


class InvalidRefreshToken(CredentialError):
    error_code = "invalid_refresh_token"
    default_message = "Invalid refresh token"


class InvalidResetCode(CredentialError):
    status_code = 400
    error_code = "invalid_code"
    default_message = "Invalid or expired reset code"


class InvalidOrExpiredToken(CredentialError):
    status_code = 400
    error_code = "invalid_or_expired"
    default_message = "Invalid or expired verification token"


class RateLimited(AuthError):
    status_code = 429
    error_code = "rate_limited"
    default_message = "Too many requests. Please try again later."

    def __init__(self, retry_after: int, message: Optional[str] = None):
        self.retry_after = max(1, int(retry_after))
        super().__init__(message, headers={"Retry-After": str(self.retry_after)})


class NotFound(AuthError):
    status_code = 404
    error_code = "not_found"
    default_message = "Not found"


class Conflict(AuthError):
    status_code = 409
    error_code = "conflict"
    default_message = "Email or username already exists"


class InternalError(AuthError):
    status_code = 500
    error_code = "server_error"
    default_message = "Internal server error"


__all__ = [
    "AuthError",
    "ValidationError",
    "CredentialError",
    "InvalidCredentials",
    "InvalidAccessToken",
    "InvalidRefreshToken",
    "InvalidResetCode",
    "InvalidOrExpiredToken",
    "RateLimited",
    "NotFound",
    "Conflict",
    "InternalError",
]
