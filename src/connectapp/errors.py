"""Error taxonomy shared by services and HTTP handlers.

Every error carries the HTTP status it maps to and a client-safe message.
The exception handlers installed in :mod:`connectapp.main` turn them into
``{"success": false, "message": ...}`` responses.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for all errors that terminate a request cleanly."""

    status_code: int = 400
    default_message: str = "Request failed"

    def __init__(self, message: str | None = None, **extra) -> None:
        self.message = message or self.default_message
        # Additional JSON fields merged into the error response
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"success": False, "message": self.message, **self.extra}


class InvalidInput(AppError):
    status_code = 400
    default_message = "Invalid request"


class InvalidIdentifier(InvalidInput):
    default_message = "Enter a valid phone number or email address"


class NotFoundOrExpired(AppError):
    status_code = 400
    default_message = "OTP not found or expired. Please request a new OTP."


class CodeExpired(AppError):
    status_code = 400
    default_message = "OTP has expired. Please request a new OTP."


class InvalidCode(AppError):
    status_code = 400
    default_message = "Invalid OTP. Please try again."


class TooManyAttempts(AppError):
    status_code = 429
    default_message = "Too many incorrect attempts. Please request a new OTP."


class Unauthorized(AppError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(AppError):
    status_code = 403
    default_message = "Forbidden: Insufficient permissions"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class Conflict(AppError):
    status_code = 409
    default_message = "Already exists"


class DeliveryFailed(AppError):
    """The code was stored but the SMS/email gateway did not accept it."""

    status_code = 502
    default_message = "We could not deliver the verification code. Please request a new one."


class InternalError(AppError):
    status_code = 500
    default_message = "Internal server error"


class ConfigurationError(InternalError):
    default_message = "Internal server configuration error"


class RateLimited(AppError):
    """Too many requests from one client or for one identifier."""

    status_code = 429
    default_message = "Too many requests. Please try again later."

    def __init__(self, retry_after: int, message: str | None = None) -> None:
        super().__init__(message, retry_after=retry_after)
        self.retry_after = retry_after

    @property
    def headers(self) -> dict[str, str]:
        return {"Retry-After": str(self.retry_after)}
