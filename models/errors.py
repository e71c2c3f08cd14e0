"""Standard backend error codes and user-facing error messages.

The backend reports failures with a standard body::

    {"success": false, "message": "...", "errors": ["..."], "error_code": "TOKEN_EXPIRED"}

:func:`describe_error` turns any client exception into the single message
shown to the user.
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field

from errors.exceptions import (
    ApiClientError,
    ApiConnectionError,
    ApiServerError,
    ApiTimeoutError,
)
from models.base import ApiModel

SERVER_ERROR_SUGGESTION = "The server is having trouble right now. Please try again in a few minutes."
TIMEOUT_MESSAGE = "Request timeout. Please try again."
NO_CONNECTION_MESSAGE = "No internet connection"


class ApiErrorCode(str, Enum):
    """Error codes shared with the backend."""

    USER_EXISTS = "USER_EXISTS"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    INVALID_PASSWORD = "INVALID_PASSWORD"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    INVALID_APPLE_CREDENTIALS = "INVALID_APPLE_CREDENTIALS"

    @property
    def is_recoverable(self) -> bool:
        # An expired token can be refreshed without the user noticing
        return self not in (
            ApiErrorCode.INTERNAL_ERROR,
            ApiErrorCode.SERVICE_UNAVAILABLE,
            ApiErrorCode.INVALID_APPLE_CREDENTIALS,
        )

    @property
    def requires_user_action(self) -> bool:
        return self in (
            ApiErrorCode.USER_EXISTS,
            ApiErrorCode.USER_NOT_FOUND,
            ApiErrorCode.INVALID_PASSWORD,
            ApiErrorCode.VALIDATION_ERROR,
        )

    @classmethod
    def parse(cls, value: str | None) -> ApiErrorCode | None:
        if not value:
            return None
        try:
            return cls(value)
        except ValueError:
            return None


class ErrorResponse(ApiModel):
    success: bool = False
    message: str
    errors: list[str] = Field(default_factory=list)
    error_code: str | None = None


def _describe_error_response(response: ErrorResponse) -> str:
    code = ApiErrorCode.parse(response.error_code)
    if code is ApiErrorCode.TOKEN_EXPIRED:
        return "Please login again"
    if code is ApiErrorCode.VALIDATION_ERROR and response.errors:
        return "\n".join(response.errors)
    if code in (ApiErrorCode.INTERNAL_ERROR, ApiErrorCode.SERVICE_UNAVAILABLE):
        return SERVER_ERROR_SUGGESTION
    return response.message


def describe_error(exc: BaseException) -> str:
    """Return the user-facing message for a failed API call."""
    if isinstance(exc, ApiClientError):
        if exc.error_response is not None:
            return _describe_error_response(exc.error_response)
        return exc.detail
    if isinstance(exc, ApiTimeoutError):
        return TIMEOUT_MESSAGE
    if isinstance(exc, ApiServerError):
        if exc.status_code == 500:
            return SERVER_ERROR_SUGGESTION
        return f"Server error ({exc.status_code}). Please try again later."
    if isinstance(exc, ApiConnectionError):
        return NO_CONNECTION_MESSAGE
    return str(exc)
