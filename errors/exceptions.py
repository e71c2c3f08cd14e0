"""Domain-specific exceptions for the FairyTales client.

Only the request/response API raises these.  The streaming pipeline never
raises into callers: its failures become generation session state.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from models.errors import ErrorResponse


class FairyTalesError(Exception):
    """Base class for client errors."""


class NotAuthenticatedError(FairyTalesError):
    """No access token is available for an authenticated call."""

    def __init__(self) -> None:
        super().__init__("Not authenticated")


class ApiClientError(FairyTalesError):
    """The backend answered with a 4xx status.

    ``error_response`` carries the decoded standard error body (or a
    synthesised fallback when the body was not in the standard shape).
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        url: str = "",
        error_response: ErrorResponse | None = None,
    ) -> None:
        self.status_code = status_code
        self.detail = detail
        self.url = url
        self.error_response = error_response
        super().__init__(f"API {status_code}: {detail} ({url})")


class ApiServerError(FairyTalesError):
    """The backend answered with a 5xx status."""

    def __init__(self, status_code: int, url: str = "") -> None:
        self.status_code = status_code
        self.url = url
        super().__init__(f"Server error: {status_code}")


class ApiTimeoutError(FairyTalesError):
    """The request did not complete within the configured timeout."""


class ApiConnectionError(FairyTalesError):
    """No configured host accepted the connection."""


class ApiDecodingError(FairyTalesError):
    """The response body was empty or could not be decoded."""
