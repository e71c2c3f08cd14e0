"""Custom exception hierarchy for the FairyTales client."""

from errors.exceptions import (
    ApiClientError,
    ApiConnectionError,
    ApiDecodingError,
    ApiServerError,
    ApiTimeoutError,
    FairyTalesError,
    NotAuthenticatedError,
)

__all__ = [
    "ApiClientError",
    "ApiConnectionError",
    "ApiDecodingError",
    "ApiServerError",
    "ApiTimeoutError",
    "FairyTalesError",
    "NotAuthenticatedError",
]
