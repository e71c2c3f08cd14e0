"""HTTP client for the FairyTales REST backend.

Wraps ``httpx.AsyncClient`` with:
- primary base URL plus fallback hosts tried when a host refuses the connection
- Bearer token auth read from the token store on every request
- translation of non-2xx responses into typed errors (standard error body
  decoded when present)
- optional validation of the JSON body into a pydantic model
- request timing logs
- connection-pool lifecycle (``start`` / ``close``)
"""

from __future__ import annotations

import logging
import time
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from config.settings import Settings, get_settings
from errors.exceptions import (
    ApiClientError,
    ApiConnectionError,
    ApiDecodingError,
    ApiServerError,
    ApiTimeoutError,
    FairyTalesError,
)
from models.errors import ErrorResponse, describe_error
from services.token_store import TokenStore, get_token_store

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_client: ApiClient | None = None


class ApiClient:
    """Async request/response client for simple CRUD endpoints."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        token_store: TokenStore | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._base_urls = [
            url.rstrip("/") for url in [settings.api_base_url, *settings.api_fallback_urls]
        ]
        self._timeout = settings.api_timeout
        self._token_store = token_store or get_token_store()
        self._http_transport = http_transport
        self._http: httpx.AsyncClient | None = None

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Create the underlying ``httpx.AsyncClient`` connection pool."""
        if self._http is not None:
            return
        self._http = httpx.AsyncClient(
            timeout=httpx.Timeout(self._timeout),
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            transport=self._http_transport,
        )
        logger.info("ApiClient started — hosts=%s", self._base_urls)

    async def close(self) -> None:
        """Gracefully close the connection pool."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None
            logger.info("ApiClient closed")

    async def __aenter__(self) -> ApiClient:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # -- public API ----------------------------------------------------------

    async def get(self, path: str, response_model: type[ModelT] | None = None) -> Any:
        return await self.request("GET", path, response_model=response_model)

    async def post(
        self, path: str, body: BaseModel | dict[str, Any] | None = None,
        response_model: type[ModelT] | None = None,
    ) -> Any:
        return await self.request("POST", path, body=body, response_model=response_model)

    async def put(
        self, path: str, body: BaseModel | dict[str, Any] | None = None,
        response_model: type[ModelT] | None = None,
    ) -> Any:
        return await self.request("PUT", path, body=body, response_model=response_model)

    async def delete(self, path: str, response_model: type[ModelT] | None = None) -> Any:
        return await self.request("DELETE", path, response_model=response_model)

    async def request(
        self,
        method: str,
        path: str,
        *,
        body: BaseModel | dict[str, Any] | None = None,
        response_model: type[ModelT] | None = None,
    ) -> Any:
        """Send one request, trying fallback hosts on connection failure.

        Raises :class:`ApiClientError` (4xx), :class:`ApiServerError` (5xx),
        :class:`ApiTimeoutError`, :class:`ApiConnectionError` when no host
        accepted the connection or the connection broke mid-request,
        :class:`ApiDecodingError` on an empty or undecodable body.
        """
        client = self._ensure_started()
        json_body = body.model_dump(mode="json") if isinstance(body, BaseModel) else body
        last_exc: Exception | None = None

        for base_url in self._base_urls:
            url = f"{base_url}{path}"
            t0 = time.monotonic()
            try:
                response = await client.request(
                    method, url, json=json_body, headers=self._token_store.auth_headers(),
                )
            except httpx.TimeoutException as exc:
                # Slow operation, another host will not help
                logger.warning("%s %s → timeout after %.0fms", method, url, (time.monotonic() - t0) * 1000)
                raise ApiTimeoutError(str(exc) or "Request timed out") from exc
            except httpx.ConnectError as exc:
                logger.warning("%s %s → connection failed: %s", method, url, exc)
                last_exc = exc
                continue
            except httpx.TransportError as exc:
                # The request may have reached the server, do not replay it elsewhere
                logger.warning("%s %s → transport error: %s", method, url, exc)
                raise ApiConnectionError(str(exc) or exc.__class__.__name__) from exc

            elapsed_ms = (time.monotonic() - t0) * 1000
            logger.info("%s %s → %d (%.0fms)", method, url, response.status_code, elapsed_ms)
            return self._handle_response(response, response_model)

        raise ApiConnectionError(f"Could not connect to any host: {last_exc}") from last_exc

    # -- internals -----------------------------------------------------------

    def _handle_response(self, response: httpx.Response, response_model: type[ModelT] | None) -> Any:
        status = response.status_code
        url = str(response.url)

        if status in (401, 403):
            raise self._client_error(
                response,
                ErrorResponse(message="Authentication failed", errors=["Authentication required"], error_code="AUTH_FAILED"),
            )
        if 400 <= status < 500:
            raise self._client_error(
                response,
                ErrorResponse(message="Client error", errors=["Failed to decode server response"]),
            )
        if status >= 500 or not response.is_success:
            raise ApiServerError(status, url=url)

        if not response.content:
            raise ApiDecodingError("No data received")
        try:
            data = response.json()
        except ValueError as exc:
            raise ApiDecodingError("Failed to decode response") from exc
        if response_model is None:
            return data
        try:
            return response_model.model_validate(data)
        except ValidationError as exc:
            logger.warning("Response from %s does not match %s", url, response_model.__name__)
            raise ApiDecodingError("Failed to decode response") from exc

    @staticmethod
    def _client_error(response: httpx.Response, fallback: ErrorResponse) -> ApiClientError:
        try:
            error_response = ErrorResponse.model_validate_json(response.content)
        except ValidationError:
            logger.debug("Non-standard error body from %s", response.url)
            error_response = fallback
        logger.warning(
            "API error %d: %s (%s)",
            response.status_code, error_response.error_code or "NO_CODE", error_response.message,
        )
        return ApiClientError(
            status_code=response.status_code,
            detail=error_response.message,
            url=str(response.url),
            error_response=error_response,
        )

    def _ensure_started(self) -> httpx.AsyncClient:
        if self._http is None:
            raise RuntimeError("ApiClient not started — call await client.start() first")
        return self._http


class ApiBackedService:
    """Shared request bookkeeping for services that expose ``is_loading`` and
    ``error_message`` to a UI instead of raising."""

    def __init__(self, api_client: ApiClient | None = None) -> None:
        self._api = api_client or get_api_client()
        self.is_loading = False
        self.error_message: str | None = None

    def clear_error(self) -> None:
        self.error_message = None

    async def _call(self, method: str, path: str, response_model: type[ModelT], body: BaseModel | None = None) -> ModelT | None:
        """Run one request; on failure record a user-facing message and return None."""
        self.clear_error()
        self.is_loading = True
        try:
            return await self._api.request(method, path, body=body, response_model=response_model)
        except FairyTalesError as exc:
            self.error_message = describe_error(exc)
            return None
        finally:
            self.is_loading = False


# ---------------------------------------------------------------------------
# Singleton accessor
# ---------------------------------------------------------------------------

def get_api_client() -> ApiClient:
    """Return the module-level ApiClient singleton (create if needed)."""
    global _client
    if _client is None:
        _client = ApiClient()
    return _client
