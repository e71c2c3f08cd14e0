"""Tests for services/health_check.py."""

from __future__ import annotations

import time
from unittest.mock import AsyncMock

import httpx
import pytest

from errors.exceptions import ApiConnectionError, ApiServerError, ApiTimeoutError
from models.health import HealthResponse
from services.api_client import ApiClient
from services.health_check import SERVER_UNAVAILABLE, HealthCheckService


def _service(settings, token_store, handler):
    api = ApiClient(settings=settings, token_store=token_store, http_transport=httpx.MockTransport(handler))
    return HealthCheckService(api_client=api, settings=settings), api


@pytest.mark.asyncio
async def test_healthy_server(settings, token_store):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={
            "success": True, "message": "ok", "data": {"status": "healthy", "service": "fairy-tales"},
        })

    service, api = _service(settings, token_store, handler)
    async with api:
        assert await service.perform_health_check() is True

    assert service.is_server_available
    assert service.server_error_message is None
    assert service.last_health_check is not None
    assert service.is_checking_health is False
    assert seen[0].url.path == "/api/v1/health/app/"


@pytest.mark.asyncio
async def test_unsuccessful_envelope(settings, token_store):
    def handler(request):
        return httpx.Response(200, json={"success": False, "message": "Maintenance"})

    service, api = _service(settings, token_store, handler)
    async with api:
        assert await service.perform_health_check() is False

    assert service.server_error_message == "Maintenance"


@pytest.mark.asyncio
@pytest.mark.parametrize("exc, message", [
    (ApiTimeoutError("slow"), "Server timeout"),
    (ApiConnectionError("down"), "No internet connection"),
    (ApiServerError(503), "Server error (503)"),
])
async def test_error_messages(settings, token_store, exc, message):
    service, api = _service(settings, token_store, lambda r: httpx.Response(200))
    api.get = AsyncMock(side_effect=exc)

    assert await service.perform_health_check() is False
    assert service.is_server_available is False
    assert service.server_error_message == message


@pytest.mark.asyncio
async def test_undecodable_body_is_unavailable(settings, token_store):
    service, api = _service(settings, token_store, lambda r: httpx.Response(200, text="<html>"))
    async with api:
        assert await service.perform_health_check() is False
    assert service.server_error_message == SERVER_UNAVAILABLE


@pytest.mark.asyncio
async def test_retry_until_success(settings, token_store):
    service, api = _service(settings, token_store, lambda r: httpx.Response(200))
    api.get = AsyncMock(side_effect=[
        ApiConnectionError("down"),
        HealthResponse(success=True, message="ok"),
    ])

    assert await service.perform_health_check_with_retry(max_retries=3, delay=0) is True
    assert api.get.await_count == 2


@pytest.mark.asyncio
async def test_retry_gives_up(settings, token_store):
    service, api = _service(settings, token_store, lambda r: httpx.Response(200))
    api.get = AsyncMock(side_effect=ApiTimeoutError("slow"))

    assert await service.perform_health_check_with_retry(max_retries=2, delay=0) is False
    assert api.get.await_count == 2


def test_should_perform_health_check(settings, token_store):
    service, _ = _service(settings, token_store, lambda r: httpx.Response(200))
    assert service.should_perform_health_check() is True

    service.last_health_check = time.time()
    assert service.should_perform_health_check() is False

    service.last_health_check = time.time() - settings.health_check_interval - 1
    assert service.should_perform_health_check() is True


def test_reset_health_status(settings, token_store):
    service, _ = _service(settings, token_store, lambda r: httpx.Response(200))
    service.is_server_available = False
    service.server_error_message = "down"
    service.last_health_check = 1.0

    service.reset_health_status()

    assert service.is_server_available is True
    assert service.server_error_message is None
    assert service.last_health_check is None
