"""Backend availability check, run on startup and after long idle periods."""

from __future__ import annotations

import asyncio
import logging
import time

from config.settings import Settings, get_settings
from errors.exceptions import (
    ApiConnectionError,
    ApiServerError,
    ApiTimeoutError,
    FairyTalesError,
)
from models.health import HealthResponse
from services.api_client import ApiClient, get_api_client

logger = logging.getLogger(__name__)

SERVER_UNAVAILABLE = "Server is unavailable"


class HealthCheckService:
    def __init__(self, *, api_client: ApiClient | None = None, settings: Settings | None = None) -> None:
        self._api = api_client or get_api_client()
        settings = settings or get_settings()
        self._endpoint = settings.health_check_endpoint
        self._interval = settings.health_check_interval

        self.is_server_available = True
        self.server_error_message: str | None = None
        self.last_health_check: float | None = None
        self.is_checking_health = False

    async def perform_health_check(self) -> bool:
        """Query the health endpoint and update the availability state."""
        self.is_checking_health = True
        try:
            response: HealthResponse = await self._api.get(self._endpoint, response_model=HealthResponse)
        except ApiTimeoutError:
            self._mark_unavailable("Server timeout")
        except ApiConnectionError:
            self._mark_unavailable("No internet connection")
        except ApiServerError as exc:
            self._mark_unavailable(f"Server error ({exc.status_code})")
        except FairyTalesError as exc:
            logger.warning("Health check failed: %s", exc)
            self._mark_unavailable(SERVER_UNAVAILABLE)
        else:
            if response.success:
                self.is_server_available = True
                self.server_error_message = None
                logger.info(
                    "Server healthy: %s", response.data.status if response.data else response.message,
                )
            else:
                self._mark_unavailable(response.message or SERVER_UNAVAILABLE)
        finally:
            self.last_health_check = time.time()
            self.is_checking_health = False
        return self.is_server_available

    async def perform_health_check_with_retry(self, max_retries: int = 2, delay: float = 2.0) -> bool:
        for attempt in range(1, max_retries + 1):
            logger.info("Health check attempt %d/%d", attempt, max_retries)
            if await self.perform_health_check():
                break
            if attempt < max_retries:
                await asyncio.sleep(delay)
        return self.is_server_available

    def should_perform_health_check(self) -> bool:
        """True if never checked or the last check is older than the interval."""
        if self.last_health_check is None:
            return True
        return time.time() - self.last_health_check > self._interval

    def reset_health_status(self) -> None:
        self.is_server_available = True
        self.server_error_message = None
        self.last_health_check = None

    def _mark_unavailable(self, message: str) -> None:
        logger.warning("Server unavailable: %s", message)
        self.is_server_available = False
        self.server_error_message = message
