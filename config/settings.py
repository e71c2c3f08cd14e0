"""Pydantic Settings — typed configuration with .env auto-loading."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client configuration loaded from environment / .env file."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"

    # ── Backend API ──────────────────────────────────────────
    api_base_url: str = "https://fairy-tales-api-134132058244.europe-west3.run.app"
    # Tried in order when the primary host refuses the connection
    api_fallback_urls: list[str] = ["http://0.0.0.0:8080"]
    api_timeout: float = 30.0  # seconds
    access_token: str = ""
    refresh_token: str = ""

    # ── Story streaming ──────────────────────────────────────
    stream_endpoint: str = "/api/v1/stories/generate-with-heroes-stream/"
    stream_connect_timeout: float = 30.0
    stream_read_timeout: float = 300.0  # max silence between chunks
    stream_total_timeout: float = 600.0  # hard cap on one generation
    # "soft_success", "success" or "failure" (see AmbiguousClosePolicy)
    ambiguous_close_policy: str = "soft_success"

    # ── Typing presentation ──────────────────────────────────
    typing_interval: float = 0.03
    typing_chars_per_step: int = 2
    typing_punctuation_delay: float = 0.1
    typing_punctuation: str = ".!?,;"

    # ── Recovery stash ───────────────────────────────────────
    recovery_store_type: str = "file"  # "file" or "memory"
    recovery_file: str = "data/last_story.json"
    recovery_max_age: int = 3600  # seconds (1 hour)

    # ── Health check ─────────────────────────────────────────
    health_check_interval: int = 300  # seconds
    health_check_endpoint: str = "/api/v1/health/app/"


@lru_cache
def get_settings() -> Settings:
    """Singleton accessor for application settings."""
    return Settings()
