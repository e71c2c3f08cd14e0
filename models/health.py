"""Health endpoint payloads."""

from __future__ import annotations

from models.base import ApiEnvelope, ApiModel


class HealthData(ApiModel):
    status: str
    service: str | None = None


class HealthResponse(ApiEnvelope):
    data: HealthData | None = None
