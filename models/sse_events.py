"""Typed events of the story generation stream.

Two families share one listener channel:

- SSE messages decoded from ``data: {json}`` lines sent by the backend
  (``started``, ``content``, ``completed``, ``error``).
- Transport outcomes synthesised by the client when the connection itself
  fails, closes without a terminal message, or is cancelled.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


class SSEModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")


class StartedMessage(SSEModel):
    """Server accepted the request and began generating."""

    type: Literal["started"] = "started"
    message: str = ""


class ContentMessage(SSEModel):
    """Incremental story fragment; not necessarily a whole word."""

    type: Literal["content"] = "content"
    delta: str = Field(alias="data")


class CompletedMessage(SSEModel):
    """Generation finished and the story was saved."""

    type: Literal["completed"] = "completed"
    story_id: str | None = None
    message: str = ""
    total_length: int | None = Field(default=None, alias="story_length")


class ErrorMessage(SSEModel):
    """Application-level failure reported by the server."""

    type: Literal["error"] = "error"
    message: str


SSEMessage = Annotated[
    Union[StartedMessage, ContentMessage, CompletedMessage, ErrorMessage],
    Field(discriminator="type"),
]

_message_adapter: TypeAdapter[SSEMessage] = TypeAdapter(SSEMessage)


def decode_message(payload: Any) -> SSEMessage | None:
    """Validate a decoded JSON payload into an :data:`SSEMessage`.

    Unknown ``type`` values and malformed payloads return ``None``.
    """
    if not isinstance(payload, dict):
        return None
    try:
        return _message_adapter.validate_python(payload)
    except ValidationError as exc:
        logger.debug(
            "Dropping SSE payload type=%r: %d validation error(s)",
            payload.get("type"), exc.error_count(),
        )
        return None


# ── Transport outcomes ───────────────────────────────────────


class ConnectionFailed(SSEModel):
    """Non-2xx status, DNS/TLS/network failure or timeout."""

    type: Literal["connection_failed"] = "connection_failed"
    message: str
    status_code: int | None = None


class StreamClosed(SSEModel):
    """Connection ended without a ``completed`` or ``error`` message."""

    type: Literal["closed"] = "closed"


class StreamCancelled(SSEModel):
    """Stream aborted on request; never reported as an error."""

    type: Literal["cancelled"] = "cancelled"


TransportEvent = Union[
    StartedMessage,
    ContentMessage,
    CompletedMessage,
    ErrorMessage,
    ConnectionFailed,
    StreamClosed,
    StreamCancelled,
]

TERMINAL_MESSAGES = (CompletedMessage, ErrorMessage)
