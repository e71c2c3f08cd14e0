"""Generation session state machine.

::

    idle ──start──▶ connecting ──started──▶ streaming ──content──▶ streaming
                        │                      │
                        ├──────────────────────┼──completed──▶ completed
                        ├──────────────────────┼──error──────▶ failed
                        └──────────────────────┴──cancel─────▶ cancelled

``start()`` re-enters ``connecting`` from any state and discards everything
the previous run accumulated.  Terminal states only leave via ``start()``.

The accumulated text is an immutable ``str`` rebound on every append, so a
reader always sees a complete prefix of the story and never a half-applied
update.
"""

from __future__ import annotations

import logging
import time
from enum import Enum

from pydantic import BaseModel, ConfigDict

from models.sse_events import (
    CompletedMessage,
    ConnectionFailed,
    ContentMessage,
    ErrorMessage,
    StartedMessage,
    StreamCancelled,
    StreamClosed,
    TransportEvent,
)

logger = logging.getLogger(__name__)

PROGRESS_CONNECTING = "Connecting..."
PROGRESS_GENERATING = "Generating story..."
PROGRESS_CANCELLED = "Generation cancelled"
PROGRESS_CONNECTION_CLOSED = "Generation completed (connection closed)"
PROGRESS_ERROR_PREFIX = "Error: "
NO_CONTENT_ERROR = "Connection closed before any story content was received"


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in (SessionState.CONNECTING, SessionState.STREAMING)

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.FAILED, SessionState.CANCELLED)


class AmbiguousClosePolicy(str, Enum):
    """What a connection closing without ``completed``/``error`` means.

    - ``soft_success``: completed if any text arrived, otherwise failed
    - ``success``: always completed (possibly with empty text)
    - ``failure``: always failed
    """

    SOFT_SUCCESS = "soft_success"
    SUCCESS = "success"
    FAILURE = "failure"


class SessionSnapshot(BaseModel):
    """Immutable view of a session at one instant."""

    model_config = ConfigDict(frozen=True)

    state: SessionState
    text: str
    progress: str
    story_id: str | None = None
    error: str | None = None
    total_length: int | None = None
    closed_without_confirmation: bool = False


class GenerationSession:
    """One story generation: its state, accumulated text and outcome."""

    def __init__(self, ambiguous_close_policy: AmbiguousClosePolicy = AmbiguousClosePolicy.SOFT_SUCCESS) -> None:
        self.ambiguous_close_policy = AmbiguousClosePolicy(ambiguous_close_policy)
        self.state = SessionState.IDLE
        self.progress = ""
        self.story_id: str | None = None
        self.error: str | None = None
        self.total_length: int | None = None
        self.closed_without_confirmation = False
        self.started_at: float | None = None
        self._text = ""

    @property
    def text(self) -> str:
        return self._text

    @property
    def is_active(self) -> bool:
        return self.state.is_active

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    # -- transitions ---------------------------------------------------------

    def reset(self) -> None:
        """Discard everything and return to ``idle``."""
        self._text = ""
        self.story_id = None
        self.error = None
        self.total_length = None
        self.closed_without_confirmation = False
        self.progress = ""
        self.started_at = None
        self.state = SessionState.IDLE

    def start(self) -> None:
        """Reset and enter ``connecting``."""
        self.reset()
        self.progress = PROGRESS_CONNECTING
        self.started_at = time.monotonic()
        self.state = SessionState.CONNECTING

    def cancel(self) -> bool:
        """Enter ``cancelled`` from an active state.  Returns True on change."""
        if not self.state.is_active:
            return False
        self.state = SessionState.CANCELLED
        self.progress = PROGRESS_CANCELLED
        logger.info("Generation cancelled after %d chars", len(self._text))
        return True

    def apply(self, event: TransportEvent) -> bool:
        """Apply one stream event.  Returns True if the session changed.

        Events arriving outside an active state are ignored.
        """
        if not self.state.is_active:
            logger.debug("Ignoring %s in state %s", event.type, self.state.value)
            return False

        if isinstance(event, StartedMessage):
            self.state = SessionState.STREAMING
            if event.message:
                self.progress = event.message
            logger.info("Generation started: %s", event.message)
        elif isinstance(event, ContentMessage):
            # Servers may skip "started"; the first fragment implies it
            self.state = SessionState.STREAMING
            self._text = self._text + event.delta
            self.progress = PROGRESS_GENERATING
        elif isinstance(event, CompletedMessage):
            self._complete(event)
        elif isinstance(event, ErrorMessage):
            self._fail(event.message)
        elif isinstance(event, ConnectionFailed):
            self._fail(event.message)
        elif isinstance(event, StreamClosed):
            self._close_without_confirmation()
        elif isinstance(event, StreamCancelled):
            return self.cancel()
        else:
            return False
        return True

    def _complete(self, event: CompletedMessage) -> None:
        self.state = SessionState.COMPLETED
        self.story_id = event.story_id
        self.total_length = event.total_length
        progress = event.message
        if event.total_length is not None:
            progress = f"{progress} ({event.total_length} characters)".lstrip()
        self.progress = progress
        logger.info(
            "Generation completed: story_id=%s, %d chars", event.story_id, len(self._text),
        )

    def _fail(self, message: str) -> None:
        self.state = SessionState.FAILED
        self.error = message
        self.progress = f"{PROGRESS_ERROR_PREFIX}{message}"
        logger.warning("Generation failed: %s", message)

    def _close_without_confirmation(self) -> None:
        policy = self.ambiguous_close_policy
        succeed = policy is AmbiguousClosePolicy.SUCCESS or (
            policy is AmbiguousClosePolicy.SOFT_SUCCESS and bool(self._text)
        )
        if not succeed:
            self._fail(NO_CONTENT_ERROR if not self._text else "Connection closed before the story was finished")
            return
        self.state = SessionState.COMPLETED
        self.closed_without_confirmation = True
        self.progress = PROGRESS_CONNECTION_CLOSED
        logger.warning(
            "Stream closed without confirmation; keeping %d chars as the result",
            len(self._text),
        )

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            state=self.state,
            text=self._text,
            progress=self.progress,
            story_id=self.story_id,
            error=self.error,
            total_length=self.total_length,
            closed_without_confirmation=self.closed_without_confirmation,
        )
