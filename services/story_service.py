"""Story service — the public surface for story generation and story CRUD.

Wires the pipeline::

    StreamingTransport ──events──▶ GenerationSession ──text──▶ TypingScheduler
                                          │                          │
                                          └────────── StorySnapshot ◀┘

Callers start / cancel generations and read :class:`StorySnapshot` values,
either by polling :meth:`StoryService.snapshot` or by subscribing.  Errors are
exposed as snapshot fields, never raised.
"""

from __future__ import annotations

import logging
from typing import Callable

from pydantic import BaseModel, ConfigDict

from config.settings import Settings, get_settings
from models.sse_events import CompletedMessage, ConnectionFailed, TransportEvent
from models.story import (
    DeleteStoryResponse,
    GenerationRequest,
    StoriesListResponse,
    Story,
    StoryResponse,
)
from services.api_client import ApiBackedService, ApiClient
from services.events import DomainEvent, EventBus, get_event_bus
from services.generation_session import (
    AmbiguousClosePolicy,
    GenerationSession,
    SessionState,
)
from services.recovery_store import RecoveryStash, get_recovery_stash
from services.streaming_transport import StreamingTransport
from services.token_store import TokenStore, get_token_store
from services.typing_scheduler import TypingScheduler

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED = "Not authenticated"


class StorySnapshot(BaseModel):
    """What a story screen renders at one instant."""

    model_config = ConfigDict(frozen=True)

    state: SessionState
    visible_text: str
    text: str
    progress: str
    story_id: str | None = None
    error: str | None = None
    is_generating: bool = False
    is_completed: bool = False
    is_failed: bool = False
    is_cancelled: bool = False
    is_typing_completed: bool = False
    closed_without_confirmation: bool = False


SnapshotListener = Callable[[StorySnapshot], None]


class StoryService(ApiBackedService):
    """Coordinator for one generation at a time plus the story list."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        api_client: ApiClient | None = None,
        transport: StreamingTransport | None = None,
        token_store: TokenStore | None = None,
        recovery_stash: RecoveryStash | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        super().__init__(api_client)
        self._settings = settings or get_settings()
        self._tokens = token_store or get_token_store()
        self._stash = recovery_stash or get_recovery_stash()
        self._events = event_bus or get_event_bus()

        self._session = GenerationSession(AmbiguousClosePolicy(self._settings.ambiguous_close_policy))
        self._scheduler = TypingScheduler(
            self._session,
            interval=self._settings.typing_interval,
            chars_per_step=self._settings.typing_chars_per_step,
            punctuation_delay=self._settings.typing_punctuation_delay,
            punctuation=self._settings.typing_punctuation,
            on_update=self._on_reveal,
        )
        self._transport = transport or StreamingTransport(settings=self._settings)
        self._transport.set_listener(self._on_transport_event)
        self._subscribers: list[SnapshotListener] = []

        self.stories: list[Story] = []

    # -- generation ----------------------------------------------------------

    def start_generation(self, request: GenerationRequest) -> None:
        """Begin a new generation, discarding the previous one.

        Returns immediately; must be called from a running event loop.
        """
        if self._session.is_active:
            logger.info("Discarding active generation for a new request")
        self._scheduler.reset()
        self._session.reset()
        self._transport.cancel()

        self._session.start()
        token = self._tokens.access_token
        if not token:
            self._session.apply(ConnectionFailed(message=NOT_AUTHENTICATED))
            self._publish()
            return

        logger.info(
            "Starting generation '%s' (style=%s, language=%s, length=%d, heroes=%d)",
            request.story_name, request.story_style, request.language,
            request.story_length, len(request.heroes),
        )
        self._transport.start(request, token)
        self._publish()

    def cancel(self) -> None:
        """Cancel the current generation.  Reported as cancelled, not failed."""
        self._transport.cancel()
        self._session.cancel()
        self._scheduler.reset()
        self._publish()

    def snapshot(self) -> StorySnapshot:
        session = self._session
        return StorySnapshot(
            state=session.state,
            visible_text=self._scheduler.visible_text,
            text=session.text,
            progress=session.progress,
            story_id=session.story_id,
            error=session.error,
            is_generating=session.is_active,
            is_completed=session.state is SessionState.COMPLETED,
            is_failed=session.state is SessionState.FAILED,
            is_cancelled=session.state is SessionState.CANCELLED,
            is_typing_completed=self._scheduler.finished,
            closed_without_confirmation=session.closed_without_confirmation,
        )

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Call *listener* with a fresh snapshot on every change.

        Returns a function that removes the subscription.
        """
        self._subscribers.append(listener)

        def unsubscribe() -> None:
            if listener in self._subscribers:
                self._subscribers.remove(listener)

        return unsubscribe

    async def wait_until_done(self) -> StorySnapshot:
        """Wait for the stream to end and the reveal to catch up."""
        await self._transport.wait_closed()
        while (
            self._session.is_terminal
            and self._session.state is not SessionState.CANCELLED
            and not self._scheduler.finished
        ):
            self._scheduler.notify()
            if not self._scheduler.running:
                break
            await self._scheduler.wait_idle()
        return self.snapshot()

    # -- app lifecycle -------------------------------------------------------

    def handle_app_did_enter_background(self) -> None:
        self._transport.suspend()

    def handle_app_will_enter_foreground(self) -> None:
        if self._session.is_active:
            self._transport.resume()

    async def handle_app_will_terminate(self) -> None:
        """Stash unconfirmed text for the next launch, then cancel."""
        if self._session.text and self._session.story_id is None:
            await self._stash.save(self._session.text)
        self.cancel()

    async def recover_last_story(self) -> str | None:
        """Text stashed by the previous run, if fresh.  Consumed on read."""
        return await self._stash.load_if_fresh(self._settings.recovery_max_age)

    # -- story CRUD ----------------------------------------------------------

    async def fetch_story(self, story_id: str) -> Story | None:
        response = await self._call("GET", f"/api/v1/stories/{story_id}/", StoryResponse)
        if response is None:
            return None
        if not response.success or response.data is None:
            self.error_message = response.message or "Failed to fetch story"
            return None
        return response.data.story

    async def fetch_user_stories(self) -> list[Story]:
        response = await self._call("GET", "/api/v1/stories/", StoriesListResponse)
        if response is None:
            return []
        if not response.success or response.data is None:
            self.error_message = response.message or "Failed to fetch stories"
            return []
        self.stories = list(response.data.stories)
        return response.data.stories

    async def delete_story(self, story_id: str) -> bool:
        response = await self._call("DELETE", f"/api/v1/stories/{story_id}/", DeleteStoryResponse)
        if response is None:
            return False
        if not response.success:
            self.error_message = response.message or "Failed to delete story"
            return False
        self.stories = [s for s in self.stories if s.id != story_id]
        self._events.emit(DomainEvent.STORY_DELETED, story_id)
        return True

    # -- internals -----------------------------------------------------------

    def _on_transport_event(self, event: TransportEvent) -> None:
        if not self._session.apply(event):
            return
        if isinstance(event, CompletedMessage):
            self._events.emit(DomainEvent.STORY_CREATED, self._session.story_id)
        if self._session.state is SessionState.CANCELLED:
            self._scheduler.reset()
        else:
            self._scheduler.notify()
        self._publish()

    def _on_reveal(self, visible_text: str) -> None:
        self._publish()

    def _publish(self) -> None:
        if not self._subscribers:
            return
        snapshot = self.snapshot()
        for listener in list(self._subscribers):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Story snapshot subscriber failed")
