"""In-process domain events ("something changed, refresh your list")."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class DomainEvent(str, Enum):
    STORY_CREATED = "story_created"
    STORY_DELETED = "story_deleted"
    HERO_CREATED = "hero_created"
    HERO_UPDATED = "hero_updated"
    HERO_DELETED = "hero_deleted"


class EventBus:
    """Fire-and-forget publish/subscribe.

    A failing handler is logged and does not affect the emitter or the other
    handlers.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._handlers: dict[DomainEvent, list[Handler]] = defaultdict(list)

    def subscribe(self, event: DomainEvent, handler: Handler) -> Callable[[], None]:
        """Register *handler*; returns a function that unregisters it."""
        with self._lock:
            self._handlers[event].append(handler)

        def unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers[event]:
                    self._handlers[event].remove(handler)

        return unsubscribe

    def emit(self, event: DomainEvent, payload: Any = None) -> None:
        with self._lock:
            handlers = list(self._handlers[event])
        logger.debug("Emitting %s to %d handler(s)", event.value, len(handlers))
        for handler in handlers:
            try:
                handler(payload)
            except Exception:
                logger.exception("Handler for %s failed", event.value)


_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    global _bus
    if _bus is None:
        _bus = EventBus()
    return _bus
