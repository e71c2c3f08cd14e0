"""Recovery stash for partially generated stories.

When the app is about to exit mid-generation, the text received so far is
saved with a timestamp.  On the next launch it can be offered back once,
provided it is still fresh.  Reading always consumes the stash.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class StashedStory(BaseModel):
    text: str
    saved_at: float = Field(default_factory=time.time)

    def age(self, now: float | None = None) -> float:
        return (now if now is not None else time.time()) - self.saved_at


# ── Abstract Interface ───────────────────────────────────────


class RecoveryStash(ABC):
    """Single-slot store for the last unfinished story."""

    @abstractmethod
    async def save(self, text: str, timestamp: float | None = None) -> None:
        """Replace the stash with *text* saved at *timestamp* (default: now)."""
        ...

    @abstractmethod
    async def _take(self) -> StashedStory | None:
        """Remove and return the stashed entry, if any."""
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...

    async def load_if_fresh(self, max_age: float) -> str | None:
        """Return the stashed text if younger than *max_age* seconds.

        The stash is cleared whether or not the entry was fresh.
        """
        entry = await self._take()
        if entry is None:
            return None
        if entry.age() >= max_age:
            logger.info("Discarding stale recovered story (%.0fs old)", entry.age())
            return None
        logger.info("Recovered unfinished story (%d chars)", len(entry.text))
        return entry.text


# ── In-Memory Implementation ────────────────────────────────


class InMemoryRecoveryStash(RecoveryStash):
    def __init__(self) -> None:
        self._entry: StashedStory | None = None

    async def save(self, text: str, timestamp: float | None = None) -> None:
        self._entry = StashedStory(text=text, saved_at=timestamp if timestamp is not None else time.time())

    async def _take(self) -> StashedStory | None:
        entry, self._entry = self._entry, None
        return entry

    async def clear(self) -> None:
        self._entry = None


# ── File Implementation ─────────────────────────────────────


class FileRecoveryStash(RecoveryStash):
    """JSON document on disk, replaced atomically on save.

    Disk I/O runs in a worker thread.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    async def save(self, text: str, timestamp: float | None = None) -> None:
        entry = StashedStory(text=text, saved_at=timestamp if timestamp is not None else time.time())
        await asyncio.to_thread(self._write, entry.model_dump_json())
        logger.info("Stashed unfinished story (%d chars) to %s", len(text), self._path)

    async def _take(self) -> StashedStory | None:
        raw = await asyncio.to_thread(self._read_and_remove)
        if raw is None:
            return None
        try:
            return StashedStory.model_validate_json(raw)
        except ValidationError:
            logger.warning("Unreadable recovery stash at %s", self._path, exc_info=True)
            return None

    async def clear(self) -> None:
        await asyncio.to_thread(self._path.unlink, missing_ok=True)

    def _write(self, payload: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(payload, encoding="utf-8")
        os.replace(tmp, self._path)

    def _read_and_remove(self) -> str | None:
        if not self._path.exists():
            return None
        try:
            return self._path.read_text(encoding="utf-8")
        except OSError:
            logger.warning("Unreadable recovery stash at %s", self._path, exc_info=True)
            return None
        finally:
            self._path.unlink(missing_ok=True)


# ── Module-level Singleton ───────────────────────────────────

_stash: RecoveryStash | None = None


def get_recovery_stash() -> RecoveryStash:
    """Get the singleton recovery stash chosen by settings."""
    global _stash
    if _stash is None:
        from config.settings import get_settings

        settings = get_settings()
        if settings.recovery_store_type == "file":
            _stash = FileRecoveryStash(settings.recovery_file)
            logger.info("Initialized FileRecoveryStash (%s)", settings.recovery_file)
        else:
            _stash = InMemoryRecoveryStash()
            logger.info("Initialized InMemoryRecoveryStash")
    return _stash
