"""Typing presentation scheduler.

Reveals a session's accumulated text at a readable pace regardless of how
bursty the network delivery was.  Every tick advances a cursor by a couple of
characters; a step that reaches punctuation stops right after it and the next
tick is delayed longer, like a reader pausing at the end of a clause.

The scheduler only reads ``session.text`` / ``session.is_terminal``; it never
writes to the session.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Protocol

logger = logging.getLogger(__name__)

DEFAULT_PUNCTUATION = ".!?,;"


class RevealSource(Protocol):
    @property
    def text(self) -> str: ...

    @property
    def is_terminal(self) -> bool: ...


def next_reveal_step(
    text: str,
    cursor: int,
    chars_per_step: int,
    punctuation: str = DEFAULT_PUNCTUATION,
) -> tuple[int, bool]:
    """Compute the cursor after one tick.

    Returns ``(new_cursor, pause)`` where ``pause`` is True when the step
    ended on a punctuation character.
    """
    end = min(cursor + max(chars_per_step, 1), len(text))
    for i in range(cursor, end):
        if text[i] in punctuation:
            return i + 1, True
    return end, False


class TypingScheduler:
    """Paced reveal of a growing text."""

    def __init__(
        self,
        source: RevealSource,
        *,
        interval: float = 0.03,
        chars_per_step: int = 2,
        punctuation_delay: float = 0.1,
        punctuation: str = DEFAULT_PUNCTUATION,
        on_update: Callable[[str], None] | None = None,
    ) -> None:
        self._source = source
        self.interval = interval
        self.chars_per_step = chars_per_step
        self.punctuation_delay = punctuation_delay
        self.punctuation = punctuation
        self._on_update = on_update

        self._cursor = 0
        self._visible = ""
        self._finished = False
        self._task: asyncio.Task[None] | None = None

    # -- state ---------------------------------------------------------------

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def visible_text(self) -> str:
        return self._visible

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def finished(self) -> bool:
        """True once the session is terminal and everything is revealed."""
        return self._finished

    # -- control -------------------------------------------------------------

    def notify(self) -> None:
        """Signal that the text grew or the session ended.

        Starts the timer lazily, or restarts it after it idled at the end of
        the text.  Must be called from a running event loop.
        """
        if self._finished or self.running:
            return
        if self._cursor >= len(self._source.text) and not self._source.is_terminal:
            return
        self._task = asyncio.get_running_loop().create_task(self._run(), name="typing-scheduler")

    def reset(self) -> None:
        """Stop the timer and forget all progress."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self._cursor = 0
        self._visible = ""
        self._finished = False

    async def wait_idle(self) -> None:
        """Wait until the timer stops (finished, idle or reset)."""
        task = self._task
        if task is not None:
            await asyncio.wait({task})

    def tick(self) -> float:
        """Advance one step and return the delay before the next tick."""
        text = self._source.text
        if self._cursor >= len(text):
            return self.interval
        end, pause = next_reveal_step(text, self._cursor, self.chars_per_step, self.punctuation)
        self._cursor = end
        self._publish(text[:end])
        return self.punctuation_delay if pause else self.interval

    # -- internals -----------------------------------------------------------

    def _publish(self, visible: str) -> None:
        self._visible = visible
        if self._on_update is None:
            return
        try:
            self._on_update(visible)
        except Exception:
            logger.exception("Typing update callback failed")

    def _finish(self) -> None:
        self._finished = True
        text = self._source.text
        self._cursor = len(text)
        self._publish(text)
        logger.debug("Typing reveal finished at %d chars", self._cursor)

    async def _run(self) -> None:
        while True:
            if self._cursor >= len(self._source.text):
                if self._source.is_terminal:
                    self._finish()
                # Otherwise idle until notify() brings more text
                return
            delay = self.tick()
            await asyncio.sleep(delay)
