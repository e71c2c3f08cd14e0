"""Incremental parser for the story generation SSE stream.

The backend writes one JSON message per line::

    data: {"type": "started", "message": "..."}
    data: {"type": "content", "data": "Once upon"}
    data: {"type": "completed", "story_id": "...", "message": "...", "story_length": 1234}

Network chunks do not respect line boundaries, so the parser keeps the tail
of the stream that has not yet been terminated by a newline and only parses
complete lines.  Anything that is not a well-formed ``data:`` line (keep-alive
comments, blank separators, broken JSON, unknown message types) is dropped.
"""

from __future__ import annotations

import codecs
import json
import logging
import re
import threading

from models.sse_events import SSEMessage, decode_message

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "

_NEWLINE_RE = re.compile(r"\r\n|\r|\n")


def parse_sse_line(line: str) -> SSEMessage | None:
    """Parse one complete line into a typed message.

    Returns ``None`` for lines that are not ``data:`` events or whose payload
    cannot be decoded.  Never raises.
    """
    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX):]
    if not payload:
        return None
    try:
        data = json.loads(payload)
    except (ValueError, RecursionError):
        # Also covers the int digit limit and deep nesting
        logger.debug("Dropping malformed SSE line: %.80r", line)
        return None
    return decode_message(data)


class SSEFrameParser:
    """Stateful line reassembler for SSE chunks.

    ``feed`` may be called from a network callback thread; buffer mutation is
    serialised by an internal lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def pending(self) -> str:
        """Incomplete trailing line not yet parsed."""
        with self._lock:
            return self._buffer

    def feed(self, chunk: str | bytes) -> list[SSEMessage]:
        """Add a chunk and return the messages completed by it, in order."""
        with self._lock:
            if isinstance(chunk, bytes):
                chunk = self._decoder.decode(chunk)
            self._buffer += chunk
            lines = _NEWLINE_RE.split(self._buffer)
            # A non-empty last element is a line still being received
            self._buffer = lines.pop()

        messages: list[SSEMessage] = []
        for line in lines:
            message = parse_sse_line(line)
            if message is not None:
                messages.append(message)
        return messages

    def reset(self) -> None:
        """Discard the partial line and any half-decoded bytes."""
        with self._lock:
            self._buffer = ""
            self._decoder.reset()
