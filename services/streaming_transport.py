"""Long-lived HTTP transport for story generation.

Wraps an ``httpx`` streaming POST with:
- bearer auth, ``Cache-Control: no-cache`` and minute-scale timeouts
- incremental SSE parsing of the response body
- a single listener receiving every event of the stream, in order, on the
  event loop (the only writer of session state)
- cooperative cancellation reported as :class:`StreamCancelled`, never as an
  error
- suspend / resume for app backgrounding
- a distinguished :class:`StreamClosed` outcome when the server hangs up
  without a terminal message
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

import httpx

from config.settings import Settings, get_settings
from models.sse_events import (
    TERMINAL_MESSAGES,
    ConnectionFailed,
    StreamCancelled,
    StreamClosed,
    TransportEvent,
)
from models.story import GenerationRequest
from services.sse_parser import SSEFrameParser

logger = logging.getLogger(__name__)

Listener = Callable[[TransportEvent], None]

_OUTCOMES = (ConnectionFailed, StreamClosed, StreamCancelled)


class StreamingTransport:
    """One streaming connection at a time, reporting to one listener."""

    def __init__(
        self,
        listener: Listener | None = None,
        *,
        settings: Settings | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._url = f"{settings.api_base_url.rstrip('/')}{settings.stream_endpoint}"
        self._timeout = httpx.Timeout(
            settings.stream_read_timeout,
            connect=settings.stream_connect_timeout,
        )
        self._total_timeout = settings.stream_total_timeout
        self._http_transport = http_transport
        self._listener = listener
        self._parser = SSEFrameParser()

        self._task: asyncio.Task[None] | None = None
        self._stream_id = 0
        # Set once the current stream has delivered its final event
        self._finished = True

        self._resume_gate = asyncio.Event()
        self._resume_gate.set()
        self._suspended_during_stream = False

    # -- public API ----------------------------------------------------------

    def set_listener(self, listener: Listener | None) -> None:
        self._listener = listener

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def suspended(self) -> bool:
        return not self._resume_gate.is_set()

    def start(self, request: GenerationRequest, auth_token: str) -> None:
        """Open the stream and return immediately.

        Must be called from a running event loop.  An active stream is
        cancelled first.
        """
        if self.active:
            logger.warning("Story stream already active — cancelling it before restart")
            self.cancel()

        self._stream_id += 1
        self._finished = False
        self._parser.reset()
        self._suspended_during_stream = False
        self._resume_gate.set()

        loop = asyncio.get_running_loop()
        self._task = loop.create_task(
            self._run(self._stream_id, request, auth_token),
            name=f"story-stream-{self._stream_id}",
        )

    def cancel(self) -> None:
        """Abort the current stream.

        Emits one :class:`StreamCancelled`; nothing else is delivered for the
        stream afterwards.
        """
        if self._finished:
            return
        self._emit(self._stream_id, StreamCancelled())
        if self._task is not None:
            self._task.cancel()
        self._resume_gate.set()

    def suspend(self) -> None:
        """Stop consuming the response without closing the connection."""
        if self.active and not self.suspended:
            logger.info("Story stream suspended")
            self._suspended_during_stream = True
            self._resume_gate.clear()

    def resume(self) -> None:
        """Continue consuming a suspended stream."""
        if self.suspended:
            logger.info("Story stream resumed")
            self._resume_gate.set()

    async def wait_closed(self) -> None:
        """Wait until the current stream task has exited."""
        if self._task is not None:
            await asyncio.wait({self._task})

    # -- internals -----------------------------------------------------------

    def _emit(self, stream_id: int, event: TransportEvent) -> None:
        if stream_id != self._stream_id or self._finished:
            return
        if isinstance(event, _OUTCOMES) or isinstance(event, TERMINAL_MESSAGES):
            self._finished = True
        if self._listener is None:
            return
        try:
            self._listener(event)
        except Exception:
            logger.exception("Story stream listener failed on %s", event.type)

    def _headers(self, auth_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {auth_token}",
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
            "Cache-Control": "no-cache",
        }

    async def _run(self, stream_id: int, request: GenerationRequest, auth_token: str) -> None:
        t0 = time.monotonic()
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._http_transport,
            ) as client:
                await asyncio.wait_for(
                    self._consume(client, stream_id, request, auth_token),
                    timeout=self._total_timeout,
                )
        except asyncio.CancelledError:
            logger.info("Story stream %d cancelled after %.1fs", stream_id, time.monotonic() - t0)
            raise
        except asyncio.TimeoutError:
            logger.warning("Story stream %d exceeded %.0fs", stream_id, self._total_timeout)
            self._emit(stream_id, ConnectionFailed(message="Story generation timed out"))
        except httpx.HTTPError as exc:
            if self._suspended_during_stream:
                # The OS dropped the connection while we were backgrounded
                logger.warning("Story stream %d lost while suspended: %s", stream_id, exc)
                self._emit(stream_id, StreamClosed())
            elif isinstance(exc, httpx.TimeoutException):
                logger.warning("Story stream %d timed out: %s", stream_id, exc)
                self._emit(stream_id, ConnectionFailed(message="Request timed out"))
            else:
                logger.warning("Story stream %d failed: %s", stream_id, exc)
                self._emit(
                    stream_id,
                    ConnectionFailed(message=str(exc) or exc.__class__.__name__),
                )
        except Exception:
            logger.exception("Story stream %d crashed", stream_id)
            self._emit(stream_id, ConnectionFailed(message="Unexpected error while reading the story stream"))
        else:
            logger.info("Story stream %d finished in %.1fs", stream_id, time.monotonic() - t0)

    async def _consume(
        self,
        client: httpx.AsyncClient,
        stream_id: int,
        request: GenerationRequest,
        auth_token: str,
    ) -> None:
        async with client.stream(
            "POST",
            self._url,
            json=request.model_dump(mode="json"),
            headers=self._headers(auth_token),
        ) as response:
            if not response.is_success:
                logger.warning("POST %s → %d", self._url, response.status_code)
                self._emit(
                    stream_id,
                    ConnectionFailed(
                        message=f"Server error ({response.status_code})",
                        status_code=response.status_code,
                    ),
                )
                return

            logger.info("POST %s → %d, streaming", self._url, response.status_code)
            async for chunk in response.aiter_bytes():
                if not self._resume_gate.is_set():
                    await self._resume_gate.wait()
                for message in self._parser.feed(chunk):
                    self._emit(stream_id, message)
                    if isinstance(message, TERMINAL_MESSAGES):
                        return

        if self._parser.pending:
            logger.debug("Discarding unterminated SSE line (%d chars)", len(self._parser.pending))
        self._emit(stream_id, StreamClosed())
