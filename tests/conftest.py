"""Shared pytest fixtures for the story client tests.

Provides:
- ``settings``: Settings with a fake host, no fallbacks and a zero-delay reveal
- ``token_store``: InMemoryTokenStore holding a test token
- ``stash``: fresh InMemoryRecoveryStash per test
- ``event_bus``: fresh EventBus per test
- helpers to build SSE bodies and drive ``httpx.MockTransport`` streams
"""

from __future__ import annotations

import asyncio
import json
from typing import AsyncIterator, Callable, Iterable

import httpx
import pytest

from config.settings import Settings
from services.events import EventBus
from services.recovery_store import InMemoryRecoveryStash
from services.token_store import InMemoryTokenStore

TEST_BASE_URL = "http://stories.test"


def sse_line(payload: dict) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n"


def sse_body(*payloads: dict) -> str:
    return "".join(sse_line(p) for p in payloads)


STORY_BODY = sse_body(
    {"type": "started", "message": "Generation started"},
    {"type": "content", "data": "Once "},
    {"type": "content", "data": "upon "},
    {"type": "content", "data": "a time."},
    {"type": "completed", "story_id": "story-42", "message": "Story saved", "story_length": 17},
)


class GatedBody:
    """Async response body whose chunks are released one by one by the test."""

    def __init__(self, chunks: Iterable[str | bytes]) -> None:
        self._chunks = [c.encode() if isinstance(c, str) else c for c in chunks]
        self._allowance = asyncio.Semaphore(0)
        self.sent = 0

    def release(self, n: int = 1) -> None:
        for _ in range(n):
            self._allowance.release()

    def release_all(self) -> None:
        self.release(len(self._chunks))

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self._chunks:
            await self._allowance.acquire()
            self.sent += 1
            yield chunk


def streaming_transport(
    body: str | bytes | GatedBody | Iterable[str],
    status_code: int = 200,
    requests: list[httpx.Request] | None = None,
) -> httpx.MockTransport:
    """MockTransport answering every request with *body*."""

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        if isinstance(body, GatedBody):
            content = body
        elif isinstance(body, (str, bytes)):
            content = body.encode() if isinstance(body, str) else body
        else:
            chunks = [c.encode() for c in body]

            async def gen() -> AsyncIterator[bytes]:
                for chunk in chunks:
                    yield chunk

            content = gen()
        return httpx.Response(
            status_code, content=content, headers={"content-type": "text/event-stream"},
        )

    return httpx.MockTransport(handler)


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until *predicate* holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.001)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        api_base_url=TEST_BASE_URL,
        api_fallback_urls=[],
        api_timeout=5.0,
        access_token="test-token",
        stream_read_timeout=5.0,
        stream_total_timeout=10.0,
        typing_interval=0.0,
        typing_punctuation_delay=0.0,
        recovery_store_type="memory",
    )


@pytest.fixture
def token_store() -> InMemoryTokenStore:
    return InMemoryTokenStore("test-token")


@pytest.fixture
def stash() -> InMemoryRecoveryStash:
    return InMemoryRecoveryStash()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()
