"""Tests for services/streaming_transport.py — driven through httpx.MockTransport."""

from __future__ import annotations

import json
from unittest.mock import patch

import httpx
import pytest

from conftest import STORY_BODY, GatedBody, sse_line, streaming_transport, wait_for
from models.sse_events import (
    CompletedMessage,
    ConnectionFailed,
    ContentMessage,
    ErrorMessage,
    StartedMessage,
    StreamCancelled,
    StreamClosed,
)
from models.story import GenerationRequest, HeroRef
from services.sse_parser import SSEFrameParser
from services.streaming_transport import StreamingTransport


@pytest.fixture
def request_body() -> GenerationRequest:
    return GenerationRequest(
        story_name="The Fox",
        story_idea="A fox learns to share",
        story_style="Adventure",
        language="en",
        story_length=2,
        heroes=(HeroRef(id="h1", name="Mia"),),
    )


def _make(settings, http_transport):
    events = []
    transport = StreamingTransport(events.append, settings=settings, http_transport=http_transport)
    return transport, events


@pytest.mark.asyncio
async def test_full_stream_delivers_messages_in_order(settings, request_body):
    seen: list[httpx.Request] = []
    transport, events = _make(settings, streaming_transport(STORY_BODY, requests=seen))

    transport.start(request_body, "tok-1")
    await transport.wait_closed()

    assert [e.type for e in events] == ["started", "content", "content", "content", "completed"]
    assert "".join(e.delta for e in events if isinstance(e, ContentMessage)) == "Once upon a time."
    assert events[-1] == CompletedMessage(story_id="story-42", message="Story saved", total_length=17)
    assert not transport.active


@pytest.mark.asyncio
async def test_request_shape(settings, request_body):
    seen: list[httpx.Request] = []
    transport, _ = _make(settings, streaming_transport(STORY_BODY, requests=seen))

    transport.start(request_body, "tok-1")
    await transport.wait_closed()

    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "http://stories.test/api/v1/stories/generate-with-heroes-stream/"
    assert request.headers["authorization"] == "Bearer tok-1"
    assert request.headers["accept"] == "text/event-stream"
    assert request.headers["cache-control"] == "no-cache"
    assert json.loads(request.content) == {
        "story_name": "The Fox",
        "story_idea": "A fox learns to share",
        "story_style": "Adventure",
        "language": "en",
        "story_length": 2,
        "heroes": [{"id": "h1", "name": "Mia"}],
    }


@pytest.mark.asyncio
async def test_non_2xx_reports_status_without_parsing_body(settings, request_body):
    body = sse_line({"type": "content", "data": "should not be seen"})
    transport, events = _make(settings, streaming_transport(body, status_code=500))

    with patch.object(SSEFrameParser, "feed") as feed:
        transport.start(request_body, "tok")
        await transport.wait_closed()

    feed.assert_not_called()
    assert events == [ConnectionFailed(message="Server error (500)", status_code=500)]


@pytest.mark.asyncio
async def test_server_error_message_is_terminal(settings, request_body):
    body = (
        sse_line({"type": "started", "message": "go"})
        + sse_line({"type": "error", "message": "Quota exceeded"})
        + sse_line({"type": "content", "data": "late"})
    )
    transport, events = _make(settings, streaming_transport(body))

    transport.start(request_body, "tok")
    await transport.wait_closed()

    assert events == [StartedMessage(message="go"), ErrorMessage(message="Quota exceeded")]


@pytest.mark.asyncio
async def test_close_without_terminal_message(settings, request_body):
    body = sse_line({"type": "content", "data": "Once "}) + 'data: {"type": "content", "da'
    transport, events = _make(settings, streaming_transport(body))

    transport.start(request_body, "tok")
    await transport.wait_closed()

    assert events == [ContentMessage(delta="Once "), StreamClosed()]


@pytest.mark.asyncio
async def test_chunked_body_is_reassembled(settings, request_body):
    chunks = [STORY_BODY[i:i + 7] for i in range(0, len(STORY_BODY), 7)]
    transport, events = _make(settings, streaming_transport(chunks))

    transport.start(request_body, "tok")
    await transport.wait_closed()

    assert [e.type for e in events] == ["started", "content", "content", "content", "completed"]


@pytest.mark.asyncio
async def test_connect_error_is_connection_failed(settings, request_body):
    def handler(request):
        raise httpx.ConnectError("Connection refused", request=request)

    transport, events = _make(settings, httpx.MockTransport(handler))
    transport.start(request_body, "tok")
    await transport.wait_closed()

    assert len(events) == 1
    assert isinstance(events[0], ConnectionFailed)
    assert "Connection refused" in events[0].message
    assert events[0].status_code is None


@pytest.mark.asyncio
async def test_read_timeout_is_connection_failed(settings, request_body):
    def handler(request):
        raise httpx.ReadTimeout("timed out", request=request)

    transport, events = _make(settings, httpx.MockTransport(handler))
    transport.start(request_body, "tok")
    await transport.wait_closed()

    assert events == [ConnectionFailed(message="Request timed out")]


@pytest.mark.asyncio
async def test_total_deadline(settings, request_body):
    settings.stream_total_timeout = 0.05
    body = GatedBody([sse_line({"type": "content", "data": "a"})])
    transport, events = _make(settings, streaming_transport(body))

    transport.start(request_body, "tok")
    await transport.wait_closed()

    assert events == [ConnectionFailed(message="Story generation timed out")]


@pytest.mark.asyncio
async def test_cancel_emits_one_cancelled_and_nothing_after(settings, request_body):
    body = GatedBody([
        sse_line({"type": "started", "message": "go"}),
        sse_line({"type": "content", "data": "Once "}),
        sse_line({"type": "content", "data": "upon "}),
        sse_line({"type": "completed", "message": "done"}),
    ])
    transport, events = _make(settings, streaming_transport(body))

    transport.start(request_body, "tok")
    body.release(2)
    await wait_for(lambda: len(events) == 2)

    transport.cancel()
    transport.cancel()
    body.release_all()
    await transport.wait_closed()

    assert events == [
        StartedMessage(message="go"),
        ContentMessage(delta="Once "),
        StreamCancelled(),
    ]
    assert not transport.active


@pytest.mark.asyncio
async def test_cancel_without_stream_is_noop(settings):
    transport, events = _make(settings, streaming_transport(STORY_BODY))
    transport.cancel()
    assert events == []


@pytest.mark.asyncio
async def test_restart_cancels_previous_stream(settings, request_body):
    first = GatedBody([sse_line({"type": "content", "data": "old"})] * 3)
    second = STORY_BODY
    bodies = [first, second]

    def handler(request):
        body = bodies.pop(0)
        content = body if isinstance(body, GatedBody) else body.encode()
        return httpx.Response(200, content=content)

    transport, events = _make(settings, httpx.MockTransport(handler))
    transport.start(request_body, "tok")
    first.release()
    await wait_for(lambda: len(events) == 1)

    transport.start(request_body, "tok")
    first.release_all()
    await transport.wait_closed()

    assert events[0] == ContentMessage(delta="old")
    assert events[1] == StreamCancelled()
    assert [e.type for e in events[2:]] == ["started", "content", "content", "content", "completed"]


@pytest.mark.asyncio
async def test_suspend_holds_delivery_until_resume(settings, request_body):
    body = GatedBody([
        sse_line({"type": "content", "data": "a"}),
        sse_line({"type": "content", "data": "b"}),
        sse_line({"type": "completed", "message": "done"}),
    ])
    transport, events = _make(settings, streaming_transport(body))

    transport.start(request_body, "tok")
    body.release()
    await wait_for(lambda: len(events) == 1)

    transport.suspend()
    assert transport.suspended
    body.release()
    await wait_for(lambda: body.sent == 2)
    assert len(events) == 1

    transport.resume()
    body.release()
    await transport.wait_closed()

    assert [e.type for e in events] == ["content", "content", "completed"]
    assert not transport.suspended


@pytest.mark.asyncio
async def test_connection_lost_after_suspend_is_closed(settings, request_body):
    async def dropping_body():
        yield sse_line({"type": "content", "data": "a"}).encode()
        raise httpx.ReadError("connection reset")

    def handler(request):
        return httpx.Response(200, content=dropping_body())

    transport, events = _make(settings, httpx.MockTransport(handler))
    transport.start(request_body, "tok")
    transport.suspend()
    transport.resume()
    await transport.wait_closed()

    assert events == [ContentMessage(delta="a"), StreamClosed()]


@pytest.mark.asyncio
async def test_listener_failure_does_not_break_stream(settings, request_body):
    seen = []

    def flaky(event):
        seen.append(event)
        if len(seen) == 1:
            raise RuntimeError("ui exploded")

    transport = StreamingTransport(flaky, settings=settings, http_transport=streaming_transport(STORY_BODY))
    transport.start(request_body, "tok")
    await transport.wait_closed()

    assert len(seen) == 5


@pytest.mark.asyncio
async def test_oversized_number_line_is_skipped(settings, request_body):
    body = (
        sse_line({"type": "started", "message": "go"})
        + sse_line({"type": "content", "data": "Once "})
        + 'data: {"type": "content", "data": ' + "1" * 5000 + "}\n"
        + sse_line({"type": "completed", "message": "done"})
    )
    transport, events = _make(settings, streaming_transport(body))

    transport.start(request_body, "tok")
    await transport.wait_closed()

    assert [e.type for e in events] == ["started", "content", "completed"]


@pytest.mark.asyncio
async def test_unexpected_error_still_ends_the_stream(settings, request_body):
    transport, events = _make(settings, streaming_transport(STORY_BODY))

    with patch.object(SSEFrameParser, "feed", side_effect=RuntimeError("parser bug")):
        transport.start(request_body, "tok")
        await transport.wait_closed()

    assert len(events) == 1
    assert isinstance(events[0], ConnectionFailed)
    assert events[0].status_code is None
    assert not transport.active
