"""Tests for push sinks and SSE framing."""

from __future__ import annotations

import asyncio
import json

import pytest

from diagram_sync_engine.transports import PushSink, QueueSubscriber
from diagram_sync_engine.transports.sse import PING_FRAME, format_event, sse_stream


async def collect(stream) -> list[str]:
    return [frame async for frame in stream]


class TestFormatEvent:
    def test_named_frame(self) -> None:
        frame = format_event("update", {"elements": [], "checkpointId": "cp"})

        assert frame.startswith("event: update\ndata: ")
        assert frame.endswith("\n\n")
        data = frame.split("data: ", 1)[1].strip()
        assert json.loads(data) == {"elements": [], "checkpointId": "cp"}


class TestQueueSubscriber:
    def test_is_push_sink(self) -> None:
        assert isinstance(QueueSubscriber("v1"), PushSink)

    @pytest.mark.asyncio
    async def test_delivers_in_order(self) -> None:
        subscriber = QueueSubscriber("v1")
        subscriber.offer("update", 1)
        subscriber.offer("meta", 2)

        assert await subscriber.next_event() == ("update", 1)
        assert await subscriber.next_event() == ("meta", 2)

    @pytest.mark.asyncio
    async def test_close_ends_stream(self) -> None:
        subscriber = QueueSubscriber("v1")
        subscriber.offer("update", 1)
        subscriber.close()
        subscriber.close()

        assert subscriber.closed
        assert not subscriber.offer("update", 2)
        assert await subscriber.next_event() == ("update", 1)
        assert await subscriber.next_event() is None

    def test_overflow_closes(self) -> None:
        subscriber = QueueSubscriber("v1", max_pending=2)

        assert subscriber.offer("update", 1)
        assert subscriber.offer("update", 2)
        assert not subscriber.offer("update", 3)
        assert subscriber.closed


class TestSseStream:
    @pytest.mark.asyncio
    async def test_drains_until_closed(self) -> None:
        subscriber = QueueSubscriber("v1")
        subscriber.offer("update", {"elements": []})
        subscriber.offer("closed", {"viewId": "v1"})
        subscriber.close()

        frames = await collect(sse_stream(subscriber, ping_interval=5))

        assert frames == [
            format_event("update", {"elements": []}),
            format_event("closed", {"viewId": "v1"}),
        ]

    @pytest.mark.asyncio
    async def test_pings_when_idle(self) -> None:
        subscriber = QueueSubscriber("v1")
        stream = sse_stream(subscriber, ping_interval=0.01)

        assert await stream.__anext__() == PING_FRAME

        subscriber.offer("meta", {"skin": "paper"})
        assert await asyncio.wait_for(stream.__anext__(), timeout=1) == format_event(
            "meta", {"skin": "paper"}
        )
        await stream.aclose()
