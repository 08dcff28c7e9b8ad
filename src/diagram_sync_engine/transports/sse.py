"""SSE transport: queue-backed subscribers drained as Server-Sent Events."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any

from diagram_sync_engine.transports.base import PushSink

PING_FRAME = ": ping\n\n"

_CLOSE = object()


def format_event(event: str, data: Any) -> str:
    """Encode one named SSE frame."""
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


class QueueSubscriber(PushSink):
    """
    A renderer connection modelled as an owned message queue.

    ``offer`` never blocks the hub. A subscriber that falls ``max_pending``
    events behind is marked closed and dropped by the hub.
    """

    def __init__(self, view_id: str, max_pending: int = 64) -> None:
        super().__init__(view_id)
        self.max_pending = max_pending
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def offer(self, event: str, data: Any) -> bool:
        if self._closed:
            return False
        if self._queue.qsize() >= self.max_pending:
            self.close()
            return False
        self._queue.put_nowait((event, data))
        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSE)

    async def next_event(self) -> tuple[str, Any] | None:
        """Wait for the next queued event; None once the subscriber is closed."""
        item = await self._queue.get()
        if item is _CLOSE:
            return None
        return item


async def sse_stream(
    subscriber: QueueSubscriber,
    ping_interval: float = 20.0,
) -> AsyncIterator[str]:
    """Drain *subscriber* as SSE frames, emitting keep-alive pings when idle."""
    while True:
        try:
            item = await asyncio.wait_for(subscriber.next_event(), timeout=ping_interval)
        except asyncio.TimeoutError:
            yield PING_FRAME
            continue
        if item is None:
            return
        event, data = item
        yield format_event(event, data)
