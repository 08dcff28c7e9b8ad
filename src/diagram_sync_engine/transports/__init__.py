"""
Push transports from the hub to renderer subscribers.

Each subscriber owns a message queue; the hub enqueues and a per-connection
delivery task drains it as Server-Sent Events.
"""

from diagram_sync_engine.transports.base import PushSink
from diagram_sync_engine.transports.sse import QueueSubscriber, format_event, sse_stream

__all__ = [
    "PushSink",
    "QueueSubscriber",
    "format_event",
    "sse_stream",
]
