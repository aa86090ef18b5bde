"""Lifecycle events and broadcast streams."""

from vmreload.events.bus import EventBus
from vmreload.events.stream import EventStream, StreamClosedError, Subscription
from vmreload.events.types import Event, EventType

__all__ = [
    "Event",
    "EventBus",
    "EventStream",
    "EventType",
    "StreamClosedError",
    "Subscription",
]
