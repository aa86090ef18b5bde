"""Event bus for publishing reloader lifecycle events."""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from vmreload.events.types import Event, EventType

logger = logging.getLogger(__name__)


class EventBus:
    """Lifecycle event bus owned by a single reloader.

    Supports both:
    - Queues for consumers that pull events at their own pace
    - Callback-based subscriptions for internal handlers
    """

    def __init__(self) -> None:
        self._subscribers: dict[str, asyncio.Queue[Event]] = {}
        self._callbacks: list[Callable[[Event], Any]] = []
        self._lock = asyncio.Lock()

    async def subscribe(self, subscriber_id: str) -> asyncio.Queue[Event]:
        """Subscribe to events and return a queue to receive them.

        Args:
            subscriber_id: Unique ID for this subscriber.

        Returns:
            Queue that will receive events
        """
        async with self._lock:
            queue: asyncio.Queue[Event] = asyncio.Queue()
            self._subscribers[subscriber_id] = queue
            logger.debug(f"Subscriber {subscriber_id} connected")
            return queue

    async def unsubscribe(self, subscriber_id: str) -> None:
        """Unsubscribe from events."""
        async with self._lock:
            if subscriber_id in self._subscribers:
                del self._subscribers[subscriber_id]
                logger.debug(f"Subscriber {subscriber_id} disconnected")

    def add_callback(self, callback: Callable[[Event], Any]) -> None:
        """Add a callback to be called for every event."""
        self._callbacks.append(callback)

    def remove_callback(self, callback: Callable[[Event], Any]) -> None:
        """Remove a callback."""
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    async def publish(self, event: Event) -> None:
        """Publish an event to all subscribers."""
        logger.debug(f"Publishing event: {event.type.value}")

        async with self._lock:
            for subscriber_id, queue in list(self._subscribers.items()):
                try:
                    await queue.put(event)
                except Exception as e:
                    logger.error(f"Failed to send event to {subscriber_id}: {e}")

        for callback in list(self._callbacks):
            try:
                result = callback(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Callback error: {e}")

    async def emit(self, event_type: EventType, data: dict[str, Any] | None = None) -> Event:
        """Convenience method to create and publish an event.

        Args:
            event_type: The type of event
            data: Event payload data

        Returns:
            The created event
        """
        event = Event(type=event_type, data=data or {})
        await self.publish(event)
        return event

    @property
    def subscriber_count(self) -> int:
        """Get the number of active subscribers."""
        return len(self._subscribers)
