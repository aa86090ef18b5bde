"""Broadcast streams with an explicit observer registry.

Each stream keeps a list of listeners. Items are dispatched by iterating a
snapshot of that list, so a listener may cancel itself (or add others)
while an item is being delivered.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class StreamClosedError(Exception):
    """Raised when emitting on a stream that has been closed."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Cannot emit on closed stream '{name}'")


class Subscription:
    """Handle returned by EventStream.listen()."""

    def __init__(
        self,
        stream: "EventStream[Any]",
        on_data: Callable[[Any], Any],
        on_done: Callable[[], Any] | None = None,
    ):
        self._stream = stream
        self.on_data = on_data
        self.on_done = on_done
        self._cancelled = False

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop receiving items. Safe to call more than once."""
        if self._cancelled:
            return
        self._cancelled = True
        self._stream._remove(self)


class EventStream(Generic[T]):
    """Multi-subscriber stream of items of type T.

    Listeners may be plain functions or coroutine functions; coroutines are
    awaited in listener order. A failing listener is logged and does not
    prevent delivery to the others.
    """

    def __init__(self, name: str):
        self.name = name
        self._listeners: list[Subscription] = []
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def listen(
        self,
        on_data: Callable[[T], Any],
        on_done: Callable[[], Any] | None = None,
    ) -> Subscription:
        """Register a listener.

        Args:
            on_data: Called with every item emitted after registration.
            on_done: Called once when the stream closes. Listening to an
                already closed stream calls it immediately.

        Returns:
            Subscription that can be cancelled.
        """
        subscription = Subscription(self, on_data, on_done)
        if self._closed:
            subscription._cancelled = True
            if on_done is not None:
                on_done()
            return subscription

        self._listeners.append(subscription)
        return subscription

    async def emit(self, item: T) -> None:
        """Deliver an item to every current listener.

        Raises:
            StreamClosedError: If the stream has been closed.
        """
        if self._closed:
            raise StreamClosedError(self.name)

        for subscription in list(self._listeners):
            if subscription.is_cancelled:
                continue
            try:
                result = subscription.on_data(item)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(f"Listener error on stream '{self.name}': {e}")

    def close(self) -> None:
        """Close the stream and notify listeners. Idempotent."""
        if self._closed:
            return
        self._closed = True

        listeners = self._listeners
        self._listeners = []
        for subscription in listeners:
            subscription._cancelled = True
            if subscription.on_done is None:
                continue
            try:
                subscription.on_done()
            except Exception as e:
                logger.error(f"Done callback error on stream '{self.name}': {e}")

    def _remove(self, subscription: Subscription) -> None:
        if subscription in self._listeners:
            self._listeners.remove(subscription)
