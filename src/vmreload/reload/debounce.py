"""Folded debounce of file change events.

Every event is kept; events are grouped into batches so that at most one
batch is emitted per interval:
- An event arriving while the window is open is emitted at once together
  with everything buffered before it, and closes the window for `interval`.
- Events arriving while the window is closed are buffered.
- When no event arrives for `interval` and the buffer is not empty, the
  buffer is flushed as a batch.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from vmreload.reload.watcher import ChangeEvent

logger = logging.getLogger(__name__)

Batch = list[ChangeEvent]


class FoldedDebounce:
    """Combines all ChangeEvents between intervals into one batch."""

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic):
        if interval < 0:
            raise ValueError(f"Debounce interval must be >= 0, got {interval}")
        self.interval = interval
        self._clock = clock
        self._buffer: Batch = []
        # First event is eligible immediately
        self._next_eligible = clock() - interval

    @property
    def pending(self) -> int:
        """Number of buffered events."""
        return len(self._buffer)

    @property
    def next_eligible(self) -> float:
        return self._next_eligible

    def arm(self) -> None:
        """Close the window for one interval without emitting."""
        self._next_eligible = max(self._next_eligible, self._clock() + self.interval)

    def add(self, event: ChangeEvent) -> Batch | None:
        """Buffer an event; return a batch if the window is open."""
        self._buffer.append(event)
        now = self._clock()
        if now < self._next_eligible:
            return None
        return self._emit(now)

    def flush(self) -> Batch | None:
        """Emit buffered events after a quiet interval, if there are any."""
        if not self._buffer:
            return None
        return self._emit(self._clock())

    def timeout(self) -> float | None:
        """Seconds of silence after which run() flushes, or None to wait forever."""
        if not self._buffer:
            return None
        return max(self.interval, self._next_eligible - self._clock())

    def _emit(self, now: float) -> Batch:
        batch = self._buffer
        self._buffer = []
        self._next_eligible = now + self.interval
        return batch

    async def run(
        self,
        source: asyncio.Queue[ChangeEvent],
        on_batch: Callable[[Batch], Awaitable[Any] | Any],
    ) -> None:
        """Fold events from `source` into batches until cancelled.

        Args:
            source: Fan-in queue fed by the per-path watchers.
            on_batch: Called with each batch; awaited if it returns a coroutine.
        """
        while True:
            timeout = self.timeout()
            try:
                if timeout is None:
                    event = await source.get()
                else:
                    event = await asyncio.wait_for(source.get(), timeout)
            except TimeoutError:
                batch = self.flush()
            else:
                batch = self.add(event)

            if batch:
                logger.debug(f"Emitting batch of {len(batch)} change(s)")
                result = on_batch(batch)
                if asyncio.iscoroutine(result):
                    await result
