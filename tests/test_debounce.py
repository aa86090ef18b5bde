"""Tests for the folded debounce of change events."""

import asyncio

import pytest

from vmreload.reload.debounce import FoldedDebounce
from vmreload.reload.watcher import ChangeEvent, ChangeKind


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def change(n: int) -> ChangeEvent:
    return ChangeEvent(path=f"/src/file_{n}.dart", kind=ChangeKind.MODIFIED)


def simulate(interval: float, arrivals: list[float]) -> list[tuple[float, list[ChangeEvent]]]:
    """Replay arrivals (seconds from start) the way run() drives the debounce.

    Returns (emission time, batch) pairs, including the final flush.
    """
    clock = FakeClock(0.0)
    debounce = FoldedDebounce(interval, clock=clock)
    emitted: list[tuple[float, list[ChangeEvent]]] = []

    for n, at in enumerate(arrivals):
        # Flush if the silence before this arrival outlasts the timeout
        timeout = debounce.timeout()
        if timeout is not None and clock.now + timeout <= at:
            clock.now += timeout
            batch = debounce.flush()
            if batch:
                emitted.append((clock.now, batch))
        clock.now = at
        batch = debounce.add(change(n))
        if batch:
            emitted.append((clock.now, batch))

    timeout = debounce.timeout()
    if timeout is not None:
        clock.advance(timeout)
        batch = debounce.flush()
        if batch:
            emitted.append((clock.now, batch))
    return emitted


class TestFoldedDebounce:
    """Tests for FoldedDebounce."""

    def test_first_event_is_emitted_immediately(self):
        """The window starts open."""
        debounce = FoldedDebounce(5.0, clock=FakeClock())

        batch = debounce.add(change(1))

        assert batch == [change(1)]
        assert debounce.pending == 0

    def test_events_within_window_are_buffered(self):
        """Events after an emission wait for the window to reopen."""
        clock = FakeClock()
        debounce = FoldedDebounce(5.0, clock=clock)
        debounce.add(change(1))

        clock.advance(1.0)
        assert debounce.add(change(2)) is None
        clock.advance(1.0)
        assert debounce.add(change(3)) is None

        assert debounce.pending == 2

    def test_event_after_window_emits_accumulated(self):
        """An eligible event carries everything buffered before it."""
        clock = FakeClock()
        debounce = FoldedDebounce(5.0, clock=clock)
        debounce.add(change(1))
        clock.advance(2.0)
        debounce.add(change(2))
        clock.advance(3.0)

        batch = debounce.add(change(3))

        assert batch == [change(2), change(3)]
        assert debounce.next_eligible == clock.now + 5.0

    def test_flush_emits_buffer_and_advances_window(self):
        """Timeout flush empties the buffer and closes the window."""
        clock = FakeClock()
        debounce = FoldedDebounce(5.0, clock=clock)
        debounce.add(change(1))
        clock.advance(1.0)
        debounce.add(change(2))
        clock.advance(5.0)

        assert debounce.flush() == [change(2)]
        assert debounce.next_eligible == clock.now + 5.0

    def test_flush_on_empty_buffer_emits_nothing(self):
        """Idle timeouts never produce empty batches."""
        debounce = FoldedDebounce(5.0, clock=FakeClock())

        assert debounce.flush() is None
        assert debounce.timeout() is None

    def test_arm_closes_window(self):
        """arm() delays the first emission by one interval."""
        clock = FakeClock()
        debounce = FoldedDebounce(0.1, clock=clock)

        debounce.arm()
        assert debounce.add(change(1)) is None
        clock.advance(0.1)
        assert debounce.add(change(2)) == [change(1), change(2)]

    def test_zero_interval_emits_every_event(self):
        """A zero interval degenerates to one batch per event."""
        debounce = FoldedDebounce(0, clock=FakeClock())

        batches = [debounce.add(change(n)) for n in range(4)]

        assert batches == [[change(n)] for n in range(4)]

    def test_negative_interval_rejected(self):
        """Intervals must not be negative."""
        with pytest.raises(ValueError):
            FoldedDebounce(-1)


class TestDebounceProperties:
    """Properties that hold for any arrival pattern."""

    ARRIVALS = [
        [0.0, 0.01, 0.02, 0.03],
        [0.0, 0.3, 0.31, 0.9, 2.5, 2.55, 2.6, 2.65, 7.0],
        [0.05 * n for n in range(60)],
        [0.0, 1.0, 2.0, 3.0],
        [0.5, 0.5, 0.5, 1.7, 1.71, 4.0],
    ]

    @pytest.mark.parametrize("arrivals", ARRIVALS)
    @pytest.mark.parametrize("interval", [0.0, 0.1, 0.5, 1.0])
    def test_no_loss_spacing_and_no_empty_batches(self, arrivals, interval):
        """Every event is emitted once, in order, in non-empty well-spaced batches."""
        emitted = simulate(interval, arrivals)

        flattened = [event for _, batch in emitted for event in batch]
        assert flattened == [change(n) for n in range(len(arrivals))]
        assert all(batch for _, batch in emitted)

        times = [at for at, _ in emitted]
        for earlier, later in zip(times, times[1:], strict=False):
            assert later - earlier >= interval - 1e-9

    def test_continuous_pressure_one_batch_per_window(self):
        """Steady events produce about one batch per interval."""
        arrivals = [0.05 * n for n in range(100)]  # 5 seconds of events

        emitted = simulate(1.0, arrivals)

        assert 5 <= len(emitted) <= 6


class TestDebounceRun:
    """Tests for the asyncio loop driving the debounce."""

    async def test_run_flushes_after_quiet_interval(self):
        """Buffered events are flushed once the source goes quiet."""
        queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        debounce = FoldedDebounce(0.1)
        debounce.arm()
        batches: list[list[ChangeEvent]] = []
        task = asyncio.create_task(debounce.run(queue, batches.append))

        try:
            for n in range(3):
                queue.put_nowait(change(n))
                await asyncio.sleep(0.02)
            await asyncio.sleep(0.25)
        finally:
            task.cancel()

        assert batches == [[change(0), change(1), change(2)]]

    async def test_run_idle_emits_nothing(self):
        """No batches without events."""
        queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        debounce = FoldedDebounce(0.05)
        batches: list[list[ChangeEvent]] = []
        task = asyncio.create_task(debounce.run(queue, batches.append))

        try:
            await asyncio.sleep(0.2)
        finally:
            task.cancel()

        assert batches == []

    async def test_run_awaits_async_handler(self):
        """Coroutine batch handlers are awaited."""
        queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        debounce = FoldedDebounce(0)
        received = asyncio.Event()

        async def on_batch(batch):
            received.set()

        task = asyncio.create_task(debounce.run(queue, on_batch))
        try:
            queue.put_nowait(change(1))
            await asyncio.wait_for(received.wait(), timeout=1.0)
        finally:
            task.cancel()
