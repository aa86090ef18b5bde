"""Pytest configuration and fixtures."""

import asyncio
from collections.abc import AsyncIterator

import pytest

from vmreload.reload.watcher import ChangeEvent, ChangeKind
from vmreload.vmservice import VM, IsolateRef, ReloadReport, TransportError


class FakeWatchers:
    """Watch factory whose events are pushed by the test.

    Keyed by resolved path. Pushing an exception makes that watch fail.
    """

    def __init__(self) -> None:
        self.queues: dict[str, asyncio.Queue[ChangeEvent | Exception]] = {}
        self.started: list[str] = []
        self.active: set[str] = set()

    def __call__(self, path: str, stop_event: asyncio.Event) -> AsyncIterator[ChangeEvent]:
        queue = self.queues.setdefault(path, asyncio.Queue())
        self.started.append(path)
        return self._iterate(path, queue)

    async def _iterate(self, path: str, queue: asyncio.Queue) -> AsyncIterator[ChangeEvent]:
        self.active.add(path)
        try:
            while True:
                item = await queue.get()
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            self.active.discard(path)

    async def emit(
        self,
        path: str,
        kind: ChangeKind = ChangeKind.MODIFIED,
        changed: str | None = None,
    ) -> ChangeEvent:
        event = ChangeEvent(path=changed or path, kind=kind)
        await self.queues.setdefault(path, asyncio.Queue()).put(event)
        return event

    async def fail(self, path: str, error: Exception) -> None:
        await self.queues.setdefault(path, asyncio.Queue()).put(error)


class FakeVmService:
    """In-memory stand-in for a VM service session."""

    def __init__(self) -> None:
        self.isolates = [IsolateRef(id="isolates/1", name="main"), IsolateRef(id="isolates/2", name="worker")]
        self.report = ReloadReport(success=True)
        self.delay = 0.0
        self.fail_get_vm: Exception | None = None
        self.reload_calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def get_vm(self) -> VM:
        if self.fail_get_vm is not None:
            error, self.fail_get_vm = self.fail_get_vm, None
            raise error
        return VM(name="vm", isolates=list(self.isolates))

    async def reload_sources(self, isolate_id: str) -> ReloadReport:
        self.reload_calls.append(isolate_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            return self.report
        finally:
            self.in_flight -= 1

    async def close(self) -> None:
        self.closed = True


class FakeConnector:
    """Client factory handing out FakeVmService sessions."""

    def __init__(self) -> None:
        self.service = FakeVmService()
        self.urls: list[str] = []
        self.refuse = False

    async def __call__(self, url: str) -> FakeVmService:
        self.urls.append(url)
        if self.refuse:
            raise TransportError(f"Could not connect to VM service at {url}: refused")
        if self.service.closed:
            self.service.closed = False
        return self.service


@pytest.fixture
def watchers() -> FakeWatchers:
    return FakeWatchers()


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="run live tests against a Dart VM service on ws://localhost:8181/ws",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "live: mark test as requiring a running Dart VM service (deselect with '-m \"not live\"')",
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is specified."""
    if config.getoption("--run-live"):
        return

    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)
