"""Hot reloader: watches paths and asks a Dart VM to reload its sources.

Flow:
1. Registered paths are resolved and watched (WatchRegistry)
2. Raw changes are published on `on_change` and folded into batches
   (FoldedDebounce)
3. Each batch triggers one reload request to the VM service
4. Successful reloads are published on `on_reload`

Hot reloading requires that the VM service is enabled in the target
process, by passing `--enable-vm-service` or `--observe` on its command
line. `--enable-vm-service=<port>/<IP address>` and
`--enable-vm-service=<port>` start the service at a chosen address.
"""

import asyncio
import functools
import logging
import os
import sys
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol

from vmreload.config import ReloaderSettings
from vmreload.events import EventBus, EventStream, EventType
from vmreload.reload.debounce import Batch, FoldedDebounce
from vmreload.reload.errors import (
    AlreadyTerminatedError,
    NoReloadTargetError,
    NotHotReloadableError,
    ReloadRejectedError,
)
from vmreload.reload.paths import (
    expand_glob,
    package_dependency_paths,
    path_from_uri,
    resolve_package_uri,
)
from vmreload.reload.watcher import ChangeEvent, WatchedPath, WatchFactory, WatchRegistry, watch_path
from vmreload.vmservice import VM, ReloadReport, RpcError, TransportError, connect

logger = logging.getLogger(__name__)

HOT_RELOAD_FLAGS = ("--observe", "--enable-vm-service")


class ReloadTransport(Protocol):
    """What the reloader needs from a VM service session."""

    async def get_vm(self) -> VM: ...

    async def reload_sources(self, isolate_id: str) -> ReloadReport: ...

    async def close(self) -> None: ...


ClientFactory = Callable[[str], Awaitable[ReloadTransport]]


class ReloaderState(Enum):
    """Lifecycle state of a HotReloader."""

    IDLE = "idle"
    RUNNING = "running"
    TERMINATED = "terminated"


def _has_vm_service_flag(args: Sequence[str]) -> bool:
    return any(arg == flag or arg.startswith(f"{flag}=") for arg in args for flag in HOT_RELOAD_FLAGS)


@functools.cache
def _launched_hot_reloadable() -> bool:
    return _has_vm_service_flag(sys.orig_argv)


def is_hot_reloadable(launch_args: Sequence[str] | None = None) -> bool:
    """Check whether the launch arguments enable the VM service.

    Args:
        launch_args: Arguments to inspect. Defaults to the current process's
            command line, checked once per process.
    """
    if launch_args is None:
        return _launched_hot_reloadable()
    return _has_vm_service_flag(launch_args)


class HotReloader:
    """Watches registered paths and hot-reloads the VM when they change.

        reloader = HotReloader(launch_args=["--observe"])
        reloader.add_path("lib")
        await reloader.start()

    States: IDLE -> start() -> RUNNING -> stop() -> IDLE. terminate() moves
    either state to TERMINATED, which is final.
    """

    def __init__(
        self,
        settings: ReloaderSettings | None = None,
        *,
        vm_service_url: str | None = None,
        debounce_interval: float | None = None,
        launch_args: Sequence[str] | None = None,
        client_factory: ClientFactory = connect,
        watch_factory: WatchFactory = watch_path,
        event_bus: EventBus | None = None,
    ):
        if not is_hot_reloadable(launch_args):
            raise NotHotReloadableError()

        settings = settings or ReloaderSettings()
        overrides = {
            key: value
            for key, value in (
                ("vm_service_url", vm_service_url),
                ("debounce_interval", debounce_interval),
            )
            if value is not None
        }
        if overrides:
            settings = ReloaderSettings(**{**settings.model_dump(), **overrides})
        self.settings = settings

        # Public streams, closed by terminate()
        self.on_change: EventStream[ChangeEvent] = EventStream("on_change")
        self.on_reload: EventStream[datetime] = EventStream("on_reload")
        self.events = event_bus or EventBus()

        self._registry = WatchRegistry(watch_factory, on_error=self._on_watch_error)
        self._debounce = FoldedDebounce(settings.debounce_interval)
        self._changes: asyncio.Queue[ChangeEvent] = asyncio.Queue()
        self._debounce_task: asyncio.Task[None] | None = None

        self._client_factory = client_factory
        self._client: ReloadTransport | None = None
        self._reload_lock = asyncio.Lock()
        self._reload_task: asyncio.Task[None] | None = None
        self._reload_pending = False

        self._state = ReloaderState.IDLE

    @staticmethod
    def is_hot_reloadable(launch_args: Sequence[str] | None = None) -> bool:
        return is_hot_reloadable(launch_args)

    @property
    def vm_service_url(self) -> str:
        return self.settings.vm_service_url

    @property
    def debounce_interval(self) -> float:
        return self.settings.debounce_interval

    @property
    def state(self) -> ReloaderState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is ReloaderState.RUNNING

    @property
    def is_terminated(self) -> bool:
        return self._state is ReloaderState.TERMINATED

    @property
    def registry(self) -> WatchRegistry:
        return self._registry

    @property
    def registered_paths(self) -> list[str]:
        return self._registry.registered_paths

    @property
    def watched_paths(self) -> list[str]:
        """Paths being watched; empty when the reloader is not running."""
        return self._registry.watched_paths

    def is_watching(self, path: str) -> bool:
        return self._registry.is_watching(path)

    def _ensure_alive(self) -> None:
        if self._state is ReloaderState.TERMINATED:
            raise AlreadyTerminatedError()

    # Registration

    def add_path(self, path: str) -> None:
        """Register a path to watch. Takes effect on the next start()."""
        self._ensure_alive()
        self._registry.register(path)

    def add_file(self, path: str | os.PathLike[str]) -> None:
        """Register a file-system entity to watch."""
        self.add_path(os.fspath(path))

    def add_glob(self, pattern: str) -> list[str]:
        """Register every entity currently matching a glob pattern."""
        self._ensure_alive()
        matches = expand_glob(pattern)
        for path in matches:
            self.add_path(path)
        return matches

    def add_uri(self, uri: str) -> None:
        """Register the path of a URI."""
        self.add_path(path_from_uri(uri))

    def add_package_path(self, uri: str) -> str:
        """Register a `package:` URI after resolving it to a path.

        Raises:
            NotPackageUriError: If the URI scheme is not `package`.
            PackageNotFoundError: If the package cannot be resolved.
        """
        self._ensure_alive()
        path = str(resolve_package_uri(uri))
        self.add_path(path)
        return path

    def add_package_dependencies(self, distribution: str) -> list[str]:
        """Register an installed distribution and all its transitive dependencies."""
        self._ensure_alive()
        paths = package_dependency_paths(distribution)
        for path in paths:
            self.add_path(path)
        return paths

    # Lifecycle

    async def start(self) -> list[str]:
        """Start watching the registered paths.

        If already running, restarts so newly registered paths are picked up.

        Returns:
            Paths now being watched.
        """
        self._ensure_alive()

        if self._state is ReloaderState.RUNNING:
            await self.stop()

        watched = await self._registry.build(self._on_raw_change)

        if self._debounce_task is None:
            self._debounce_task = asyncio.create_task(
                self._debounce.run(self._changes, self._on_batch),
                name="vmreload:debounce",
            )
        self._debounce.arm()
        self._state = ReloaderState.RUNNING

        for path in watched:
            entry = self._registry.get(path)
            await self.events.emit(
                EventType.WATCH_STARTED,
                {"path": path, "resolved_path": entry.resolved_path if entry else None},
            )
        await self.events.emit(EventType.RELOADER_STARTED, {"paths": watched})
        return watched

    async def stop(self) -> None:
        """Stop watching. The reloader can be started again."""
        self._ensure_alive()
        await self._registry.stop_all()
        if self._state is ReloaderState.RUNNING:
            self._state = ReloaderState.IDLE
            await self.events.emit(EventType.RELOADER_STOPPED)

    async def terminate(self) -> None:
        """Release everything. The reloader cannot be used afterwards."""
        if self._state is ReloaderState.TERMINATED:
            return
        self._state = ReloaderState.TERMINATED

        await self._registry.stop_all()
        self.on_change.close()
        self.on_reload.close()

        for task in (self._debounce_task, self._reload_task):
            if task is None or task is asyncio.current_task():
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._debounce_task = None
        self._reload_task = None

        await self._drop_client()
        await self.events.emit(EventType.RELOADER_TERMINATED)
        logger.info("Hot reloader terminated")

    # Reloading

    async def reload(self) -> datetime:
        """Ask the VM to reload the sources of its first isolate.

        Returns:
            Time the reload completed.

        Raises:
            AlreadyTerminatedError: If the reloader was terminated.
            ReloadRejectedError: If the VM reports the reload failed.
            NoReloadTargetError: If the VM has no isolates.
            TransportError: If the VM service cannot be reached.
        """
        self._ensure_alive()
        logger.info("Reloading the application...")

        async with self._reload_lock:
            self._ensure_alive()
            await self.events.emit(EventType.RELOAD_STARTED)

            try:
                isolate_id, report = await self._reload_first_isolate()
                if not report.success:
                    raise ReloadRejectedError(report.detail)
            except Exception as e:
                await self.events.emit(
                    EventType.RELOAD_FAILED,
                    {"error": str(e), "error_type": type(e).__name__},
                )
                raise

            self._ensure_alive()
            reloaded_at = datetime.now(UTC)
            await self.on_reload.emit(reloaded_at)
            await self.events.emit(
                EventType.RELOAD_COMPLETED,
                {"isolate_id": isolate_id, "reloaded_at": reloaded_at.isoformat()},
            )
            logger.info(f"Reloaded isolate {isolate_id}")
            return reloaded_at

    async def _reload_first_isolate(self) -> tuple[str, ReloadReport]:
        client = await self._get_client()
        try:
            vm = await client.get_vm()
            if not vm.isolates:
                raise NoReloadTargetError()
            # Only the first isolate is reloaded
            isolate = vm.isolates[0]
            report = await client.reload_sources(isolate.id)
        except RpcError:
            raise
        except TransportError:
            await self._drop_client()
            raise
        return isolate.id, report

    async def _get_client(self) -> ReloadTransport:
        if self._client is None or getattr(self._client, "is_closed", False):
            self._client = await self._client_factory(self.vm_service_url)
        return self._client

    async def _drop_client(self) -> None:
        client = self._client
        self._client = None
        if client is None:
            return
        try:
            await client.close()
        except TransportError as e:
            logger.debug(f"Error closing VM service connection: {e}")

    # Event wiring

    async def _on_raw_change(self, event: ChangeEvent) -> None:
        if self._state is ReloaderState.TERMINATED:
            return
        await self.on_change.emit(event)
        self._changes.put_nowait(event)

    async def _on_batch(self, batch: Batch) -> None:
        paths = [event.path for event in batch]
        logger.info(f"Paths {', '.join(paths)} changed!")
        await self.events.emit(EventType.CHANGES_BATCHED, {"paths": paths, "count": len(batch)})
        self._request_reload()

    def _request_reload(self) -> None:
        """Start a reload, or queue one if a reload is already running.

        Batches that arrive while a reload is in flight collapse into a
        single follow-up reload.
        """
        if self._reload_task is not None and not self._reload_task.done():
            self._reload_pending = True
            logger.debug("Reload in progress, another one is queued")
            return
        self._reload_task = asyncio.create_task(self._reload_batches(), name="vmreload:reload")

    async def _reload_batches(self) -> None:
        while True:
            self._reload_pending = False
            try:
                await self.reload()
            except AlreadyTerminatedError:
                return
            except Exception as e:
                logger.error(f"Hot reload failed: {e}")

            if not self._reload_pending:
                return

    async def _on_watch_error(self, watched: WatchedPath, error: Exception) -> None:
        await self.events.emit(
            EventType.WATCH_ERROR,
            {
                "path": watched.requested_path,
                "resolved_path": watched.resolved_path,
                "error": str(error),
            },
        )
