"""File change watching for hot-reload.

Keeps the set of registered paths and, while running, one forwarding task
per resolved path. Every forwarding task feeds the same sink, so changes
from all watched paths arrive as a single stream.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from watchfiles import Change, awatch

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    """Kind of file-system change."""

    CREATED = "created"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True)
class ChangeEvent:
    """A single reported change to one path."""

    path: str
    kind: ChangeKind


_CHANGE_KINDS = {
    Change.added: ChangeKind.CREATED,
    Change.modified: ChangeKind.MODIFIED,
    Change.deleted: ChangeKind.REMOVED,
}

WatchFactory = Callable[[str, asyncio.Event], AsyncIterator[ChangeEvent]]
ChangeSink = Callable[[ChangeEvent], Awaitable[Any]]
ErrorHook = Callable[["WatchedPath", Exception], Any]


async def watch_path(path: str, stop_event: asyncio.Event) -> AsyncIterator[ChangeEvent]:
    """Yield changes below `path` until `stop_event` is set.

    watchfiles reports changes in unordered sets; each set is yielded in
    path order.
    """
    # Batching happens in FoldedDebounce, keep watchfiles' own grouping short
    async for changes in awatch(path, stop_event=stop_event, debounce=50):
        for change, changed_path in sorted(changes, key=lambda c: (c[1], c[0])):
            yield ChangeEvent(path=changed_path, kind=_CHANGE_KINDS[change])


def resolve_path(path: str) -> str | None:
    """Resolve a registered path to the file or directory it names.

    Symbolic links are followed. Returns None if nothing exists at the
    path, if it is neither a file nor a directory, or if resolution fails
    with a file-system error.
    """
    try:
        resolved = Path(path).resolve(strict=True)
    except (OSError, RuntimeError) as e:
        logger.debug(f"Cannot resolve {path}: {e}")
        return None

    if not (resolved.is_file() or resolved.is_dir()):
        logger.debug(f"Not a file or directory: {resolved}")
        return None

    return str(resolved)


@dataclass
class WatchedPath:
    """A registered path that resolved and can be watched.

    The path is active while it holds a subscription (its forwarding task).
    """

    requested_path: str
    resolved_path: str | None
    subscription: asyncio.Task[None] | None = None
    stop_event: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def is_watching(self) -> bool:
        return self.subscription is not None

    async def stop(self) -> None:
        """Cancel the subscription and wait for it to finish."""
        if self.subscription is None:
            return
        self.stop_event.set()
        task = self.subscription
        self.subscription = None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            # Only the subscription's own cancellation is expected here
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise


class WatchRegistry:
    """Registered paths plus the paths currently being watched.

    The active mapping is rebuilt from scratch on every build(); it is
    never patched incrementally.
    """

    def __init__(
        self,
        watch_factory: WatchFactory = watch_path,
        on_error: ErrorHook | None = None,
    ):
        self._watch_factory = watch_factory
        self._on_error = on_error
        self._registered: set[str] = set()
        self._active: dict[str, WatchedPath] = {}
        self.build_count = 0

    def register(self, path: str) -> None:
        """Register a path to watch on the next build. Idempotent."""
        self._registered.add(path)

    @property
    def registered_paths(self) -> list[str]:
        return sorted(self._registered)

    @property
    def watched_paths(self) -> list[str]:
        """Requested paths being watched; empty when not built."""
        return list(self._active)

    def is_watching(self, path: str) -> bool:
        return path in self._active

    def get(self, path: str) -> WatchedPath | None:
        return self._active.get(path)

    async def build(self, sink: ChangeSink) -> list[str]:
        """Resolve registered paths and start forwarding their changes.

        Paths that fail to resolve are skipped. Any previously active
        watches are stopped first.

        Args:
            sink: Awaited with every change from every watched path.

        Returns:
            Requested paths now being watched.
        """
        if self._active:
            await self.stop_all()

        built: dict[str, WatchedPath] = {}
        for path in sorted(self._registered):
            resolved = resolve_path(path)
            if resolved is None:
                logger.debug(f"Skipping {path}: entity not found")
                continue
            built[path] = WatchedPath(requested_path=path, resolved_path=resolved)

        self._active = built
        self.build_count += 1

        for watched in built.values():
            watched.subscription = asyncio.create_task(
                self._forward(watched, sink),
                name=f"watch:{watched.resolved_path}",
            )
            logger.info(f"Listening for file changes at {watched.resolved_path}...")

        return list(built)

    async def stop_all(self) -> None:
        """Cancel every active watch and clear the active mapping."""
        for watched in list(self._active.values()):
            await watched.stop()
        self._active.clear()

    async def _forward(self, watched: WatchedPath, sink: ChangeSink) -> None:
        assert watched.resolved_path is not None
        try:
            async for event in self._watch_factory(watched.resolved_path, watched.stop_event):
                await sink(event)
        except Exception as e:
            logger.warning(f"Error listening to file changes at {watched.resolved_path}: {e}")
            if self._on_error is None:
                return
            try:
                result = self._on_error(watched, e)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as hook_error:
                logger.error(f"Watch error hook failed: {hook_error}")
