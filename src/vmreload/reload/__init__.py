"""Hot-reload of a Dart VM on file changes.

- File watching of registered paths
- Debouncing of bursts of changes
- Reload requests over the VM service protocol
"""

from vmreload.reload.debounce import FoldedDebounce
from vmreload.reload.errors import (
    AlreadyTerminatedError,
    HotReloadError,
    InvalidUriError,
    NoReloadTargetError,
    NotHotReloadableError,
    NotPackageUriError,
    PackageNotFoundError,
    ReloadError,
    ReloadRejectedError,
)
from vmreload.reload.reloader import HotReloader, ReloaderState, is_hot_reloadable
from vmreload.reload.watcher import ChangeEvent, ChangeKind, WatchedPath, WatchRegistry

__all__ = [
    "AlreadyTerminatedError",
    "ChangeEvent",
    "ChangeKind",
    "FoldedDebounce",
    "HotReloadError",
    "HotReloader",
    "InvalidUriError",
    "NoReloadTargetError",
    "NotHotReloadableError",
    "NotPackageUriError",
    "PackageNotFoundError",
    "ReloadError",
    "ReloadRejectedError",
    "ReloaderState",
    "WatchRegistry",
    "WatchedPath",
    "is_hot_reloadable",
]
