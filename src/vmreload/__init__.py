"""vmreload - hot-reload a running Dart VM when watched files change."""

__version__ = "0.1.0"

from vmreload.config import ReloaderSettings
from vmreload.reload import ChangeEvent, ChangeKind, HotReloader, ReloaderState, is_hot_reloadable

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "HotReloader",
    "ReloaderSettings",
    "ReloaderState",
    "__version__",
    "is_hot_reloadable",
]
