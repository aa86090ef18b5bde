"""Errors raised by the hot reloader."""

from pathlib import Path

HOT_RELOAD_HELP = """\
Hot reloading requires `--enable-vm-service` or `--observe` command line flags to the Dart VM!
More information can be found at: https://dart.dev/tools/dart-devtools"""


class HotReloadError(Exception):
    """Base class for hot reloader errors."""


class NotHotReloadableError(HotReloadError):
    """Raised at construction when the VM service flags are missing."""

    def __init__(self, message: str = HOT_RELOAD_HELP):
        super().__init__(message)


class AlreadyTerminatedError(HotReloadError):
    """Raised when a terminated reloader is used again."""

    def __init__(self) -> None:
        super().__init__("Hot reloader terminated! Create a new one!")


class InvalidUriError(HotReloadError):
    """Raised when a URI cannot be registered."""

    def __init__(self, uri: str, reason: str):
        self.uri = uri
        self.reason = reason
        super().__init__(f"{reason}: {uri}")


class NotPackageUriError(InvalidUriError):
    """Raised when a package registration gets a non-package URI."""

    def __init__(self, uri: str):
        super().__init__(uri, "Not a package URI")


class PackageNotFoundError(InvalidUriError):
    """Raised when a package URI or distribution cannot be resolved."""

    def __init__(self, uri: str, path: Path | None = None):
        self.path = path
        super().__init__(uri, "Package not found")


class ReloadError(HotReloadError):
    """Base class for failed reload requests."""


class ReloadRejectedError(ReloadError):
    """Raised when the remote process reports an unsuccessful reload."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Reloading failed! Reason: {detail}")


class NoReloadTargetError(ReloadError):
    """Raised when the remote process lists no isolates to reload."""

    def __init__(self) -> None:
        super().__init__("The VM reported no isolates to reload")
