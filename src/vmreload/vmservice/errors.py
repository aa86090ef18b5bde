"""Errors raised by the VM service client."""

from typing import Any


class TransportError(Exception):
    """Raised when the VM service cannot be reached or the connection is lost."""


class RpcError(TransportError):
    """Raised when the VM service answers a request with a JSON-RPC error."""

    def __init__(self, method: str, code: int, message: str, data: Any = None):
        self.method = method
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"{method} failed with error {code}: {message}")
