"""JSON-RPC client for the Dart VM service protocol.

Only the two calls the reloader needs are wrapped:
- getVM: lists the isolates of the connected VM
- reloadSources: asks one isolate to reload its sources

Requests may overlap; replies are matched to requests by id. Stream
notifications (messages without an id) are ignored.
"""

import asyncio
import contextlib
import itertools
import json
import logging
from typing import Any

from websockets.asyncio.client import ClientConnection
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from vmreload.vmservice.errors import RpcError, TransportError
from vmreload.vmservice.models import VM, ReloadReport

logger = logging.getLogger(__name__)

DEFAULT_VM_SERVICE_URL = "ws://localhost:8181/ws"


class VmServiceClient:
    """Session with a VM service over an open WebSocket connection."""

    def __init__(self, connection: ClientConnection, url: str):
        self.url = url
        self._connection = connection
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._ids = itertools.count(1)
        self._closed = False
        self._reader = asyncio.create_task(self._read_loop())

    @property
    def is_closed(self) -> bool:
        return self._closed

    async def call(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send a JSON-RPC request and wait for its result.

        Args:
            method: VM service method name.
            params: Method parameters.

        Returns:
            The `result` member of the reply.

        Raises:
            RpcError: If the VM answers with an error.
            TransportError: If the connection is closed or lost.
        """
        if self._closed:
            raise TransportError(f"Connection to {self.url} is closed")

        request_id = str(next(self._ids))
        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        payload = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params or {}}
        try:
            await self._connection.send(json.dumps(payload))
        except ConnectionClosed as e:
            self._pending.pop(request_id, None)
            raise TransportError(f"Connection to {self.url} lost: {e}") from e

        try:
            reply = await future
        finally:
            self._pending.pop(request_id, None)

        if "error" in reply:
            error = reply["error"] or {}
            raise RpcError(
                method,
                error.get("code", -1),
                error.get("message", "unknown error"),
                error.get("data"),
            )
        return reply.get("result") or {}

    async def get_vm(self) -> VM:
        """Describe the VM, including its isolates in VM order."""
        return VM.model_validate(await self.call("getVM"))

    async def reload_sources(self, isolate_id: str) -> ReloadReport:
        """Ask an isolate to reload its sources."""
        result = await self.call("reloadSources", {"isolateId": isolate_id})
        return ReloadReport.model_validate(result)

    async def close(self) -> None:
        """Close the connection. Pending requests fail with TransportError."""
        if self._closed and self._reader.done():
            return
        self._closed = True
        await self._connection.close()
        self._reader.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._reader

    async def _read_loop(self) -> None:
        reason = "connection closed"
        try:
            async for message in self._connection:
                self._dispatch(message)
        except ConnectionClosed as e:
            reason = str(e)
        finally:
            self._closed = True
            self._fail_pending(TransportError(f"Connection to {self.url} lost: {reason}"))

    def _dispatch(self, message: str | bytes) -> None:
        try:
            reply = json.loads(message)
        except ValueError:
            logger.warning(f"Ignoring malformed VM service message: {message!r:.200}")
            return

        if not isinstance(reply, dict) or reply.get("id") is None:
            # streamNotify and other server-initiated messages
            return

        future = self._pending.get(str(reply["id"]))
        if future is None:
            logger.debug(f"Reply for unknown request id {reply['id']}")
            return
        if not future.done():
            future.set_result(reply)

    def _fail_pending(self, error: TransportError) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()


async def connect(url: str = DEFAULT_VM_SERVICE_URL) -> VmServiceClient:
    """Open a session with the VM service at `url`.

    Raises:
        TransportError: If the service is unreachable or refuses the handshake.
    """
    logger.debug(f"Connecting to VM service at {url}")
    try:
        connection = await ws_connect(url, max_size=None)
    except (OSError, InvalidURI, InvalidHandshake) as e:
        raise TransportError(f"Could not connect to VM service at {url}: {e}") from e
    return VmServiceClient(connection, url)
