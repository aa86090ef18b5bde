"""Client for the Dart VM service, used to request source reloads."""

from vmreload.vmservice.client import DEFAULT_VM_SERVICE_URL, VmServiceClient, connect
from vmreload.vmservice.errors import RpcError, TransportError
from vmreload.vmservice.models import VM, IsolateRef, ReloadReport

__all__ = [
    "DEFAULT_VM_SERVICE_URL",
    "VM",
    "IsolateRef",
    "ReloadReport",
    "RpcError",
    "TransportError",
    "VmServiceClient",
    "connect",
]
