"""Models for the VM service replies the reloader consumes."""

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class IsolateRef(BaseModel):
    """Reference to an isolate running in the VM."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str = ""
    number: str | None = None
    is_system_isolate: bool = Field(default=False, alias="isSystemIsolate")


class VM(BaseModel):
    """Subset of the `getVM` reply."""

    name: str = ""
    version: str | None = None
    pid: int | None = None
    isolates: list[IsolateRef] = Field(default_factory=list)


class ReloadReport(BaseModel):
    """Reply to `reloadSources`."""

    success: bool
    details: dict[str, Any] = Field(default_factory=dict)
    notices: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def detail(self) -> str:
        """Human-readable reason, taken from the VM's notices when present."""
        notices = self.notices or self.details.get("notices", [])
        messages = [n["message"] for n in notices if isinstance(n, dict) and n.get("message")]
        if messages:
            return "; ".join(messages)
        if self.details:
            return json.dumps(self.details, sort_keys=True)
        return "reload succeeded" if self.success else "no reason given"
