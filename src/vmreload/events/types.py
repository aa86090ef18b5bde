"""Event type definitions for the lifecycle event bus."""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of lifecycle events published by the reloader."""

    # Watch events
    WATCH_STARTED = "watch.started"
    WATCH_ERROR = "watch.error"

    # Reloader lifecycle events
    RELOADER_STARTED = "reloader.started"
    RELOADER_STOPPED = "reloader.stopped"
    RELOADER_TERMINATED = "reloader.terminated"

    # Debounce events
    CHANGES_BATCHED = "changes.batched"

    # Reload events
    RELOAD_STARTED = "reload.started"
    RELOAD_COMPLETED = "reload.completed"
    RELOAD_FAILED = "reload.failed"


class Event(BaseModel):
    """A lifecycle event."""

    id: str = Field(default_factory=lambda: uuid4().hex[:12])
    type: EventType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    data: dict[str, Any] = Field(default_factory=dict)

    def to_json(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.id,
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }
