"""
Change Event definition.
Immutable value object describing one committed task mutation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol

from taskboard.rest_api.models import ID_FIELD


class ChangeKind(str, Enum):
    """Event kinds; the values are the message types clients listen for."""

    ADDED = "taskAdded"
    UPDATED = "taskUpdated"
    DELETED = "taskDeleted"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """
    Immutable change notification.

    Added and Updated carry the full task document; Deleted carries only the
    identifier.

    Attributes:
        kind: Which mutation happened
        task_id: Identifier of the task involved
        payload: Full task document, or the bare identifier for Deleted
        timestamp: When the persistence call returned
    """

    kind: ChangeKind
    task_id: str
    payload: dict[str, Any] | str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def added(cls, task: dict[str, Any]) -> "ChangeEvent":
        return cls(kind=ChangeKind.ADDED, task_id=task[ID_FIELD], payload=task)

    @classmethod
    def updated(cls, task: dict[str, Any]) -> "ChangeEvent":
        return cls(kind=ChangeKind.UPDATED, task_id=task[ID_FIELD], payload=task)

    @classmethod
    def deleted(cls, task_id: str) -> "ChangeEvent":
        return cls(kind=ChangeKind.DELETED, task_id=task_id, payload=task_id)

    def to_message(self) -> dict[str, Any]:
        """Convert to the JSON frame pushed to WebSocket clients."""
        return {"type": self.kind.value, "payload": self.payload}


class EventSink(Protocol):
    """
    Anything that accepts committed change events.

    ``emit`` must not block and must not raise for delivery problems; the
    write it describes has already been committed.
    """

    def emit(self, event: ChangeEvent) -> None: ...
