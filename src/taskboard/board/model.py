"""Board model: tasks, columns, users and outbox records.

Tasks live in exactly one column at a time and carry an integer ``order``
that defines their display rank inside that column.  Columns carry one of
three lifecycle states; for notification purposes those collapse into two
logical states (see :func:`logical_state`).
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ColumnState(str, Enum):
    """Lifecycle state carried by a column."""

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class LogicalState(str, Enum):
    """Two-state view of :class:`ColumnState` used for completion detection."""

    NOT_COMPLETED = "not_completed"
    COMPLETED = "completed"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


def logical_state(state: ColumnState) -> LogicalState:
    if state == ColumnState.COMPLETED:
        return LogicalState.COMPLETED
    return LogicalState.NOT_COMPLETED


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _generate_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass
class Task:
    """A card on the board.

    ``order`` is unique among the tasks of one column; it is assigned on
    creation and rewritten only by reorder, bulk move, or a column change.
    """

    id: str = field(default_factory=lambda: _generate_id("task"))
    title: str = ""
    description: Optional[str] = None
    owner_id: Optional[str] = None
    column_id: int = 0
    order: int = 0
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)

    def touch(self) -> None:
        self.updated_at = now_iso()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        return cls(
            id=str(data.get("id") or _generate_id("task")),
            title=str(data.get("title") or ""),
            description=_optional_str(data.get("description")),
            owner_id=_optional_str(data.get("owner_id")),
            column_id=int(data.get("column_id") or 0),
            order=int(data.get("order") or 0),
            created_at=str(data.get("created_at") or now_iso()),
            updated_at=str(data.get("updated_at") or now_iso()),
        )


@dataclass
class Column:
    id: int = 0
    state: ColumnState = ColumnState.TODO

    @property
    def logical_state(self) -> LogicalState:
        return logical_state(self.state)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "state": self.state.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Column":
        return cls(
            id=int(data.get("id") or 0),
            state=ColumnState(str(data.get("state") or ColumnState.TODO.value)),
        )


@dataclass
class User:
    id: str = field(default_factory=lambda: _generate_id("user"))
    email: str = ""
    name: Optional[str] = None
    last_name: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "User":
        return cls(
            id=str(data.get("id") or _generate_id("user")),
            email=str(data.get("email") or ""),
            name=_optional_str(data.get("name")),
            last_name=_optional_str(data.get("last_name")),
        )


@dataclass
class NotificationRecord:
    """One outbox entry for a completion notice."""

    id: str = field(default_factory=lambda: _generate_id("ntf"))
    task_id: str = ""
    to_email: str = ""
    subject: str = ""
    body: str = ""
    status: NotificationStatus = NotificationStatus.PENDING
    error: Optional[str] = None
    created_at: str = field(default_factory=now_iso)
    sent_at: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NotificationRecord":
        return cls(
            id=str(data.get("id") or _generate_id("ntf")),
            task_id=str(data.get("task_id") or ""),
            to_email=str(data.get("to_email") or ""),
            subject=str(data.get("subject") or ""),
            body=str(data.get("body") or ""),
            status=NotificationStatus(str(data.get("status") or NotificationStatus.PENDING.value)),
            error=_optional_str(data.get("error")),
            created_at=str(data.get("created_at") or now_iso()),
            sent_at=_optional_str(data.get("sent_at")),
        )
