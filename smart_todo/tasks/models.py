from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class TaskUrgency(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class TaskRecurrence(str, Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


STATUS_VALUES = [item.value for item in TaskStatus]
URGENCY_VALUES = [item.value for item in TaskUrgency]
RECURRENCE_VALUES = [item.value for item in TaskRecurrence]

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 10_000

RECURRENCE_STEP_DAYS = {
    TaskRecurrence.DAILY.value: 1,
    TaskRecurrence.WEEKLY.value: 7,
    TaskRecurrence.MONTHLY.value: 30,
    TaskRecurrence.YEARLY.value: 365,
}


class TaskStoreError(Exception):
    pass


class TaskNotFoundError(TaskStoreError):
    def __init__(self, task_id: int) -> None:
        super().__init__(f"task_not_found:{task_id}")
        self.task_id = task_id


class TaskValidationError(TaskStoreError):
    """Raised when task attributes are rejected by the store.

    ``errors`` maps a field name to its messages, e.g.
    ``{"title": ["can't be blank"]}``.
    """

    def __init__(self, errors: dict[str, list[str]]) -> None:
        self.errors = {str(key): list(values) for key, values in errors.items()}
        super().__init__(format_validation_errors(self.errors))


def format_validation_errors(errors: dict[str, list[str]]) -> str:
    return "; ".join(f"{key}: {', '.join(messages)}" for key, messages in errors.items())


@dataclass
class Task:
    id: int
    scope: str
    title: str
    description: str | None = None
    status: str = TaskStatus.TODO.value
    urgency: str = TaskUrgency.NORMAL.value
    due_date: date | None = None
    recurrence: str = TaskRecurrence.NONE.value
    assignee_id: str | None = None
    prerequisite_ids: list[int] = field(default_factory=list)
    dependent_ids: list[int] = field(default_factory=list)
    created_at: str = field(default_factory=lambda: _now_iso())
    updated_at: str = field(default_factory=lambda: _now_iso())

    @property
    def is_done(self) -> bool:
        return self.status == TaskStatus.DONE.value

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["due_date"] = self.due_date.isoformat() if self.due_date else None
        return payload

    @classmethod
    def from_row(
        cls,
        row: dict[str, Any],
        *,
        prerequisite_ids: list[int] | None = None,
        dependent_ids: list[int] | None = None,
    ) -> "Task":
        return cls(
            id=int(row["id"]),
            scope=str(row.get("scope") or ""),
            title=str(row.get("title") or ""),
            description=row.get("description"),
            status=str(row.get("status") or TaskStatus.TODO.value),
            urgency=str(row.get("urgency") or TaskUrgency.NORMAL.value),
            due_date=_parse_date(row.get("due_date")),
            recurrence=str(row.get("recurrence") or TaskRecurrence.NONE.value),
            assignee_id=_optional_text(row.get("assignee_id")),
            prerequisite_ids=list(prerequisite_ids or []),
            dependent_ids=list(dependent_ids or []),
            created_at=str(row.get("created_at") or _now_iso()),
            updated_at=str(row.get("updated_at") or _now_iso()),
        )


def _parse_date(value: Any) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
