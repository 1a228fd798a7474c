"""Task and project records parsed from dstask's JSON output."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# dstask serializes unset timestamps as Go's zero time.
_ZERO_TIME_PREFIX = "0001-01-01"


class TaskStatus(str, Enum):
    """Status of a task as reported by dstask."""

    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    RESOLVED = "resolved"
    RECURRING = "recurring"
    TEMPLATE = "template"

    @classmethod
    def parse(cls, value: Any) -> TaskStatus:
        try:
            return cls(str(value))
        except ValueError:
            return cls.PENDING


def _timestamp(value: Any) -> str | None:
    if not value or not isinstance(value, str):
        return None
    if value.startswith(_ZERO_TIME_PREFIX):
        return None
    return value


@dataclass
class Task:
    """Represents a single dstask task."""

    id: int
    summary: str
    uuid: str = ""
    status: TaskStatus = TaskStatus.PENDING
    project: str = ""
    priority: str = "P2"
    tags: list[str] = field(default_factory=list)
    notes: str = ""
    created: str | None = None
    resolved: str | None = None
    due: str | None = None

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Task:
        """Build a task from one object of dstask's ``show-*`` output."""
        return cls(
            id=int(payload.get("id") or 0),
            summary=payload.get("summary") or "",
            uuid=payload.get("uuid") or "",
            status=TaskStatus.parse(payload.get("status")),
            project=payload.get("project") or "",
            priority=payload.get("priority") or "P2",
            tags=list(payload.get("tags") or []),
            notes=payload.get("notes") or "",
            created=_timestamp(payload.get("created")),
            resolved=_timestamp(payload.get("resolved")),
            due=_timestamp(payload.get("due")),
        )

    @property
    def searchable(self) -> str:
        """Lowercase text matched by the runboard search box."""
        parts = [self.summary, self.project, " ".join(self.tags), self.notes]
        return " ".join(part for part in parts if part).lower()

    def to_dict(self) -> dict[str, Any]:
        """Convert task to dictionary for serialization."""
        return {
            "id": self.id,
            "uuid": self.uuid,
            "summary": self.summary,
            "status": self.status.value,
            "project": self.project,
            "priority": self.priority,
            "tags": list(self.tags),
            "notes": self.notes,
            "created": self.created,
            "resolved": self.resolved,
            "due": self.due,
        }


@dataclass
class Project:
    """A project row from ``dstask show-projects``."""

    name: str
    task_count: int = 0
    resolved_count: int = 0
    active: bool = False
    priority: str = "P2"

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> Project:
        return cls(
            name=payload.get("name") or "",
            task_count=int(payload.get("taskCount") or 0),
            resolved_count=int(payload.get("resolvedCount") or 0),
            active=bool(payload.get("active", False)),
            priority=payload.get("priority") or "P2",
        )

    @property
    def open_count(self) -> int:
        return max(self.task_count - self.resolved_count, 0)

    @property
    def percentage(self) -> float:
        if self.task_count <= 0:
            return 0.0
        return self.resolved_count / self.task_count * 100


def summarize(tasks: Iterable[Task]) -> dict[str, Any]:
    """Get summary statistics of a task list."""
    tasks = list(tasks)
    by_status = {status.value: 0 for status in TaskStatus}
    for task in tasks:
        by_status[task.status.value] += 1

    return {
        "total": len(tasks),
        "by_status": by_status,
        "tasks": [task.to_dict() for task in tasks],
    }


def group_by_status(tasks: Iterable[Task]) -> dict[str, list[Task]]:
    """Split open tasks into the runboard's pending, active and paused columns."""
    columns: dict[str, list[Task]] = {
        TaskStatus.PENDING.value: [],
        TaskStatus.ACTIVE.value: [],
        TaskStatus.PAUSED.value: [],
    }
    for task in tasks:
        if task.status.value in columns:
            columns[task.status.value].append(task)
    return columns


def collect_tags(tasks: Iterable[Task]) -> list[str]:
    """Sorted union of the tags carried by ``tasks``."""
    return sorted({tag for task in tasks for tag in task.tags})
