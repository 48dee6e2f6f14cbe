from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from .errors import InvalidPriority, InvalidStatus

UNGROUPED_LABEL = "Ungrouped"
DEFAULT_GROUP_COLOR = "#3498db"


class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    @classmethod
    def parse(cls, value: Union["TaskStatus", str]) -> "TaskStatus":
        try:
            return cls(value)
        except ValueError:
            raise InvalidStatus(value) from None


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Union["Priority", str]) -> "Priority":
        try:
            return cls(value)
        except ValueError:
            raise InvalidPriority(value) from None

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.LOW: 1, Priority.MEDIUM: 2, Priority.HIGH: 3}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def new_id() -> str:
    return secrets.token_hex(16)


# PUBLIC_INTERFACE
@dataclass
class Task:
    """
    A user's task with a status/priority state machine.

    Fields:
    - id: opaque identifier (32 hex chars when generated by a store)
    - owner_id: the user who exclusively controls the task
    - group_id: optional group the task is filed under
    - title, description: user supplied text
    - status: todo | in_progress | done
    - priority: low | medium | high
    - created_at, updated_at: UTC timestamps
    - completed_at: set iff status is done

    Status transitions form a free graph: every status is reachable from every
    other one, including itself.
    """

    id: str
    owner_id: str
    title: str
    description: str = ""
    group_id: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: Priority = Priority.MEDIUM
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @classmethod
    def new(
        cls,
        owner_id: str,
        title: str,
        description: str = "",
        group_id: Optional[str] = None,
        status: Union[TaskStatus, str] = TaskStatus.TODO,
        priority: Union[Priority, str] = Priority.MEDIUM,
        task_id: Optional[str] = None,
    ) -> "Task":
        now = utcnow()
        parsed_status = TaskStatus.parse(status)
        return cls(
            id=task_id or new_id(),
            owner_id=owner_id,
            title=title,
            description=description,
            group_id=group_id,
            status=parsed_status,
            priority=Priority.parse(priority),
            created_at=now,
            updated_at=now,
            completed_at=now if parsed_status is TaskStatus.DONE else None,
        )

    def set_status(self, new_status: Union[TaskStatus, str]) -> None:
        status = TaskStatus.parse(new_status)
        now = utcnow()
        self.status = status
        self.updated_at = now
        if status is TaskStatus.DONE:
            self.completed_at = now
        else:
            self.completed_at = None

    def set_priority(self, new_priority: Union[Priority, str]) -> None:
        self.priority = Priority.parse(new_priority)
        self.updated_at = utcnow()

    def is_done(self) -> bool:
        return self.status is TaskStatus.DONE

    def is_in_progress(self) -> bool:
        return self.status is TaskStatus.IN_PROGRESS

    def is_todo(self) -> bool:
        return self.status is TaskStatus.TODO

    def is_high_priority(self) -> bool:
        return self.priority is Priority.HIGH

    def is_medium_priority(self) -> bool:
        return self.priority is Priority.MEDIUM

    def is_low_priority(self) -> bool:
        return self.priority is Priority.LOW


# PUBLIC_INTERFACE
@dataclass
class Group:
    """
    A named bucket for an owner's tasks. Names are unique per owner; tasks point
    at a group by id, history records copy its name.
    """

    id: str
    owner_id: str
    name: str
    description: str = ""
    color: str = DEFAULT_GROUP_COLOR
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


# PUBLIC_INTERFACE
@dataclass(frozen=True)
class HistoryRecord:
    """
    Immutable archived copy of a completed task.

    group_label is the group's name at archival time, not a reference, so the
    record stays readable after the group is renamed or deleted. created_at is
    the archival moment, not the source task's creation time.
    """

    owner_id: str
    source_task_id: str
    title: str
    priority: Priority
    completed_at: datetime
    created_at: datetime
    description: str = ""
    group_label: Optional[str] = None
    id: Optional[str] = None

    @classmethod
    def from_task(cls, task: Task, group_label: Optional[str] = None) -> "HistoryRecord":
        now = utcnow()
        return cls(
            owner_id=task.owner_id,
            source_task_id=task.id,
            title=task.title,
            description=task.description or "",
            group_label=group_label,
            priority=task.priority,
            completed_at=task.completed_at or now,
            created_at=now,
        )
