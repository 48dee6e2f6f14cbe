from __future__ import annotations

import dataclasses
import logging
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from threading import RLock
from typing import Dict, Iterable, List, Optional, Tuple, TYPE_CHECKING

from pydantic import ValidationError as PydanticValidationError

from .errors import AlreadyArchived, DuplicateId, GroupNameExists
from .models import UNGROUPED_LABEL, Group, HistoryRecord, Priority, Task, TaskStatus, as_utc, new_id, utcnow
from .schemas import GroupCreate, GroupUpdate, HistoryRecordIn, TaskCreate, TaskUpdate, validation_error_from

if TYPE_CHECKING:
    from .settings import Settings

logger = logging.getLogger(__name__)


class SortDirection(str, Enum):
    ASC = "ASC"
    DESC = "DESC"


class SortField(str, Enum):
    """Columns a history listing may be ordered by."""

    COMPLETED_AT = "completed_at"
    CREATED_AT = "created_at"
    TITLE = "title"
    PRIORITY = "priority"


class TaskSortField(str, Enum):
    """Columns a task listing may be ordered by."""

    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    TITLE = "title"
    PRIORITY = "priority"
    STATUS = "status"


class GroupSortField(str, Enum):
    """Columns a group listing may be ordered by."""

    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"
    NAME = "name"


_STATUS_RANK = {TaskStatus.TODO: 1, TaskStatus.IN_PROGRESS: 2, TaskStatus.DONE: 3}


@dataclass(frozen=True)
class ArchiveFilter:
    """
    Filters shared by history listings, counts and statistics.
    Date bounds apply to completed_at and are inclusive on both ends.
    """

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    priority: Optional[Priority] = None
    group_label: Optional[str] = None

    def __post_init__(self) -> None:
        if self.start is not None:
            object.__setattr__(self, "start", as_utc(self.start))
        if self.end is not None:
            object.__setattr__(self, "end", as_utc(self.end))

    def matches(self, record: HistoryRecord) -> bool:
        if self.start is not None and record.completed_at < self.start:
            return False
        if self.end is not None and record.completed_at > self.end:
            return False
        if self.priority is not None and record.priority is not self.priority:
            return False
        if self.group_label is not None and record.group_label != self.group_label:
            return False
        return True


@dataclass(frozen=True)
class ArchiveQuery:
    """
    Query parameters for listing history records.
    """

    filter: ArchiveFilter = ArchiveFilter()
    limit: int = 50
    offset: int = 0
    order_by: SortField = SortField.COMPLETED_AT
    direction: SortDirection = SortDirection.DESC

    @classmethod
    def from_params(
        cls,
        filter: Optional[ArchiveFilter] = None,
        limit: int = 50,
        offset: int = 0,
        order_by: Optional[str] = None,
        direction: Optional[str] = None,
    ) -> "ArchiveQuery":
        """
        Build a query from raw sort strings. Any unrecognized order_by/direction
        combination falls back to completed_at DESC instead of failing.
        """
        try:
            field = SortField((order_by or "").strip().lower())
            dirn = SortDirection((direction or "").strip().upper())
        except ValueError:
            logger.debug("Unrecognized sort %r %r, using completed_at DESC", order_by, direction)
            field, dirn = SortField.COMPLETED_AT, SortDirection.DESC
        return cls(
            filter=filter or ArchiveFilter(),
            limit=max(limit, 0),
            offset=max(offset, 0),
            order_by=field,
            direction=dirn,
        )


@dataclass(frozen=True)
class StatsWindow:
    """Date window for statistics; limit caps the number of buckets returned."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    limit: Optional[int] = None

    def as_filter(self) -> ArchiveFilter:
        return ArchiveFilter(start=self.start, end=self.end)


@dataclass(frozen=True)
class DailyCount:
    day: date
    count: int
    by_priority: Dict[str, int]


@dataclass(frozen=True)
class TaskQuery:
    """
    Query parameters for listing tasks.
    """

    limit: int = 50
    offset: int = 0
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    group_id: Optional[str] = None
    ungrouped: bool = False
    search: Optional[str] = None
    sort: TaskSortField = TaskSortField.CREATED_AT
    direction: SortDirection = SortDirection.DESC

    @staticmethod
    def parse_sort(sort: Optional[str]) -> Tuple[TaskSortField, SortDirection]:
        """
        Parse a '-field' style sort string (leading '-' means descending).
        Unknown fields fall back to -created_at.
        """
        key = (sort or "-created_at").strip().lower()
        reverse = key.startswith("-")
        try:
            field = TaskSortField(key[1:] if reverse else key)
        except ValueError:
            return TaskSortField.CREATED_AT, SortDirection.DESC
        return field, SortDirection.DESC if reverse else SortDirection.ASC


@dataclass(frozen=True)
class GroupQuery:
    """
    Query parameters for listing groups. search matches name or description,
    case-insensitively.
    """

    limit: Optional[int] = None
    offset: int = 0
    search: Optional[str] = None
    sort: GroupSortField = GroupSortField.CREATED_AT
    direction: SortDirection = SortDirection.DESC

    @staticmethod
    def parse_sort(sort: Optional[str]) -> Tuple[GroupSortField, SortDirection]:
        """Same '-field' convention as TaskQuery; unknown fields fall back to -created_at."""
        key = (sort or "-created_at").strip().lower()
        reverse = key.startswith("-")
        try:
            field = GroupSortField(key[1:] if reverse else key)
        except ValueError:
            return GroupSortField.CREATED_AT, SortDirection.DESC
        return field, SortDirection.DESC if reverse else SortDirection.ASC


def empty_priority_counts() -> Dict[str, int]:
    """Fixed high, medium, low mapping; iteration order is part of the contract."""
    return {Priority.HIGH.value: 0, Priority.MEDIUM.value: 0, Priority.LOW.value: 0}


def validate_record(record: HistoryRecord) -> HistoryRecord:
    """
    Check every required field of a history record and return a normalized copy with
    an id assigned. All violations are reported together.
    """
    try:
        valid = HistoryRecordIn.model_validate(dataclasses.asdict(record))
    except PydanticValidationError as exc:
        raise validation_error_from(exc) from exc
    return HistoryRecord(
        id=valid.id or new_id(),
        owner_id=valid.owner_id,
        source_task_id=valid.source_task_id,
        title=valid.title,
        description=valid.description,
        group_label=valid.group_label,
        priority=valid.priority,
        completed_at=valid.completed_at,
        created_at=valid.created_at,
    )


def apply_update(task: Task, data: TaskUpdate) -> Task:
    """
    Apply the explicitly provided fields of a TaskUpdate to a copy of the task.
    Status changes go through the state machine; re-sending the current status is a no-op.
    """
    updated = dataclasses.replace(task)
    fields = data.model_fields_set
    if data.title is not None:
        updated.title = data.title
    if data.description is not None:
        updated.description = data.description
    if "group_id" in fields:
        updated.group_id = data.group_id
    if data.priority is not None:
        updated.set_priority(data.priority)
    if data.status is not None and data.status is not updated.status:
        updated.set_status(data.status)
    if fields:
        updated.updated_at = utcnow()
    return updated


def apply_group_update(group: Group, data: GroupUpdate) -> Group:
    updated = dataclasses.replace(group)
    if data.name is not None:
        updated.name = data.name
    if data.description is not None:
        updated.description = data.description
    if data.color is not None:
        updated.color = data.color
    if data.model_fields_set:
        updated.updated_at = utcnow()
    return updated


# PUBLIC_INTERFACE
class ArchiveRepository(ABC):
    """Storage contract for history records. Reads and deletes are always owner-scoped."""

    @abstractmethod
    def insert(self, record: HistoryRecord) -> HistoryRecord:
        """
        Validate and persist a record, returning it as read back from storage.

        Raises:
            ValidationError: one or more required fields are missing or malformed.
            AlreadyArchived: a record for the same source task exists. Reported
                ahead of DuplicateId when both collide.
            DuplicateId: the supplied id is taken.
        """

    @abstractmethod
    def get_by_id(self, owner_id: str, record_id: str) -> Optional[HistoryRecord]:
        """Return the record, or None if the owner has no record with that id."""

    @abstractmethod
    def list_by_owner(self, owner_id: str, query: Optional[ArchiveQuery] = None) -> List[HistoryRecord]:
        """Return the owner's records matching the query filter, ordered and paginated."""

    @abstractmethod
    def count_by_owner(self, owner_id: str, filter: Optional[ArchiveFilter] = None) -> int:
        """Count the owner's records matching the filter."""

    @abstractmethod
    def daily_stats(self, owner_id: str, window: Optional[StatsWindow] = None) -> List[DailyCount]:
        """
        Completions per UTC calendar day with a high/medium/low breakdown,
        newest day first, at most window.limit days.
        """

    @abstractmethod
    def priority_stats(self, owner_id: str, window: Optional[StatsWindow] = None) -> Dict[str, int]:
        """Completions per priority as a zero-filled high, medium, low mapping."""

    @abstractmethod
    def group_stats(self, owner_id: str, window: Optional[StatsWindow] = None) -> List[Tuple[str, int]]:
        """
        Completions per group label (missing labels counted as 'Ungrouped'),
        largest first, at most window.limit groups.
        """

    @abstractmethod
    def delete_by_id(self, owner_id: str, record_id: str) -> int:
        """Delete one record. Return the number of rows removed."""

    @abstractmethod
    def delete_by_owner(self, owner_id: str) -> int:
        """Delete every record of the owner. Return the number of rows removed."""

    @abstractmethod
    def exists_by_source_task_id(self, source_task_id: str) -> bool:
        """Return True if any record was archived from the given task."""

    @abstractmethod
    def find_by_source_task_id(self, owner_id: str, source_task_id: str) -> Optional[HistoryRecord]:
        """Return the owner's record archived from the given task, if any."""


# PUBLIC_INTERFACE
class TaskRepository(ABC):
    """Storage contract for live tasks. Every operation is owner-scoped."""

    @abstractmethod
    def create(self, owner_id: str, data: TaskCreate) -> Task:
        """Create and return a new Task."""

    @abstractmethod
    def get(self, owner_id: str, task_id: str) -> Optional[Task]:
        """Return the owner's task by id, or None if not found."""

    @abstractmethod
    def list(self, owner_id: str, query: Optional[TaskQuery] = None) -> Tuple[List[Task], int]:
        """
        Return a slice of the owner's tasks and the total count matching filters.
        - Supports limit/offset
        - Filter by status, priority, group (or no group)
        - Substring search across title and description (case-insensitive)
        - Sorting by created_at/updated_at/title/priority/status (asc/desc)
        """

    @abstractmethod
    def update(self, owner_id: str, task_id: str, data: TaskUpdate) -> Optional[Task]:
        """Update fields of an existing task. Return the updated task or None if not found."""

    @abstractmethod
    def save(self, task: Task) -> Task:
        """Persist a task mutated in memory (status/priority changes). Return the stored task."""

    @abstractmethod
    def delete(self, owner_id: str, task_id: str) -> bool:
        """Delete a task by id. Return True if deleted, False if not found."""

    @abstractmethod
    def delete_by_owner(self, owner_id: str) -> int:
        """Delete every task of the owner. Return the number of rows removed."""

    @abstractmethod
    def status_counts(self, owner_id: str) -> Dict[str, int]:
        """Return zero-filled counts for todo, in_progress, done plus total."""

    @abstractmethod
    def priority_counts(self, owner_id: str) -> Dict[str, int]:
        """Return zero-filled counts for low, medium, high plus total."""

    @abstractmethod
    def open_counts_by_group(self, owner_id: str) -> Dict[str, int]:
        """Count the owner's tasks that are not done, per group id. Ungrouped tasks are left out."""

    @abstractmethod
    def clear_group(self, owner_id: str, group_id: str) -> int:
        """Detach every task of the owner from the group. Return the number of tasks changed."""


# PUBLIC_INTERFACE
class GroupRepository(ABC):
    """Storage contract for task groups. Every operation is owner-scoped."""

    @abstractmethod
    def create(self, owner_id: str, data: GroupCreate) -> Group:
        """
        Create and return a new Group.

        Raises:
            GroupNameExists: the owner already has a group with that name.
        """

    @abstractmethod
    def get(self, owner_id: str, group_id: str) -> Optional[Group]:
        """Return the owner's group by id, or None if not found."""

    @abstractmethod
    def get_name(self, owner_id: str, group_id: str) -> Optional[str]:
        """Return the current name of the owner's group, or None if not found."""

    @abstractmethod
    def list(self, owner_id: str, query: Optional[GroupQuery] = None) -> Tuple[List[Group], int]:
        """Return a slice of the owner's groups and the total count matching the search."""

    @abstractmethod
    def update(self, owner_id: str, group_id: str, data: GroupUpdate) -> Optional[Group]:
        """
        Update fields of a group. Return the updated group or None if not found.

        Raises:
            GroupNameExists: the new name is taken by another group of the owner.
        """

    @abstractmethod
    def delete(self, owner_id: str, group_id: str) -> bool:
        """Delete a group by id. Return True if deleted, False if not found."""


def _history_sort_key(field: SortField):
    if field is SortField.PRIORITY:
        return lambda r: r.priority.rank
    return lambda r: getattr(r, field.value)


def _task_sort_key(field: TaskSortField):
    if field is TaskSortField.PRIORITY:
        return lambda t: t.priority.rank
    if field is TaskSortField.STATUS:
        return lambda t: _STATUS_RANK[t.status]
    return lambda t: getattr(t, field.value)


class InMemoryArchiveRepository(ArchiveRepository):
    """
    Thread-safe in-memory archive store suitable for testing and default runtime.
    source_task_id uniqueness is checked under the same lock as the insert.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: dict[str, HistoryRecord] = {}
        self._by_source: dict[str, str] = {}

    def _owned(self, owner_id: str, flt: Optional[ArchiveFilter] = None) -> List[HistoryRecord]:
        flt = flt or ArchiveFilter()
        with self._lock:
            return [r for r in self._items.values() if r.owner_id == owner_id and flt.matches(r)]

    def insert(self, record: HistoryRecord) -> HistoryRecord:
        valid = validate_record(record)
        with self._lock:
            if valid.source_task_id in self._by_source:
                raise AlreadyArchived(valid.source_task_id)
            if valid.id in self._items:
                raise DuplicateId(valid.id)
            self._items[valid.id] = valid
            self._by_source[valid.source_task_id] = valid.id
            return self._items[valid.id]

    def get_by_id(self, owner_id: str, record_id: str) -> Optional[HistoryRecord]:
        with self._lock:
            item = self._items.get(record_id)
            return item if item is not None and item.owner_id == owner_id else None

    def list_by_owner(self, owner_id: str, query: Optional[ArchiveQuery] = None) -> List[HistoryRecord]:
        q = query or ArchiveQuery()
        items = sorted(self._owned(owner_id, q.filter), key=lambda r: r.id)
        items = sorted(
            items, key=_history_sort_key(q.order_by), reverse=q.direction is SortDirection.DESC
        )
        return items[q.offset:q.offset + q.limit]

    def count_by_owner(self, owner_id: str, filter: Optional[ArchiveFilter] = None) -> int:
        return len(self._owned(owner_id, filter))

    def daily_stats(self, owner_id: str, window: Optional[StatsWindow] = None) -> List[DailyCount]:
        w = window or StatsWindow()
        buckets: dict[date, Dict[str, int]] = {}
        for r in self._owned(owner_id, w.as_filter()):
            counts = buckets.setdefault(r.completed_at.date(), empty_priority_counts())
            counts[r.priority.value] += 1
        days = sorted(buckets, reverse=True)
        if w.limit is not None:
            days = days[:w.limit]
        return [DailyCount(day=d, count=sum(buckets[d].values()), by_priority=buckets[d]) for d in days]

    def priority_stats(self, owner_id: str, window: Optional[StatsWindow] = None) -> Dict[str, int]:
        counts = empty_priority_counts()
        for r in self._owned(owner_id, (window or StatsWindow()).as_filter()):
            counts[r.priority.value] += 1
        return counts

    def group_stats(self, owner_id: str, window: Optional[StatsWindow] = None) -> List[Tuple[str, int]]:
        w = window or StatsWindow()
        counts = Counter(r.group_label or UNGROUPED_LABEL for r in self._owned(owner_id, w.as_filter()))
        ranked = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
        return ranked if w.limit is None else ranked[:w.limit]

    def delete_by_id(self, owner_id: str, record_id: str) -> int:
        with self._lock:
            item = self._items.get(record_id)
            if item is None or item.owner_id != owner_id:
                return 0
            del self._items[record_id]
            self._by_source.pop(item.source_task_id, None)
            return 1

    def delete_by_owner(self, owner_id: str) -> int:
        with self._lock:
            doomed = [r for r in self._items.values() if r.owner_id == owner_id]
            for r in doomed:
                del self._items[r.id]
                self._by_source.pop(r.source_task_id, None)
            return len(doomed)

    def exists_by_source_task_id(self, source_task_id: str) -> bool:
        with self._lock:
            return source_task_id in self._by_source

    def find_by_source_task_id(self, owner_id: str, source_task_id: str) -> Optional[HistoryRecord]:
        with self._lock:
            record_id = self._by_source.get(source_task_id)
            if record_id is None:
                return None
            return self.get_by_id(owner_id, record_id)


class InMemoryTaskRepository(TaskRepository):
    """
    Thread-safe in-memory task store suitable for testing and default runtime.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: dict[str, Task] = {}

    def create(self, owner_id: str, data: TaskCreate) -> Task:
        task = Task.new(
            owner_id=owner_id,
            title=data.title,
            description=data.description,
            group_id=data.group_id,
            status=data.status,
            priority=data.priority,
        )
        with self._lock:
            self._items[task.id] = task
            return dataclasses.replace(task)

    def get(self, owner_id: str, task_id: str) -> Optional[Task]:
        with self._lock:
            item = self._items.get(task_id)
            if item is None or item.owner_id != owner_id:
                return None
            # Return copies to avoid external mutation
            return dataclasses.replace(item)

    def list(self, owner_id: str, query: Optional[TaskQuery] = None) -> Tuple[List[Task], int]:
        q = query or TaskQuery()
        with self._lock:
            items: Iterable[Task] = [t for t in self._items.values() if t.owner_id == owner_id]

            # Filtering
            if q.status is not None:
                items = [t for t in items if t.status is q.status]
            if q.priority is not None:
                items = [t for t in items if t.priority is q.priority]
            if q.ungrouped:
                items = [t for t in items if t.group_id is None]
            elif q.group_id is not None:
                items = [t for t in items if t.group_id == q.group_id]
            if q.search:
                s = q.search.lower()
                items = [t for t in items if s in t.title.lower() or s in (t.description or "").lower()]

            items = list(items)
            total = len(items)

            # Sorting
            items.sort(key=lambda t: t.id)
            items.sort(key=_task_sort_key(q.sort), reverse=q.direction is SortDirection.DESC)

            # Pagination
            start = max(q.offset, 0)
            page = items[start:start + max(q.limit, 0)]
            return [dataclasses.replace(t) for t in page], total

    def update(self, owner_id: str, task_id: str, data: TaskUpdate) -> Optional[Task]:
        with self._lock:
            existing = self.get(owner_id, task_id)
            if existing is None:
                return None
            return self.save(apply_update(existing, data))

    def save(self, task: Task) -> Task:
        with self._lock:
            existing = self._items.get(task.id)
            if existing is not None and existing.owner_id != task.owner_id:
                raise DuplicateId(task.id)
            self._items[task.id] = dataclasses.replace(task)
            return dataclasses.replace(task)

    def delete(self, owner_id: str, task_id: str) -> bool:
        with self._lock:
            if self.get(owner_id, task_id) is None:
                return False
            del self._items[task_id]
            return True

    def delete_by_owner(self, owner_id: str) -> int:
        with self._lock:
            doomed = [k for k, t in self._items.items() if t.owner_id == owner_id]
            for k in doomed:
                del self._items[k]
            return len(doomed)

    def status_counts(self, owner_id: str) -> Dict[str, int]:
        with self._lock:
            counts = Counter(t.status.value for t in self._items.values() if t.owner_id == owner_id)
        result = {s.value: counts.get(s.value, 0) for s in TaskStatus}
        result["total"] = sum(counts.values())
        return result

    def priority_counts(self, owner_id: str) -> Dict[str, int]:
        with self._lock:
            counts = Counter(t.priority.value for t in self._items.values() if t.owner_id == owner_id)
        result = {p.value: counts.get(p.value, 0) for p in (Priority.LOW, Priority.MEDIUM, Priority.HIGH)}
        result["total"] = sum(counts.values())
        return result

    def open_counts_by_group(self, owner_id: str) -> Dict[str, int]:
        with self._lock:
            return dict(
                Counter(
                    t.group_id
                    for t in self._items.values()
                    if t.owner_id == owner_id and t.group_id is not None and not t.is_done()
                )
            )

    def clear_group(self, owner_id: str, group_id: str) -> int:
        with self._lock:
            changed = 0
            for t in self._items.values():
                if t.owner_id == owner_id and t.group_id == group_id:
                    t.group_id = None
                    t.updated_at = utcnow()
                    changed += 1
            return changed


def _group_sort_key(field: GroupSortField):
    if field is GroupSortField.NAME:
        return lambda g: g.name.lower()
    return lambda g: getattr(g, field.value)


class InMemoryGroupRepository(GroupRepository):
    """
    Thread-safe in-memory group store. Name uniqueness is checked under the lock.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._items: dict[str, Group] = {}

    def _name_taken(self, owner_id: str, name: str, exclude_id: Optional[str] = None) -> bool:
        return any(
            g.owner_id == owner_id and g.name == name and g.id != exclude_id for g in self._items.values()
        )

    def create(self, owner_id: str, data: GroupCreate) -> Group:
        now = utcnow()
        group = Group(
            id=new_id(),
            owner_id=owner_id,
            name=data.name,
            description=data.description,
            color=data.color,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            if self._name_taken(owner_id, group.name):
                raise GroupNameExists(group.name)
            self._items[group.id] = group
            return dataclasses.replace(group)

    def get(self, owner_id: str, group_id: str) -> Optional[Group]:
        with self._lock:
            item = self._items.get(group_id)
            if item is None or item.owner_id != owner_id:
                return None
            return dataclasses.replace(item)

    def get_name(self, owner_id: str, group_id: str) -> Optional[str]:
        group = self.get(owner_id, group_id)
        return group.name if group else None

    def list(self, owner_id: str, query: Optional[GroupQuery] = None) -> Tuple[List[Group], int]:
        q = query or GroupQuery()
        with self._lock:
            items = [g for g in self._items.values() if g.owner_id == owner_id]
            if q.search:
                s = q.search.lower()
                items = [g for g in items if s in g.name.lower() or s in g.description.lower()]
            total = len(items)
            items.sort(key=lambda g: g.id)
            items.sort(key=_group_sort_key(q.sort), reverse=q.direction is SortDirection.DESC)
            start = max(q.offset, 0)
            page = items[start:] if q.limit is None else items[start:start + max(q.limit, 0)]
            return [dataclasses.replace(g) for g in page], total

    def update(self, owner_id: str, group_id: str, data: GroupUpdate) -> Optional[Group]:
        with self._lock:
            existing = self.get(owner_id, group_id)
            if existing is None:
                return None
            updated = apply_group_update(existing, data)
            if self._name_taken(owner_id, updated.name, exclude_id=group_id):
                raise GroupNameExists(updated.name)
            self._items[group_id] = updated
            return dataclasses.replace(updated)

    def delete(self, owner_id: str, group_id: str) -> bool:
        with self._lock:
            if self.get(owner_id, group_id) is None:
                return False
            del self._items[group_id]
            return True


# PUBLIC_INTERFACE
def build_repositories(settings: "Settings") -> Tuple[TaskRepository, ArchiveRepository, GroupRepository]:
    """
    Build the task, archive and group stores for the configured backend.
    - memory: InMemoryTaskRepository / InMemoryArchiveRepository / InMemoryGroupRepository
    - sqlite: the SQLite stores, sharing one database file
    """
    if settings.uses_sqlite:
        from .db import SQLiteArchiveRepository, SQLiteDatabase, SQLiteGroupRepository, SQLiteTaskRepository

        database = SQLiteDatabase(settings.sqlite_db_path)
        return SQLiteTaskRepository(database), SQLiteArchiveRepository(database), SQLiteGroupRepository(database)
    return InMemoryTaskRepository(), InMemoryArchiveRepository(), InMemoryGroupRepository()
