from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Dict, Generator, List, Optional, Tuple

from .errors import AlreadyArchived, DuplicateId, GroupNameExists, StoreError
from .models import UNGROUPED_LABEL, Group, HistoryRecord, Priority, Task, TaskStatus, as_utc, new_id, utcnow
from .repositories import (
    ArchiveFilter,
    ArchiveQuery,
    ArchiveRepository,
    DailyCount,
    GroupQuery,
    GroupRepository,
    GroupSortField,
    SortField,
    StatsWindow,
    TaskQuery,
    TaskRepository,
    TaskSortField,
    apply_group_update,
    apply_update,
    empty_priority_counts,
    validate_record,
)
from .schemas import GroupCreate, GroupUpdate, TaskCreate, TaskUpdate

logger = logging.getLogger(__name__)

# Fixed-width UTC text so that string comparison orders timestamps and the first
# ten characters are the calendar day.
_TS_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


@dataclass(frozen=True)
class _TaskCols:
    table: str = "tasks"
    id: str = "id"
    owner_id: str = "owner_id"
    group_id: str = "group_id"
    title: str = "title"
    description: str = "description"
    status: str = "status"
    priority: str = "priority"
    created_at: str = "created_at"
    updated_at: str = "updated_at"
    completed_at: str = "completed_at"


@dataclass(frozen=True)
class _HistoryCols:
    table: str = "history_records"
    id: str = "id"
    owner_id: str = "owner_id"
    source_task_id: str = "source_task_id"
    title: str = "title"
    description: str = "description"
    group_label: str = "group_label"
    priority: str = "priority"
    completed_at: str = "completed_at"
    created_at: str = "created_at"


@dataclass(frozen=True)
class _GroupCols:
    table: str = "task_groups"
    id: str = "id"
    owner_id: str = "owner_id"
    name: str = "name"
    description: str = "description"
    color: str = "color"
    created_at: str = "created_at"
    updated_at: str = "updated_at"


_T = _TaskCols()
_H = _HistoryCols()
_G = _GroupCols()

_PRIORITY_RANK_SQL = "CASE {col} WHEN 'low' THEN 1 WHEN 'medium' THEN 2 WHEN 'high' THEN 3 END"
_STATUS_RANK_SQL = "CASE {col} WHEN 'todo' THEN 1 WHEN 'in_progress' THEN 2 WHEN 'done' THEN 3 END"

_GROUP_ORDER_SQL = {
    GroupSortField.CREATED_AT: _G.created_at,
    GroupSortField.UPDATED_AT: _G.updated_at,
    GroupSortField.NAME: f"lower({_G.name})",
}

_HISTORY_ORDER_SQL = {
    SortField.COMPLETED_AT: _H.completed_at,
    SortField.CREATED_AT: _H.created_at,
    SortField.TITLE: _H.title,
    SortField.PRIORITY: _PRIORITY_RANK_SQL.format(col=_H.priority),
}

_TASK_ORDER_SQL = {
    TaskSortField.CREATED_AT: _T.created_at,
    TaskSortField.UPDATED_AT: _T.updated_at,
    TaskSortField.TITLE: _T.title,
    TaskSortField.PRIORITY: _PRIORITY_RANK_SQL.format(col=_T.priority),
    TaskSortField.STATUS: _STATUS_RANK_SQL.format(col=_T.status),
}


def _ts(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return as_utc(value).strftime(_TS_FORMAT)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)


class SQLiteDatabase:
    """
    Owns the database file and schema. Each operation opens its own connection,
    so one instance can be shared by both repositories and across threads.
    """

    def __init__(self, db_path: str) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._init_db()
        logger.info("SQLite store ready db=%s", db_path)

    @contextmanager
    def connect(self, operation: str) -> Generator[sqlite3.Connection, None, None]:
        """
        Yield a connection that commits on success. Driver errors, and integers too
        large for an SQLite INTEGER, are logged and re-raised as StoreError naming
        the operation.
        """
        try:
            conn = sqlite3.connect(self._db_path, timeout=30.0)
        except (sqlite3.Error, OverflowError) as exc:
            logger.exception("SQLite connect failed during %s", operation)
            raise StoreError(operation) from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except (sqlite3.Error, OverflowError) as exc:
            conn.rollback()
            logger.exception("SQLite operation %s failed", operation)
            raise StoreError(operation) from exc
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self.connect("init_db") as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_T.table} (
                    {_T.id} TEXT PRIMARY KEY,
                    {_T.owner_id} TEXT NOT NULL,
                    {_T.group_id} TEXT NULL,
                    {_T.title} TEXT NOT NULL,
                    {_T.description} TEXT NOT NULL DEFAULT '',
                    {_T.status} TEXT NOT NULL DEFAULT 'todo',
                    {_T.priority} TEXT NOT NULL DEFAULT 'medium',
                    {_T.created_at} TEXT NOT NULL,
                    {_T.updated_at} TEXT NOT NULL,
                    {_T.completed_at} TEXT NULL
                )
                """
            )
            # No foreign key on source_task_id: records outlive their tasks.
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_H.table} (
                    {_H.id} TEXT PRIMARY KEY,
                    {_H.owner_id} TEXT NOT NULL,
                    {_H.source_task_id} TEXT NOT NULL UNIQUE,
                    {_H.title} TEXT NOT NULL,
                    {_H.description} TEXT NOT NULL DEFAULT '',
                    {_H.group_label} TEXT NULL,
                    {_H.priority} TEXT NOT NULL,
                    {_H.completed_at} TEXT NOT NULL,
                    {_H.created_at} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_G.table} (
                    {_G.id} TEXT PRIMARY KEY,
                    {_G.owner_id} TEXT NOT NULL,
                    {_G.name} TEXT NOT NULL,
                    {_G.description} TEXT NOT NULL DEFAULT '',
                    {_G.color} TEXT NOT NULL,
                    {_G.created_at} TEXT NOT NULL,
                    {_G.updated_at} TEXT NOT NULL,
                    UNIQUE ({_G.owner_id}, {_G.name})
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_T.table}_owner_status ON {_T.table}({_T.owner_id}, {_T.status})"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_T.table}_created_at ON {_T.table}({_T.created_at})"
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_H.table}_owner_completed "
                f"ON {_H.table}({_H.owner_id}, {_H.completed_at})"
            )


def _history_where(owner_id: str, flt: Optional[ArchiveFilter]) -> Tuple[str, List[Any]]:
    flt = flt or ArchiveFilter()
    clauses = [f"{_H.owner_id} = ?"]
    params: List[Any] = [owner_id]
    if flt.start is not None:
        clauses.append(f"{_H.completed_at} >= ?")
        params.append(_ts(flt.start))
    if flt.end is not None:
        clauses.append(f"{_H.completed_at} <= ?")
        params.append(_ts(flt.end))
    if flt.priority is not None:
        clauses.append(f"{_H.priority} = ?")
        params.append(flt.priority.value)
    if flt.group_label is not None:
        clauses.append(f"{_H.group_label} = ?")
        params.append(flt.group_label)
    return "WHERE " + " AND ".join(clauses), params


def _limit_param(limit: Optional[int]) -> int:
    # SQLite treats a negative LIMIT as unbounded
    return -1 if limit is None else max(limit, 0)


class SQLiteArchiveRepository(ArchiveRepository):
    """
    SQLite archive store. The UNIQUE constraint on source_task_id is what makes
    concurrent archival of the same task safe.
    """

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def _row_to_record(self, row: sqlite3.Row) -> HistoryRecord:
        return HistoryRecord(
            id=str(row[_H.id]),
            owner_id=str(row[_H.owner_id]),
            source_task_id=str(row[_H.source_task_id]),
            title=str(row[_H.title]),
            description=row[_H.description] or "",
            group_label=row[_H.group_label],
            priority=Priority(row[_H.priority]),
            completed_at=_parse_ts(row[_H.completed_at]),  # type: ignore[arg-type]
            created_at=_parse_ts(row[_H.created_at]),  # type: ignore[arg-type]
        )

    def _source_taken(self, conn: sqlite3.Connection, source_task_id: str) -> bool:
        row = conn.execute(
            f"SELECT 1 FROM {_H.table} WHERE {_H.source_task_id} = ? LIMIT 1", (source_task_id,)
        ).fetchone()
        return row is not None

    def insert(self, record: HistoryRecord) -> HistoryRecord:
        valid = validate_record(record)
        with self._db.connect("archive.insert") as conn:
            try:
                conn.execute(
                    f"""
                    INSERT INTO {_H.table} ({_H.id}, {_H.owner_id}, {_H.source_task_id}, {_H.title},
                        {_H.description}, {_H.group_label}, {_H.priority}, {_H.completed_at}, {_H.created_at})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        valid.id,
                        valid.owner_id,
                        valid.source_task_id,
                        valid.title,
                        valid.description,
                        valid.group_label,
                        valid.priority.value,
                        _ts(valid.completed_at),
                        _ts(valid.created_at),
                    ),
                )
            except sqlite3.IntegrityError as exc:
                message = str(exc)
                if f"{_H.table}.{_H.source_task_id}" in message:
                    raise AlreadyArchived(valid.source_task_id) from exc
                if f"{_H.table}.{_H.id}" in message:
                    # Same order as the memory store: a taken source task wins over a taken id
                    if self._source_taken(conn, valid.source_task_id):
                        raise AlreadyArchived(valid.source_task_id) from exc
                    raise DuplicateId(valid.id) from exc  # type: ignore[arg-type]
                raise
            row = conn.execute(f"SELECT * FROM {_H.table} WHERE {_H.id} = ?", (valid.id,)).fetchone()
            if row is None:
                raise StoreError("archive.insert")
            return self._row_to_record(row)

    def get_by_id(self, owner_id: str, record_id: str) -> Optional[HistoryRecord]:
        with self._db.connect("archive.get_by_id") as conn:
            row = conn.execute(
                f"SELECT * FROM {_H.table} WHERE {_H.id} = ? AND {_H.owner_id} = ?",
                (record_id, owner_id),
            ).fetchone()
            return self._row_to_record(row) if row else None

    def list_by_owner(self, owner_id: str, query: Optional[ArchiveQuery] = None) -> List[HistoryRecord]:
        q = query or ArchiveQuery()
        where_sql, params = _history_where(owner_id, q.filter)
        order_sql = f"ORDER BY {_HISTORY_ORDER_SQL[q.order_by]} {q.direction.value}, {_H.id} ASC"
        logger.debug("archive.list_by_owner owner=%s %s", owner_id, order_sql)
        with self._db.connect("archive.list_by_owner") as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM {_H.table}
                {where_sql}
                {order_sql}
                LIMIT ? OFFSET ?
                """,
                [*params, max(q.limit, 0), max(q.offset, 0)],
            ).fetchall()
            return [self._row_to_record(r) for r in rows]

    def count_by_owner(self, owner_id: str, filter: Optional[ArchiveFilter] = None) -> int:
        where_sql, params = _history_where(owner_id, filter)
        with self._db.connect("archive.count_by_owner") as conn:
            row = conn.execute(f"SELECT COUNT(*) AS cnt FROM {_H.table} {where_sql}", params).fetchone()
            return int(row["cnt"]) if row else 0

    def daily_stats(self, owner_id: str, window: Optional[StatsWindow] = None) -> List[DailyCount]:
        w = window or StatsWindow()
        where_sql, params = _history_where(owner_id, w.as_filter())
        with self._db.connect("archive.daily_stats") as conn:
            rows = conn.execute(
                f"""
                SELECT substr({_H.completed_at}, 1, 10) AS day,
                    COUNT(*) AS cnt,
                    SUM(CASE WHEN {_H.priority} = 'high' THEN 1 ELSE 0 END) AS high,
                    SUM(CASE WHEN {_H.priority} = 'medium' THEN 1 ELSE 0 END) AS medium,
                    SUM(CASE WHEN {_H.priority} = 'low' THEN 1 ELSE 0 END) AS low
                FROM {_H.table}
                {where_sql}
                GROUP BY day
                ORDER BY day DESC
                LIMIT ?
                """,
                [*params, _limit_param(w.limit)],
            ).fetchall()
        result = []
        for r in rows:
            by_priority = empty_priority_counts()
            for p in by_priority:
                by_priority[p] = int(r[p] or 0)
            result.append(DailyCount(day=date.fromisoformat(r["day"]), count=int(r["cnt"]), by_priority=by_priority))
        return result

    def priority_stats(self, owner_id: str, window: Optional[StatsWindow] = None) -> Dict[str, int]:
        where_sql, params = _history_where(owner_id, (window or StatsWindow()).as_filter())
        with self._db.connect("archive.priority_stats") as conn:
            rows = conn.execute(
                f"SELECT {_H.priority} AS priority, COUNT(*) AS cnt FROM {_H.table} {where_sql} GROUP BY {_H.priority}",
                params,
            ).fetchall()
        counts = empty_priority_counts()
        for r in rows:
            if r["priority"] in counts:
                counts[r["priority"]] = int(r["cnt"])
        return counts

    def group_stats(self, owner_id: str, window: Optional[StatsWindow] = None) -> List[Tuple[str, int]]:
        w = window or StatsWindow()
        where_sql, params = _history_where(owner_id, w.as_filter())
        with self._db.connect("archive.group_stats") as conn:
            rows = conn.execute(
                f"""
                SELECT COALESCE({_H.group_label}, ?) AS label, COUNT(*) AS cnt
                FROM {_H.table}
                {where_sql}
                GROUP BY label
                ORDER BY cnt DESC, label ASC
                LIMIT ?
                """,
                [UNGROUPED_LABEL, *params, _limit_param(w.limit)],
            ).fetchall()
        return [(str(r["label"]), int(r["cnt"])) for r in rows]

    def delete_by_id(self, owner_id: str, record_id: str) -> int:
        with self._db.connect("archive.delete_by_id") as conn:
            cur = conn.execute(
                f"DELETE FROM {_H.table} WHERE {_H.id} = ? AND {_H.owner_id} = ?", (record_id, owner_id)
            )
            return cur.rowcount

    def delete_by_owner(self, owner_id: str) -> int:
        with self._db.connect("archive.delete_by_owner") as conn:
            cur = conn.execute(f"DELETE FROM {_H.table} WHERE {_H.owner_id} = ?", (owner_id,))
            return cur.rowcount

    def exists_by_source_task_id(self, source_task_id: str) -> bool:
        with self._db.connect("archive.exists_by_source_task_id") as conn:
            return self._source_taken(conn, source_task_id)

    def find_by_source_task_id(self, owner_id: str, source_task_id: str) -> Optional[HistoryRecord]:
        with self._db.connect("archive.find_by_source_task_id") as conn:
            row = conn.execute(
                f"SELECT * FROM {_H.table} WHERE {_H.source_task_id} = ? AND {_H.owner_id} = ?",
                (source_task_id, owner_id),
            ).fetchone()
            return self._row_to_record(row) if row else None


class SQLiteTaskRepository(TaskRepository):
    """
    Lightweight SQLite task store implementing the TaskRepository interface.
    """

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        return Task(
            id=str(row[_T.id]),
            owner_id=str(row[_T.owner_id]),
            group_id=row[_T.group_id],
            title=str(row[_T.title]),
            description=row[_T.description] or "",
            status=TaskStatus(row[_T.status]),
            priority=Priority(row[_T.priority]),
            created_at=_parse_ts(row[_T.created_at]),  # type: ignore[arg-type]
            updated_at=_parse_ts(row[_T.updated_at]),  # type: ignore[arg-type]
            completed_at=_parse_ts(row[_T.completed_at]),
        )

    def _fetch(self, conn: sqlite3.Connection, owner_id: str, task_id: str) -> Optional[Task]:
        row = conn.execute(
            f"SELECT * FROM {_T.table} WHERE {_T.id} = ? AND {_T.owner_id} = ?", (task_id, owner_id)
        ).fetchone()
        return self._row_to_task(row) if row else None

    def create(self, owner_id: str, data: TaskCreate) -> Task:
        task = Task.new(
            owner_id=owner_id,
            title=data.title,
            description=data.description,
            group_id=data.group_id,
            status=data.status,
            priority=data.priority,
        )
        return self.save(task)

    def get(self, owner_id: str, task_id: str) -> Optional[Task]:
        with self._db.connect("tasks.get") as conn:
            return self._fetch(conn, owner_id, task_id)

    def list(self, owner_id: str, query: Optional[TaskQuery] = None) -> Tuple[List[Task], int]:
        q = query or TaskQuery()
        clauses = [f"{_T.owner_id} = ?"]
        params: List[Any] = [owner_id]

        if q.status is not None:
            clauses.append(f"{_T.status} = ?")
            params.append(q.status.value)
        if q.priority is not None:
            clauses.append(f"{_T.priority} = ?")
            params.append(q.priority.value)
        if q.ungrouped:
            clauses.append(f"{_T.group_id} IS NULL")
        elif q.group_id is not None:
            clauses.append(f"{_T.group_id} = ?")
            params.append(q.group_id)
        if q.search:
            # Case-insensitive substring search on title and description
            clauses.append(f"(instr(lower({_T.title}), lower(?)) > 0 OR instr(lower({_T.description}), lower(?)) > 0)")
            params.extend([q.search, q.search])

        where_sql = f"WHERE {' AND '.join(clauses)}"
        order_sql = f"ORDER BY {_TASK_ORDER_SQL[q.sort]} {q.direction.value}, {_T.id} ASC"

        with self._db.connect("tasks.list") as conn:
            count_row = conn.execute(f"SELECT COUNT(*) AS cnt FROM {_T.table} {where_sql}", params).fetchone()
            total = int(count_row["cnt"]) if count_row else 0

            rows = conn.execute(
                f"""
                SELECT * FROM {_T.table}
                {where_sql}
                {order_sql}
                LIMIT ? OFFSET ?
                """,
                [*params, max(q.limit, 0), max(q.offset, 0)],
            ).fetchall()
            return [self._row_to_task(r) for r in rows], total

    def update(self, owner_id: str, task_id: str, data: TaskUpdate) -> Optional[Task]:
        current = self.get(owner_id, task_id)
        if current is None:
            return None
        return self.save(apply_update(current, data))

    def save(self, task: Task) -> Task:
        with self._db.connect("tasks.save") as conn:
            conn.execute(
                f"""
                INSERT INTO {_T.table} ({_T.id}, {_T.owner_id}, {_T.group_id}, {_T.title}, {_T.description},
                    {_T.status}, {_T.priority}, {_T.created_at}, {_T.updated_at}, {_T.completed_at})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT({_T.id}) DO UPDATE SET
                    {_T.group_id} = excluded.{_T.group_id},
                    {_T.title} = excluded.{_T.title},
                    {_T.description} = excluded.{_T.description},
                    {_T.status} = excluded.{_T.status},
                    {_T.priority} = excluded.{_T.priority},
                    {_T.updated_at} = excluded.{_T.updated_at},
                    {_T.completed_at} = excluded.{_T.completed_at}
                WHERE {_T.table}.{_T.owner_id} = excluded.{_T.owner_id}
                """,
                (
                    task.id,
                    task.owner_id,
                    task.group_id,
                    task.title,
                    task.description,
                    task.status.value,
                    task.priority.value,
                    _ts(task.created_at),
                    _ts(task.updated_at),
                    _ts(task.completed_at),
                ),
            )
            stored = self._fetch(conn, task.owner_id, task.id)
            if stored is None:
                # The id exists under another owner; the upsert's WHERE left it untouched.
                raise DuplicateId(task.id)
            return stored

    def delete(self, owner_id: str, task_id: str) -> bool:
        with self._db.connect("tasks.delete") as conn:
            cur = conn.execute(
                f"DELETE FROM {_T.table} WHERE {_T.id} = ? AND {_T.owner_id} = ?", (task_id, owner_id)
            )
            return cur.rowcount > 0

    def delete_by_owner(self, owner_id: str) -> int:
        with self._db.connect("tasks.delete_by_owner") as conn:
            cur = conn.execute(f"DELETE FROM {_T.table} WHERE {_T.owner_id} = ?", (owner_id,))
            return cur.rowcount

    def _grouped_counts(self, operation: str, column: str, owner_id: str) -> Dict[str, int]:
        with self._db.connect(operation) as conn:
            rows = conn.execute(
                f"SELECT {column} AS k, COUNT(*) AS cnt FROM {_T.table} WHERE {_T.owner_id} = ? GROUP BY {column}",
                (owner_id,),
            ).fetchall()
        return {str(r["k"]): int(r["cnt"]) for r in rows}

    def status_counts(self, owner_id: str) -> Dict[str, int]:
        counts = self._grouped_counts("tasks.status_counts", _T.status, owner_id)
        result = {s.value: counts.get(s.value, 0) for s in TaskStatus}
        result["total"] = sum(counts.values())
        return result

    def priority_counts(self, owner_id: str) -> Dict[str, int]:
        counts = self._grouped_counts("tasks.priority_counts", _T.priority, owner_id)
        result = {p.value: counts.get(p.value, 0) for p in (Priority.LOW, Priority.MEDIUM, Priority.HIGH)}
        result["total"] = sum(counts.values())
        return result

    def open_counts_by_group(self, owner_id: str) -> Dict[str, int]:
        with self._db.connect("tasks.open_counts_by_group") as conn:
            rows = conn.execute(
                f"""
                SELECT {_T.group_id} AS k, COUNT(*) AS cnt FROM {_T.table}
                WHERE {_T.owner_id} = ? AND {_T.group_id} IS NOT NULL AND {_T.status} != ?
                GROUP BY {_T.group_id}
                """,
                (owner_id, TaskStatus.DONE.value),
            ).fetchall()
        return {str(r["k"]): int(r["cnt"]) for r in rows}

    def clear_group(self, owner_id: str, group_id: str) -> int:
        with self._db.connect("tasks.clear_group") as conn:
            cur = conn.execute(
                f"UPDATE {_T.table} SET {_T.group_id} = NULL, {_T.updated_at} = ? "
                f"WHERE {_T.owner_id} = ? AND {_T.group_id} = ?",
                (_ts(utcnow()), owner_id, group_id),
            )
            return cur.rowcount


class SQLiteGroupRepository(GroupRepository):
    """
    SQLite group store. UNIQUE (owner_id, name) rejects duplicate names, including
    two concurrent creates that both passed no check.
    """

    def __init__(self, database: SQLiteDatabase) -> None:
        self._db = database

    def _row_to_group(self, row: sqlite3.Row) -> Group:
        return Group(
            id=str(row[_G.id]),
            owner_id=str(row[_G.owner_id]),
            name=str(row[_G.name]),
            description=row[_G.description] or "",
            color=str(row[_G.color]),
            created_at=_parse_ts(row[_G.created_at]),  # type: ignore[arg-type]
            updated_at=_parse_ts(row[_G.updated_at]),  # type: ignore[arg-type]
        )

    def _fetch(self, conn: sqlite3.Connection, owner_id: str, group_id: str) -> Optional[Group]:
        row = conn.execute(
            f"SELECT * FROM {_G.table} WHERE {_G.id} = ? AND {_G.owner_id} = ?", (group_id, owner_id)
        ).fetchone()
        return self._row_to_group(row) if row else None

    def create(self, owner_id: str, data: GroupCreate) -> Group:
        now = _ts(utcnow())
        group_id = new_id()
        with self._db.connect("groups.create") as conn:
            try:
                conn.execute(
                    f"""
                    INSERT INTO {_G.table} ({_G.id}, {_G.owner_id}, {_G.name}, {_G.description},
                        {_G.color}, {_G.created_at}, {_G.updated_at})
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (group_id, owner_id, data.name, data.description, data.color, now, now),
                )
            except sqlite3.IntegrityError as exc:
                if f"{_G.table}.{_G.name}" in str(exc):
                    raise GroupNameExists(data.name) from exc
                raise
            group = self._fetch(conn, owner_id, group_id)
            if group is None:
                raise StoreError("groups.create")
            return group

    def get(self, owner_id: str, group_id: str) -> Optional[Group]:
        with self._db.connect("groups.get") as conn:
            return self._fetch(conn, owner_id, group_id)

    def get_name(self, owner_id: str, group_id: str) -> Optional[str]:
        with self._db.connect("groups.get_name") as conn:
            row = conn.execute(
                f"SELECT {_G.name} FROM {_G.table} WHERE {_G.id} = ? AND {_G.owner_id} = ?", (group_id, owner_id)
            ).fetchone()
            return str(row[_G.name]) if row else None

    def list(self, owner_id: str, query: Optional[GroupQuery] = None) -> Tuple[List[Group], int]:
        q = query or GroupQuery()
        clauses = [f"{_G.owner_id} = ?"]
        params: List[Any] = [owner_id]
        if q.search:
            clauses.append(f"(instr(lower({_G.name}), lower(?)) > 0 OR instr(lower({_G.description}), lower(?)) > 0)")
            params.extend([q.search, q.search])
        where_sql = f"WHERE {' AND '.join(clauses)}"
        order_sql = f"ORDER BY {_GROUP_ORDER_SQL[q.sort]} {q.direction.value}, {_G.id} ASC"

        with self._db.connect("groups.list") as conn:
            count_row = conn.execute(f"SELECT COUNT(*) AS cnt FROM {_G.table} {where_sql}", params).fetchone()
            total = int(count_row["cnt"]) if count_row else 0
            rows = conn.execute(
                f"""
                SELECT * FROM {_G.table}
                {where_sql}
                {order_sql}
                LIMIT ? OFFSET ?
                """,
                [*params, _limit_param(q.limit), max(q.offset, 0)],
            ).fetchall()
            return [self._row_to_group(r) for r in rows], total

    def update(self, owner_id: str, group_id: str, data: GroupUpdate) -> Optional[Group]:
        with self._db.connect("groups.update") as conn:
            current = self._fetch(conn, owner_id, group_id)
            if current is None:
                return None
            updated = apply_group_update(current, data)
            try:
                conn.execute(
                    f"""
                    UPDATE {_G.table} SET {_G.name} = ?, {_G.description} = ?, {_G.color} = ?, {_G.updated_at} = ?
                    WHERE {_G.id} = ? AND {_G.owner_id} = ?
                    """,
                    (updated.name, updated.description, updated.color, _ts(updated.updated_at), group_id, owner_id),
                )
            except sqlite3.IntegrityError as exc:
                if f"{_G.table}.{_G.name}" in str(exc):
                    raise GroupNameExists(updated.name) from exc
                raise
            return self._fetch(conn, owner_id, group_id)

    def delete(self, owner_id: str, group_id: str) -> bool:
        with self._db.connect("groups.delete") as conn:
            cur = conn.execute(
                f"DELETE FROM {_G.table} WHERE {_G.id} = ? AND {_G.owner_id} = ?", (group_id, owner_id)
            )
            return cur.rowcount > 0
