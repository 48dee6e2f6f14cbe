from __future__ import annotations

import asyncio
import logging
from typing import List, Optional, Tuple

from .errors import AlreadyArchived
from .models import Group, HistoryRecord, Task
from .repositories import (
    ArchiveFilter,
    ArchiveQuery,
    ArchiveRepository,
    GroupQuery,
    GroupRepository,
    SortField,
    StatsWindow,
    TaskRepository,
)
from .schemas import (
    MAX_DAILY_STATS_DAYS,
    MAX_GROUP_STATS,
    MAX_HISTORY_PAGE_SIZE,
    MAX_PAGE,
    DailyStat,
    GroupCreate,
    GroupOut,
    GroupStat,
    GroupStats,
    GroupTaskCount,
    GroupUpdate,
    HistoryOptions,
    HistoryPage,
    HistoryRecordOut,
    HistorySummary,
    Pagination,
    PriorityBreakdown,
    StatsOptions,
    priority_breakdown,
)
from .utils import clamp, pagination_envelope

logger = logging.getLogger(__name__)

DEFAULT_DAILY_STATS_DAYS = 30
DEFAULT_GROUP_STATS = 10
DEFAULT_RECENT = 10
SUMMARY_TOP_GROUPS = 5


# PUBLIC_INTERFACE
class ArchivalService:
    """
    Copies completed tasks into the archive. This is the only writer of history records.

    Archival is idempotent by rejection: a second attempt for the same task raises
    AlreadyArchived and never touches the existing record. The existence check is a
    fast path; the store's uniqueness on source_task_id settles concurrent attempts.

    With a group store attached, a task archived without an explicit label gets the
    current name of its group, copied into the record.
    """

    def __init__(self, archive: ArchiveRepository, groups: Optional[GroupRepository] = None) -> None:
        self._archive = archive
        self._groups = groups

    def _resolve_label(self, task: Task, group_label: Optional[str]) -> Optional[str]:
        if group_label is not None or task.group_id is None or self._groups is None:
            return group_label
        return self._groups.get_name(task.owner_id, task.group_id)

    def archive(self, task: Task, group_label: Optional[str] = None) -> HistoryRecord:
        """
        Archive a task and return the persisted record.

        completed_at is taken from the task, or set to now when the task reached this
        point without going through the done transition. A missing group_label is
        looked up from task.group_id; a group that no longer exists leaves it empty.

        Raises:
            AlreadyArchived: the task already has a history record.
            ValidationError: the task is missing fields a record requires.
        """
        if self._archive.exists_by_source_task_id(task.id):
            raise AlreadyArchived(task.id)
        group_label = self._resolve_label(task, group_label)
        stored = self._archive.insert(HistoryRecord.from_task(task, group_label))
        logger.info(
            "Archived task=%s owner=%s record=%s group=%s", task.id, task.owner_id, stored.id, group_label
        )
        return stored

    def archive_if_completed(self, task: Task, group_label: Optional[str] = None) -> Optional[HistoryRecord]:
        """Archive a done task that has no record yet; return None when nothing was written."""
        if not task.is_done() or self.is_archived(task.id):
            return None
        try:
            return self.archive(task, group_label)
        except AlreadyArchived:
            logger.debug("Task %s archived concurrently", task.id)
            return None

    def is_archived(self, source_task_id: str) -> bool:
        return self._archive.exists_by_source_task_id(source_task_id)

    def delete_archive_for_task(self, source_task_id: str, owner_id: str) -> bool:
        """Remove the archival trace of a purged task. Returns False if there was none."""
        record = self._archive.find_by_source_task_id(owner_id, source_task_id)
        if record is None:
            return False
        deleted = self._archive.delete_by_id(owner_id, record.id) > 0  # type: ignore[arg-type]
        if deleted:
            logger.info("Deleted archive record=%s for task=%s owner=%s", record.id, source_task_id, owner_id)
        return deleted

    def delete_record(self, owner_id: str, record_id: str) -> bool:
        """Delete a single record as a manual correction."""
        deleted = self._archive.delete_by_id(owner_id, record_id) > 0
        if deleted:
            logger.info("Deleted archive record=%s owner=%s", record_id, owner_id)
        return deleted

    def purge_owner(self, owner_id: str) -> int:
        """Delete the whole history of an owner (account removal). Returns the number removed."""
        removed = self._archive.delete_by_owner(owner_id)
        logger.info("Purged %s archive records for owner=%s", removed, owner_id)
        return removed


# PUBLIC_INTERFACE
class AnalyticsService:
    """
    Read-only views over the archive: paginated history and completion statistics.
    """

    def __init__(self, archive: ArchiveRepository) -> None:
        self._archive = archive

    async def get_history(self, owner_id: str, options: Optional[HistoryOptions] = None) -> HistoryPage:
        """
        Return one page of history plus the pagination block.

        The listing and the count are independent reads and run concurrently; a
        record archived between the two only skews the page count momentarily.
        """
        opts = options or HistoryOptions()
        limit = clamp(opts.limit, 1, MAX_HISTORY_PAGE_SIZE)
        page = clamp(opts.page, 1, MAX_PAGE)
        flt = ArchiveFilter(
            start=opts.start_date,
            end=opts.end_date,
            priority=opts.priority,
            group_label=opts.group_name,
        )
        query = ArchiveQuery.from_params(
            filter=flt,
            limit=limit,
            offset=(page - 1) * limit,
            order_by=opts.sort_by,
            direction=opts.sort_order,
        )
        records, total = await asyncio.gather(
            asyncio.to_thread(self._archive.list_by_owner, owner_id, query),
            asyncio.to_thread(self._archive.count_by_owner, owner_id, flt),
        )
        return HistoryPage(
            history=[HistoryRecordOut.model_validate(r) for r in records],
            pagination=Pagination(**pagination_envelope(page=page, limit=limit, total=total)),
        )

    def get_daily_stats(self, owner_id: str, options: Optional[StatsOptions] = None) -> List[DailyStat]:
        opts = options or StatsOptions()
        limit = clamp(DEFAULT_DAILY_STATS_DAYS if opts.limit is None else opts.limit, 1, MAX_DAILY_STATS_DAYS)
        window = StatsWindow(start=opts.start_date, end=opts.end_date, limit=limit)
        return [
            DailyStat(date=d.day, total_completed=d.count, by_priority=priority_breakdown(d.by_priority))
            for d in self._archive.daily_stats(owner_id, window)
        ]

    def get_priority_stats(self, owner_id: str, options: Optional[StatsOptions] = None) -> PriorityBreakdown:
        opts = options or StatsOptions()
        window = StatsWindow(start=opts.start_date, end=opts.end_date)
        return priority_breakdown(self._archive.priority_stats(owner_id, window))

    def get_group_stats(self, owner_id: str, options: Optional[StatsOptions] = None) -> List[GroupStat]:
        opts = options or StatsOptions()
        limit = clamp(DEFAULT_GROUP_STATS if opts.limit is None else opts.limit, 1, MAX_GROUP_STATS)
        window = StatsWindow(start=opts.start_date, end=opts.end_date, limit=limit)
        return [GroupStat(group_name=label, count=n) for label, n in self._archive.group_stats(owner_id, window)]

    def get_recent_completed(self, owner_id: str, n: int = DEFAULT_RECENT) -> List[HistoryRecordOut]:
        query = ArchiveQuery(limit=clamp(n, 1, MAX_HISTORY_PAGE_SIZE), order_by=SortField.COMPLETED_AT)
        return [HistoryRecordOut.model_validate(r) for r in self._archive.list_by_owner(owner_id, query)]

    def get_summary(self, owner_id: str, options: Optional[StatsOptions] = None) -> HistorySummary:
        """Totals for dashboard cards, composed from the count and stats queries."""
        opts = options or StatsOptions()
        window = StatsWindow(start=opts.start_date, end=opts.end_date, limit=SUMMARY_TOP_GROUPS)
        return HistorySummary(
            total_completed=self._archive.count_by_owner(owner_id, window.as_filter()),
            by_priority=priority_breakdown(self._archive.priority_stats(owner_id, window)),
            top_groups=[GroupStat(group_name=label, count=n) for label, n in self._archive.group_stats(owner_id, window)],
        )



# PUBLIC_INTERFACE
class GroupService:
    """
    Group bookkeeping on top of the group and task stores. Renaming or deleting a
    group never touches history records: they keep the name copied at archival.
    """

    def __init__(self, groups: GroupRepository, tasks: TaskRepository) -> None:
        self._groups = groups
        self._tasks = tasks

    def create(self, owner_id: str, data: GroupCreate) -> Group:
        group = self._groups.create(owner_id, data)
        logger.info("Created group=%s owner=%s name=%r", group.id, owner_id, group.name)
        return group

    def get(self, owner_id: str, group_id: str) -> Optional[Group]:
        return self._groups.get(owner_id, group_id)

    def list_groups(
        self, owner_id: str, query: Optional[GroupQuery] = None, include_counts: bool = False
    ) -> Tuple[List[GroupOut], int]:
        """Return a page of groups and the total; task_count is filled only when asked for."""
        groups, total = self._groups.list(owner_id, query)
        counts = self._tasks.open_counts_by_group(owner_id) if include_counts else None
        items = []
        for g in groups:
            out = GroupOut.model_validate(g)
            if counts is not None:
                out.task_count = counts.get(g.id, 0)
            items.append(out)
        return items, total

    def update(self, owner_id: str, group_id: str, data: GroupUpdate) -> Optional[Group]:
        updated = self._groups.update(owner_id, group_id, data)
        if updated is not None:
            logger.info("Updated group=%s owner=%s name=%r", group_id, owner_id, updated.name)
        return updated

    def delete(self, owner_id: str, group_id: str) -> bool:
        """Delete a group after moving its tasks to no group. Returns False if it does not exist."""
        if self._groups.get(owner_id, group_id) is None:
            return False
        detached = self._tasks.clear_group(owner_id, group_id)
        deleted = self._groups.delete(owner_id, group_id)
        logger.info("Deleted group=%s owner=%s detached_tasks=%s", group_id, owner_id, detached)
        return deleted

    def get_stats(self, owner_id: str) -> GroupStats:
        """Open task counts per group, newest group first, plus totals."""
        groups, total_groups = self._groups.list(owner_id)
        counts = self._tasks.open_counts_by_group(owner_id)
        per_group = [GroupTaskCount(id=g.id, name=g.name, color=g.color, task_count=counts.get(g.id, 0)) for g in groups]
        total_tasks = sum(g.task_count for g in per_group)
        return GroupStats(
            total_groups=total_groups,
            total_tasks=total_tasks,
            average_tasks_per_group=round(total_tasks / total_groups, 2) if total_groups else 0.0,
            groups=per_group,
        )
