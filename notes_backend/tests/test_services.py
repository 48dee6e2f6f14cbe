import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from src.notes_api.db import SQLiteArchiveRepository, SQLiteDatabase
from src.notes_api.errors import AlreadyArchived, ValidationError
from src.notes_api.models import Priority, Task, TaskStatus
from src.notes_api.repositories import InMemoryArchiveRepository, InMemoryGroupRepository
from src.notes_api.schemas import MAX_PAGE, GroupCreate, GroupUpdate, HistoryOptions, StatsOptions
from src.notes_api.services import AnalyticsService, ArchivalService


@pytest.fixture(params=["memory", "sqlite"])
def archive(request, tmp_path):
    if request.param == "sqlite":
        return SQLiteArchiveRepository(SQLiteDatabase(str(tmp_path / "notes.db")))
    return InMemoryArchiveRepository()


def done_task(owner_id="user-1", title="Task", priority="medium", completed_at=None):
    task = Task.new(owner_id=owner_id, title=title, priority=priority, status="done")
    if completed_at is not None:
        task.completed_at = completed_at
    return task


class TestArchivalService:
    def test_pay_rent_flow(self, archive):
        archival = ArchivalService(archive)
        analytics = AnalyticsService(archive)

        task = Task.new(owner_id="user-1", title="Pay rent", priority="high")
        task.set_status(TaskStatus.DONE)
        record = archival.archive(task, group_label="Home")

        assert record.id
        assert record.source_task_id == task.id
        assert record.group_label == "Home"
        assert record.completed_at == task.completed_at
        assert archival.is_archived(task.id)

        page = asyncio.run(analytics.get_history("user-1"))
        assert page.pagination.total == 1
        assert page.history[0].title == "Pay rent"
        assert analytics.get_priority_stats("user-1").high == 1
        assert [(g.group_name, g.count) for g in analytics.get_group_stats("user-1")] == [("Home", 1)]

        with pytest.raises(AlreadyArchived):
            archival.archive(task, group_label="Work")
        assert archive.count_by_owner("user-1") == 1
        assert archive.get_by_id("user-1", record.id).group_label == "Home"

    def test_archive_if_completed(self, archive):
        archival = ArchivalService(archive)
        todo = Task.new(owner_id="user-1", title="Not yet")
        assert archival.archive_if_completed(todo) is None
        assert not archival.is_archived(todo.id)

        task = done_task()
        assert archival.archive_if_completed(task, "Home") is not None
        assert archival.archive_if_completed(task, "Home") is None
        assert archive.count_by_owner("user-1") == 1

    def test_label_is_taken_from_task_group(self, archive):
        groups = InMemoryGroupRepository()
        home = groups.create("user-1", GroupCreate(name="Home"))
        archival = ArchivalService(archive, groups)

        task = done_task()
        task.group_id = home.id
        record = archival.archive(task)
        assert record.group_label == "Home"

        groups.update("user-1", home.id, GroupUpdate(name="Household"))
        assert archive.get_by_id("user-1", record.id).group_label == "Home"

        explicit = done_task()
        explicit.group_id = home.id
        assert archival.archive(explicit, group_label="Errands").group_label == "Errands"

        orphan = done_task()
        orphan.group_id = "gone"
        assert archival.archive(orphan).group_label is None
        assert [(g.group_name, g.count) for g in AnalyticsService(archive).get_group_stats("user-1")] == [
            ("Errands", 1),
            ("Home", 1),
            ("Ungrouped", 1),
        ]

    def test_invalid_task_is_not_archived(self, archive):
        archival = ArchivalService(archive)
        task = done_task(title="  ")
        with pytest.raises(ValidationError):
            archival.archive(task)
        assert not archival.is_archived(task.id)

    def test_concurrent_archive_writes_one_record(self, archive):
        archival = ArchivalService(archive)
        task = done_task(title="Race")
        workers = 8
        barrier = threading.Barrier(workers)

        def attempt():
            barrier.wait()
            try:
                return archival.archive(task)
            except AlreadyArchived:
                return None

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda _: attempt(), range(workers)))

        assert len([r for r in results if r is not None]) == 1
        assert archive.count_by_owner("user-1") == 1

    def test_delete_archive_for_task(self, archive):
        archival = ArchivalService(archive)
        task = done_task()
        archival.archive(task)
        assert archival.delete_archive_for_task(task.id, "user-2") is False
        assert archival.delete_archive_for_task(task.id, "user-1") is True
        assert archival.delete_archive_for_task(task.id, "user-1") is False
        assert not archival.is_archived(task.id)

    def test_delete_record_and_purge(self, archive):
        archival = ArchivalService(archive)
        first = archival.archive(done_task())
        archival.archive(done_task())
        archival.archive(done_task(owner_id="user-2"))
        assert archival.delete_record("user-2", first.id) is False
        assert archival.delete_record("user-1", first.id) is True
        assert archival.purge_owner("user-1") == 1
        assert archive.count_by_owner("user-2") == 1


class TestAnalyticsService:
    def test_pagination(self, archive):
        archival = ArchivalService(archive)
        base = datetime(2025, 3, 1, tzinfo=timezone.utc)
        for i in range(25):
            archival.archive(done_task(title=f"Task {i:02d}", completed_at=base + timedelta(minutes=i)))
        analytics = AnalyticsService(archive)

        page = asyncio.run(analytics.get_history("user-1", HistoryOptions(page=3, limit=10)))
        assert len(page.history) == 5
        assert page.pagination.total == 25
        assert page.pagination.total_pages == 3
        assert page.pagination.has_next is False
        assert page.pagination.has_prev is True
        assert page.history[0].title == "Task 04"

        first = asyncio.run(analytics.get_history("user-1", HistoryOptions(page=1, limit=10)))
        assert first.pagination.has_next is True
        assert first.pagination.has_prev is False
        assert first.history[0].title == "Task 24"

    def test_empty_history(self, archive):
        page = asyncio.run(AnalyticsService(archive).get_history("nobody"))
        assert page.history == []
        assert page.pagination.total == 0
        assert page.pagination.total_pages == 0
        assert page.pagination.has_next is False

    def test_page_past_any_offset_is_empty(self, archive):
        archival = ArchivalService(archive)
        for i in range(3):
            archival.archive(done_task(title=f"Task {i}"))
        opts = HistoryOptions.from_params(page="100000000000000000000", limit="10")
        assert opts.page == MAX_PAGE

        page = asyncio.run(AnalyticsService(archive).get_history("user-1", opts))
        assert page.history == []
        assert page.pagination.total == 3
        assert page.pagination.has_next is False
        assert page.pagination.has_prev is True

    def test_history_options_are_lenient(self):
        opts = HistoryOptions.from_params(page="abc", limit="1000", sort_by="bogus")
        assert opts.page == 1
        assert opts.limit == 100
        assert HistoryOptions.from_params(page="-3", limit="0").page == 1
        assert HistoryOptions.from_params(limit="0").limit == 1

    def test_malformed_date_is_rejected(self):
        with pytest.raises(ValidationError) as exc:
            HistoryOptions.from_params(start_date="not-a-date")
        assert exc.value.code == "VALIDATION_ERROR"
        with pytest.raises(ValidationError):
            StatsOptions.from_params(end_date="31/01/2025")
        with pytest.raises(ValidationError):
            HistoryOptions.from_params(end_date="9999-12-31T23:30:00-05:00")

    def test_date_only_end_is_inclusive(self, archive):
        archival = ArchivalService(archive)
        archival.archive(done_task(title="Late", completed_at=datetime(2025, 1, 31, 23, 0, tzinfo=timezone.utc)))
        archival.archive(done_task(title="Next day", completed_at=datetime(2025, 2, 1, 0, 30, tzinfo=timezone.utc)))
        analytics = AnalyticsService(archive)
        opts = HistoryOptions.from_params(start_date="2025-01-31", end_date="2025-01-31")
        page = asyncio.run(analytics.get_history("user-1", opts))
        assert [r.title for r in page.history] == ["Late"]

    def test_filters_and_sort(self, archive):
        archival = ArchivalService(archive)
        archival.archive(done_task(title="b", priority="high"), group_label="Work")
        archival.archive(done_task(title="a", priority="low"), group_label="Work")
        archival.archive(done_task(title="c", priority="high"))
        analytics = AnalyticsService(archive)

        opts = HistoryOptions.from_params(group_name="Work", sort_by="title", sort_order="ASC")
        page = asyncio.run(analytics.get_history("user-1", opts))
        assert [r.title for r in page.history] == ["a", "b"]

        opts = HistoryOptions.from_params(priority="high", sort_by="title", sort_order="DESC")
        page = asyncio.run(analytics.get_history("user-1", opts))
        assert [r.title for r in page.history] == ["c", "b"]

    def test_daily_stats_match_count(self, archive):
        archival = ArchivalService(archive)
        base = datetime(2025, 5, 1, 12, tzinfo=timezone.utc)
        for i in range(9):
            archival.archive(
                done_task(priority=("high", "medium", "low")[i % 3], completed_at=base + timedelta(days=i // 2))
            )
        analytics = AnalyticsService(archive)
        daily = analytics.get_daily_stats("user-1")
        assert sum(d.total_completed for d in daily) == archive.count_by_owner("user-1")
        assert daily == sorted(daily, key=lambda d: d.date, reverse=True)
        for d in daily:
            assert d.by_priority.high + d.by_priority.medium + d.by_priority.low == d.total_completed

        assert len(analytics.get_daily_stats("user-1", StatsOptions(limit=2))) == 2
        assert len(analytics.get_daily_stats("user-1", StatsOptions(limit=0))) == 1

    def test_priority_stats_zero_filled(self, archive):
        stats = AnalyticsService(archive).get_priority_stats("user-1")
        assert stats.model_dump() == {"high": 0, "medium": 0, "low": 0}

    def test_group_stats_with_ungrouped(self, archive):
        archival = ArchivalService(archive)
        for label in ["Work", "Work", None, "Home", None, None]:
            archival.archive(done_task(), group_label=label)
        groups = AnalyticsService(archive).get_group_stats("user-1", StatsOptions(limit=2))
        assert [(g.group_name, g.count) for g in groups] == [("Ungrouped", 3), ("Work", 2)]

    def test_recent_and_summary(self, archive):
        archival = ArchivalService(archive)
        base = datetime(2025, 6, 1, tzinfo=timezone.utc)
        for i in range(12):
            archival.archive(
                done_task(title=f"T{i}", priority="high" if i < 4 else "low", completed_at=base + timedelta(hours=i)),
                group_label=f"G{i % 7}",
            )
        analytics = AnalyticsService(archive)

        recent = analytics.get_recent_completed("user-1", 3)
        assert [r.title for r in recent] == ["T11", "T10", "T9"]
        assert len(analytics.get_recent_completed("user-1")) == 10

        summary = analytics.get_summary("user-1")
        assert summary.total_completed == 12
        assert summary.by_priority.high == 4
        assert summary.by_priority.low == 8
        assert len(summary.top_groups) == 5
        assert summary.top_groups[0].count == 2

    def test_history_is_owner_scoped(self, archive):
        ArchivalService(archive).archive(done_task(owner_id="user-2"))
        analytics = AnalyticsService(archive)
        assert asyncio.run(analytics.get_history("user-1")).pagination.total == 0
        assert analytics.get_summary("user-1").total_completed == 0
        assert analytics.get_priority_stats("user-1") == analytics.get_priority_stats("nobody")
