import json
import os
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient

os.environ.setdefault("PERSISTENCE_BACKEND", "memory")

from src.notes_api.db import (  # noqa: E402
    SQLiteArchiveRepository,
    SQLiteDatabase,
    SQLiteGroupRepository,
    SQLiteTaskRepository,
)
from src.notes_api.errors import StoreError  # noqa: E402
from src.notes_api.generate_openapi import generate_openapi  # noqa: E402
from src.notes_api.main import create_app  # noqa: E402
from src.notes_api.models import HistoryRecord, Priority  # noqa: E402
from src.notes_api.repositories import InMemoryArchiveRepository, InMemoryTaskRepository  # noqa: E402
from src.notes_api.schemas import MAX_PAGE  # noqa: E402
from src.notes_api.settings import Settings  # noqa: E402

OWNER = {"X-Owner-Id": "user-1"}
OTHER = {"X-Owner-Id": "user-2"}
BASE = datetime(2025, 1, 10, 9, 0, tzinfo=timezone.utc)

SETTINGS = Settings(
    persistence_backend="memory",
    sqlite_db_path="./data/test.db",
    cors_allow_origins=["*"],
    enable_basic_auth=False,
    basic_auth_username=None,
    basic_auth_password=None,
    log_level="WARNING",
)


def make_app(archive=None):
    return create_app(
        settings=SETTINGS,
        task_repo=InMemoryTaskRepository(),
        archive_repo=archive or InMemoryArchiveRepository(),
    )


def seed(archive, count=1, owner_id="user-1", priority=Priority.MEDIUM, group_label=None, start=BASE, step=timedelta(hours=1)):
    records = []
    for i in range(count):
        completed = start + step * i
        records.append(
            archive.insert(
                HistoryRecord(
                    owner_id=owner_id,
                    source_task_id=f"{owner_id}-{priority.value}-{group_label}-{start.isoformat()}-{i}",
                    title=f"Task {i:02d}",
                    priority=priority,
                    completed_at=completed,
                    created_at=completed,
                    group_label=group_label,
                )
            )
        )
    return records


class FailingArchive(InMemoryArchiveRepository):
    def list_by_owner(self, owner_id, query=None):
        raise StoreError("archive.list_by_owner")


class TestHistoryListing:
    def test_pagination_envelope(self):
        archive = InMemoryArchiveRepository()
        seed(archive, 25)
        client = TestClient(make_app(archive))

        res = client.get("/api/v1/history/", params={"page": 3, "limit": 10}, headers=OWNER)
        assert res.status_code == 200
        data = res.json()
        assert len(data["history"]) == 5
        assert data["pagination"] == {
            "page": 3,
            "limit": 10,
            "total": 25,
            "total_pages": 3,
            "has_next": False,
            "has_prev": True,
        }

    def test_garbage_paging_falls_back(self):
        archive = InMemoryArchiveRepository()
        seed(archive, 3)
        client = TestClient(make_app(archive))
        res = client.get("/api/v1/history/", params={"page": "abc", "limit": "5000"}, headers=OWNER)
        assert res.status_code == 200
        assert res.json()["pagination"]["page"] == 1
        assert res.json()["pagination"]["limit"] == 100

    def test_malformed_date_is_422(self):
        client = TestClient(make_app())
        res = client.get("/api/v1/history/", params={"start_date": "last tuesday"}, headers=OWNER)
        assert res.status_code == 422
        body = res.json()
        assert body["error"] == "VALIDATION_ERROR"
        assert body["detail"]

    def test_date_out_of_range_after_utc_conversion_is_422(self):
        client = TestClient(make_app())
        res = client.get("/api/v1/history/", params={"end_date": "9999-12-31T23:30:00-05:00"}, headers=OWNER)
        assert res.status_code == 422
        assert res.json()["error"] == "VALIDATION_ERROR"

    def test_huge_page_is_capped_and_empty(self, tmp_path):
        database = SQLiteDatabase(str(tmp_path / "notes.db"))
        sqlite_app = create_app(
            settings=SETTINGS,
            task_repo=SQLiteTaskRepository(database),
            archive_repo=SQLiteArchiveRepository(database),
            group_repo=SQLiteGroupRepository(database),
        )
        memory_archive = InMemoryArchiveRepository()
        seed(memory_archive, 3)
        seed(sqlite_app.state.archive_repo, 3)

        for application in (make_app(memory_archive), sqlite_app):
            res = TestClient(application).get(
                "/api/v1/history/", params={"page": "100000000000000000000", "limit": 100}, headers=OWNER
            )
            assert res.status_code == 200
            data = res.json()
            assert data["history"] == []
            assert data["pagination"]["page"] == MAX_PAGE
            assert data["pagination"]["total"] == 3
            assert data["pagination"]["has_next"] is False

    def test_unknown_priority_is_422(self):
        client = TestClient(make_app())
        res = client.get("/api/v1/history/", params={"priority": "urgent"}, headers=OWNER)
        assert res.status_code == 422

    def test_filters_and_sort(self):
        archive = InMemoryArchiveRepository()
        seed(archive, 2, priority=Priority.HIGH, group_label="Work")
        seed(archive, 1, priority=Priority.LOW, group_label="Home", start=BASE + timedelta(days=3))
        client = TestClient(make_app(archive))

        res = client.get("/api/v1/history/", params={"group_name": "Work"}, headers=OWNER)
        assert res.json()["pagination"]["total"] == 2

        res = client.get("/api/v1/history/", params={"priority": "low"}, headers=OWNER)
        assert [r["group_label"] for r in res.json()["history"]] == ["Home"]

        res = client.get(
            "/api/v1/history/",
            params={"start_date": (BASE + timedelta(days=1)).date().isoformat()},
            headers=OWNER,
        )
        assert res.json()["pagination"]["total"] == 1

        res = client.get("/api/v1/history/", params={"sort_by": "priority", "sort_order": "ASC"}, headers=OWNER)
        assert [r["priority"] for r in res.json()["history"]] == ["low", "high", "high"]

        res = client.get("/api/v1/history/", params={"sort_by": "nonsense"}, headers=OWNER)
        assert res.status_code == 200
        assert res.json()["history"][0]["group_label"] == "Home"

    def test_history_is_owner_scoped(self):
        archive = InMemoryArchiveRepository()
        record = seed(archive, 1)[0]
        client = TestClient(make_app(archive))
        assert client.get("/api/v1/history/", headers=OTHER).json()["pagination"]["total"] == 0
        assert client.get(f"/api/v1/history/{record.id}", headers=OTHER).status_code == 404
        assert client.delete(f"/api/v1/history/{record.id}", headers=OTHER).status_code == 404
        assert client.get(f"/api/v1/history/{record.id}", headers=OWNER).json()["title"] == "Task 00"

    def test_missing_owner_header(self):
        client = TestClient(make_app())
        assert client.get("/api/v1/history/summary").status_code == 401

    def test_store_failure_is_500_without_driver_detail(self):
        client = TestClient(make_app(FailingArchive()))
        res = client.get("/api/v1/history/", headers=OWNER)
        assert res.status_code == 500
        assert res.json() == {"error": "STORE_ERROR", "message": "Storage operation failed: archive.list_by_owner"}


class TestHistoryStats:
    def test_daily(self):
        archive = InMemoryArchiveRepository()
        seed(archive, 3, priority=Priority.HIGH, step=timedelta(days=1))
        seed(archive, 2, priority=Priority.LOW, step=timedelta(days=1))
        client = TestClient(make_app(archive))

        res = client.get("/api/v1/history/daily", headers=OWNER)
        assert res.status_code == 200
        days = res.json()
        assert [d["date"] for d in days] == ["2025-01-12", "2025-01-11", "2025-01-10"]
        assert days[2] == {"date": "2025-01-10", "total_completed": 2, "by_priority": {"high": 1, "medium": 0, "low": 1}}
        assert sum(d["total_completed"] for d in days) == 5

        res = client.get("/api/v1/history/daily", params={"limit": 1}, headers=OWNER)
        assert len(res.json()) == 1

    def test_priority_zero_filled(self):
        client = TestClient(make_app())
        res = client.get("/api/v1/history/priority", headers=OWNER)
        assert res.json() == {"high": 0, "medium": 0, "low": 0}

    def test_groups(self):
        archive = InMemoryArchiveRepository()
        seed(archive, 3)
        seed(archive, 2, group_label="Work")
        seed(archive, 1, group_label="Home")
        client = TestClient(make_app(archive))

        res = client.get("/api/v1/history/groups", headers=OWNER)
        assert res.json() == [
            {"group_name": "Ungrouped", "count": 3},
            {"group_name": "Work", "count": 2},
            {"group_name": "Home", "count": 1},
        ]
        res = client.get("/api/v1/history/groups", params={"limit": 1}, headers=OWNER)
        assert res.json() == [{"group_name": "Ungrouped", "count": 3}]

    def test_recent_and_summary(self):
        archive = InMemoryArchiveRepository()
        seed(archive, 4, priority=Priority.HIGH, group_label="Work")
        client = TestClient(make_app(archive))

        recent = client.get("/api/v1/history/recent", params={"n": 2}, headers=OWNER).json()
        assert [r["title"] for r in recent] == ["Task 03", "Task 02"]

        summary = client.get("/api/v1/history/summary", headers=OWNER).json()
        assert summary == {
            "total_completed": 4,
            "by_priority": {"high": 4, "medium": 0, "low": 0},
            "top_groups": [{"group_name": "Work", "count": 4}],
        }


class TestHistoryDeletion:
    def test_delete_single_record(self):
        archive = InMemoryArchiveRepository()
        record = seed(archive, 2)[0]
        client = TestClient(make_app(archive))
        assert client.delete(f"/api/v1/history/{record.id}", headers=OWNER).status_code == 204
        assert client.get(f"/api/v1/history/{record.id}", headers=OWNER).status_code == 404
        assert client.get("/api/v1/history/", headers=OWNER).json()["pagination"]["total"] == 1

    def test_purge_owner(self):
        archive = InMemoryArchiveRepository()
        seed(archive, 3)
        seed(archive, 1, owner_id="user-2")
        client = TestClient(make_app(archive))
        res = client.delete("/api/v1/history/", headers=OWNER)
        assert res.json() == {"deleted": 3}
        assert client.get("/api/v1/history/", headers=OTHER).json()["pagination"]["total"] == 1


class TestOpenAPI:
    def test_generate_openapi(self, tmp_path):
        out = generate_openapi(str(tmp_path / "interfaces" / "openapi.json"), app=make_app())
        with open(out, encoding="utf-8") as f:
            schema = json.load(f)
        assert {"health", "tasks", "history", "groups"} <= {t["name"] for t in schema["tags"]}
        assert "/api/v1/history/" in schema["paths"]
        assert "/api/v1/groups/{group_id}" in schema["paths"]
        assert "/api/v1/tasks/{task_id}/status" in schema["paths"]
