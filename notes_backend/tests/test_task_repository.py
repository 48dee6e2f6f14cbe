import pytest

from src.notes_api.db import SQLiteDatabase, SQLiteTaskRepository
from src.notes_api.errors import DuplicateId
from src.notes_api.models import Priority, Task, TaskStatus
from src.notes_api.repositories import InMemoryTaskRepository, SortDirection, TaskQuery, TaskSortField
from src.notes_api.schemas import TaskCreate, TaskUpdate


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, tmp_path):
    if request.param == "sqlite":
        return SQLiteTaskRepository(SQLiteDatabase(str(tmp_path / "notes.db")))
    return InMemoryTaskRepository()


def create(repo, owner_id="user-1", **fields):
    fields.setdefault("title", "Task")
    return repo.create(owner_id, TaskCreate(**fields))


class TestTaskCRUD:
    def test_create_and_get(self, repo):
        task = create(repo, title="  Buy milk  ", description="2 liters", priority="low")
        assert task.title == "Buy milk"
        assert task.owner_id == "user-1"
        assert task.status is TaskStatus.TODO
        fetched = repo.get("user-1", task.id)
        assert fetched.title == "Buy milk"
        assert fetched.priority is Priority.LOW
        assert fetched.created_at == task.created_at

    def test_get_is_owner_scoped(self, repo):
        task = create(repo)
        assert repo.get("user-2", task.id) is None
        assert repo.update("user-2", task.id, TaskUpdate(title="Mine now")) is None
        assert repo.delete("user-2", task.id) is False
        assert repo.get("user-1", task.id).title == "Task"

    def test_update_only_touches_sent_fields(self, repo):
        task = create(repo, title="Partial", description="X", group_id="g1")
        updated = repo.update("user-1", task.id, TaskUpdate(title="Partial Updated"))
        assert updated.title == "Partial Updated"
        assert updated.description == "X"
        assert updated.group_id == "g1"
        assert updated.updated_at >= task.updated_at

        ungrouped = repo.update("user-1", task.id, TaskUpdate(group_id=None))
        assert ungrouped.group_id is None

    def test_update_status_goes_through_state_machine(self, repo):
        task = create(repo)
        done = repo.update("user-1", task.id, TaskUpdate(status="done"))
        assert done.completed_at is not None
        same = repo.update("user-1", task.id, TaskUpdate(status="done"))
        assert same.completed_at == done.completed_at
        reopened = repo.update("user-1", task.id, TaskUpdate(status="todo"))
        assert reopened.completed_at is None

    def test_save_persists_mutations(self, repo):
        task = create(repo)
        task.set_status(TaskStatus.IN_PROGRESS)
        task.set_priority(Priority.HIGH)
        repo.save(task)
        stored = repo.get("user-1", task.id)
        assert stored.status is TaskStatus.IN_PROGRESS
        assert stored.priority is Priority.HIGH

    def test_save_cannot_take_over_foreign_id(self, repo):
        task = create(repo)
        intruder = Task.new(owner_id="user-2", title="Intruder", task_id=task.id)
        with pytest.raises(DuplicateId):
            repo.save(intruder)
        assert repo.get("user-1", task.id).title == "Task"

    def test_returned_tasks_are_copies(self, repo):
        task = create(repo)
        fetched = repo.get("user-1", task.id)
        fetched.title = "Mutated"
        assert repo.get("user-1", task.id).title == "Task"

    def test_delete(self, repo):
        task = create(repo)
        assert repo.delete("user-1", task.id) is True
        assert repo.delete("user-1", task.id) is False
        assert repo.get("user-1", task.id) is None

    def test_delete_by_owner(self, repo):
        create(repo)
        create(repo)
        create(repo, owner_id="user-2")
        assert repo.delete_by_owner("user-1") == 2
        assert repo.list("user-1")[1] == 0
        assert repo.list("user-2")[1] == 1


class TestTaskListing:
    def test_filters_and_search(self, repo):
        create(repo, title="Pay rent", priority="high", group_id="home")
        create(repo, title="Write report", description="quarterly RENT summary", status="in_progress")
        create(repo, title="Walk dog", priority="low", status="done")

        def titles(query):
            items, _ = repo.list("user-1", query)
            return sorted(t.title for t in items)

        assert titles(TaskQuery(status=TaskStatus.DONE)) == ["Walk dog"]
        assert titles(TaskQuery(priority=Priority.HIGH)) == ["Pay rent"]
        assert titles(TaskQuery(group_id="home")) == ["Pay rent"]
        assert titles(TaskQuery(ungrouped=True)) == ["Walk dog", "Write report"]
        assert titles(TaskQuery(search="rent")) == ["Pay rent", "Write report"]

    def test_pagination_and_total(self, repo):
        for i in range(7):
            create(repo, title=f"Task {i}")
        items, total = repo.list("user-1", TaskQuery(limit=3, offset=6))
        assert total == 7
        assert len(items) == 1

    def test_sort_by_priority_rank(self, repo):
        create(repo, title="m", priority="medium")
        create(repo, title="h", priority="high")
        create(repo, title="l", priority="low")
        items, _ = repo.list("user-1", TaskQuery(sort=TaskSortField.PRIORITY, direction=SortDirection.DESC))
        assert [t.title for t in items] == ["h", "m", "l"]

    def test_parse_sort(self):
        assert TaskQuery.parse_sort("-title") == (TaskSortField.TITLE, SortDirection.DESC)
        assert TaskQuery.parse_sort("status") == (TaskSortField.STATUS, SortDirection.ASC)
        assert TaskQuery.parse_sort("bogus") == (TaskSortField.CREATED_AT, SortDirection.DESC)
        assert TaskQuery.parse_sort(None) == (TaskSortField.CREATED_AT, SortDirection.DESC)


class TestTaskCounts:
    def test_counts_are_zero_filled(self, repo):
        assert repo.status_counts("user-1") == {"todo": 0, "in_progress": 0, "done": 0, "total": 0}
        create(repo, status="done", priority="high")
        create(repo, status="done")
        create(repo, owner_id="user-2")
        assert repo.status_counts("user-1") == {"todo": 0, "in_progress": 0, "done": 2, "total": 2}
        assert repo.priority_counts("user-1") == {"low": 0, "medium": 1, "high": 1, "total": 2}
