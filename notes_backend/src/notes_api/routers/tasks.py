from __future__ import annotations

from dataclasses import replace
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ..auth import get_owner_id
from ..dependencies import get_archival_service, get_task_repo
from ..errors import NotFound
from ..models import Priority, Task, TaskStatus
from ..repositories import SortDirection, TaskQuery, TaskRepository, TaskSortField
from ..schemas import (
    MAX_PAGE,
    ArchivedFlag,
    ArchiveRequest,
    DeletedCount,
    HistoryRecordOut,
    Pagination,
    PriorityCounts,
    PriorityUpdate,
    StatusChangeOut,
    StatusCounts,
    StatusUpdate,
    TaskCounts,
    TaskCreate,
    TaskOut,
    TaskPage,
    TaskUpdate,
)
from ..services import ArchivalService
from ..utils import clamp, pagination_envelope

router = APIRouter(
    prefix="/api/v1/tasks",
    tags=["tasks"],
)

DEFAULT_RECENT_TASKS = 5
MAX_RECENT_TASKS = 20


def _load(repo: TaskRepository, owner_id: str, task_id: str) -> Task:
    task = repo.get(owner_id, task_id)
    if task is None:
        raise NotFound("Task")
    return task


def _status_change(
    archival: ArchivalService, before: Task, after: Task, group_label: Optional[str] = None
) -> StatusChangeOut:
    archived = None
    if after.is_done() and not before.is_done():
        archived = archival.archive_if_completed(after, group_label)
    return StatusChangeOut(
        task=TaskOut.model_validate(after),
        archived=HistoryRecordOut.model_validate(archived) if archived else None,
    )


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=TaskOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Task",
    description="Create a new task. A task created directly as done is archived right away.",
    responses={
        201: {"description": "Task created successfully"},
        422: {"description": "Validation error"},
    },
)
def create_task(
    payload: TaskCreate,
    owner_id: str = Depends(get_owner_id),
    repo: TaskRepository = Depends(get_task_repo),
    archival: ArchivalService = Depends(get_archival_service),
) -> TaskOut:
    """
    Create a new task for the caller.
    """
    created = repo.create(owner_id, payload)
    archival.archive_if_completed(created)
    return TaskOut.model_validate(created)


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=TaskPage,
    summary="List Tasks",
    description=(
        "List the caller's tasks with optional filters and pagination.\n\n"
        "Query parameters:\n"
        "- page / limit: 1-based page and page size (1..100)\n"
        "- status, priority: exact filters\n"
        "- group_id: tasks in a group; ungrouped=true for tasks without one\n"
        "- q: search query for title/description (substring match)\n"
        "- sort: field name, '-' prefix for descending (created_at, updated_at, title, priority, status)"
    ),
)
def list_tasks(
    page: int = Query(1, ge=1, le=MAX_PAGE, description="1-based page number"),
    limit: int = Query(10, ge=1, le=100, description="Page size"),
    status_filter: Optional[TaskStatus] = Query(None, alias="status", description="Filter by status"),
    priority: Optional[Priority] = Query(None, description="Filter by priority"),
    group_id: Optional[str] = Query(None, description="Filter by group"),
    ungrouped: bool = Query(False, description="Only tasks without a group"),
    q: Optional[str] = Query(None, description="Search text for title/description"),
    sort: Optional[str] = Query("-created_at", description="Sort field, '-' prefix for descending"),
    owner_id: str = Depends(get_owner_id),
    repo: TaskRepository = Depends(get_task_repo),
) -> TaskPage:
    """
    List tasks with pagination and filters.
    """
    sort_field, direction = TaskQuery.parse_sort(sort)
    query = TaskQuery(
        limit=limit,
        offset=(page - 1) * limit,
        status=status_filter,
        priority=priority,
        group_id=group_id or None,
        ungrouped=ungrouped,
        search=q.strip() if q and q.strip() else None,
        sort=sort_field,
        direction=direction,
    )
    items, total = repo.list(owner_id, query)
    return TaskPage(
        items=[TaskOut.model_validate(t) for t in items],
        pagination=Pagination(**pagination_envelope(page=page, limit=limit, total=total)),
    )


# PUBLIC_INTERFACE
@router.get("/counts", response_model=TaskCounts, summary="Task Counts")
def task_counts(
    owner_id: str = Depends(get_owner_id),
    repo: TaskRepository = Depends(get_task_repo),
) -> TaskCounts:
    """
    Count the caller's tasks by status and by priority.
    """
    return TaskCounts(
        by_status=StatusCounts(**repo.status_counts(owner_id)),
        by_priority=PriorityCounts(**repo.priority_counts(owner_id)),
    )


# PUBLIC_INTERFACE
@router.get(
    "/recent",
    response_model=List[TaskOut],
    summary="Recent Tasks",
    description="The caller's most recently updated tasks, newest first. limit is clamped to 1..20.",
)
def recent_tasks(
    limit: int = Query(DEFAULT_RECENT_TASKS, description="Number of tasks (1..20)"),
    owner_id: str = Depends(get_owner_id),
    repo: TaskRepository = Depends(get_task_repo),
) -> List[TaskOut]:
    query = TaskQuery(
        limit=clamp(limit, 1, MAX_RECENT_TASKS),
        sort=TaskSortField.UPDATED_AT,
        direction=SortDirection.DESC,
    )
    items, _ = repo.list(owner_id, query)
    return [TaskOut.model_validate(t) for t in items]


# PUBLIC_INTERFACE
@router.delete("/", response_model=DeletedCount, summary="Delete All Tasks")
def delete_all_tasks(
    owner_id: str = Depends(get_owner_id),
    repo: TaskRepository = Depends(get_task_repo),
) -> DeletedCount:
    """
    Remove every task of the caller (account removal). History is left untouched.
    """
    return DeletedCount(deleted=repo.delete_by_owner(owner_id))


# PUBLIC_INTERFACE
@router.get(
    "/{task_id}",
    response_model=TaskOut,
    summary="Get Task",
    responses={404: {"description": "Task not found"}},
)
def get_task(
    task_id: str,
    owner_id: str = Depends(get_owner_id),
    repo: TaskRepository = Depends(get_task_repo),
) -> TaskOut:
    """
    Retrieve a single task by its ID.
    """
    return TaskOut.model_validate(_load(repo, owner_id, task_id))


# PUBLIC_INTERFACE
@router.patch(
    "/{task_id}",
    response_model=StatusChangeOut,
    summary="Update Task",
    description="Partially update fields of a task. Moving it to done archives it.",
    responses={404: {"description": "Task not found"}},
)
def patch_task(
    task_id: str,
    payload: TaskUpdate,
    owner_id: str = Depends(get_owner_id),
    repo: TaskRepository = Depends(get_task_repo),
    archival: ArchivalService = Depends(get_archival_service),
) -> StatusChangeOut:
    """
    Partial update of a task.
    """
    before = _load(repo, owner_id, task_id)
    updated = repo.update(owner_id, task_id, payload)
    if updated is None:
        raise NotFound("Task")
    return _status_change(archival, before, updated)


# PUBLIC_INTERFACE
@router.put(
    "/{task_id}/status",
    response_model=StatusChangeOut,
    summary="Change Task Status",
    description=(
        "Move a task to any status (todo, in_progress, done; every transition is allowed). "
        "Entering done stamps completed_at and archives the task once; the archived copy "
        "records group_label, or the name of the task's group when it is omitted."
    ),
    responses={404: {"description": "Task not found"}},
)
def change_status(
    task_id: str,
    payload: StatusUpdate,
    owner_id: str = Depends(get_owner_id),
    repo: TaskRepository = Depends(get_task_repo),
    archival: ArchivalService = Depends(get_archival_service),
) -> StatusChangeOut:
    """
    Run the status transition and persist it.
    """
    task = _load(repo, owner_id, task_id)
    before = replace(task)
    task.set_status(payload.status)
    return _status_change(archival, before, repo.save(task), payload.group_label)


# PUBLIC_INTERFACE
@router.put(
    "/{task_id}/priority",
    response_model=TaskOut,
    summary="Change Task Priority",
    responses={404: {"description": "Task not found"}},
)
def change_priority(
    task_id: str,
    payload: PriorityUpdate,
    owner_id: str = Depends(get_owner_id),
    repo: TaskRepository = Depends(get_task_repo),
) -> TaskOut:
    task = _load(repo, owner_id, task_id)
    task.set_priority(payload.priority)
    return TaskOut.model_validate(repo.save(task))


# PUBLIC_INTERFACE
@router.post(
    "/{task_id}/archive",
    response_model=HistoryRecordOut,
    status_code=status.HTTP_201_CREATED,
    summary="Archive Task",
    description="Archive a task explicitly. A task can be archived only once.",
    responses={
        404: {"description": "Task not found"},
        409: {"description": "Task already archived"},
    },
)
def archive_task(
    task_id: str,
    payload: Optional[ArchiveRequest] = None,
    owner_id: str = Depends(get_owner_id),
    repo: TaskRepository = Depends(get_task_repo),
    archival: ArchivalService = Depends(get_archival_service),
) -> HistoryRecordOut:
    task = _load(repo, owner_id, task_id)
    record = archival.archive(task, payload.group_label if payload else None)
    return HistoryRecordOut.model_validate(record)


# PUBLIC_INTERFACE
@router.get("/{task_id}/archived", response_model=ArchivedFlag, summary="Is Task Archived")
def is_task_archived(
    task_id: str,
    owner_id: str = Depends(get_owner_id),
    repo: TaskRepository = Depends(get_task_repo),
    archival: ArchivalService = Depends(get_archival_service),
) -> ArchivedFlag:
    """
    Tell whether the task already has a history record (e.g. to hide an archive action).
    """
    _load(repo, owner_id, task_id)
    return ArchivedFlag(task_id=task_id, archived=archival.is_archived(task_id))


# PUBLIC_INTERFACE
@router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Task",
    description=(
        "Delete a task by ID. Its history record is kept unless purge=true, which also "
        "removes the archival trace."
    ),
    responses={
        204: {"description": "Task deleted"},
        404: {"description": "Task not found"},
    },
)
def delete_task(
    task_id: str,
    purge: bool = Query(False, description="Also delete the task's history record"),
    owner_id: str = Depends(get_owner_id),
    repo: TaskRepository = Depends(get_task_repo),
    archival: ArchivalService = Depends(get_archival_service),
) -> None:
    """
    Delete a task. Returns 204 on success, 404 if not found.
    """
    if not repo.delete(owner_id, task_id):
        raise NotFound("Task")
    if purge:
        archival.delete_archive_for_task(task_id, owner_id)
    return None
