from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from ..auth import get_owner_id
from ..dependencies import get_group_service
from ..errors import NotFound
from ..repositories import GroupQuery
from ..schemas import MAX_PAGE, GroupCreate, GroupOut, GroupPage, GroupStats, GroupUpdate, Pagination
from ..services import GroupService
from ..utils import pagination_envelope

router = APIRouter(
    prefix="/api/v1/groups",
    tags=["groups"],
)


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=GroupPage,
    summary="List Groups",
    description=(
        "List the caller's groups.\n\n"
        "Query parameters:\n"
        "- page / limit: 1-based page and page size (1..100)\n"
        "- q: search text for name/description (substring match)\n"
        "- sort: created_at, updated_at or name, '-' prefix for descending (default -created_at)\n"
        "- include_counts: add the number of open tasks in each group"
    ),
)
def list_groups(
    page: int = Query(1, ge=1, le=MAX_PAGE, description="1-based page number"),
    limit: int = Query(50, ge=1, le=100, description="Page size"),
    q: Optional[str] = Query(None, description="Search text for name/description"),
    sort: Optional[str] = Query("-created_at", description="Sort field, '-' prefix for descending"),
    include_counts: bool = Query(False, description="Include open task counts"),
    owner_id: str = Depends(get_owner_id),
    groups: GroupService = Depends(get_group_service),
) -> GroupPage:
    sort_field, direction = GroupQuery.parse_sort(sort)
    query = GroupQuery(
        limit=limit,
        offset=(page - 1) * limit,
        search=q.strip() if q and q.strip() else None,
        sort=sort_field,
        direction=direction,
    )
    items, total = groups.list_groups(owner_id, query, include_counts=include_counts)
    return GroupPage(
        items=items,
        pagination=Pagination(**pagination_envelope(page=page, limit=limit, total=total)),
    )


# PUBLIC_INTERFACE
@router.get("/stats", response_model=GroupStats, summary="Group Statistics")
def group_stats(
    owner_id: str = Depends(get_owner_id),
    groups: GroupService = Depends(get_group_service),
) -> GroupStats:
    """
    Number of groups, open tasks per group and the average per group.
    """
    return groups.get_stats(owner_id)


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=GroupOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Group",
    responses={409: {"description": "Group name already exists"}},
)
def create_group(
    payload: GroupCreate,
    owner_id: str = Depends(get_owner_id),
    groups: GroupService = Depends(get_group_service),
) -> GroupOut:
    return GroupOut.model_validate(groups.create(owner_id, payload))


# PUBLIC_INTERFACE
@router.get(
    "/{group_id}",
    response_model=GroupOut,
    summary="Get Group",
    responses={404: {"description": "Group not found"}},
)
def get_group(
    group_id: str,
    owner_id: str = Depends(get_owner_id),
    groups: GroupService = Depends(get_group_service),
) -> GroupOut:
    group = groups.get(owner_id, group_id)
    if group is None:
        raise NotFound("Group")
    return GroupOut.model_validate(group)


# PUBLIC_INTERFACE
@router.put(
    "/{group_id}",
    response_model=GroupOut,
    summary="Update Group",
    description="Rename or recolor a group. History records keep the name they were archived with.",
    responses={
        404: {"description": "Group not found"},
        409: {"description": "Group name already exists"},
    },
)
def update_group(
    group_id: str,
    payload: GroupUpdate,
    owner_id: str = Depends(get_owner_id),
    groups: GroupService = Depends(get_group_service),
) -> GroupOut:
    updated = groups.update(owner_id, group_id, payload)
    if updated is None:
        raise NotFound("Group")
    return GroupOut.model_validate(updated)


# PUBLIC_INTERFACE
@router.delete(
    "/{group_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Group",
    description="Delete a group. Its tasks are kept and moved to no group.",
    responses={
        204: {"description": "Group deleted"},
        404: {"description": "Group not found"},
    },
)
def delete_group(
    group_id: str,
    owner_id: str = Depends(get_owner_id),
    groups: GroupService = Depends(get_group_service),
) -> None:
    if not groups.delete(owner_id, group_id):
        raise NotFound("Group")
    return None
