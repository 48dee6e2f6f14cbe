from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ..auth import get_owner_id
from ..dependencies import get_analytics_service, get_archival_service, get_archive_repo
from ..errors import NotFound
from ..repositories import ArchiveRepository
from ..schemas import (
    DailyStat,
    DeletedCount,
    GroupStat,
    HistoryOptions,
    HistoryPage,
    HistoryRecordOut,
    HistorySummary,
    PriorityBreakdown,
    StatsOptions,
)
from ..services import DEFAULT_RECENT, AnalyticsService, ArchivalService

router = APIRouter(
    prefix="/api/v1/history",
    tags=["history"],
)

# Query values are taken as raw strings and validated by the core options models, so
# paging garbage falls back to defaults while malformed dates are rejected.
_DATE_HELP = "ISO8601 date or datetime; a date-only end_date covers the whole day"


def _stats_options(start_date: Optional[str], end_date: Optional[str], limit: Optional[str] = None) -> StatsOptions:
    return StatsOptions.from_params(start_date=start_date, end_date=end_date, limit=limit)


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=HistoryPage,
    summary="List History",
    description=(
        "Paginated list of the caller's archived tasks.\n\n"
        "Query parameters:\n"
        "- page / limit: 1-based page and page size (limit is capped at 100)\n"
        "- start_date / end_date: inclusive completion window\n"
        "- priority: low, medium or high\n"
        "- group_name: exact group label\n"
        "- sort_by: completed_at, created_at, title or priority (default completed_at)\n"
        "- sort_order: ASC or DESC (default DESC)"
    ),
    responses={422: {"description": "Malformed date or priority"}},
)
async def list_history(
    page: Optional[str] = Query(None, description="1-based page number"),
    limit: Optional[str] = Query(None, description="Page size (1..100)"),
    start_date: Optional[str] = Query(None, description=_DATE_HELP),
    end_date: Optional[str] = Query(None, description=_DATE_HELP),
    priority: Optional[str] = Query(None, description="Filter by priority"),
    group_name: Optional[str] = Query(None, description="Filter by group label"),
    sort_by: Optional[str] = Query(None, description="Sort field"),
    sort_order: Optional[str] = Query(None, description="ASC or DESC"),
    owner_id: str = Depends(get_owner_id),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> HistoryPage:
    """
    Return one page of history with its pagination block.
    """
    options = HistoryOptions.from_params(
        page=page,
        limit=limit,
        start_date=start_date,
        end_date=end_date,
        priority=priority,
        group_name=group_name,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return await analytics.get_history(owner_id, options)


# PUBLIC_INTERFACE
@router.get(
    "/daily",
    response_model=List[DailyStat],
    summary="Daily Completion Stats",
    description="Completions per UTC day, newest day first. limit is the number of days (default 30, max 365).",
)
def daily_stats(
    start_date: Optional[str] = Query(None, description=_DATE_HELP),
    end_date: Optional[str] = Query(None, description=_DATE_HELP),
    limit: Optional[str] = Query(None, description="Number of days"),
    owner_id: str = Depends(get_owner_id),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> List[DailyStat]:
    return analytics.get_daily_stats(owner_id, _stats_options(start_date, end_date, limit))


# PUBLIC_INTERFACE
@router.get(
    "/priority",
    response_model=PriorityBreakdown,
    summary="Priority Stats",
    description="Completions per priority. Every priority is present, zero when unused.",
)
def priority_stats(
    start_date: Optional[str] = Query(None, description=_DATE_HELP),
    end_date: Optional[str] = Query(None, description=_DATE_HELP),
    owner_id: str = Depends(get_owner_id),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> PriorityBreakdown:
    return analytics.get_priority_stats(owner_id, _stats_options(start_date, end_date))


# PUBLIC_INTERFACE
@router.get(
    "/groups",
    response_model=List[GroupStat],
    summary="Group Stats",
    description=(
        "Completions per group label, most frequent first. Records without a label are "
        "reported as 'Ungrouped'. limit defaults to 10, max 100."
    ),
)
def group_stats(
    start_date: Optional[str] = Query(None, description=_DATE_HELP),
    end_date: Optional[str] = Query(None, description=_DATE_HELP),
    limit: Optional[str] = Query(None, description="Number of groups"),
    owner_id: str = Depends(get_owner_id),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> List[GroupStat]:
    return analytics.get_group_stats(owner_id, _stats_options(start_date, end_date, limit))


# PUBLIC_INTERFACE
@router.get("/recent", response_model=List[HistoryRecordOut], summary="Recently Completed")
def recent_completed(
    n: int = Query(DEFAULT_RECENT, ge=1, le=100, description="Number of records"),
    owner_id: str = Depends(get_owner_id),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> List[HistoryRecordOut]:
    """
    Most recently completed records, newest first.
    """
    return analytics.get_recent_completed(owner_id, n)


# PUBLIC_INTERFACE
@router.get("/summary", response_model=HistorySummary, summary="History Summary")
def history_summary(
    start_date: Optional[str] = Query(None, description=_DATE_HELP),
    end_date: Optional[str] = Query(None, description=_DATE_HELP),
    owner_id: str = Depends(get_owner_id),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> HistorySummary:
    """
    Total completions, the priority breakdown and the top five groups.
    """
    return analytics.get_summary(owner_id, _stats_options(start_date, end_date))


# PUBLIC_INTERFACE
@router.delete("/", response_model=DeletedCount, summary="Delete All History")
def delete_history(
    owner_id: str = Depends(get_owner_id),
    archival: ArchivalService = Depends(get_archival_service),
) -> DeletedCount:
    """
    Remove the caller's whole history (account removal).
    """
    return DeletedCount(deleted=archival.purge_owner(owner_id))


# PUBLIC_INTERFACE
@router.get(
    "/{record_id}",
    response_model=HistoryRecordOut,
    summary="Get History Record",
    responses={404: {"description": "History record not found"}},
)
def get_record(
    record_id: str,
    owner_id: str = Depends(get_owner_id),
    archive: ArchiveRepository = Depends(get_archive_repo),
) -> HistoryRecordOut:
    record = archive.get_by_id(owner_id, record_id)
    if record is None:
        raise NotFound("History record")
    return HistoryRecordOut.model_validate(record)


# PUBLIC_INTERFACE
@router.delete(
    "/{record_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete History Record",
    responses={
        204: {"description": "Record deleted"},
        404: {"description": "History record not found"},
    },
)
def delete_record(
    record_id: str,
    owner_id: str = Depends(get_owner_id),
    archival: ArchivalService = Depends(get_archival_service),
) -> None:
    """
    Delete a single history record as a manual correction.
    """
    if not archival.delete_record(owner_id, record_id):
        raise NotFound("History record")
    return None
