from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .models import DEFAULT_GROUP_COLOR, Priority, TaskStatus, as_utc

# Shared type for incoming dates which can be a date, datetime, or ISO8601 string
DateInput = Union[date, datetime, str]

MAX_HISTORY_PAGE_SIZE = 100
MAX_DAILY_STATS_DAYS = 365
MAX_GROUP_STATS = 100
# Largest page whose offset still fits a signed 64-bit SQLite INTEGER
MAX_PAGE = (2**63 - 1) // MAX_HISTORY_PAGE_SIZE


def _to_utc(value: datetime) -> datetime:
    try:
        return as_utc(value)
    except OverflowError as e:
        raise ValueError("Date is out of range once converted to UTC.") from e


def parse_datetime(value: Optional[DateInput], end_of_day: bool = False) -> Optional[datetime]:
    """
    Normalize date input into an aware UTC datetime.
    - If value is a string, attempt to parse via datetime.fromisoformat; a bare date is
      promoted to 00:00 (or 23:59:59.999999 when end_of_day is set).
    - If value is a date (not datetime), promote it the same way.
    - If value is a datetime, convert it to UTC (naive values are taken as UTC).
    - Empty strings are treated as missing.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return _to_utc(value)

    if isinstance(value, date):
        return datetime.combine(value, time.max if end_of_day else time.min, tzinfo=timezone.utc)

    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        # A bare date has to be checked first; fromisoformat accepts it too on 3.11+
        try:
            d = date.fromisoformat(s)
        except ValueError:
            pass
        else:
            return datetime.combine(d, time.max if end_of_day else time.min, tzinfo=timezone.utc)
        try:
            parsed = datetime.fromisoformat(s.replace("Z", "+00:00"))
        except ValueError as e:
            raise ValueError(
                "Invalid date format. Use ISO8601 date or datetime string (e.g., '2025-01-31' or '2025-01-31T13:45:00')."
            ) from e
        return _to_utc(parsed)

    raise ValueError("Invalid type for date; expected date, datetime, or ISO8601 string.")


def _coerce_int(value: Any, default: int, lower: int, upper: Optional[int] = None) -> int:
    """Lenient integer coercion for transport primitives: garbage falls back to default."""
    if value is None or value == "":
        return default
    try:
        n = int(value)
    except (TypeError, ValueError):
        return default
    n = max(lower, n)
    if upper is not None:
        n = min(upper, n)
    return n


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def validation_error_from(exc: PydanticValidationError) -> ValidationError:
    """Flatten pydantic errors into our ValidationError, keeping every violation."""
    violations = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "__root__")
        violations.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return ValidationError(violations)


# PUBLIC_INTERFACE
class TaskCreate(BaseModel):
    """
    Schema for creating a new task.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "title": "Pay rent",
                "description": "Transfer before the 1st",
                "priority": "high",
                "status": "todo",
                "group_id": None,
            }
        }
    )

    title: str = Field(..., description="Short title for the task", min_length=1, max_length=255)
    description: str = Field(default="", description="Optional detailed description", max_length=2000)
    status: TaskStatus = Field(default=TaskStatus.TODO, description="Lifecycle status")
    priority: Priority = Field(default=Priority.MEDIUM, description="Priority level")
    group_id: Optional[str] = Field(default=None, description="Optional group identifier")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """
        Strip whitespace and enforce 1..255 length.
        """
        s = v.strip()
        if not (1 <= len(s) <= 255):
            raise ValueError("title length must be between 1 and 255 characters")
        return s

    @field_validator("description", mode="before")
    @classmethod
    def default_description(cls, v: Optional[str]) -> str:
        return "" if v is None else v

    @field_validator("group_id", mode="before")
    @classmethod
    def blank_group(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)


# PUBLIC_INTERFACE
class TaskUpdate(BaseModel):
    """
    Schema for updating an existing task.
    All fields are optional; only provided fields will be updated.
    """

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=2000)
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    group_id: Optional[str] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        s = v.strip()
        if not (1 <= len(s) <= 255):
            raise ValueError("title length must be between 1 and 255 characters")
        return s

    @field_validator("group_id", mode="before")
    @classmethod
    def blank_group(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)


class StatusUpdate(BaseModel):
    status: TaskStatus
    group_label: Optional[str] = Field(
        default=None, max_length=100, description="Group name recorded if the task gets archived"
    )


class PriorityUpdate(BaseModel):
    priority: Priority


class ArchiveRequest(BaseModel):
    group_label: Optional[str] = Field(default=None, max_length=100)


# PUBLIC_INTERFACE
class TaskOut(BaseModel):
    """
    Schema returned by the API for a task.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    group_id: Optional[str] = None
    title: str
    description: str
    status: TaskStatus
    priority: Priority
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None


class HistoryRecordIn(BaseModel):
    """
    Validation model applied by archive stores before a history record is written.
    """

    id: Optional[str] = None
    owner_id: str = Field(..., min_length=1)
    source_task_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="", max_length=2000)
    group_label: Optional[str] = Field(default=None, max_length=100)
    priority: Priority
    completed_at: datetime
    created_at: datetime

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title cannot be empty")
        return v

    @field_validator("description", mode="before")
    @classmethod
    def default_description(cls, v: Optional[str]) -> str:
        return "" if v is None else v

    @field_validator("completed_at", "created_at")
    @classmethod
    def to_utc(cls, v: datetime) -> datetime:
        return _to_utc(v)


# PUBLIC_INTERFACE
class HistoryRecordOut(BaseModel):
    """
    Schema returned by the API for an archived task.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    source_task_id: str
    title: str
    description: str
    group_label: Optional[str] = None
    priority: Priority
    completed_at: datetime
    created_at: datetime


# PUBLIC_INTERFACE
class HistoryOptions(BaseModel):
    """
    History listing options as they arrive from the transport layer.

    page/limit are coerced leniently (page in 1..MAX_PAGE, limit in 1..100, garbage falls back
    to the defaults); dates must parse. A date-only end_date covers the whole day.
    sort_by/sort_order stay raw: the archive query falls back to completed_at DESC
    for anything it does not recognize.
    """

    page: int = 1
    limit: int = 10
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    priority: Optional[Priority] = None
    group_name: Optional[str] = None
    sort_by: str = "completed_at"
    sort_order: str = "DESC"

    @field_validator("page", mode="before")
    @classmethod
    def coerce_page(cls, v: Any) -> int:
        return _coerce_int(v, 1, 1, MAX_PAGE)

    @field_validator("limit", mode="before")
    @classmethod
    def coerce_limit(cls, v: Any) -> int:
        return _coerce_int(v, 10, 1, MAX_HISTORY_PAGE_SIZE)

    @field_validator("start_date", mode="before")
    @classmethod
    def parse_start(cls, v: Optional[DateInput]) -> Optional[datetime]:
        return parse_datetime(v)

    @field_validator("end_date", mode="before")
    @classmethod
    def parse_end(cls, v: Optional[DateInput]) -> Optional[datetime]:
        return parse_datetime(v, end_of_day=True)

    @field_validator("priority", "group_name", mode="before")
    @classmethod
    def blank_filters(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("sort_by", "sort_order", mode="before")
    @classmethod
    def default_sort(cls, v: Any) -> Any:
        return "" if v is None else v

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @classmethod
    def from_params(cls, **params: Any) -> "HistoryOptions":
        try:
            return cls.model_validate({k: v for k, v in params.items() if v is not None})
        except PydanticValidationError as exc:
            raise validation_error_from(exc) from exc


# PUBLIC_INTERFACE
class StatsOptions(BaseModel):
    """
    Date window and limit for the statistics endpoints. The limit default and cap
    depend on the statistic, so they are applied by the analytics service.
    """

    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: Optional[int] = None

    @field_validator("start_date", mode="before")
    @classmethod
    def parse_start(cls, v: Optional[DateInput]) -> Optional[datetime]:
        return parse_datetime(v)

    @field_validator("end_date", mode="before")
    @classmethod
    def parse_end(cls, v: Optional[DateInput]) -> Optional[datetime]:
        return parse_datetime(v, end_of_day=True)

    @field_validator("limit", mode="before")
    @classmethod
    def coerce_limit(cls, v: Any) -> Optional[int]:
        if v is None or v == "":
            return None
        try:
            return int(v)
        except (TypeError, ValueError):
            return None

    @classmethod
    def from_params(cls, **params: Any) -> "StatsOptions":
        try:
            return cls.model_validate({k: v for k, v in params.items() if v is not None})
        except PydanticValidationError as exc:
            raise validation_error_from(exc) from exc


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class HistoryPage(BaseModel):
    history: List[HistoryRecordOut]
    pagination: Pagination


class TaskPage(BaseModel):
    items: List[TaskOut]
    pagination: Pagination


class PriorityBreakdown(BaseModel):
    high: int = 0
    medium: int = 0
    low: int = 0


class DailyStat(BaseModel):
    date: date
    total_completed: int
    by_priority: PriorityBreakdown


class GroupStat(BaseModel):
    group_name: str
    count: int


class HistorySummary(BaseModel):
    total_completed: int
    by_priority: PriorityBreakdown
    top_groups: List[GroupStat]


class StatusCounts(BaseModel):
    todo: int = 0
    in_progress: int = 0
    done: int = 0
    total: int = 0


class PriorityCounts(BaseModel):
    low: int = 0
    medium: int = 0
    high: int = 0
    total: int = 0


class TaskCounts(BaseModel):
    by_status: StatusCounts
    by_priority: PriorityCounts


class DeletedCount(BaseModel):
    deleted: int = Field(..., description="Number of records removed")


def priority_breakdown(counts: Dict[str, int]) -> PriorityBreakdown:
    return PriorityBreakdown(
        high=counts.get(Priority.HIGH.value, 0),
        medium=counts.get(Priority.MEDIUM.value, 0),
        low=counts.get(Priority.LOW.value, 0),
    )


class StatusChangeOut(BaseModel):
    task: TaskOut
    archived: Optional[HistoryRecordOut] = Field(
        default=None, description="History record written by this change, if the task was archived"
    )


class ArchivedFlag(BaseModel):
    task_id: str
    archived: bool


def _strip_name(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    s = v.strip()
    if not (1 <= len(s) <= 100):
        raise ValueError("name length must be between 1 and 100 characters")
    return s


# PUBLIC_INTERFACE
class GroupCreate(BaseModel):
    """
    Schema for creating a group. Names are trimmed and unique per owner.
    """

    model_config = ConfigDict(
        json_schema_extra={"example": {"name": "Home", "description": "Chores and bills", "color": "#3498db"}}
    )

    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    color: str = Field(default=DEFAULT_GROUP_COLOR, pattern=r"^#[0-9A-Fa-f]{6}$", description="Hex color, e.g. #3498db")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return _strip_name(v)  # type: ignore[return-value]

    @field_validator("description", mode="before")
    @classmethod
    def default_description(cls, v: Optional[str]) -> str:
        return "" if v is None else v


# PUBLIC_INTERFACE
class GroupUpdate(BaseModel):
    """
    Schema for updating a group. Only provided fields change; renaming never
    touches history records already written under the old name.
    """

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        return _strip_name(v)


class GroupOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    name: str
    description: str
    color: str
    created_at: datetime
    updated_at: datetime
    task_count: Optional[int] = Field(default=None, description="Open (not done) tasks, when requested")


class GroupPage(BaseModel):
    items: List[GroupOut]
    pagination: Pagination


class GroupTaskCount(BaseModel):
    id: str
    name: str
    color: str
    task_count: int


class GroupStats(BaseModel):
    total_groups: int
    total_tasks: int
    average_tasks_per_group: float
    groups: List[GroupTaskCount]
