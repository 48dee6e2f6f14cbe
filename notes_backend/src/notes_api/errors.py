from __future__ import annotations

from typing import Iterable, List, Optional


class NotesError(Exception):
    """
    Base class for errors raised by the notes core.

    Attributes:
    - message: human readable description, safe to return to clients
    - code: stable machine readable identifier
    """

    code: str = "NOTES_ERROR"

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


# PUBLIC_INTERFACE
class ValidationError(NotesError):
    """Raised when a record is missing required fields or carries malformed ones."""

    code = "VALIDATION_ERROR"

    def __init__(self, violations: Iterable[str], message: str = "Validation failed") -> None:
        self.violations: List[str] = list(violations)
        super().__init__(f"{message}: {'; '.join(self.violations)}" if self.violations else message)


# PUBLIC_INTERFACE
class InvalidStatus(NotesError, ValueError):
    """Raised by Task.set_status for values outside the known statuses."""

    code = "INVALID_STATUS"

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"Invalid status: {value!r}")


# PUBLIC_INTERFACE
class InvalidPriority(NotesError, ValueError):
    """Raised by Task.set_priority for values outside the known priorities."""

    code = "INVALID_PRIORITY"

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"Invalid priority: {value!r}")


# PUBLIC_INTERFACE
class AlreadyArchived(NotesError):
    """Raised when a task already has a history record."""

    code = "ALREADY_ARCHIVED"

    def __init__(self, source_task_id: str) -> None:
        self.source_task_id = source_task_id
        super().__init__(f"Task {source_task_id} is already archived")


# PUBLIC_INTERFACE
class DuplicateId(NotesError):
    """Raised when an insert reuses an existing record id."""

    code = "DUPLICATE_ID"

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(f"Record with id {record_id} already exists")


# PUBLIC_INTERFACE
class NotFound(NotesError):
    """Raised by the HTTP layer when an owner-scoped lookup comes back empty."""

    code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource") -> None:
        self.resource = resource
        super().__init__(f"{resource} not found")


# PUBLIC_INTERFACE
class StoreError(NotesError):
    """
    Wraps a persistence failure. Only the operation name is exposed; the
    underlying driver error stays available as __cause__ for logging.
    """

    code = "STORE_ERROR"

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Storage operation failed: {operation}")


# PUBLIC_INTERFACE
class GroupNameExists(NotesError):
    """Raised when an owner already has a group with the requested name."""

    code = "GROUP_NAME_EXISTS"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Group name already exists: {name}")
