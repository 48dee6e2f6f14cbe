from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import (
    AlreadyArchived,
    DuplicateId,
    GroupNameExists,
    InvalidPriority,
    InvalidStatus,
    NotFound,
    NotesError,
    StoreError,
    ValidationError,
)
from .logging_setup import setup_logging
from .repositories import ArchiveRepository, GroupRepository, TaskRepository, build_repositories
from .routers import groups as groups_router
from .routers import history as history_router
from .routers import tasks as tasks_router
from .services import AnalyticsService, ArchivalService, GroupService
from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {
        "name": "tasks",
        "description": "Task lifecycle: CRUD, status and priority changes, archival on completion.",
    },
    {
        "name": "history",
        "description": "Archived completed tasks with filtering, pagination and completion statistics.",
    },
    {
        "name": "groups",
        "description": "Task groups: CRUD and open task counts. History keeps the name a group had at archival.",
    },
]

_STATUS_BY_ERROR = [
    (ValidationError, 422),
    (InvalidStatus, 422),
    (InvalidPriority, 422),
    (AlreadyArchived, 409),
    (DuplicateId, 409),
    (GroupNameExists, 409),
    (NotFound, 404),
]


def _error_body(exc: NotesError) -> dict:
    body = {"error": exc.code, "message": exc.message}
    if isinstance(exc, ValidationError):
        body["detail"] = exc.violations
    return body


def _install_exception_handlers(app: FastAPI) -> None:
    # Global exception handlers for consistent JSON on validation errors
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """
        Return a consistent JSON structure for request validation errors.

        Response format:
            {
                "error": "ValidationError",
                "detail": [... pydantic/fastapi error details ...],
                "message": "Request validation failed"
            }
        """
        return JSONResponse(
            status_code=422,
            content={
                "error": "ValidationError",
                "message": "Request validation failed",
                "detail": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(NotesError)
    async def notes_exception_handler(request: Request, exc: NotesError) -> JSONResponse:
        """
        Map core errors to HTTP responses. Expected outcomes (already archived, not
        found, invalid input) keep their message; store failures only name the operation.
        """
        for error_type, status_code in _STATUS_BY_ERROR:
            if isinstance(exc, error_type):
                return JSONResponse(status_code=status_code, content=_error_body(exc))
        if isinstance(exc, StoreError):
            logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc.operation)
        else:
            logger.exception("Unhandled core error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=_error_body(exc))


# PUBLIC_INTERFACE
def create_app(
    settings: Optional[Settings] = None,
    task_repo: Optional[TaskRepository] = None,
    archive_repo: Optional[ArchiveRepository] = None,
    group_repo: Optional[GroupRepository] = None,
) -> FastAPI:
    """
    Build a FastAPI app with its own stores and services.

    Stores not passed in are built from settings (PERSISTENCE_BACKEND etc.). Tests
    pass in-memory stores to get an isolated app.
    """
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_file)

    if task_repo is None or archive_repo is None or group_repo is None:
        built_tasks, built_archive, built_groups = build_repositories(settings)
        task_repo = task_repo or built_tasks
        archive_repo = archive_repo or built_archive
        group_repo = group_repo or built_groups

    app = FastAPI(
        title="Notes Backend",
        description="Task lifecycle, completion archive and history analytics.",
        version="0.1.0",
        openapi_tags=openapi_tags,
    )
    app.state.settings = settings
    app.state.task_repo = task_repo
    app.state.archive_repo = archive_repo
    app.state.group_repo = group_repo
    app.state.archival = ArchivalService(archive_repo, group_repo)
    app.state.analytics = AnalyticsService(archive_repo)
    app.state.groups = GroupService(group_repo, task_repo)

    # Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
    allow_all = (settings.cors_allow_origins == ["*"]) or (len(settings.cors_allow_origins) == 0)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _install_exception_handlers(app)

    # PUBLIC_INTERFACE
    @app.get("/", summary="Health Check", tags=["health"])
    def health_check():
        """
        Health check endpoint.

        Returns:
            A JSON object indicating service health.
        """
        return {"message": "Healthy", "backend": settings.persistence_backend}

    app.include_router(tasks_router.router)
    app.include_router(history_router.router)
    app.include_router(groups_router.router)

    logger.info("Notes backend ready backend=%s", settings.persistence_backend)
    return app


app = create_app()
