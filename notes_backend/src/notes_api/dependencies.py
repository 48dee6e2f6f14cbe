from __future__ import annotations

from fastapi import Request

from .repositories import ArchiveRepository, GroupRepository, TaskRepository
from .services import AnalyticsService, ArchivalService, GroupService


# Stores and services are built per app by create_app and kept on app.state.


def get_task_repo(request: Request) -> TaskRepository:
    return request.app.state.task_repo


def get_archive_repo(request: Request) -> ArchiveRepository:
    return request.app.state.archive_repo


def get_group_repo(request: Request) -> GroupRepository:
    return request.app.state.group_repo


def get_archival_service(request: Request) -> ArchivalService:
    return request.app.state.archival


def get_analytics_service(request: Request) -> AnalyticsService:
    return request.app.state.analytics


def get_group_service(request: Request) -> GroupService:
    return request.app.state.groups
