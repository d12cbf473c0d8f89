"""Project gallery queries and owner actions."""

from __future__ import annotations

import asyncio
import uuid

import structlog

from app.config import settings
from app.errors import InvalidInput, ProjectNotFound
from app.models.contracts import DetectedObjectsResponse, Project, ProjectPage, ProjectStatus
from app.store.base import Store
from app.utils import r2

logger = structlog.get_logger()


def _check_paging(page: int, page_size: int) -> None:
    if page < 1:
        raise InvalidInput("page must be >= 1")
    if not 1 <= page_size <= settings.max_page_size:
        raise InvalidInput(f"pageSize must be between 1 and {settings.max_page_size}")


async def _page(
    store: Store,
    page: int,
    page_size: int | None,
    *,
    owner_id: str | None = None,
    exclude_owner_id: str | None = None,
    status: ProjectStatus | None = None,
) -> ProjectPage:
    if page_size is None:
        page_size = settings.default_page_size
    _check_paging(page, page_size)
    items, total = await store.list_projects(
        offset=(page - 1) * page_size,
        limit=page_size,
        owner_id=owner_id,
        exclude_owner_id=exclude_owner_id,
        status=status,
    )
    return ProjectPage(items=items, total=total, page=page, page_size=page_size)


async def list_by_owner(
    store: Store, owner_id: str, page: int = 1, page_size: int | None = None
) -> ProjectPage:
    return await _page(store, page, page_size, owner_id=owner_id)


async def list_all(store: Store, page: int = 1, page_size: int | None = None) -> ProjectPage:
    return await _page(store, page, page_size)


async def list_community(
    store: Store, viewer_id: str, page: int = 1, page_size: int | None = None
) -> ProjectPage:
    """Completed designs by everyone except the viewer."""
    return await _page(store, page, page_size, exclude_owner_id=viewer_id, status="completed")


async def get_project(store: Store, project_id: uuid.UUID) -> Project:
    project = await store.get_project(project_id)
    if project is None:
        raise ProjectNotFound()
    return project


async def get_detected_objects(store: Store, project_id: uuid.UUID) -> DetectedObjectsResponse:
    await get_project(store, project_id)
    objects = await store.get_detected_objects(project_id)
    return DetectedObjectsResponse(project_id=project_id, objects=objects)


async def delete_project(store: Store, owner_id: str, project_id: uuid.UUID) -> None:
    """Delete an owned project and its stored images.

    Someone else's project reports not-found rather than forbidden.
    """
    project = await store.get_project(project_id)
    if project is None or project.owner_id != owner_id:
        raise ProjectNotFound()

    if r2.is_configured():
        await asyncio.to_thread(r2.delete_prefix, r2.project_prefix(owner_id, str(project_id)))
    await store.delete_project(project_id)
    logger.info("project_deleted", project_id=str(project_id), owner_id=owner_id)
