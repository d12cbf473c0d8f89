"""Generation project endpoints: create, regenerate, poll, browse, delete.

Creating a project debits credits up front. In async mode the response is a
202 with the project id; clients poll GET /projects/{id} until the status is
terminal. `wait: true` runs the generation inside the request instead.
"""

import uuid

import structlog
from fastapi import APIRouter, Depends, Query, Response

from app.api import deps
from app.models.contracts import (
    CreateGenerationRequest,
    CreateGenerationResponse,
    DetectedObjectsResponse,
    ErrorResponse,
    Project,
    ProjectPage,
    RegenerateRequest,
)
from app.services import projects as project_service
from app.services.dispatch import Dispatcher
from app.services.initiator import start_generation, start_regeneration
from app.store.base import Store

logger = structlog.get_logger()

router = APIRouter(tags=["projects"])

_ERRORS = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
}


def _launch_response(
    project: Project, response: Response, *, wait: bool
) -> CreateGenerationResponse:
    if wait:
        response.status_code = 200
        return CreateGenerationResponse(
            project_id=project.id, status=project.status, project=project
        )
    return CreateGenerationResponse(project_id=project.id, status=project.status)


@router.post(
    "/projects",
    status_code=202,
    response_model=CreateGenerationResponse,
    response_model_exclude_none=True,
    responses={**_ERRORS, 402: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def create_project(
    body: CreateGenerationRequest,
    response: Response,
    user_id: str = Depends(deps.current_user),
    store: Store = Depends(deps.store),
    dispatcher: Dispatcher = Depends(deps.dispatcher),
) -> CreateGenerationResponse:
    """Start a generation. 202 + id when async, 200 + project when `wait` is set."""
    project = await start_generation(store, dispatcher, user_id, body)
    return _launch_response(project, response, wait=body.wait)


@router.post(
    "/projects/{project_id}/regenerate",
    status_code=202,
    response_model=CreateGenerationResponse,
    response_model_exclude_none=True,
    responses={
        **_ERRORS,
        402: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def regenerate_project(
    project_id: uuid.UUID,
    body: RegenerateRequest,
    response: Response,
    user_id: str = Depends(deps.current_user),
    store: Store = Depends(deps.store),
    dispatcher: Dispatcher = Depends(deps.dispatcher),
) -> CreateGenerationResponse:
    """Re-render a completed design as a new project, optionally swapping one object."""
    project = await start_regeneration(store, dispatcher, user_id, project_id, body)
    return _launch_response(project, response, wait=body.wait)


@router.get("/projects", response_model=ProjectPage, responses=_ERRORS)
async def list_my_projects(
    page: int = 1,
    page_size: int | None = Query(default=None, alias="pageSize"),
    user_id: str = Depends(deps.current_user),
    store: Store = Depends(deps.store),
) -> ProjectPage:
    return await project_service.list_by_owner(store, user_id, page, page_size)


@router.get("/projects/all", response_model=ProjectPage, responses=_ERRORS)
async def list_all_projects(
    page: int = 1,
    page_size: int | None = Query(default=None, alias="pageSize"),
    store: Store = Depends(deps.store),
) -> ProjectPage:
    return await project_service.list_all(store, page, page_size)


@router.get("/projects/community", response_model=ProjectPage, responses=_ERRORS)
async def list_community_projects(
    page: int = 1,
    page_size: int | None = Query(default=None, alias="pageSize"),
    user_id: str = Depends(deps.current_user),
    store: Store = Depends(deps.store),
) -> ProjectPage:
    """Completed designs from other users."""
    return await project_service.list_community(store, user_id, page, page_size)


@router.get(
    "/projects/{project_id}",
    response_model=Project,
    responses={404: {"model": ErrorResponse}},
)
async def get_project(project_id: uuid.UUID, store: Store = Depends(deps.store)) -> Project:
    """Current project state. Clients poll this until status is terminal."""
    return await project_service.get_project(store, project_id)


@router.get(
    "/projects/{project_id}/objects",
    response_model=DetectedObjectsResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_detected_objects(
    project_id: uuid.UUID, store: Store = Depends(deps.store)
) -> DetectedObjectsResponse:
    return await project_service.get_detected_objects(store, project_id)


@router.delete(
    "/projects/{project_id}",
    status_code=204,
    responses={**_ERRORS, 404: {"model": ErrorResponse}},
)
async def delete_project(
    project_id: uuid.UUID,
    user_id: str = Depends(deps.current_user),
    store: Store = Depends(deps.store),
) -> None:
    await project_service.delete_project(store, user_id, project_id)
