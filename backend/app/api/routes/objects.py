"""User object library endpoints (multipart upload)."""

import uuid

from fastapi import APIRouter, Depends, Form, UploadFile

from app.api import deps
from app.models.contracts import ErrorResponse, UserObject
from app.services import objects as object_service
from app.store.base import Store

router = APIRouter(tags=["objects"])


@router.get("/objects", response_model=list[UserObject])
async def list_objects(
    user_id: str = Depends(deps.current_user), store: Store = Depends(deps.store)
) -> list[UserObject]:
    return await object_service.list_objects(store, user_id)


@router.post(
    "/objects",
    status_code=201,
    response_model=UserObject,
    responses={400: {"model": ErrorResponse}},
)
async def upload_object(
    file: UploadFile,
    display_name: str = Form(alias="displayName"),
    category: str = Form(),
    user_id: str = Depends(deps.current_user),
    store: Store = Depends(deps.store),
) -> UserObject:
    """Store an object photo with a thumbnail and an AI description."""
    upload = object_service.ObjectUpload(
        data=await file.read(),
        content_type=file.content_type or "application/octet-stream",
        display_name=display_name,
        category=category,
    )
    return await object_service.create_object(store, user_id, upload)


@router.delete(
    "/objects/{object_id}",
    status_code=204,
    responses={404: {"model": ErrorResponse}},
)
async def delete_object(
    object_id: uuid.UUID,
    user_id: str = Depends(deps.current_user),
    store: Store = Depends(deps.store),
) -> None:
    await object_service.delete_object(store, user_id, object_id)
