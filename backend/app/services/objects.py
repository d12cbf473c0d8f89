"""User object library: furniture photos users attach to generations."""

from __future__ import annotations

import asyncio
import io
import uuid
from dataclasses import dataclass

import structlog
from PIL import Image

from app.config import settings
from app.errors import InvalidInput, ObjectNotFound
from app.models.contracts import UserObject
from app.services.preview import describe_object
from app.store.base import Store
from app.utils import r2
from app.utils.image import guess_extension, make_thumbnail, to_data_url

logger = structlog.get_logger()


@dataclass
class ObjectUpload:
    data: bytes
    content_type: str
    display_name: str
    category: str


def _open_upload(upload: ObjectUpload) -> Image.Image:
    if not upload.data:
        raise InvalidInput("Uploaded file is empty")
    if len(upload.data) > settings.max_upload_bytes:
        raise InvalidInput(
            f"Uploaded file exceeds {settings.max_upload_bytes // (1024 * 1024)} MB"
        )
    if "avif" in upload.content_type:
        raise InvalidInput("AVIF format is not supported. Please use JPEG or PNG.")
    try:
        image = Image.open(io.BytesIO(upload.data))
        image.load()
    except Exception as exc:
        raise InvalidInput("Uploaded file is not a valid image") from exc
    return image


def _store_assets(
    owner_id: str, object_id: uuid.UUID, upload: ObjectUpload, thumb: bytes
) -> tuple[str, str]:
    if not r2.is_configured():
        logger.warning("r2_not_configured_inline_images", object_id=str(object_id))
        return to_data_url(upload.data, upload.content_type), to_data_url(thumb, "image/jpeg")
    oid = str(object_id)
    asset_name = f"asset.{guess_extension(upload.content_type)}"
    asset_url = r2.upload_public(
        r2.object_key(owner_id, oid, asset_name), upload.data, content_type=upload.content_type
    )
    thumbnail_url = r2.upload_public(
        r2.object_key(owner_id, oid, "thumbnail.jpg"), thumb, content_type="image/jpeg"
    )
    return asset_url, thumbnail_url


async def create_object(store: Store, owner_id: str, upload: ObjectUpload) -> UserObject:
    """Store the photo and its thumbnail, describe it, and record the object."""
    display_name = upload.display_name.strip()
    category = upload.category.strip()
    if not display_name:
        raise InvalidInput("Object name is required")
    if not category:
        raise InvalidInput("Object category is required")

    image = _open_upload(upload)
    object_id = uuid.uuid4()
    thumb = make_thumbnail(image, settings.thumbnail_size)
    asset_url, thumbnail_url = await asyncio.to_thread(
        _store_assets, owner_id, object_id, upload, thumb
    )
    description = await describe_object(image)

    obj = await store.create_user_object(
        object_id=object_id,
        owner_id=owner_id,
        display_name=display_name,
        category=category,
        asset_url=asset_url,
        thumbnail_url=thumbnail_url,
        description=description,
    )
    logger.info("user_object_created", object_id=str(obj.id), owner_id=owner_id, category=category)
    return obj


async def list_objects(store: Store, owner_id: str) -> list[UserObject]:
    return await store.list_user_objects(owner_id)


async def delete_object(store: Store, owner_id: str, object_id: uuid.UUID) -> None:
    """Remove an owned object. Projects that referenced it are left alone."""
    obj = await store.get_user_object(object_id)
    if obj is None or obj.owner_id != owner_id:
        raise ObjectNotFound()
    if r2.is_configured():
        await asyncio.to_thread(r2.delete_prefix, r2.object_prefix(owner_id, str(object_id)))
    await store.delete_user_object(object_id)
    logger.info("user_object_deleted", object_id=str(object_id), owner_id=owner_id)
