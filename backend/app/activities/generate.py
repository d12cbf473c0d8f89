"""Generation worker: turn one pending project into a completed or failed one.

`run_generation` is the shared core. The Temporal activity and the in-process
dispatcher run it in strict mode (any image fetch failure is terminal); the
synchronous request path runs it inline with best-effort object fetches.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass

import structlog
from PIL import Image
from temporalio import activity
from temporalio.exceptions import ApplicationError

from app.config import settings
from app.errors import DreamCasaError, GenerationFailed, PersistenceFailure, ProjectNotFound
from app.models.contracts import (
    GenerationParameters,
    MarkProjectFailedInput,
    Project,
    UserObject,
)
from app.services import lifecycle
from app.store import get_store
from app.store.base import Store
from app.utils import r2
from app.utils.gemini import GenerationResult
from app.utils.http import download_image, download_images, download_images_best_effort
from app.utils.image import image_to_bytes, make_thumbnail, to_data_url
from app.utils.prompts import build_generation_prompt, build_regeneration_prompt

logger = structlog.get_logger()


@dataclass
class StoredImages:
    result_image_url: str
    thumbnail_url: str


async def call_model(
    prompt: str, main_image: Image.Image, object_images: list[Image.Image]
) -> GenerationResult:
    if settings.use_mock_activities:
        from app.activities import mock_stubs

        return await mock_stubs.generate_design(prompt, main_image, object_images)

    from app.utils import gemini

    return await gemini.generate_design(prompt, main_image, object_images)


async def resolve_objects(store: Store, project: Project) -> list[UserObject]:
    """The project's referenced user objects, in reference order.

    Objects that were deleted, or belong to another user, are skipped.
    """
    if not project.referenced_object_ids:
        return []
    found = {
        obj.id: obj
        for obj in await store.get_user_objects(project.referenced_object_ids)
        if obj.owner_id == project.owner_id
    }
    missing = [str(oid) for oid in project.referenced_object_ids if oid not in found]
    if missing:
        logger.warning(
            "referenced_objects_missing", project_id=str(project.id), object_ids=missing
        )
    return [found[oid] for oid in project.referenced_object_ids if oid in found]


def _upload_images(project: Project, image: Image.Image) -> StoredImages:
    """Upload result + thumbnail (blocking boto3 calls; run in a thread)."""
    png = image_to_bytes(image, "PNG")
    thumb = make_thumbnail(image, settings.thumbnail_size)
    if not r2.is_configured():
        logger.warning("r2_not_configured_inline_images", project_id=str(project.id))
        return StoredImages(
            result_image_url=to_data_url(png, "image/png"),
            thumbnail_url=to_data_url(thumb, "image/jpeg"),
        )
    owner, pid = project.owner_id, str(project.id)
    return StoredImages(
        result_image_url=r2.upload_public(r2.project_key(owner, pid, "result.png"), png),
        thumbnail_url=r2.upload_public(
            r2.project_key(owner, pid, "thumbnail.jpg"), thumb, content_type="image/jpeg"
        ),
    )


async def _persist_success(store: Store, project: Project, result: GenerationResult) -> Project:
    try:
        stored = await asyncio.to_thread(_upload_images, project, result.image)
    except Exception as exc:
        raise PersistenceFailure(
            f"Failed to store generated image: {type(exc).__name__}"
        ) from exc

    try:
        completed = await store.complete_project(
            project.id,
            result_image_url=stored.result_image_url,
            thumbnail_url=stored.thumbnail_url,
            description=result.description,
        )
    except Exception as exc:
        raise PersistenceFailure(f"Failed to save project: {type(exc).__name__}") from exc

    if completed is None:
        # Finalised elsewhere (reconciler timeout) while the model was running
        logger.warning("generation_result_discarded", project_id=str(project.id))
        current = await store.get_project(project.id)
        return current or project

    if result.detected_objects:
        try:
            await store.save_detected_objects(
                project.id, project.owner_id, result.detected_objects
            )
        except Exception:
            logger.exception("detected_objects_save_failed", project_id=str(project.id))

    logger.info(
        "generation_completed",
        project_id=str(project.id),
        owner_id=project.owner_id,
        has_description=result.description is not None,
        detected_objects=len(result.detected_objects),
    )
    return completed


def _build_prompt(
    project: Project, objects: list[UserObject], object_images: list[Image.Image]
) -> str:
    params = GenerationParameters.model_validate(project, from_attributes=True)
    if project.source_project_id is None:
        return build_generation_prompt(params, with_objects=bool(object_images))
    replacement = None
    if objects and object_images:
        replacement = objects[0].description or objects[0].display_name
    return build_regeneration_prompt(
        params,
        target=project.replace_object if replacement else None,
        replacement_description=replacement,
    )


async def _download_sources(
    project: Project, object_urls: list[str], *, best_effort_objects: bool
) -> tuple[Image.Image, list[Image.Image]]:
    fetch_objects = download_images_best_effort if best_effort_objects else download_images
    try:
        async with asyncio.TaskGroup() as group:
            main_task = group.create_task(download_image(project.input_image_url))
            objects_task = group.create_task(fetch_objects(object_urls))
    except ExceptionGroup as failed:
        # The first failure cancelled its sibling
        raise failed.exceptions[0] from None
    return main_task.result(), objects_task.result()


async def _generate(store: Store, project: Project, *, best_effort_objects: bool) -> Project:
    objects = await resolve_objects(store, project)
    main_image, object_images = await _download_sources(
        project, [obj.image_url for obj in objects], best_effort_objects=best_effort_objects
    )
    prompt = _build_prompt(project, objects, object_images)
    result = await call_model(prompt, main_image, object_images)
    return await _persist_success(store, project, result)


async def run_generation(
    store: Store, project_id: uuid.UUID, *, best_effort_objects: bool = False
) -> Project:
    """Drive a pending project to a terminal state.

    On failure the project is marked failed, its charge refunded, and the
    error re-raised as a DreamCasaError.
    """
    project = await store.get_project(project_id)
    if project is None:
        raise ProjectNotFound()
    if project.is_terminal:
        logger.info("generation_skipped_terminal", project_id=str(project_id), status=project.status)
        return project

    logger.info(
        "generation_start",
        project_id=str(project_id),
        owner_id=project.owner_id,
        rendering_type=project.rendering_type,
        num_objects=len(project.referenced_object_ids),
        best_effort_objects=best_effort_objects,
    )
    try:
        return await _generate(store, project, best_effort_objects=best_effort_objects)
    except DreamCasaError as exc:
        await lifecycle.fail_with_error(store, project_id, exc)
        raise
    except Exception as exc:
        logger.exception("generation_unexpected_error", project_id=str(project_id))
        error = GenerationFailed(f"Failed to generate design: {type(exc).__name__}")
        await lifecycle.fail_with_error(store, project_id, error)
        raise error from exc


@activity.defn
async def generate_project_image(project_id: str) -> str:
    """Temporal entry point; returns the terminal status."""
    store = await get_store()
    try:
        project = await run_generation(store, uuid.UUID(project_id))
    except DreamCasaError as exc:
        raise ApplicationError(exc.message, type=exc.code, non_retryable=True) from exc
    return project.status


@activity.defn
async def mark_project_failed(input: MarkProjectFailedInput) -> bool:
    """Guarded pending -> failed transition plus refund.

    Returns False when the project had already reached a terminal state.
    """
    store = await get_store()
    failed = await lifecycle.fail_and_refund(
        store,
        uuid.UUID(input.project_id),
        error_code=input.error_code,
        error_detail=input.error_detail,
    )
    return failed is not None
