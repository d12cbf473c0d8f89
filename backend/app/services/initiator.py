"""Generation request initiator: validate, charge, persist, then hand off.

Order matters: credits are debited before the project exists, and every path
that fails after the debit refunds it.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import structlog

from app.config import settings
from app.errors import (
    DispatchFailure,
    InvalidInput,
    ObjectNotFound,
    PersistenceFailure,
    ProjectNotFound,
)
from app.models.contracts import (
    CreateGenerationRequest,
    Project,
    ProjectDraft,
    RegenerateRequest,
)
from app.services import ledger, lifecycle
from app.services.dispatch import Dispatcher
from app.store.base import DuplicateIdempotencyKey, Store
from app.utils.http import validate_image_url

logger = structlog.get_logger()


def _window_start() -> datetime:
    return datetime.now(UTC) - timedelta(seconds=settings.idempotency_window_seconds)


async def _find_duplicate(store: Store, owner_id: str, key: str) -> Project | None:
    return await store.find_by_idempotency_key(owner_id, key, _window_start())


def _check_owner(owner_id: str) -> None:
    if not owner_id or not owner_id.strip():
        raise InvalidInput("User ID is required")


async def _launch(
    store: Store, dispatcher: Dispatcher, draft: ProjectDraft, *, wait: bool
) -> Project:
    """Charge, persist and run or dispatch `draft`.

    A repeated idempotency key inside the window returns the project that
    already holds it, charged once.
    """
    owner_id = draft.owner_id
    key = draft.idempotency_key
    if key:
        existing = await _find_duplicate(store, owner_id, key)
        if existing is not None:
            logger.info(
                "generation_request_deduplicated", project_id=str(existing.id), owner_id=owner_id
            )
            return existing

    cost = settings.generation_cost_credits
    await ledger.debit(store, owner_id, cost)

    draft = draft.model_copy(update={"credits_charged": cost})
    try:
        project = await store.create_project(
            draft, idempotency_since=_window_start() if key else None
        )
    except DuplicateIdempotencyKey:
        # A concurrent request with the same key won the insert
        await ledger.refund(store, owner_id, cost)
        existing = await _find_duplicate(store, owner_id, key)
        if existing is None:
            raise PersistenceFailure("Failed to create project") from None
        logger.info(
            "generation_request_deduplicated", project_id=str(existing.id), owner_id=owner_id
        )
        return existing
    except Exception as exc:
        logger.exception("project_create_failed", owner_id=owner_id)
        await ledger.refund(store, owner_id, cost)
        raise PersistenceFailure("Failed to create project") from exc

    logger.info(
        "project_created",
        project_id=str(project.id),
        owner_id=owner_id,
        rendering_type=project.rendering_type,
        source_project_id=str(project.source_project_id) if project.source_project_id else None,
        wait=wait,
    )

    if wait:
        from app.activities.generate import run_generation

        return await run_generation(store, project.id, best_effort_objects=True)

    try:
        await dispatcher.dispatch(project.id)
    except Exception as exc:
        detail = f"Function invocation failed: {type(exc).__name__}: {str(exc)[:200]}"
        await lifecycle.fail_and_refund(
            store, project.id, error_code=DispatchFailure.code, error_detail=detail
        )
        raise DispatchFailure(detail) from exc
    return project


async def start_generation(
    store: Store,
    dispatcher: Dispatcher,
    owner_id: str,
    request: CreateGenerationRequest,
) -> Project:
    """Create a generation project for `owner_id`.

    Async mode returns the pending project as soon as it is dispatched.
    Sync mode (`request.wait`) runs the worker inline and returns the
    completed project, or raises the worker's error after the project has
    been marked failed and refunded.
    """
    _check_owner(owner_id)
    validate_image_url(request.input_image_url)

    draft = ProjectDraft(
        owner_id=owner_id,
        **request.model_dump(
            include={
                "style",
                "room_type",
                "rendering_type",
                "color_tone",
                "view_type",
                "prompt",
                "input_image_url",
                "referenced_object_ids",
                "idempotency_key",
            }
        ),
    )
    return await _launch(store, dispatcher, draft, wait=request.wait)


def resolve_replace_target(detected: list[str], identifier: str) -> str:
    """Full detected-object name that starts with `identifier`, else the identifier."""
    for name in detected:
        if name.startswith(identifier):
            return name
    return identifier


async def start_regeneration(
    store: Store,
    dispatcher: Dispatcher,
    owner_id: str,
    source_project_id: uuid.UUID,
    request: RegenerateRequest,
) -> Project:
    """Re-render a completed project as a new project.

    The source's result image becomes the new input. Style and room type are
    kept; colour tone and view fall back to the source's values. With
    `replace_object` and `replacement_object_id` the named detected object is
    swapped for one of the caller's uploaded objects.
    """
    _check_owner(owner_id)
    if bool(request.replace_object) != (request.replacement_object_id is not None):
        raise InvalidInput("replaceObject and replacementObjectId must be given together")

    source = await store.get_project(source_project_id)
    if source is None or source.owner_id != owner_id:
        raise ProjectNotFound()
    if source.status != "completed" or not source.result_image_url:
        raise InvalidInput("Only completed projects can be regenerated")

    referenced: list[uuid.UUID] = []
    target = None
    if request.replacement_object_id is not None:
        replacement = await store.get_user_object(request.replacement_object_id)
        if replacement is None or replacement.owner_id != owner_id:
            raise ObjectNotFound()
        referenced = [replacement.id]
        detected = await store.get_detected_objects(source.id)
        target = resolve_replace_target(detected, request.replace_object)

    draft = ProjectDraft(
        owner_id=owner_id,
        input_image_url=source.result_image_url,
        style=source.style,
        room_type=source.room_type,
        rendering_type=request.rendering_type,
        color_tone=request.color_tone or source.color_tone,
        view_type=request.view_type or source.view_type,
        prompt=request.prompt,
        referenced_object_ids=referenced,
        idempotency_key=request.idempotency_key,
        source_project_id=source.id,
        replace_object=target,
    )
    return await _launch(store, dispatcher, draft, wait=request.wait)
