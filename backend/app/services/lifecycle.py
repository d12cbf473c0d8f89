"""Terminal transitions for generation projects.

A project leaves `pending` exactly once. Whoever wins the guarded update
(worker, reconciler, initiator) also owns the refund, so a project is never
refunded twice.
"""

from __future__ import annotations

import uuid

import structlog

from app.errors import DreamCasaError
from app.models.contracts import Project
from app.services import ledger
from app.store.base import Store

logger = structlog.get_logger()


async def fail_and_refund(
    store: Store,
    project_id: uuid.UUID,
    *,
    error_code: str,
    error_detail: str,
) -> Project | None:
    """Move a pending project to `failed` and refund its charge.

    Returns the failed project, or None if it was no longer pending.
    """
    failed = await store.fail_project(project_id, error_code=error_code, error_detail=error_detail)
    if failed is None:
        logger.info("project_fail_skipped_not_pending", project_id=str(project_id))
        return None

    logger.warning(
        "project_failed",
        project_id=str(project_id),
        owner_id=failed.owner_id,
        error_code=error_code,
        error_detail=error_detail[:200],
    )
    if failed.credits_charged > 0:
        await ledger.refund(store, failed.owner_id, failed.credits_charged)
    return failed


async def fail_with_error(
    store: Store, project_id: uuid.UUID, error: DreamCasaError
) -> Project | None:
    return await fail_and_refund(
        store, project_id, error_code=error.code, error_detail=error.message
    )
