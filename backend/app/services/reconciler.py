"""Stale-pending reconciler.

A project whose worker never reported back (crash, lost dispatch) would stay
`pending` forever with its credits held. Anything older than the generation
deadline is failed with `generation_timeout` and refunded.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import structlog

from app.config import settings
from app.errors import GENERATION_TIMEOUT_CODE
from app.models.contracts import ReconcileResult
from app.services import lifecycle
from app.store.base import Store

logger = structlog.get_logger()


async def fail_stale_projects(store: Store, now: datetime) -> ReconcileResult:
    cutoff = now - timedelta(seconds=settings.generation_deadline_seconds)
    stale = await store.list_stale_pending(cutoff)
    result = ReconcileResult()
    for project in stale:
        failed = await lifecycle.fail_and_refund(
            store,
            project.id,
            error_code=GENERATION_TIMEOUT_CODE,
            error_detail=(
                f"Generation did not finish within {settings.generation_deadline_seconds} seconds"
            ),
        )
        if failed is not None:
            result.failed_project_ids.append(failed.id)
            result.refunded_credits += failed.credits_charged

    if stale:
        logger.info(
            "reconcile_done",
            stale_count=len(stale),
            failed_count=len(result.failed_project_ids),
            refunded_credits=result.refunded_credits,
        )
    return result


async def reconcile_forever(store: Store, interval_seconds: float) -> None:
    """Background loop for API processes running without Temporal."""
    logger.info("reconcile_loop_started", interval_seconds=interval_seconds)
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await fail_stale_projects(store, datetime.now(UTC))
        except Exception:
            logger.exception("reconcile_loop_iteration_failed")
