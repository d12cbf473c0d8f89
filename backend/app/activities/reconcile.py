"""reconcile_stale_projects activity: fail and refund timed-out projects."""

from __future__ import annotations

from datetime import UTC, datetime

from temporalio import activity

from app.models.contracts import ReconcileResult
from app.services.reconciler import fail_stale_projects
from app.store import get_store


@activity.defn
async def reconcile_stale_projects() -> ReconcileResult:
    store = await get_store()
    return await fail_stale_projects(store, datetime.now(UTC))
