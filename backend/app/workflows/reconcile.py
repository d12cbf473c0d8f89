"""ReconcileStaleProjectsWorkflow: cron-scheduled sweep of stuck projects."""

from __future__ import annotations

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from app.activities.reconcile import reconcile_stale_projects
    from app.models.contracts import ReconcileResult

RECONCILE_WORKFLOW_ID = "reconcile-stale-projects"


@workflow.defn
class ReconcileStaleProjectsWorkflow:
    @workflow.run
    async def run(self) -> ReconcileResult:
        return await workflow.execute_activity(
            reconcile_stale_projects,
            start_to_close_timeout=timedelta(minutes=2),
            retry_policy=RetryPolicy(maximum_attempts=3),
        )
