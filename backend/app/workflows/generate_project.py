"""GenerateProjectWorkflow: one instance per generation project.

Workflow ID = project_id. Runs the generation activity exactly once; if the
activity dies without finalising the project (worker crash, timeout), the
workflow marks it failed and refunds it.
"""

from __future__ import annotations

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import ActivityError, ApplicationError, TimeoutError

with workflow.unsafe.imports_passed_through():
    from app.activities.generate import generate_project_image, mark_project_failed
    from app.errors import GENERATION_TIMEOUT_CODE, GenerationFailed
    from app.models.contracts import MarkProjectFailedInput


_GENERATION_TIMEOUT = timedelta(minutes=5)
_NO_RETRY = RetryPolicy(maximum_attempts=1)
_MARK_FAILED_RETRY = RetryPolicy(maximum_attempts=5)


def _failure_input(project_id: str, exc: ActivityError) -> MarkProjectFailedInput:
    cause = exc.cause
    if isinstance(cause, ApplicationError) and cause.type and cause.non_retryable:
        # Raised by generate_project_image with the taxonomy code as its type
        code = cause.type
    elif isinstance(cause, TimeoutError):
        code = GENERATION_TIMEOUT_CODE
    else:
        code = GenerationFailed.code
    detail = str(cause or exc) or GenerationFailed.default_message
    return MarkProjectFailedInput(project_id=project_id, error_code=code, error_detail=detail)


@workflow.defn
class GenerateProjectWorkflow:
    @workflow.run
    async def run(self, project_id: str) -> str:
        try:
            return await workflow.execute_activity(
                generate_project_image,
                project_id,
                start_to_close_timeout=_GENERATION_TIMEOUT,
                retry_policy=_NO_RETRY,
            )
        except ActivityError as exc:
            workflow.logger.error("generate_project_image failed for %s: %s", project_id, exc)
            await workflow.execute_activity(
                mark_project_failed,
                _failure_input(project_id, exc),
                start_to_close_timeout=timedelta(minutes=1),
                retry_policy=_MARK_FAILED_RETRY,
            )
            return "failed"
