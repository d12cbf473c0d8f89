"""Temporal worker: registers workflows and activities.

Separate service in production. Run locally with:
    python -m app.worker

Requires a running Temporal server. Whether the image model is real or
mocked is decided per call by USE_MOCK_ACTIVITIES, not by registration.
"""

from __future__ import annotations

import asyncio
import sys

import structlog
from temporalio.client import Client
from temporalio.contrib.pydantic import pydantic_data_converter
from temporalio.exceptions import WorkflowAlreadyStartedError
from temporalio.worker import Worker

from app.activities.generate import generate_project_image, mark_project_failed
from app.activities.reconcile import reconcile_stale_projects
from app.config import settings
from app.logging import configure_logging
from app.workflows.generate_project import GenerateProjectWorkflow
from app.workflows.reconcile import RECONCILE_WORKFLOW_ID, ReconcileStaleProjectsWorkflow

logger = structlog.get_logger()

ACTIVITIES = [generate_project_image, mark_project_failed, reconcile_stale_projects]

WORKFLOWS = [GenerateProjectWorkflow, ReconcileStaleProjectsWorkflow]


async def create_temporal_client() -> Client:
    """Create a Temporal client using settings.

    Supports both local Temporal (plain TCP) and Temporal Cloud (TLS + API key).
    """
    if settings.temporal_api_key:
        return await Client.connect(
            target_host=settings.temporal_address,
            namespace=settings.temporal_namespace,
            tls=True,
            api_key=settings.temporal_api_key,
            data_converter=pydantic_data_converter,
        )
    return await Client.connect(
        target_host=settings.temporal_address,
        namespace=settings.temporal_namespace,
        data_converter=pydantic_data_converter,
    )


async def ensure_reconcile_schedule(client: Client) -> None:
    """Start the cron reconcile workflow once per namespace."""
    try:
        await client.start_workflow(
            ReconcileStaleProjectsWorkflow.run,
            id=RECONCILE_WORKFLOW_ID,
            task_queue=settings.temporal_task_queue,
            cron_schedule=settings.reconcile_cron,
        )
        logger.info("reconcile_schedule_started", cron=settings.reconcile_cron)
    except WorkflowAlreadyStartedError:
        logger.info("reconcile_schedule_already_running", cron=settings.reconcile_cron)


async def run_worker() -> None:
    """Connect to Temporal and run the worker until interrupted."""
    logger.info(
        "worker_connecting",
        address=settings.temporal_address,
        namespace=settings.temporal_namespace,
        task_queue=settings.temporal_task_queue,
    )

    try:
        client = await create_temporal_client()
    except Exception:
        logger.exception(
            "worker_connection_failed",
            address=settings.temporal_address,
            namespace=settings.temporal_namespace,
        )
        raise

    worker = Worker(
        client,
        task_queue=settings.temporal_task_queue,
        workflows=WORKFLOWS,
        activities=ACTIVITIES,  # type: ignore[arg-type]
    )

    if settings.use_mock_activities and settings.environment != "development":
        logger.warning(
            "worker_using_mock_stubs",
            environment=settings.environment,
            hint="Set USE_MOCK_ACTIVITIES=false for the real image model",
        )

    await ensure_reconcile_schedule(client)

    logger.info(
        "worker_started",
        task_queue=settings.temporal_task_queue,
        workflow_count=len(WORKFLOWS),
        activity_count=len(ACTIVITIES),
    )

    await worker.run()
    logger.info("worker_stopped")


def main() -> None:
    """Entrypoint for `python -m app.worker`."""
    configure_logging(service="worker")
    try:
        asyncio.run(run_worker())
    except KeyboardInterrupt:
        pass
    except Exception:
        logger.exception("worker_fatal_error")
        sys.exit(1)


if __name__ == "__main__":
    main()
