"""Hand a pending project to an asynchronous worker.

TemporalDispatcher starts a durable workflow per project; InProcessDispatcher
runs the worker as an asyncio task inside the API process (development, or
deployments without Temporal).
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Protocol

import structlog
from temporalio.client import Client

from app.config import settings
from app.errors import DreamCasaError
from app.store.base import Store

logger = structlog.get_logger()


class Dispatcher(Protocol):
    async def dispatch(self, project_id: uuid.UUID) -> None: ...


class TemporalDispatcher:
    def __init__(self, client: Client) -> None:
        self._client = client

    async def dispatch(self, project_id: uuid.UUID) -> None:
        from app.workflows.generate_project import GenerateProjectWorkflow

        await self._client.start_workflow(
            GenerateProjectWorkflow.run,
            str(project_id),
            id=str(project_id),
            task_queue=settings.temporal_task_queue,
        )
        logger.info("generation_dispatched", project_id=str(project_id), backend="temporal")


class InProcessDispatcher:
    def __init__(self, store: Store) -> None:
        self._store = store
        # Strong references so running tasks are not garbage-collected
        self._background_tasks: set[asyncio.Task] = set()  # type: ignore[type-arg]

    async def dispatch(self, project_id: uuid.UUID) -> None:
        task = asyncio.create_task(self._run(project_id), name=f"generate-{project_id}")
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        logger.info("generation_dispatched", project_id=str(project_id), backend="in_process")

    async def _run(self, project_id: uuid.UUID) -> None:
        from app.activities.generate import run_generation

        try:
            await run_generation(self._store, project_id)
        except DreamCasaError as exc:
            # Already recorded on the project
            logger.info("background_generation_failed", project_id=str(project_id), error_code=exc.code)

    async def drain(self) -> None:
        """Wait for in-flight generations (tests, shutdown)."""
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
