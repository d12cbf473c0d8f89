"""Tests for lifecycle transitions and the two dispatchers."""

from __future__ import annotations

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.errors import ContentBlocked
from app.models.contracts import ProjectDraft
from app.services import lifecycle
from app.services.dispatch import InProcessDispatcher, TemporalDispatcher
from app.workflows.generate_project import GenerateProjectWorkflow


async def _pending(store, room_url: str, charged: int = 5):
    store.set_balance("u1", 0)
    return await store.create_project(
        ProjectDraft(
            owner_id="u1",
            input_image_url=room_url,
            style="Boho",
            room_type="Den",
            credits_charged=charged,
        )
    )


class TestFailAndRefund:
    @pytest.mark.asyncio
    async def test_first_caller_fails_and_refunds(self, store, room_url) -> None:
        """The caller that wins the transition refunds the charge."""
        project = await _pending(store, room_url)

        failed = await lifecycle.fail_and_refund(
            store, project.id, error_code="generation_timeout", error_detail="too slow"
        )

        assert failed.status == "failed"
        assert failed.error_code == "generation_timeout"
        assert store._credits["u1"] == 5

    @pytest.mark.asyncio
    async def test_second_caller_is_a_no_op(self, store, room_url) -> None:
        """A project already failed is neither changed nor refunded again."""
        project = await _pending(store, room_url)
        await lifecycle.fail_with_error(store, project.id, ContentBlocked())

        again = await lifecycle.fail_and_refund(
            store, project.id, error_code="generation_timeout", error_detail="too slow"
        )

        assert again is None
        assert store._credits["u1"] == 5
        assert (await store.get_project(project.id)).error_code == "content_blocked"

    @pytest.mark.asyncio
    async def test_free_project_refunds_nothing(self, store, room_url) -> None:
        """A project charged nothing refunds nothing."""
        project = await _pending(store, room_url, charged=0)

        await lifecycle.fail_and_refund(store, project.id, error_code="x", error_detail="y")

        assert store._credits["u1"] == 0


class TestInProcessDispatcher:
    @pytest.mark.asyncio
    async def test_runs_generation_in_background(self, store, room_url) -> None:
        """Dispatch runs the worker as a background task."""
        project = await _pending(store, room_url)
        dispatcher = InProcessDispatcher(store)

        await dispatcher.dispatch(project.id)
        await dispatcher.drain()

        assert (await store.get_project(project.id)).status == "completed"

    @pytest.mark.asyncio
    async def test_background_failure_is_recorded_not_raised(self, store, room_url) -> None:
        """Background failures land on the project instead of raising."""
        project = await _pending(store, room_url)
        dispatcher = InProcessDispatcher(store)

        with patch(
            "app.activities.mock_stubs.generate_design",
            new=AsyncMock(side_effect=ContentBlocked()),
        ):
            await dispatcher.dispatch(project.id)
            await dispatcher.drain()

        stored = await store.get_project(project.id)
        assert stored.status == "failed"
        assert stored.error_code == "content_blocked"


class TestTemporalDispatcher:
    @pytest.mark.asyncio
    async def test_starts_workflow_keyed_by_project(self, monkeypatch) -> None:
        """The workflow id is the project id on the configured queue."""
        from app.config import settings

        monkeypatch.setattr(settings, "temporal_task_queue", "dreamcasa-tasks")
        client = MagicMock()
        client.start_workflow = AsyncMock()
        project_id = uuid.uuid4()

        await TemporalDispatcher(client).dispatch(project_id)

        client.start_workflow.assert_awaited_once_with(
            GenerateProjectWorkflow.run,
            str(project_id),
            id=str(project_id),
            task_queue="dreamcasa-tasks",
        )
