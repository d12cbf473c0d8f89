"""Tests for the Pydantic contract models.

Covers the camelCase wire format, field constraints and the project status
invariants.
"""

import uuid
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from app.models.contracts import (
    CreateGenerationRequest,
    CreateGenerationResponse,
    ErrorResponse,
    GenerateRequest,
    GenerationParameters,
    Project,
    ProjectDraft,
    ReconcileResult,
    RegenerateRequest,
    UserObject,
)

NOW = datetime(2026, 1, 1, tzinfo=UTC)


def _project(**overrides) -> Project:
    fields = {
        "id": uuid.uuid4(),
        "owner_id": "user-1",
        "input_image_url": "https://cdn.test/room.jpg",
        "style": "Japandi",
        "room_type": "Bedroom",
        "created_at": NOW,
        "updated_at": NOW,
    }
    fields.update(overrides)
    return Project(**fields)


class TestCreateGenerationRequest:
    def test_accepts_camel_case(self):
        """camelCase wire names populate the snake_case fields."""
        oid = uuid.uuid4()
        req = CreateGenerationRequest.model_validate(
            {
                "inputImageUrl": "https://cdn.test/room.jpg",
                "style": "Boho",
                "roomType": "Kitchen",
                "renderingType": "wireframe",
                "colorTone": "palette:Earthy",
                "viewType": "top",
                "referencedObjectIds": [str(oid)],
                "idempotencyKey": "abc",
                "wait": True,
            }
        )
        assert req.room_type == "Kitchen"
        assert req.rendering_type == "wireframe"
        assert req.referenced_object_ids == [oid]
        assert req.wait is True

    def test_accepts_snake_case(self):
        """Python attribute names are accepted as well."""
        req = CreateGenerationRequest(
            input_image_url="https://cdn.test/room.jpg", style="Boho", room_type="Kitchen"
        )
        assert req.rendering_type == "3d"
        assert req.referenced_object_ids == []
        assert req.wait is False

    def test_rejects_unknown_rendering_type(self):
        """Rendering type is limited to 3d, 2d and wireframe."""
        with pytest.raises(ValidationError):
            CreateGenerationRequest(
                input_image_url="u", style="Boho", room_type="Kitchen", rendering_type="oil"
            )

    def test_rejects_unknown_view_type(self):
        """View type is limited to frontal, side and top."""
        with pytest.raises(ValidationError):
            CreateGenerationRequest(
                input_image_url="u", style="Boho", room_type="Kitchen", view_type="isometric"
            )

    def test_rejects_empty_style(self):
        """Style must be non-empty."""
        with pytest.raises(ValidationError):
            GenerationParameters(style="", room_type="Kitchen")

    def test_rejects_bad_object_id(self):
        """Referenced object ids must be UUIDs."""
        with pytest.raises(ValidationError):
            CreateGenerationRequest(
                input_image_url="u",
                style="Boho",
                room_type="Kitchen",
                referenced_object_ids=["not-a-uuid"],
            )


class TestRegenerateRequest:
    def test_defaults(self):
        """An empty body re-renders in 3d with no replacement."""
        req = RegenerateRequest()
        assert req.rendering_type == "3d"
        assert req.color_tone is None and req.view_type is None
        assert req.replace_object is None and req.replacement_object_id is None
        assert req.wait is False

    def test_accepts_camel_case(self):
        """Replacement fields accept their camelCase wire names."""
        oid = uuid.uuid4()
        req = RegenerateRequest.model_validate(
            {"replaceObject": "sofa", "replacementObjectId": str(oid), "viewType": "top"}
        )
        assert req.replacement_object_id == oid
        assert req.view_type == "top"

    def test_rejects_unknown_view(self):
        """View type is validated like on create."""
        with pytest.raises(ValidationError):
            RegenerateRequest(view_type="diagonal")


class TestProjectDraft:
    def test_negative_charge_rejected(self):
        """credits_charged cannot be negative."""
        with pytest.raises(ValidationError):
            ProjectDraft(
                owner_id="u", input_image_url="x", style="s", room_type="r", credits_charged=-1
            )


class TestProjectStatusInvariants:
    """Result and error fields must agree with the status."""

    def test_pending_is_bare(self):
        """A pending project has no result and no error."""
        project = _project()
        assert project.status == "pending"
        assert not project.is_terminal

    def test_pending_with_result_rejected(self):
        """Pending projects cannot carry a result URL."""
        with pytest.raises(ValidationError, match="pending"):
            _project(result_image_url="https://cdn.test/r.png")

    def test_completed_requires_result(self):
        """Completed projects need result_image_url."""
        with pytest.raises(ValidationError, match="result_image_url"):
            _project(status="completed")

    def test_completed_with_error_rejected(self):
        """Completed projects cannot carry an error detail."""
        with pytest.raises(ValidationError):
            _project(status="completed", result_image_url="r", error_detail="boom")

    def test_completed_is_terminal(self):
        """completed is a terminal status."""
        project = _project(status="completed", result_image_url="r", thumbnail_url="t")
        assert project.is_terminal

    def test_failed_requires_error_detail(self):
        """Failed projects need error_detail."""
        with pytest.raises(ValidationError, match="error_detail"):
            _project(status="failed", error_code="content_blocked")

    def test_failed_with_result_rejected(self):
        """Failed projects cannot carry a result URL."""
        with pytest.raises(ValidationError):
            _project(status="failed", error_detail="boom", result_image_url="r")

    def test_failed_is_terminal(self):
        """failed is a terminal status."""
        project = _project(status="failed", error_code="generation_failed", error_detail="boom")
        assert project.is_terminal


class TestWireFormat:
    def test_project_dumps_camel_case(self):
        """Projects serialise with camelCase keys only."""
        data = _project().model_dump(mode="json", by_alias=True)
        assert "inputImageUrl" in data
        assert "creditsCharged" in data
        assert "input_image_url" not in data

    def test_create_response_omits_project(self):
        """The async create response is just success, id and status."""
        resp = CreateGenerationResponse(project_id=uuid.uuid4(), status="pending")
        data = resp.model_dump(mode="json", by_alias=True, exclude_none=True)
        assert set(data) == {"success", "projectId", "status"}

    def test_generate_request_defaults(self):
        """Missing preview fields default to empty values."""
        req = GenerateRequest.model_validate({"prompt": "hi"})
        assert req.main_image_url == ""
        assert req.object_image_urls == []

    def test_user_object_image_url_prefers_thumbnail(self):
        """image_url uses the thumbnail, falling back to the asset."""
        obj = UserObject(
            id=uuid.uuid4(),
            owner_id="u",
            display_name="Chair",
            category="seating",
            asset_url="https://cdn.test/a.png",
            thumbnail_url="https://cdn.test/t.jpg",
            created_at=NOW,
        )
        assert obj.image_url == "https://cdn.test/t.jpg"
        assert obj.model_copy(update={"thumbnail_url": None}).image_url == "https://cdn.test/a.png"

    def test_reconcile_result_defaults(self):
        """An empty reconcile result reports nothing failed or refunded."""
        result = ReconcileResult()
        assert result.failed_project_ids == []
        assert result.refunded_credits == 0

    def test_error_response_snake_case(self):
        """Error bodies keep their snake_case keys."""
        data = ErrorResponse(error="not_found", message="Project not found").model_dump()
        assert data == {"error": "not_found", "message": "Project not found", "retryable": False}
