"""DreamCasa API and worker contract models.

Wire format is camelCase (the web client's convention); Python code uses the
snake_case attribute names. Every model accepts either form on input.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

ProjectStatus = Literal["pending", "completed", "failed"]
RenderingType = Literal["3d", "2d", "wireframe"]
ViewType = Literal["frontal", "side", "top"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"completed", "failed"})


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# === Generation requests ===


class GenerationParameters(_Model):
    style: str = Field(min_length=1, max_length=100)
    room_type: str = Field(min_length=1, max_length=100)
    rendering_type: RenderingType = "3d"
    color_tone: str | None = None  # "palette:<name>" or "color:<name>"
    view_type: ViewType | None = None
    prompt: str | None = Field(default=None, max_length=4000)


class CreateGenerationRequest(GenerationParameters):
    input_image_url: str
    referenced_object_ids: list[uuid.UUID] = []
    idempotency_key: str | None = Field(default=None, max_length=255)
    wait: bool = False


class RegenerateRequest(_Model):
    """Re-render a completed project, optionally swapping one detected object.

    Unset colour tone and view keep the source project's values.
    """

    rendering_type: RenderingType = "3d"
    color_tone: str | None = None
    view_type: ViewType | None = None
    prompt: str | None = Field(default=None, max_length=4000)
    replace_object: str | None = Field(default=None, max_length=255)
    replacement_object_id: uuid.UUID | None = None
    idempotency_key: str | None = Field(default=None, max_length=255)
    wait: bool = False


class ProjectDraft(GenerationParameters):
    """Fields the initiator persists for a new pending project."""

    owner_id: str
    input_image_url: str
    referenced_object_ids: list[uuid.UUID] = []
    idempotency_key: str | None = None
    credits_charged: int = Field(ge=0, default=0)
    source_project_id: uuid.UUID | None = None
    replace_object: str | None = None


# === Projects ===


class Project(_Model):
    id: uuid.UUID
    owner_id: str
    input_image_url: str
    style: str
    room_type: str
    rendering_type: RenderingType = "3d"
    color_tone: str | None = None
    view_type: ViewType | None = None
    prompt: str | None = None
    referenced_object_ids: list[uuid.UUID] = []
    status: ProjectStatus = "pending"
    result_image_url: str | None = None
    thumbnail_url: str | None = None
    description: str | None = None
    error_code: str | None = None
    error_detail: str | None = None
    idempotency_key: str | None = None
    credits_charged: int = 0
    source_project_id: uuid.UUID | None = None  # set on regenerations
    replace_object: str | None = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def _status_fields_consistent(self) -> Project:
        if self.status == "pending":
            if self.result_image_url or self.thumbnail_url or self.error_detail:
                raise ValueError("pending project cannot carry a result or an error")
        elif self.status == "completed":
            if not self.result_image_url:
                raise ValueError("completed project requires result_image_url")
            if self.error_detail is not None:
                raise ValueError("completed project cannot carry an error")
        elif self.status == "failed":
            if not self.error_detail:
                raise ValueError("failed project requires error_detail")
            if self.result_image_url is not None:
                raise ValueError("failed project cannot carry a result")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ProjectPage(_Model):
    items: list[Project]
    total: int
    page: int
    page_size: int


class CreateGenerationResponse(_Model):
    success: bool = True
    project_id: uuid.UUID
    status: ProjectStatus
    project: Project | None = None


class DetectedObjectsResponse(_Model):
    project_id: uuid.UUID
    objects: list[str]


# === User objects ===


class UserObject(_Model):
    id: uuid.UUID
    owner_id: str
    display_name: str
    category: str
    asset_url: str
    thumbnail_url: str | None = None
    description: str | None = None
    created_at: datetime

    @property
    def image_url(self) -> str:
        """URL used when compositing this object into a design."""
        return self.thumbnail_url or self.asset_url


# === Synchronous model endpoints ===


class GenerateRequest(_Model):
    prompt: str = ""
    main_image_url: str = ""
    object_image_urls: list[str] = []


class GenerateResponse(_Model):
    description: str
    image_data: str  # data URL
    detected_objects: list[str] = []


class DescribeObjectRequest(_Model):
    image_url: str = ""


class DescribeObjectResponse(_Model):
    description: str


# === Credits ===


class CreditBalance(_Model):
    user_id: str
    balance: int


# === Temporal activity I/O ===


class MarkProjectFailedInput(_Model):
    project_id: str
    error_code: str
    error_detail: str


class ReconcileResult(_Model):
    failed_project_ids: list[uuid.UUID] = []
    refunded_credits: int = 0


# === Errors ===


class ErrorResponse(BaseModel):
    error: str
    message: str
    retryable: bool = False
