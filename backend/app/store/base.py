"""Storage interface shared by the in-memory and PostgreSQL backends."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Protocol

from app.models.contracts import Project, ProjectDraft, ProjectStatus, UserObject


class DuplicateIdempotencyKey(Exception):
    """Another live project of the same owner already holds this idempotency key."""


class Store(Protocol):
    # --- projects ---

    async def create_project(
        self, draft: ProjectDraft, *, idempotency_since: datetime | None = None
    ) -> Project:
        """Insert a pending project.

        A key held by a project created at or after `idempotency_since` raises
        DuplicateIdempotencyKey; an older holder gives the key up. Without
        `idempotency_since` any holder is a duplicate.
        """
        ...

    async def get_project(self, project_id: uuid.UUID) -> Project | None: ...

    async def find_by_idempotency_key(
        self, owner_id: str, key: str, since: datetime
    ) -> Project | None: ...

    async def complete_project(
        self,
        project_id: uuid.UUID,
        *,
        result_image_url: str,
        thumbnail_url: str | None,
        description: str | None,
    ) -> Project | None:
        """Transition pending -> completed. Returns None if the project was not pending."""
        ...

    async def fail_project(
        self, project_id: uuid.UUID, *, error_code: str, error_detail: str
    ) -> Project | None:
        """Transition pending -> failed. Returns None if the project was not pending."""
        ...

    async def list_projects(
        self,
        *,
        offset: int,
        limit: int,
        owner_id: str | None = None,
        exclude_owner_id: str | None = None,
        status: ProjectStatus | None = None,
    ) -> tuple[list[Project], int]:
        """Newest-first slice plus the total count matching the filters."""
        ...

    async def list_stale_pending(self, created_before: datetime) -> list[Project]: ...

    async def delete_project(self, project_id: uuid.UUID) -> bool: ...

    async def save_detected_objects(
        self, project_id: uuid.UUID, owner_id: str, names: list[str]
    ) -> None: ...

    async def get_detected_objects(self, project_id: uuid.UUID) -> list[str]: ...

    # --- user objects ---

    async def create_user_object(
        self,
        *,
        object_id: uuid.UUID | None = None,
        owner_id: str,
        display_name: str,
        category: str,
        asset_url: str,
        thumbnail_url: str | None,
        description: str | None,
    ) -> UserObject: ...

    async def get_user_object(self, object_id: uuid.UUID) -> UserObject | None: ...

    async def get_user_objects(self, object_ids: list[uuid.UUID]) -> list[UserObject]: ...

    async def list_user_objects(self, owner_id: str) -> list[UserObject]: ...

    async def delete_user_object(self, object_id: uuid.UUID) -> bool: ...

    # --- credits ---

    async def ensure_profile(self, user_id: str, initial_credits: int) -> int:
        """Create the profile if missing; return the current balance."""
        ...

    async def try_debit(self, user_id: str, amount: int) -> int | None:
        """Atomically subtract `amount` if the balance covers it.

        Returns the new balance, or None when the balance is insufficient or
        the profile does not exist.
        """
        ...

    async def add_credits(self, user_id: str, amount: int) -> int: ...

    async def close(self) -> None: ...
