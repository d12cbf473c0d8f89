"""In-memory store for local development and tests.

A single asyncio.Lock serialises every mutation, which gives the same
guarantees as the conditional UPDATE statements in the PostgreSQL backend.
"""

from __future__ import annotations

import asyncio
import itertools
import uuid
from datetime import UTC, datetime

from app.models.contracts import Project, ProjectDraft, ProjectStatus, UserObject
from app.store.base import DuplicateIdempotencyKey


def _now() -> datetime:
    return datetime.now(UTC)


class InMemoryStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._projects: dict[uuid.UUID, Project] = {}
        # Insertion sequence breaks created_at ties so ordering is total
        self._seq: dict[uuid.UUID, int] = {}
        self._counter = itertools.count()
        self._detected: dict[uuid.UUID, list[str]] = {}
        self._objects: dict[uuid.UUID, UserObject] = {}
        self._credits: dict[str, int] = {}

    # --- projects ---

    async def create_project(
        self, draft: ProjectDraft, *, idempotency_since: datetime | None = None
    ) -> Project:
        async with self._lock:
            now = _now()
            if draft.idempotency_key:
                self._claim_key(draft.owner_id, draft.idempotency_key, idempotency_since)
            project = Project(
                id=uuid.uuid4(),
                status="pending",
                created_at=now,
                updated_at=now,
                **draft.model_dump(),
            )
            self._projects[project.id] = project
            self._seq[project.id] = next(self._counter)
        return project

    def _claim_key(self, owner_id: str, key: str, since: datetime | None) -> None:
        # Caller holds the lock
        for holder in list(self._projects.values()):
            if holder.owner_id != owner_id or holder.idempotency_key != key:
                continue
            if since is None or holder.created_at >= since:
                raise DuplicateIdempotencyKey(key)
            self._projects[holder.id] = holder.model_copy(update={"idempotency_key": None})

    async def get_project(self, project_id: uuid.UUID) -> Project | None:
        return self._projects.get(project_id)

    async def find_by_idempotency_key(
        self, owner_id: str, key: str, since: datetime
    ) -> Project | None:
        for project in self._projects.values():
            if (
                project.owner_id == owner_id
                and project.idempotency_key == key
                and project.created_at >= since
            ):
                return project
        return None

    async def _transition(self, project_id: uuid.UUID, **fields: object) -> Project | None:
        async with self._lock:
            current = self._projects.get(project_id)
            if current is None or current.status != "pending":
                return None
            data = current.model_dump()
            data.update(fields, updated_at=_now())
            updated = Project.model_validate(data)
            self._projects[project_id] = updated
            return updated

    async def complete_project(
        self,
        project_id: uuid.UUID,
        *,
        result_image_url: str,
        thumbnail_url: str | None,
        description: str | None,
    ) -> Project | None:
        return await self._transition(
            project_id,
            status="completed",
            result_image_url=result_image_url,
            thumbnail_url=thumbnail_url,
            description=description,
        )

    async def fail_project(
        self, project_id: uuid.UUID, *, error_code: str, error_detail: str
    ) -> Project | None:
        return await self._transition(
            project_id,
            status="failed",
            error_code=error_code,
            error_detail=error_detail,
        )

    async def list_projects(
        self,
        *,
        offset: int,
        limit: int,
        owner_id: str | None = None,
        exclude_owner_id: str | None = None,
        status: ProjectStatus | None = None,
    ) -> tuple[list[Project], int]:
        matches = [
            p
            for p in self._projects.values()
            if (owner_id is None or p.owner_id == owner_id)
            and (exclude_owner_id is None or p.owner_id != exclude_owner_id)
            and (status is None or p.status == status)
        ]
        matches.sort(key=lambda p: (p.created_at, self._seq[p.id]), reverse=True)
        return matches[offset : offset + limit], len(matches)

    async def list_stale_pending(self, created_before: datetime) -> list[Project]:
        return [
            p
            for p in self._projects.values()
            if p.status == "pending" and p.created_at < created_before
        ]

    async def delete_project(self, project_id: uuid.UUID) -> bool:
        async with self._lock:
            self._detected.pop(project_id, None)
            self._seq.pop(project_id, None)
            return self._projects.pop(project_id, None) is not None

    async def save_detected_objects(
        self, project_id: uuid.UUID, owner_id: str, names: list[str]
    ) -> None:
        async with self._lock:
            self._detected[project_id] = list(names)

    async def get_detected_objects(self, project_id: uuid.UUID) -> list[str]:
        return list(self._detected.get(project_id, []))

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
    ) -> UserObject:
        obj = UserObject(
            id=object_id or uuid.uuid4(),
            owner_id=owner_id,
            display_name=display_name,
            category=category,
            asset_url=asset_url,
            thumbnail_url=thumbnail_url,
            description=description,
            created_at=_now(),
        )
        async with self._lock:
            self._objects[obj.id] = obj
        return obj

    async def get_user_object(self, object_id: uuid.UUID) -> UserObject | None:
        return self._objects.get(object_id)

    async def get_user_objects(self, object_ids: list[uuid.UUID]) -> list[UserObject]:
        return [self._objects[oid] for oid in object_ids if oid in self._objects]

    async def list_user_objects(self, owner_id: str) -> list[UserObject]:
        # Newest insertion first among equal timestamps (sort is stable)
        owned = [o for o in reversed(self._objects.values()) if o.owner_id == owner_id]
        return sorted(owned, key=lambda o: o.created_at, reverse=True)

    async def delete_user_object(self, object_id: uuid.UUID) -> bool:
        async with self._lock:
            return self._objects.pop(object_id, None) is not None

    # --- credits ---

    async def ensure_profile(self, user_id: str, initial_credits: int) -> int:
        async with self._lock:
            return self._credits.setdefault(user_id, initial_credits)

    async def try_debit(self, user_id: str, amount: int) -> int | None:
        async with self._lock:
            balance = self._credits.get(user_id)
            if balance is None or balance < amount:
                return None
            self._credits[user_id] = balance - amount
            return balance - amount

    async def add_credits(self, user_id: str, amount: int) -> int:
        async with self._lock:
            self._credits[user_id] = self._credits.get(user_id, 0) + amount
            return self._credits[user_id]

    def set_balance(self, user_id: str, balance: int) -> None:
        """Seed a balance directly (tests and local fixtures)."""
        self._credits[user_id] = balance

    async def close(self) -> None:
        return None
