"""PostgreSQL store backed by an asyncpg connection pool.

Status transitions and credit mutations are single conditional statements,
so concurrent workers, reconcilers and debits cannot interleave a
read-check-write sequence.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

import asyncpg
import structlog

from app.config import settings
from app.models.contracts import Project, ProjectDraft, ProjectStatus, UserObject
from app.store.base import DuplicateIdempotencyKey

logger = structlog.get_logger()

_PROJECT_COLUMNS = (
    "id, owner_id, input_image_url, style, room_type, rendering_type, color_tone, "
    "view_type, prompt, referenced_object_ids, status, result_image_url, thumbnail_url, "
    "description, error_code, error_detail, idempotency_key, credits_charged, "
    "source_project_id, replace_object, created_at, updated_at"
)

_OBJECT_COLUMNS = (
    "id, owner_id, display_name, category, asset_url, thumbnail_url, description, created_at"
)


def pg_dsn(database_url: str | None = None) -> str:
    """Convert SQLAlchemy-style URL to plain PostgreSQL DSN for asyncpg."""
    url = database_url if database_url is not None else settings.database_url
    return url.replace("postgresql+asyncpg://", "postgresql://")


def _project(row: Any) -> Project:
    return Project.model_validate(dict(row))


def _user_object(row: Any) -> UserObject:
    return UserObject.model_validate(dict(row))


class PostgresStore:
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    @classmethod
    async def connect(cls, dsn: str | None = None) -> PostgresStore:
        pool = await asyncpg.create_pool(dsn=dsn or pg_dsn(), min_size=1, max_size=10)
        logger.info("postgres_pool_created")
        return cls(pool)

    async def close(self) -> None:
        await self._pool.close()

    # --- projects ---

    async def create_project(
        self, draft: ProjectDraft, *, idempotency_since: datetime | None = None
    ) -> Project:
        async with self._pool.acquire() as conn, conn.transaction():
            if draft.idempotency_key and idempotency_since is not None:
                # Release the key from holders outside the window
                await conn.execute(
                    """
                    UPDATE projects SET idempotency_key = NULL
                    WHERE owner_id = $1 AND idempotency_key = $2 AND created_at < $3
                    """,
                    draft.owner_id,
                    draft.idempotency_key,
                    idempotency_since,
                )
            row = await conn.fetchrow(
                f"""
                INSERT INTO projects (
                    id, owner_id, input_image_url, style, room_type, rendering_type,
                    color_tone, view_type, prompt, referenced_object_ids, status,
                    idempotency_key, credits_charged, source_project_id, replace_object
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, 'pending', $11, $12, $13, $14)
                ON CONFLICT (owner_id, idempotency_key) WHERE idempotency_key IS NOT NULL
                DO NOTHING
                RETURNING {_PROJECT_COLUMNS}
                """,
                uuid.uuid4(),
                draft.owner_id,
                draft.input_image_url,
                draft.style,
                draft.room_type,
                draft.rendering_type,
                draft.color_tone,
                draft.view_type,
                draft.prompt,
                draft.referenced_object_ids,
                draft.idempotency_key,
                draft.credits_charged,
                draft.source_project_id,
                draft.replace_object,
            )
        if row is None:
            raise DuplicateIdempotencyKey(draft.idempotency_key)
        return _project(row)

    async def get_project(self, project_id: uuid.UUID) -> Project | None:
        row = await self._pool.fetchrow(
            f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE id = $1", project_id
        )
        return _project(row) if row else None

    async def find_by_idempotency_key(
        self, owner_id: str, key: str, since: datetime
    ) -> Project | None:
        row = await self._pool.fetchrow(
            f"""
            SELECT {_PROJECT_COLUMNS} FROM projects
            WHERE owner_id = $1 AND idempotency_key = $2 AND created_at >= $3
            ORDER BY created_at DESC
            LIMIT 1
            """,
            owner_id,
            key,
            since,
        )
        return _project(row) if row else None

    async def complete_project(
        self,
        project_id: uuid.UUID,
        *,
        result_image_url: str,
        thumbnail_url: str | None,
        description: str | None,
    ) -> Project | None:
        row = await self._pool.fetchrow(
            f"""
            UPDATE projects
            SET status = 'completed', result_image_url = $2, thumbnail_url = $3,
                description = $4, error_code = NULL, error_detail = NULL,
                updated_at = now()
            WHERE id = $1 AND status = 'pending'
            RETURNING {_PROJECT_COLUMNS}
            """,
            project_id,
            result_image_url,
            thumbnail_url,
            description,
        )
        return _project(row) if row else None

    async def fail_project(
        self, project_id: uuid.UUID, *, error_code: str, error_detail: str
    ) -> Project | None:
        row = await self._pool.fetchrow(
            f"""
            UPDATE projects
            SET status = 'failed', error_code = $2, error_detail = $3,
                result_image_url = NULL, thumbnail_url = NULL, updated_at = now()
            WHERE id = $1 AND status = 'pending'
            RETURNING {_PROJECT_COLUMNS}
            """,
            project_id,
            error_code,
            error_detail,
        )
        return _project(row) if row else None

    async def list_projects(
        self,
        *,
        offset: int,
        limit: int,
        owner_id: str | None = None,
        exclude_owner_id: str | None = None,
        status: ProjectStatus | None = None,
    ) -> tuple[list[Project], int]:
        clauses: list[str] = []
        args: list[Any] = []
        if owner_id is not None:
            args.append(owner_id)
            clauses.append(f"owner_id = ${len(args)}")
        if exclude_owner_id is not None:
            args.append(exclude_owner_id)
            clauses.append(f"owner_id <> ${len(args)}")
        if status is not None:
            args.append(status)
            clauses.append(f"status = ${len(args)}")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        async with self._pool.acquire() as conn:
            total = await conn.fetchval(f"SELECT count(*) FROM projects {where}", *args)
            rows = await conn.fetch(
                f"""
                SELECT {_PROJECT_COLUMNS} FROM projects {where}
                ORDER BY created_at DESC, id DESC
                OFFSET ${len(args) + 1} LIMIT ${len(args) + 2}
                """,
                *args,
                offset,
                limit,
            )
        return [_project(r) for r in rows], int(total)

    async def list_stale_pending(self, created_before: datetime) -> list[Project]:
        rows = await self._pool.fetch(
            f"""
            SELECT {_PROJECT_COLUMNS} FROM projects
            WHERE status = 'pending' AND created_at < $1
            ORDER BY created_at
            """,
            created_before,
        )
        return [_project(r) for r in rows]

    async def delete_project(self, project_id: uuid.UUID) -> bool:
        # detected_objects rows go with it via ON DELETE CASCADE
        result = await self._pool.execute("DELETE FROM projects WHERE id = $1", project_id)
        return result != "DELETE 0"

    async def save_detected_objects(
        self, project_id: uuid.UUID, owner_id: str, names: list[str]
    ) -> None:
        async with self._pool.acquire() as conn, conn.transaction():
            await conn.execute("DELETE FROM detected_objects WHERE project_id = $1", project_id)
            if names:
                await conn.executemany(
                    "INSERT INTO detected_objects (id, project_id, owner_id, object_name) "
                    "VALUES ($1, $2, $3, $4)",
                    [(uuid.uuid4(), project_id, owner_id, name) for name in names],
                )

    async def get_detected_objects(self, project_id: uuid.UUID) -> list[str]:
        rows = await self._pool.fetch(
            "SELECT object_name FROM detected_objects WHERE project_id = $1 ORDER BY created_at",
            project_id,
        )
        return [r["object_name"] for r in rows]

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
        row = await self._pool.fetchrow(
            f"""
            INSERT INTO user_objects (
                id, owner_id, display_name, category, asset_url, thumbnail_url, description
            )
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            RETURNING {_OBJECT_COLUMNS}
            """,
            object_id or uuid.uuid4(),
            owner_id,
            display_name,
            category,
            asset_url,
            thumbnail_url,
            description,
        )
        return _user_object(row)

    async def get_user_object(self, object_id: uuid.UUID) -> UserObject | None:
        row = await self._pool.fetchrow(
            f"SELECT {_OBJECT_COLUMNS} FROM user_objects WHERE id = $1", object_id
        )
        return _user_object(row) if row else None

    async def get_user_objects(self, object_ids: list[uuid.UUID]) -> list[UserObject]:
        if not object_ids:
            return []
        rows = await self._pool.fetch(
            f"SELECT {_OBJECT_COLUMNS} FROM user_objects WHERE id = ANY($1::uuid[])",
            object_ids,
        )
        by_id = {r["id"]: _user_object(r) for r in rows}
        return [by_id[oid] for oid in object_ids if oid in by_id]

    async def list_user_objects(self, owner_id: str) -> list[UserObject]:
        rows = await self._pool.fetch(
            f"""
            SELECT {_OBJECT_COLUMNS} FROM user_objects
            WHERE owner_id = $1
            ORDER BY created_at DESC
            """,
            owner_id,
        )
        return [_user_object(r) for r in rows]

    async def delete_user_object(self, object_id: uuid.UUID) -> bool:
        result = await self._pool.execute("DELETE FROM user_objects WHERE id = $1", object_id)
        return result != "DELETE 0"

    # --- credits ---

    async def ensure_profile(self, user_id: str, initial_credits: int) -> int:
        async with self._pool.acquire() as conn:
            await conn.execute(
                "INSERT INTO user_profiles (user_id, credits) VALUES ($1, $2) "
                "ON CONFLICT (user_id) DO NOTHING",
                user_id,
                initial_credits,
            )
            balance = await conn.fetchval(
                "SELECT credits FROM user_profiles WHERE user_id = $1", user_id
            )
        return int(balance)

    async def try_debit(self, user_id: str, amount: int) -> int | None:
        balance = await self._pool.fetchval(
            """
            UPDATE user_profiles
            SET credits = credits - $2, updated_at = now()
            WHERE user_id = $1 AND credits >= $2
            RETURNING credits
            """,
            user_id,
            amount,
        )
        return None if balance is None else int(balance)

    async def add_credits(self, user_id: str, amount: int) -> int:
        balance = await self._pool.fetchval(
            """
            INSERT INTO user_profiles (user_id, credits) VALUES ($1, $2)
            ON CONFLICT (user_id)
            DO UPDATE SET credits = user_profiles.credits + EXCLUDED.credits, updated_at = now()
            RETURNING credits
            """,
            user_id,
            amount,
        )
        return int(balance)
