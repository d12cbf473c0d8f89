"""Initial schema: 4 tables matching db.py models.

Revision ID: 001
Revises: (none)
Create Date: 2026-10-16
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import ARRAY, UUID

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # --- projects ---
    op.create_table(
        "projects",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("owner_id", sa.String(255), nullable=False),
        sa.Column("input_image_url", sa.Text(), nullable=False),
        sa.Column("style", sa.String(100), nullable=False),
        sa.Column("room_type", sa.String(100), nullable=False),
        sa.Column("rendering_type", sa.String(20), server_default="3d", nullable=False),
        sa.Column("color_tone", sa.String(100), nullable=True),
        sa.Column("view_type", sa.String(20), nullable=True),
        sa.Column("prompt", sa.Text(), nullable=True),
        sa.Column(
            "referenced_object_ids",
            ARRAY(UUID(as_uuid=True)),
            server_default="{}",
            nullable=False,
        ),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("result_image_url", sa.Text(), nullable=True),
        sa.Column("thumbnail_url", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("error_code", sa.String(50), nullable=True),
        sa.Column("error_detail", sa.Text(), nullable=True),
        sa.Column("idempotency_key", sa.String(255), nullable=True),
        sa.Column("credits_charged", sa.Integer(), server_default="0", nullable=False),
        sa.Column(
            "source_project_id",
            UUID(as_uuid=True),
            sa.ForeignKey("projects.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("replace_object", sa.String(255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'completed', 'failed')",
            name="ck_projects_status",
        ),
        sa.CheckConstraint(
            "(status = 'pending' AND result_image_url IS NULL AND error_detail IS NULL)"
            " OR (status = 'completed' AND result_image_url IS NOT NULL AND error_detail IS NULL)"
            " OR (status = 'failed' AND error_detail IS NOT NULL AND result_image_url IS NULL)",
            name="ck_projects_status_fields",
        ),
    )
    op.create_index("idx_projects_owner_created", "projects", ["owner_id", "created_at"])
    op.create_index("idx_projects_status_created", "projects", ["status", "created_at"])
    op.create_index(
        "uq_projects_owner_idempotency_key",
        "projects",
        ["owner_id", "idempotency_key"],
        unique=True,
        postgresql_where=sa.text("idempotency_key IS NOT NULL"),
    )

    # --- detected_objects ---
    op.create_table(
        "detected_objects",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "project_id",
            UUID(as_uuid=True),
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("owner_id", sa.String(255), nullable=False),
        sa.Column("object_name", sa.String(500), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("idx_detected_objects_project", "detected_objects", ["project_id"])

    # --- user_objects (no FK from projects: weak references) ---
    op.create_table(
        "user_objects",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("owner_id", sa.String(255), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("asset_url", sa.Text(), nullable=False),
        sa.Column("thumbnail_url", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("idx_user_objects_owner_created", "user_objects", ["owner_id", "created_at"])

    # --- user_profiles ---
    op.create_table(
        "user_profiles",
        sa.Column("user_id", sa.String(255), primary_key=True),
        sa.Column("credits", sa.Integer(), server_default="0", nullable=False),
        *_timestamps(),
        sa.CheckConstraint("credits >= 0", name="ck_user_profiles_credits"),
    )


def downgrade() -> None:
    op.drop_table("user_profiles")
    op.drop_table("user_objects")
    op.drop_table("detected_objects")
    op.drop_table("projects")
