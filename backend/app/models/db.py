"""SQLAlchemy ORM models for DreamCasa.

These describe the PostgreSQL schema (see migrations/versions). Runtime
queries go through app.store.postgres with asyncpg; the ORM classes are the
schema of record for migrations and tests.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Project(Base):
    __tablename__ = "projects"
    __table_args__ = (
        Index("idx_projects_owner_created", "owner_id", "created_at"),
        Index("idx_projects_status_created", "status", "created_at"),
        Index(
            "uq_projects_owner_idempotency_key",
            "owner_id",
            "idempotency_key",
            unique=True,
            postgresql_where=text("idempotency_key IS NOT NULL"),
        ),
        CheckConstraint(
            "status IN ('pending', 'completed', 'failed')",
            name="ck_projects_status",
        ),
        CheckConstraint(
            "(status = 'pending' AND result_image_url IS NULL AND error_detail IS NULL)"
            " OR (status = 'completed' AND result_image_url IS NOT NULL AND error_detail IS NULL)"
            " OR (status = 'failed' AND error_detail IS NOT NULL AND result_image_url IS NULL)",
            name="ck_projects_status_fields",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    input_image_url: Mapped[str] = mapped_column(Text, nullable=False)
    style: Mapped[str] = mapped_column(String(100), nullable=False)
    room_type: Mapped[str] = mapped_column(String(100), nullable=False)
    rendering_type: Mapped[str] = mapped_column(String(20), nullable=False, default="3d")
    color_tone: Mapped[str | None] = mapped_column(String(100), nullable=True)
    view_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    prompt: Mapped[str | None] = mapped_column(Text, nullable=True)
    referenced_object_ids: Mapped[list[uuid.UUID]] = mapped_column(
        ARRAY(UUID(as_uuid=True)), nullable=False, server_default="{}"
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    result_image_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    error_detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    credits_charged: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    source_project_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("projects.id", ondelete="SET NULL"), nullable=True
    )
    replace_object: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    detected_objects: Mapped[list["DetectedObject"]] = relationship(
        back_populates="project", cascade="all, delete"
    )


class DetectedObject(Base):
    __tablename__ = "detected_objects"
    __table_args__ = (Index("idx_detected_objects_project", "project_id"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    object_name: Mapped[str] = mapped_column(String(500), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    project: Mapped["Project"] = relationship(back_populates="detected_objects")


class UserObject(Base):
    """Reusable furniture asset. Projects reference these by id without a FK."""

    __tablename__ = "user_objects"
    __table_args__ = (Index("idx_user_objects_owner_created", "owner_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    asset_url: Mapped[str] = mapped_column(Text, nullable=False)
    thumbnail_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class UserProfile(Base):
    __tablename__ = "user_profiles"
    __table_args__ = (CheckConstraint("credits >= 0", name="ck_user_profiles_credits"),)

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    credits: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
