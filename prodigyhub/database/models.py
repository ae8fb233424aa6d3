"""
prodigyhub.database.models — SQLAlchemy 2.0 Data Models
========================================================

Tables:
- users                 — Member profiles with cumulative XP and derived level
- projects              — Team projects and their lifecycle status
- project_participants  — Roster rows (one per user per project)
- activity_log          — Append-only domain event journal
- notifications         — Per-user inbox entries
"""

from __future__ import annotations

import enum
import json
import logging
from datetime import datetime
from typing import Any

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all ProdigyHub ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ProjectStatus(enum.StrEnum):
    """Project lifecycle.  ``completed`` and ``cancelled`` are terminal."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES: tuple[str, ...] = (ProjectStatus.OPEN.value, ProjectStatus.IN_PROGRESS.value)
TERMINAL_STATUSES: tuple[str, ...] = (ProjectStatus.COMPLETED.value, ProjectStatus.CANCELLED.value)


class Difficulty(enum.StrEnum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


class ParticipantRole(enum.StrEnum):
    CREATOR = "creator"
    COLLABORATOR = "collaborator"


class ActivityKind(enum.StrEnum):
    """Event kinds written to activity_log."""
    PROJECT_CREATED = "project_created"
    PROJECT_JOINED = "project_joined"
    PROJECT_STARTED = "project_started"
    PROJECT_COMPLETED = "project_completed"
    PROJECT_CANCELLED = "project_cancelled"
    LEVEL_UP = "level_up"
    XP_AWARDED = "xp_awarded"


class NotificationKind(enum.StrEnum):
    PROJECT_JOIN = "project_join"
    PROJECT_COMPLETED = "project_completed"
    PROJECT_CANCELLED = "project_cancelled"
    LEVEL_UP = "level_up"
    SYSTEM = "system"


# ---------------------------------------------------------------------------
# Storage-edge decoding
# ---------------------------------------------------------------------------
def safe_json(value: Any, default: Any) -> Any:
    """Decode a JSON column value, tolerating legacy text blobs.

    JSON columns normally come back already decoded; rows written by older
    tooling may hold a JSON *string* instead.  Anything unparseable or of
    the wrong shape yields *default* (and a warning), never an exception.
    """
    if value is None:
        return default
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Discarding undecodable JSON column value: %.80r", value)
            return default
    if default is not None and not isinstance(value, type(default)):
        logger.warning(
            "JSON column value has type %s, expected %s",
            type(value).__name__, type(default).__name__,
        )
        return default
    return value


# ---------------------------------------------------------------------------
# Users — one row per member
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    discord_id: Mapped[str | None] = mapped_column(String(50), default=None)
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("total_xp >= 0", name="ck_users_total_xp_non_negative"),
        CheckConstraint("level >= 0", name="ck_users_level_non_negative"),
        Index("ix_users_total_xp_desc", "total_xp"),
    )

    @property
    def name(self) -> str:
        return self.display_name or self.username

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.username!r} lvl={self.level}>"


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------
class Project(Base):
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    slug: Mapped[str | None] = mapped_column(String(255), default=None)
    creator_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ProjectStatus.OPEN.value
    )
    difficulty: Mapped[str] = mapped_column(
        String(20), nullable=False, default=Difficulty.BEGINNER.value
    )
    max_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    current_participants: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    xp_reward: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    tags: Mapped[list | None] = mapped_column(JSONB, default=list)

    # Collaboration channel refs, set once by channel provisioning
    channel_ref: Mapped[str | None] = mapped_column(String(64), default=None)
    role_ref: Mapped[str | None] = mapped_column(String(64), default=None)

    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    creator: Mapped[User] = relationship()
    participants: Mapped[list[ProjectParticipant]] = relationship(
        back_populates="project", order_by="ProjectParticipant.joined_at"
    )

    __table_args__ = (
        CheckConstraint("max_participants >= 2", name="ck_projects_min_capacity"),
        CheckConstraint(
            "current_participants <= max_participants",
            name="ck_projects_capacity",
        ),
        CheckConstraint(
            "(status = 'completed') = (completed_at IS NOT NULL)",
            name="ck_projects_completed_at",
        ),
        Index("ix_projects_creator", "creator_id"),
        Index("ix_projects_status", "status"),
        Index("ix_projects_slug", "slug"),
    )

    @property
    def has_channel(self) -> bool:
        return bool(self.channel_ref and self.role_ref)

    @property
    def tag_list(self) -> list[str]:
        return safe_json(self.tags, [])

    def __repr__(self) -> str:
        return f"<Project id={self.id} title={self.title!r} status={self.status}>"


# ---------------------------------------------------------------------------
# ProjectParticipant — roster rows, retained for history / XP audit
# ---------------------------------------------------------------------------
class ProjectParticipant(Base):
    __tablename__ = "project_participants"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ParticipantRole.COLLABORATOR.value
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    project: Mapped[Project] = relationship(back_populates="participants")
    user: Mapped[User] = relationship()

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_participants_project_user"),
        Index("ix_participants_user", "user_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<ProjectParticipant project={self.project_id} "
            f"user={self.user_id} role={self.role}>"
        )


# ---------------------------------------------------------------------------
# ActivityLog — append-only event journal
# ---------------------------------------------------------------------------
class ActivityLog(Base):
    __tablename__ = "activity_log"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=True
    )
    project_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("projects.id", ondelete="CASCADE"), nullable=True
    )
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    payload: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_activity_log_user_time", "user_id", "created_at"),
        Index("ix_activity_log_project_time", "project_id", "created_at"),
        Index("ix_activity_log_kind_time", "kind", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ActivityLog id={self.id} user={self.user_id} kind={self.kind}>"


# ---------------------------------------------------------------------------
# Notification — per-user inbox
# ---------------------------------------------------------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_notifications_user_time", "user_id", "created_at"),
        Index("ix_notifications_user_unread", "user_id", "is_read"),
    )

    def __repr__(self) -> str:
        return f"<Notification id={self.id} user={self.user_id} kind={self.kind}>"
