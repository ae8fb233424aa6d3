"""Initial project lifecycle schema

Revision ID: 4c1e7a2b9d30
Revises:
Create Date: 2026-10-19 09:12:31.804113

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '4c1e7a2b9d30'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create users, projects, project_participants, activity_log, notifications."""

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(50), nullable=False, unique=True),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("discord_id", sa.String(50), nullable=True),
        sa.Column("total_xp", sa.Integer, nullable=False, server_default="0"),
        sa.Column("level", sa.Integer, nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("total_xp >= 0", name="ck_users_total_xp_non_negative"),
        sa.CheckConstraint("level >= 0", name="ck_users_level_non_negative"),
    )
    op.create_index("ix_users_total_xp_desc", "users", ["total_xp"])

    # --- projects ---
    op.create_table(
        "projects",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("slug", sa.String(255), nullable=True),
        sa.Column(
            "creator_id", sa.BigInteger,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("difficulty", sa.String(20), nullable=False, server_default="beginner"),
        sa.Column("max_participants", sa.Integer, nullable=False, server_default="5"),
        sa.Column("current_participants", sa.Integer, nullable=False, server_default="1"),
        sa.Column("xp_reward", sa.Integer, nullable=False, server_default="100"),
        sa.Column("tags", postgresql.JSONB, nullable=True),
        sa.Column("channel_ref", sa.String(64), nullable=True),
        sa.Column("role_ref", sa.String(64), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint("max_participants >= 2", name="ck_projects_min_capacity"),
        sa.CheckConstraint(
            "current_participants <= max_participants", name="ck_projects_capacity"
        ),
        sa.CheckConstraint(
            "(status = 'completed') = (completed_at IS NOT NULL)",
            name="ck_projects_completed_at",
        ),
    )
    op.create_index("ix_projects_creator", "projects", ["creator_id"])
    op.create_index("ix_projects_status", "projects", ["status"])
    op.create_index("ix_projects_slug", "projects", ["slug"])

    # --- project_participants ---
    op.create_table(
        "project_participants",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "project_id", sa.BigInteger,
            sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "user_id", sa.BigInteger,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("role", sa.String(20), nullable=False, server_default="collaborator"),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("project_id", "user_id", name="uq_participants_project_user"),
    )
    op.create_index("ix_participants_user", "project_participants", ["user_id"])

    # --- activity_log ---
    op.create_table(
        "activity_log",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.BigInteger,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column(
            "project_id", sa.BigInteger,
            sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column("kind", sa.String(50), nullable=False),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("payload", postgresql.JSONB, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_activity_log_user_time", "activity_log", ["user_id", "created_at"])
    op.create_index(
        "ix_activity_log_project_time", "activity_log", ["project_id", "created_at"]
    )
    op.create_index("ix_activity_log_kind_time", "activity_log", ["kind", "created_at"])

    # --- notifications ---
    op.create_table(
        "notifications",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.BigInteger,
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "sender_id", sa.BigInteger,
            sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("kind", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("payload", postgresql.JSONB, nullable=True),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_notifications_user_time", "notifications", ["user_id", "created_at"]
    )
    op.create_index(
        "ix_notifications_user_unread", "notifications", ["user_id", "is_read"]
    )


def downgrade() -> None:
    """Drop all lifecycle tables."""
    op.drop_table("notifications")
    op.drop_table("activity_log")
    op.drop_table("project_participants")
    op.drop_table("projects")
    op.drop_table("users")
