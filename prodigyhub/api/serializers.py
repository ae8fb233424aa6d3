"""
prodigyhub.api.serializers — ORM row → JSON dict helpers
=========================================================
"""

from __future__ import annotations

from datetime import datetime

from prodigyhub.database.models import (
    ActivityLog,
    Notification,
    Project,
    ProjectParticipant,
    User,
    safe_json,
)


def iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def user_dict(u: User) -> dict:
    return {
        "id": u.id,
        "username": u.username,
        "display_name": u.name,
        "level": u.level,
        "total_xp": u.total_xp,
    }


def project_dict(p: Project) -> dict:
    return {
        "id": p.id,
        "title": p.title,
        "description": p.description,
        "slug": p.slug,
        "creator_id": p.creator_id,
        "status": p.status,
        "difficulty": p.difficulty,
        "max_participants": p.max_participants,
        "current_participants": p.current_participants,
        "xp_reward": p.xp_reward,
        "tags": p.tag_list,
        "has_channel": p.has_channel,
        "completed_at": iso(p.completed_at),
        "created_at": iso(p.created_at),
    }


def participant_dict(row: ProjectParticipant) -> dict:
    return {
        "user": user_dict(row.user),
        "role": row.role,
        "joined_at": iso(row.joined_at),
        "completed_at": iso(row.completed_at),
    }


def activity_dict(row: ActivityLog) -> dict:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "project_id": row.project_id,
        "kind": row.kind,
        "description": row.description,
        "payload": safe_json(row.payload, {}),
        "created_at": iso(row.created_at),
    }


def notification_dict(row: Notification) -> dict:
    return {
        "id": row.id,
        "kind": row.kind,
        "title": row.title,
        "message": row.message,
        "sender_id": row.sender_id,
        "payload": safe_json(row.payload, {}),
        "is_read": row.is_read,
        "created_at": iso(row.created_at),
    }
