"""
prodigyhub.services.activity_service — Activity Log
====================================================

Append-only journal of domain events.  Two write paths:

* :func:`append_activity` — adds a row to the caller's session so it
  commits (or rolls back) with the state change it describes.
* :func:`record_activity` — standalone write in its own transaction,
  validating that referenced users and projects exist.

Reads are newest first, ties broken by id.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from prodigyhub.constants import FEED_KINDS
from prodigyhub.database.models import ActivityLog, Project, User
from prodigyhub.errors import NotFound, UserNotFound

logger = logging.getLogger(__name__)

MAX_PAGE = 100


def append_activity(
    session: Session,
    *,
    kind: str,
    description: str = "",
    user_id: int | None = None,
    project_id: int | None = None,
    payload: dict[str, Any] | None = None,
) -> ActivityLog:
    """Stage an activity row in *session*; the caller commits."""
    row = ActivityLog(
        user_id=user_id,
        project_id=project_id,
        kind=str(kind),
        description=description,
        payload=payload,
    )
    session.add(row)
    return row


def record_activity(
    engine: Engine,
    *,
    kind: str,
    description: str = "",
    user_id: int | None = None,
    project_id: int | None = None,
    payload: dict[str, Any] | None = None,
) -> ActivityLog:
    """Write one activity row in its own transaction.

    Raises
    ------
    UserNotFound
        If *user_id* is given but no such user exists.
    NotFound
        If *project_id* is given but no such project exists.
    """
    with Session(engine, expire_on_commit=False) as session:
        if user_id is not None and session.get(User, user_id) is None:
            raise UserNotFound(f"User {user_id} not found", {"user_id": user_id})
        if project_id is not None and session.get(Project, project_id) is None:
            raise NotFound(f"Project {project_id} not found", {"project_id": project_id})

        row = append_activity(
            session,
            kind=kind,
            description=description,
            user_id=user_id,
            project_id=project_id,
            payload=payload,
        )
        session.commit()
        session.refresh(row)
        session.expunge(row)
        return row


def list_activity(
    engine: Engine,
    *,
    user_id: int | None = None,
    project_id: int | None = None,
    kinds: Iterable[str] | None = None,
    limit: int = 20,
) -> list[ActivityLog]:
    """Newest-first activity, optionally filtered by user, project and kind."""
    limit = max(1, min(limit, MAX_PAGE))
    stmt = select(ActivityLog)
    if user_id is not None:
        stmt = stmt.where(ActivityLog.user_id == user_id)
    if project_id is not None:
        stmt = stmt.where(ActivityLog.project_id == project_id)
    if kinds is not None:
        stmt = stmt.where(ActivityLog.kind.in_([str(k) for k in kinds]))
    stmt = stmt.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit)

    with Session(engine, expire_on_commit=False) as session:
        rows = list(session.scalars(stmt).all())
        session.expunge_all()
        return rows


def activity_feed(engine: Engine, limit: int = 20) -> list[ActivityLog]:
    """Public dashboard feed: project lifecycle events and level-ups."""
    return list_activity(engine, kinds=FEED_KINDS, limit=limit)
