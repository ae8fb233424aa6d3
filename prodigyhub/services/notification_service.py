"""
prodigyhub.services.notification_service — Per-User Inbox
==========================================================

Notifications are written alongside the state change that caused them
(:func:`add_notification` inside the caller's session) or on their own
(:func:`dispatch_notification`).  After creation only ``is_read`` changes;
owners may delete their own entries.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import Engine, delete, func, select, update
from sqlalchemy.orm import Session

from prodigyhub.database.models import Notification, User
from prodigyhub.errors import NotFound, UserNotFound

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50


def add_notification(
    session: Session,
    *,
    user_id: int,
    kind: str,
    title: str,
    message: str,
    sender_id: int | None = None,
    payload: dict[str, Any] | None = None,
) -> Notification:
    """Stage a notification in *session*; the caller commits."""
    row = Notification(
        user_id=user_id,
        sender_id=sender_id,
        kind=str(kind),
        title=title,
        message=message,
        payload=payload,
        is_read=False,
    )
    session.add(row)
    return row


def dispatch_notification(
    engine: Engine,
    *,
    user_id: int,
    kind: str,
    title: str,
    message: str,
    sender_id: int | None = None,
    payload: dict[str, Any] | None = None,
) -> Notification:
    """Persist one notification in its own transaction.

    Raises :class:`UserNotFound` when the recipient (or the sender, if
    given) does not exist.
    """
    with Session(engine, expire_on_commit=False) as session:
        for uid in (user_id, sender_id):
            if uid is not None and session.get(User, uid) is None:
                raise UserNotFound(f"User {uid} not found", {"user_id": uid})

        row = add_notification(
            session,
            user_id=user_id,
            kind=kind,
            title=title,
            message=message,
            sender_id=sender_id,
            payload=payload,
        )
        session.commit()
        session.refresh(row)
        session.expunge(row)
        logger.debug("Notification %s (%s) → user %s", row.id, kind, user_id)
        return row


def list_notifications(
    engine: Engine, user_id: int, limit: int = DEFAULT_LIMIT
) -> tuple[list[Notification], int]:
    """Return ``(newest notifications, unread count)`` for *user_id*."""
    limit = max(1, min(limit, DEFAULT_LIMIT))
    with Session(engine, expire_on_commit=False) as session:
        rows = list(session.scalars(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        ).all())
        unread = session.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        ) or 0
        session.expunge_all()
        return rows, unread


def set_read(
    engine: Engine, notification_id: int, user_id: int, is_read: bool = True
) -> Notification:
    """Mark a notification read (or unread).  Scoped to its owner.

    Raises :class:`NotFound` if the notification does not exist or belongs
    to someone else.
    """
    with Session(engine, expire_on_commit=False) as session:
        row = session.get(Notification, notification_id)
        if row is None or row.user_id != user_id:
            raise NotFound(
                f"Notification {notification_id} not found",
                {"notification_id": notification_id},
            )
        row.is_read = is_read
        session.commit()
        session.refresh(row)
        session.expunge(row)
        return row


def mark_all_read(engine: Engine, user_id: int) -> int:
    """Mark every unread notification of *user_id* read; returns the count."""
    with Session(engine) as session:
        result = session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        session.commit()
        return result.rowcount


def delete_notification(engine: Engine, notification_id: int, user_id: int) -> None:
    """Delete one of the caller's own notifications."""
    with Session(engine) as session:
        result = session.execute(
            delete(Notification)
            .where(Notification.id == notification_id, Notification.user_id == user_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFound(
                f"Notification {notification_id} not found",
                {"notification_id": notification_id},
            )
        session.commit()
