"""
prodigyhub.api.routes.notifications — Caller's inbox (JWT-protected)
=====================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from prodigyhub.api.deps import CurrentUser, get_engine
from prodigyhub.api.serializers import notification_dict
from prodigyhub.services import notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
def list_notifications(
    user_id: CurrentUser,
    limit: int = Query(50, ge=1, le=50),
    engine: Engine = Depends(get_engine),
):
    rows, unread = notification_service.list_notifications(engine, user_id, limit=limit)
    return {
        "notifications": [notification_dict(r) for r in rows],
        "unread_count": unread,
    }


@router.put("/read-all")
def mark_all_read(user_id: CurrentUser, engine: Engine = Depends(get_engine)):
    return {"updated": notification_service.mark_all_read(engine, user_id)}


@router.put("/{notification_id}/read")
def mark_read(
    notification_id: int, user_id: CurrentUser, engine: Engine = Depends(get_engine)
):
    row = notification_service.set_read(engine, notification_id, user_id, is_read=True)
    return notification_dict(row)


@router.put("/{notification_id}/unread")
def mark_unread(
    notification_id: int, user_id: CurrentUser, engine: Engine = Depends(get_engine)
):
    row = notification_service.set_read(engine, notification_id, user_id, is_read=False)
    return notification_dict(row)


@router.delete("/{notification_id}")
def delete_notification(
    notification_id: int, user_id: CurrentUser, engine: Engine = Depends(get_engine)
):
    notification_service.delete_notification(engine, notification_id, user_id)
    return {"deleted": notification_id}
