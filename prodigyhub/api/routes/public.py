"""
prodigyhub.api.routes.public — Read-only public endpoints
==========================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from prodigyhub.api.deps import get_engine, get_ledger
from prodigyhub.api.serializers import activity_dict, user_dict
from prodigyhub.services import activity_service
from prodigyhub.services.xp_service import XPLedger

router = APIRouter(tags=["public"])


# ---------------------------------------------------------------------------
# GET /activity/feed
# ---------------------------------------------------------------------------
@router.get("/activity/feed")
def get_activity_feed(
    limit: int = Query(20, ge=1, le=100),
    engine: Engine = Depends(get_engine),
):
    """Recent project lifecycle events and level-ups, newest first."""
    rows = activity_service.activity_feed(engine, limit=limit)
    return [activity_dict(r) for r in rows]


# ---------------------------------------------------------------------------
# GET /users/{id}/progress
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}/progress")
def get_user_progress(user_id: int, ledger: XPLedger = Depends(get_ledger)):
    user, progress = ledger.progress(user_id)
    return {
        **user_dict(user),
        "current_level": progress.level,
        "progress_xp": progress.progress_xp,
        "level_total_xp": progress.level_span,
        "percentage": progress.percentage,
        "xp_needed": progress.xp_needed,
    }


# ---------------------------------------------------------------------------
# GET /users/{id}/activity
# ---------------------------------------------------------------------------
@router.get("/users/{user_id}/activity")
def get_user_activity(
    user_id: int,
    limit: int = Query(20, ge=1, le=100),
    engine: Engine = Depends(get_engine),
):
    rows = activity_service.list_activity(engine, user_id=user_id, limit=limit)
    return [activity_dict(r) for r in rows]
