"""
prodigyhub.api.routes.admin — Admin endpoints (JWT-protected)
==============================================================

Manual XP awards (used to replay awards that failed during completion),
level recomputation, and channel housekeeping.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import Engine

from prodigyhub.api.deps import (
    get_adapter,
    get_config,
    get_current_admin,
    get_engine,
    get_ledger,
)
from prodigyhub.config import ProdigyConfig
from prodigyhub.services.channel_adapter import ChannelAdapter
from prodigyhub.services.channel_service import teardown_stale_channels
from prodigyhub.services.xp_service import XPLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class XPAward(BaseModel):
    user_id: int
    amount: int
    reason: str = "manual award"
    project_id: int | None = None


# ---------------------------------------------------------------------------
# XP
# ---------------------------------------------------------------------------
@router.post("/xp/award")
def award_xp(
    body: XPAward,
    admin: dict = Depends(get_current_admin),
    ledger: XPLedger = Depends(get_ledger),
):
    result = ledger.award(body.user_id, body.amount, body.reason, project_id=body.project_id)
    logger.info(
        "Admin %s awarded %d XP to user %s (%s)",
        admin.get("sub"), body.amount, body.user_id, body.reason,
    )
    return result.to_dict()


@router.post("/levels/recompute")
def recompute_levels(
    admin: dict = Depends(get_current_admin),
    ledger: XPLedger = Depends(get_ledger),
):
    return {"corrected": ledger.recompute_levels()}


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------
@router.post("/channels/teardown")
def teardown_channels(
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
    adapter: ChannelAdapter = Depends(get_adapter),
    config: ProdigyConfig = Depends(get_config),
):
    """Remove channels of projects completed more than
    ``channel_teardown_hours`` ago."""
    removed = teardown_stale_channels(
        engine, adapter, config.channel_teardown_hours, timeout=config.channel_timeout
    )
    return {"removed": removed}
