"""
poapbot.api.routes.public — Unauthenticated read endpoints
===========================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from poapbot.api.deps import get_engine
from poapbot.database.engine import run_db
from poapbot.database.models import PoapRule
from poapbot.services.rule_service import list_active_rules

router = APIRouter(tags=["public"])


def rule_dict(rule: PoapRule) -> dict:
    return {
        "id": rule.id,
        "channel_id": rule.channel_id,
        "reaction_threshold": rule.reaction_threshold,
        "poap_event_id": rule.poap_event_id,
        "poap_name": rule.poap_name,
        "is_active": rule.is_active,
        "created_at": rule.created_at.isoformat() if rule.created_at else None,
    }


@router.get("/poap-rules")
async def list_rules(engine: Engine = Depends(get_engine)):
    """Active POAP rules, oldest first."""
    rules = await run_db(list_active_rules, engine)
    return [rule_dict(r) for r in rules]
