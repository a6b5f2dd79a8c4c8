"""
poapbot.api.routes.admin — Admin endpoints (JWT‑protected)
===========================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from slack_sdk.errors import SlackApiError

from poapbot.api.deps import get_current_admin, get_engine, get_runtime
from poapbot.runtime import PoapBotRuntime
from poapbot.services import delivery_service, rule_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class RuleCreate(BaseModel):
    channel_id: str = Field(min_length=1)  # Slack channel *name*, e.g. "general"
    reaction_threshold: int = Field(default=3, ge=1)
    poap_event_id: str = Field(min_length=1)
    poap_name: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------
@router.post("/poap-rules", status_code=201)
def create_rule(
    body: RuleCreate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    try:
        rule_id = rule_service.create_rule(
            engine,
            body.channel_id,
            body.reaction_threshold,
            body.poap_event_id,
            body.poap_name,
            actor_id=str(admin["sub"]),
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc))
    return {"id": rule_id, "message": "POAP rule created successfully"}


@router.delete("/poap-rules/{rule_id}", status_code=204)
def delete_rule(
    rule_id: int,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    """Soft delete: the rule is deactivated, its history is kept."""
    if not rule_service.deactivate_rule(engine, rule_id, actor_id=str(admin["sub"])):
        raise HTTPException(404, "Rule not found")


# ---------------------------------------------------------------------------
# Deliveries + stats
# ---------------------------------------------------------------------------
@router.get("/deliveries")
def list_deliveries(
    limit: int = Query(default=50, ge=1, le=500),
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    rows = delivery_service.list_recent_deliveries(engine, limit=limit)
    return {
        "deliveries": [
            {
                "id": d.id,
                "user_id": d.user_id,
                "user_email": d.user_email,
                "message_id": d.message_id,
                "channel_id": d.channel_id,
                "poap_event_id": d.poap_event_id,
                "claim_link": d.claim_link,
                "delivered_at": d.delivered_at.isoformat() if d.delivered_at else None,
            }
            for d in rows
        ],
    }


@router.get("/stats")
def stats(
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    s = delivery_service.get_delivery_stats(engine)
    return {
        "total_deliveries": s.total_deliveries,
        "unique_users": s.unique_users,
        "unique_events": s.unique_events,
    }


# ---------------------------------------------------------------------------
# External lookups
# ---------------------------------------------------------------------------
@router.get("/slack-channels")
async def slack_channels(
    admin: dict = Depends(get_current_admin),
    runtime: PoapBotRuntime = Depends(get_runtime),
):
    """Channels the bot can see, for the rule editor's channel picker."""
    try:
        channels = await runtime.slack.list_channels()
    except SlackApiError as exc:
        logger.error("Failed to list Slack channels: %s", exc.response.get("error"))
        raise HTTPException(502, "Failed to fetch Slack channels")
    return {"channels": channels}


@router.get("/poap-events/{event_id}")
async def poap_event(
    event_id: str,
    admin: dict = Depends(get_current_admin),
    runtime: PoapBotRuntime = Depends(get_runtime),
):
    details = await runtime.issuer.get_event_details(event_id)
    if details is None:
        raise HTTPException(404, "POAP event not found")
    return details


@router.get("/health/email")
async def email_health(
    admin: dict = Depends(get_current_admin),
    runtime: PoapBotRuntime = Depends(get_runtime),
):
    """Open an SMTP session to check credentials without sending mail."""
    result = await runtime.email.test_connection()
    return {"success": result.success, "error": result.error}
