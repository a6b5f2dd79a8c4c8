"""
poapbot.bot.events — Events API adapter
========================================

Translates Slack Events API callbacks into :class:`ReactionEvent` objects.
No business logic lives here; the evaluator owns every decision.

Inbound shape::

    {"type": "event_callback",
     "event": {"type": "reaction_added", "user": "U…",
               "item": {"type": "message", "channel": "C…", "ts": "1700000000.000100"}}}

The payload carries no aggregate count; the evaluator fetches it.
"""

from __future__ import annotations

import logging
from typing import Any

from poapbot.engine.events import ReactionEvent

logger = logging.getLogger(__name__)

REACTION_ADDED = "reaction_added"


def reaction_event_from_payload(event: dict[str, Any]) -> ReactionEvent | None:
    """Build a :class:`ReactionEvent` from a ``reaction_added`` event body.

    Returns ``None`` for other event types and for reactions on items that
    aren't channel messages (files, file comments).
    """
    if event.get("type") != REACTION_ADDED:
        return None

    item = event.get("item") or {}
    if item.get("type", "message") != "message":
        return None

    channel_id = item.get("channel")
    ts = item.get("ts")
    if not channel_id or not ts:
        logger.warning("reaction_added without channel/ts: %s", item)
        return None

    return ReactionEvent(
        message_id=str(ts),
        channel_id=str(channel_id),
        reacting_user_id=str(event.get("user") or ""),
    )


def reaction_event_from_callback(body: dict[str, Any]) -> ReactionEvent | None:
    """Unwrap an ``event_callback`` envelope and adapt its inner event."""
    if body.get("type") != "event_callback":
        return None
    event = body.get("event")
    if not isinstance(event, dict):
        return None
    return reaction_event_from_payload(event)
