"""
poapbot.engine.events — ReactionEvent envelope
===============================================

Every inbound reaction is normalized into a :class:`ReactionEvent` before
the evaluator sees it.  Transport-specific payload parsing lives in
:mod:`poapbot.bot.events`.
"""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["ReactionEvent"]


@dataclass(frozen=True, slots=True)
class ReactionEvent:
    """A reaction was added to a message.

    ``message_id`` is the Slack message timestamp.  ``total_reaction_count``
    is the caller's pre-aggregated count across all emoji, when it has one;
    the evaluator always re-fetches the authoritative count and only uses
    this value for logging.
    """

    message_id: str
    channel_id: str
    reacting_user_id: str
    total_reaction_count: int | None = None
