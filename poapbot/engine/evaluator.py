"""
poapbot.engine.evaluator — Reaction → Delivery State Machine
=============================================================

The single path from "someone reacted" to "the author got a POAP email".
All Slack entry points funnel into :meth:`DeliveryEvaluator.evaluate`.

Pipeline stages:
  ReactionEvent → Author → Rule (by channel *name*) → Authoritative count
  → Ledger upsert → Threshold → Dedup guard → Email lookup
  → Claim link → Email → Record delivery → Confirmation DM

Guarantees:
- ``evaluate`` never raises; every failure becomes a logged outcome.
- Nothing is written when no rule matches the channel.
- The ledger is updated before the threshold check, so a later, higher
  count is compared from a correct baseline.
- The dedup guard re-reads ``delivered`` from the ledger after the upsert,
  and the upsert → record span is serialized per (message, author).
  Delivery is still at-least-once: a crash between email and record, or a
  second process, can deliver twice.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import TYPE_CHECKING

from poapbot.database.engine import run_db
from poapbot.engine.events import ReactionEvent
from poapbot.engine.locks import KeyedLock
from poapbot.services.delivery_service import record_delivery
from poapbot.services.ledger_service import get_reaction, upsert_reaction
from poapbot.services.rule_service import get_rule_by_channel_name

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from poapbot.bot.gateway import SlackGateway
    from poapbot.database.models import PoapRule
    from poapbot.services.claim_service import ClaimLinkIssuer
    from poapbot.services.notification_service import Notifier

logger = logging.getLogger(__name__)


class DeliveryOutcome(enum.StrEnum):
    """How an evaluation ended.  Informational — callers may ignore it."""
    AUTHOR_NOT_FOUND = "author_not_found"
    CHANNEL_NOT_FOUND = "channel_not_found"
    NO_RULE = "no_rule"
    REACTIONS_UNAVAILABLE = "reactions_unavailable"
    BELOW_THRESHOLD = "below_threshold"
    ALREADY_DELIVERED = "already_delivered"
    USER_NOT_FOUND = "user_not_found"
    MISSING_EMAIL = "missing_email"
    EMAIL_FAILED = "email_failed"
    DELIVERED = "delivered"
    ERROR = "error"


class DeliveryEvaluator:
    """Decides, per reaction event, whether to deliver a POAP — and does it.

    Parameters
    ----------
    engine:
        SQLAlchemy engine; every decision re-reads the database.
    slack, issuer, notifier:
        External collaborators (see :mod:`poapbot.bot.gateway`,
        :mod:`poapbot.services.claim_service`,
        :mod:`poapbot.services.notification_service`).
    locks:
        Per-(message, author) serialization.  Share one instance per process.
    delivery_slots:
        Bounds concurrent claim-link + email calls.  Unbounded when ``None``.
    """

    def __init__(
        self,
        engine: Engine,
        slack: SlackGateway,
        issuer: ClaimLinkIssuer,
        notifier: Notifier,
        *,
        locks: KeyedLock | None = None,
        delivery_slots: asyncio.Semaphore | None = None,
    ) -> None:
        self.engine = engine
        self.slack = slack
        self.issuer = issuer
        self.notifier = notifier
        self.locks = locks if locks is not None else KeyedLock()
        self.delivery_slots = delivery_slots

    async def evaluate(self, event: ReactionEvent) -> DeliveryOutcome:
        """Run the full pipeline for *event*.  Never raises."""
        try:
            outcome = await self._evaluate(event)
        except Exception:
            logger.exception(
                "Error handling reaction on message %s in channel %s",
                event.message_id, event.channel_id,
            )
            return DeliveryOutcome.ERROR
        logger.debug(
            "Reaction on %s/%s → %s", event.channel_id, event.message_id, outcome,
        )
        return outcome

    # -----------------------------------------------------------------------
    # Stages 1–2: who wrote it, and does the channel have a rule?
    # -----------------------------------------------------------------------
    async def _evaluate(self, event: ReactionEvent) -> DeliveryOutcome:
        message = await self.slack.fetch_message(event.channel_id, event.message_id)
        author_id = message.get("user") if message else None
        if not author_id:
            logger.info(
                "Message %s in %s not found or has no author — skipping",
                event.message_id, event.channel_id,
            )
            return DeliveryOutcome.AUTHOR_NOT_FOUND

        channel_name = await self.slack.get_channel_name(event.channel_id)
        if channel_name is None:
            return DeliveryOutcome.CHANNEL_NOT_FOUND

        rule = await run_db(get_rule_by_channel_name, self.engine, channel_name)
        if rule is None:
            logger.info("No POAP rule found for channel: %s", channel_name)
            return DeliveryOutcome.NO_RULE

        async with self.locks.hold((event.message_id, author_id)):
            return await self._evaluate_locked(event, author_id, channel_name, rule)

    # -----------------------------------------------------------------------
    # Stages 3–5: authoritative count, ledger, threshold, dedup guard
    # -----------------------------------------------------------------------
    async def _evaluate_locked(
        self,
        event: ReactionEvent,
        author_id: str,
        channel_name: str,
        rule: PoapRule,
    ) -> DeliveryOutcome:
        total = await self.slack.count_reactions(event.channel_id, event.message_id)
        if total is None:
            return DeliveryOutcome.REACTIONS_UNAVAILABLE
        if event.total_reaction_count is not None and event.total_reaction_count != total:
            logger.debug(
                "Event count %d differs from live count %d on %s",
                event.total_reaction_count, total, event.message_id,
            )

        await run_db(
            upsert_reaction,
            self.engine,
            event.message_id,
            event.channel_id,
            author_id,
            total,
        )
        logger.info(
            "Total reactions: %d, Threshold: %d (message %s, #%s)",
            total, rule.reaction_threshold, event.message_id, channel_name,
        )
        if total < rule.reaction_threshold:
            return DeliveryOutcome.BELOW_THRESHOLD

        snapshot = await run_db(get_reaction, self.engine, event.message_id, author_id)
        if snapshot is not None and snapshot.delivered:
            return DeliveryOutcome.ALREADY_DELIVERED

        logger.info("Triggering POAP for user %s", author_id)
        return await self._deliver(event, author_id, channel_name, rule, total)

    # -----------------------------------------------------------------------
    # Stages 6–7: email lookup, claim link, email, record, confirm
    # -----------------------------------------------------------------------
    async def _deliver(
        self,
        event: ReactionEvent,
        author_id: str,
        channel_name: str,
        rule: PoapRule,
        total: int,
    ) -> DeliveryOutcome:
        profile = await self.slack.get_user_profile(author_id)
        if profile is None:
            return DeliveryOutcome.USER_NOT_FOUND

        if not profile.email:
            logger.info("No email found for user %s — prompting via DM", author_id)
            await self.notifier.prompt_for_email(author_id, total)
            return DeliveryOutcome.MISSING_EMAIL

        if self.delivery_slots is not None:
            async with self.delivery_slots:
                claim_link, result = await self._send(profile.email, profile.display_name, rule)
        else:
            claim_link, result = await self._send(profile.email, profile.display_name, rule)

        if not result.success:
            logger.error(
                "Failed to send POAP email to %s: %s — will retry on next reaction",
                profile.email, result.error,
            )
            return DeliveryOutcome.EMAIL_FAILED

        await run_db(
            record_delivery,
            self.engine,
            user_id=author_id,
            user_email=profile.email,
            message_id=event.message_id,
            channel_id=event.channel_id,
            poap_event_id=rule.poap_event_id,
            claim_link=claim_link,
        )
        await self.notifier.announce_delivery(
            author_id,
            user_name=profile.display_name,
            channel_name=channel_name,
            reaction_count=total,
            email=profile.email,
        )
        logger.info(
            "POAP %s successfully sent to %s%s",
            rule.poap_event_id, profile.email, " (mock email)" if result.mock else "",
        )
        return DeliveryOutcome.DELIVERED

    async def _send(self, email: str, display_name: str, rule: PoapRule):
        claim_link = await self.issuer.issue_claim_link(rule.poap_event_id, email)
        result = await self.notifier.send_claim_email(
            email,
            display_name,
            rule.poap_name,
            claim_link,
            reaction_threshold=rule.reaction_threshold,
        )
        return claim_link, result
