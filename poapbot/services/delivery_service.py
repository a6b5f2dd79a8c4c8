"""
poapbot.services.delivery_service — Delivery Recorder
======================================================

Writes the outcome of a successful delivery: flips the ledger's
``delivered`` flag and appends a row to the ``poap_deliveries`` journal.

The journal is append-only and never deduplicates; the ledger flag checked
by the evaluator is the only thing that prevents a second delivery.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from poapbot.database.models import PoapDelivery
from poapbot.services.ledger_service import _mark_delivered, mark_delivered

logger = logging.getLogger(__name__)

__all__ = [
    "DeliveryStats",
    "append_delivery_record",
    "get_delivery_stats",
    "list_recent_deliveries",
    "mark_delivered",
    "record_delivery",
]


@dataclass(frozen=True, slots=True)
class DeliveryStats:
    total_deliveries: int
    unique_users: int
    unique_events: int


def _new_delivery(
    *,
    user_id: str,
    user_email: str,
    message_id: str,
    channel_id: str,
    poap_event_id: str,
    claim_link: str | None,
) -> PoapDelivery:
    return PoapDelivery(
        user_id=user_id,
        user_email=user_email,
        message_id=message_id,
        channel_id=channel_id,
        poap_event_id=poap_event_id,
        claim_link=claim_link,
    )


def append_delivery_record(
    engine: Engine,
    *,
    user_id: str,
    user_email: str,
    message_id: str,
    channel_id: str,
    poap_event_id: str,
    claim_link: str | None = None,
) -> int:
    """Insert a journal row and return its id.  Always inserts."""
    with Session(engine) as session:
        row = _new_delivery(
            user_id=user_id,
            user_email=user_email,
            message_id=message_id,
            channel_id=channel_id,
            poap_event_id=poap_event_id,
            claim_link=claim_link,
        )
        session.add(row)
        session.commit()
        return row.id


def record_delivery(
    engine: Engine,
    *,
    user_id: str,
    user_email: str,
    message_id: str,
    channel_id: str,
    poap_event_id: str,
    claim_link: str | None,
) -> int:
    """Mark (message, user) delivered and append the journal row together.

    Both writes share one transaction so a crash cannot leave a journal
    row without the flag or vice versa.  Returns the journal row id.
    """
    with Session(engine) as session:
        if not _mark_delivered(session, message_id, user_id):
            logger.warning(
                "Ledger row for message %s / user %s was already delivered or missing",
                message_id, user_id,
            )
        row = _new_delivery(
            user_id=user_id,
            user_email=user_email,
            message_id=message_id,
            channel_id=channel_id,
            poap_event_id=poap_event_id,
            claim_link=claim_link,
        )
        session.add(row)
        session.commit()
        return row.id


def get_delivery_stats(engine: Engine) -> DeliveryStats:
    """Totals shown by ``/poap-stats`` and the admin API."""
    with Session(engine) as session:
        row = session.execute(
            select(
                func.count(PoapDelivery.id),
                func.count(func.distinct(PoapDelivery.user_id)),
                func.count(func.distinct(PoapDelivery.poap_event_id)),
            )
        ).one()
        return DeliveryStats(
            total_deliveries=row[0] or 0,
            unique_users=row[1] or 0,
            unique_events=row[2] or 0,
        )


def list_recent_deliveries(engine: Engine, limit: int = 50) -> list[PoapDelivery]:
    """Newest journal rows first (detached)."""
    with Session(engine, expire_on_commit=False) as session:
        rows = session.scalars(
            select(PoapDelivery)
            .order_by(PoapDelivery.delivered_at.desc(), PoapDelivery.id.desc())
            .limit(limit)
        ).all()
        session.expunge_all()
        return list(rows)
