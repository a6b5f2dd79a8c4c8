"""
poapbot.services.ledger_service — Reaction Ledger
==================================================

Per-(message, author) snapshot of the latest authoritative reaction count
plus the ``delivered`` flag that deduplicates POAP deliveries.

Invariants:
- ``upsert_reaction`` overwrites the count but never touches ``delivered``.
- ``delivered`` goes False → True once and is never reset.
- No transaction spans more than one read-modify-write of a single row.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import Engine, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from poapbot.database.models import MessageReaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReactionSnapshot:
    """Detached, read-only view of a ``message_reactions`` row."""

    message_id: str
    channel_id: str
    user_id: str
    reaction_count: int
    delivered: bool
    updated_at: datetime | None

    @classmethod
    def from_row(cls, row: MessageReaction) -> ReactionSnapshot:
        return cls(
            message_id=row.message_id,
            channel_id=row.channel_id,
            user_id=row.user_id,
            reaction_count=row.reaction_count,
            delivered=bool(row.delivered),
            updated_at=row.updated_at,
        )


def _select_row(session: Session, message_id: str, user_id: str) -> MessageReaction | None:
    return session.scalar(
        select(MessageReaction).where(
            MessageReaction.message_id == message_id,
            MessageReaction.user_id == user_id,
        )
    )


def upsert_reaction(
    engine: Engine,
    message_id: str,
    channel_id: str,
    user_id: str,
    reaction_count: int,
) -> ReactionSnapshot:
    """Record the latest reaction count for (message, user).

    The newest count always wins, even if lower than the stored one
    (reactions can be removed).  ``delivered`` is preserved.
    """
    if reaction_count < 0:
        raise ValueError("reaction_count cannot be negative")

    now = datetime.now(UTC)
    with Session(engine) as session:
        row = _select_row(session, message_id, user_id)
        if row is None:
            row = MessageReaction(
                message_id=message_id,
                channel_id=channel_id,
                user_id=user_id,
                reaction_count=reaction_count,
                delivered=False,
                updated_at=now,
            )
            try:
                with session.begin_nested():   # SAVEPOINT
                    session.add(row)
                    session.flush()
            except IntegrityError:
                # A concurrent event inserted the row first; fall through to update it.
                row = _select_row(session, message_id, user_id)
                if row is None:
                    raise

        row.reaction_count = reaction_count
        row.channel_id = channel_id
        row.updated_at = now
        session.commit()
        session.refresh(row)
        return ReactionSnapshot.from_row(row)


def get_reaction(engine: Engine, message_id: str, user_id: str) -> ReactionSnapshot | None:
    """Read the current snapshot for (message, user), or ``None``."""
    with Session(engine) as session:
        row = _select_row(session, message_id, user_id)
        return ReactionSnapshot.from_row(row) if row is not None else None


def mark_delivered(engine: Engine, message_id: str, user_id: str) -> bool:
    """Flip ``delivered`` to True for (message, user).

    Idempotent: returns ``True`` only when this call changed the flag.
    """
    with Session(engine) as session:
        changed = _mark_delivered(session, message_id, user_id)
        session.commit()
        return changed


def _mark_delivered(session: Session, message_id: str, user_id: str) -> bool:
    result = session.execute(
        update(MessageReaction)
        .where(
            MessageReaction.message_id == message_id,
            MessageReaction.user_id == user_id,
            MessageReaction.delivered.is_(False),
        )
        .values(delivered=True, updated_at=datetime.now(UTC))
    )
    return (result.rowcount or 0) > 0
