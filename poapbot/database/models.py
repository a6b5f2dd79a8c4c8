"""
poapbot.database.models — SQLAlchemy 2.0 Data Models
=====================================================

Tables:
- poap_rules         — Per-channel reaction threshold → POAP event mapping
- message_reactions  — Reaction ledger: latest count + delivered flag per (message, author)
- poap_deliveries    — Append-only delivery journal
- admin_log          — Append-only audit trail for rule mutations
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all PoapBot ORM models."""


# ---------------------------------------------------------------------------
# PoapRule: one active row per channel (by convention)
# ---------------------------------------------------------------------------
class PoapRule(Base):
    """Maps a channel to the POAP its popular messages earn.

    ``channel_id`` holds whatever the admin typed when creating the rule.
    The evaluator matches it against the channel's *name* as reported by
    Slack, so rules keyed by a raw ``C0123…`` identifier never fire.
    Duplicate active rows are tolerated; the lowest id wins.
    Rules are never hard-deleted; deactivation clears ``is_active``.
    """
    __tablename__ = "poap_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    channel_id: Mapped[str] = mapped_column(String(100), nullable=False)
    reaction_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    poap_event_id: Mapped[str] = mapped_column(String(100), nullable=False)
    poap_name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_poap_rules_channel_active", "channel_id", "is_active"),
    )

    def __repr__(self) -> str:
        return (
            f"<PoapRule id={self.id} channel={self.channel_id!r} "
            f"threshold={self.reaction_threshold} active={self.is_active}>"
        )


# ---------------------------------------------------------------------------
# MessageReaction: the reaction ledger
# ---------------------------------------------------------------------------
class MessageReaction(Base):
    """Latest authoritative reaction count for a message, keyed by author.

    ``message_id`` is the Slack message timestamp (``ts``).  ``delivered``
    only ever moves from False to True; it is the sole deduplication
    authority for deliveries.
    """
    __tablename__ = "message_reactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    message_id: Mapped[str] = mapped_column(String(50), nullable=False)
    channel_id: Mapped[str] = mapped_column(String(50), nullable=False)
    user_id: Mapped[str] = mapped_column(String(50), nullable=False)
    reaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    delivered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("message_id", "user_id", name="uq_message_reactions_message_user"),
    )

    def __repr__(self) -> str:
        return (
            f"<MessageReaction message={self.message_id!r} user={self.user_id!r} "
            f"count={self.reaction_count} delivered={self.delivered}>"
        )


# ---------------------------------------------------------------------------
# PoapDelivery: append-only delivery journal
# ---------------------------------------------------------------------------
class PoapDelivery(Base):
    __tablename__ = "poap_deliveries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(50), nullable=False)
    user_email: Mapped[str] = mapped_column(String(320), nullable=False)
    message_id: Mapped[str] = mapped_column(String(50), nullable=False)
    channel_id: Mapped[str] = mapped_column(String(50), nullable=False)
    poap_event_id: Mapped[str] = mapped_column(String(100), nullable=False)
    claim_link: Mapped[str | None] = mapped_column(String(500), nullable=True)
    delivered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_poap_deliveries_message_user", "message_id", "user_id"),
        Index("ix_poap_deliveries_delivered_at", "delivered_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<PoapDelivery id={self.id} user={self.user_id!r} "
            f"event={self.poap_event_id!r}>"
        )


# ---------------------------------------------------------------------------
# AdminLog: append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id!r} action={self.action_type}>"
