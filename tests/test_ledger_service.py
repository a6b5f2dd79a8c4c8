"""
tests/test_ledger_service.py — Reaction Ledger Tests
=====================================================
"""

from __future__ import annotations

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from poapbot.database.models import MessageReaction
from poapbot.services.ledger_service import (
    get_reaction,
    mark_delivered,
    upsert_reaction,
)


@pytest.fixture
def engine(db_engine):
    return db_engine


def _row_count(engine) -> int:
    with Session(engine) as s:
        return s.scalar(select(func.count(MessageReaction.id)))


class TestUpsertReaction:
    def test_first_upsert_creates_undelivered_row(self, engine):
        snap = upsert_reaction(engine, "1700.0001", "C1", "U1", 2)
        assert snap.reaction_count == 2
        assert snap.delivered is False
        assert _row_count(engine) == 1

    def test_newest_count_wins_even_when_lower(self, engine):
        upsert_reaction(engine, "1700.0001", "C1", "U1", 5)
        snap = upsert_reaction(engine, "1700.0001", "C1", "U1", 3)
        assert snap.reaction_count == 3
        assert _row_count(engine) == 1

    def test_preserves_delivered_flag(self, engine):
        upsert_reaction(engine, "1700.0001", "C1", "U1", 3)
        mark_delivered(engine, "1700.0001", "U1")
        snap = upsert_reaction(engine, "1700.0001", "C1", "U1", 7)
        assert snap.delivered is True
        assert snap.reaction_count == 7

    def test_rows_are_keyed_by_message_and_user(self, engine):
        upsert_reaction(engine, "1700.0001", "C1", "U1", 1)
        upsert_reaction(engine, "1700.0001", "C1", "U2", 1)
        upsert_reaction(engine, "1700.0002", "C1", "U1", 1)
        assert _row_count(engine) == 3

    def test_rejects_negative_count(self, engine):
        with pytest.raises(ValueError):
            upsert_reaction(engine, "1700.0001", "C1", "U1", -1)

    def test_zero_count_is_allowed(self, engine):
        assert upsert_reaction(engine, "1700.0001", "C1", "U1", 0).reaction_count == 0


class TestGetReaction:
    def test_missing_returns_none(self, engine):
        assert get_reaction(engine, "nope", "U1") is None

    def test_reads_back_snapshot(self, engine):
        upsert_reaction(engine, "1700.0001", "C1", "U1", 4)
        snap = get_reaction(engine, "1700.0001", "U1")
        assert snap.channel_id == "C1"
        assert snap.reaction_count == 4


class TestMarkDelivered:
    def test_flips_once(self, engine):
        upsert_reaction(engine, "1700.0001", "C1", "U1", 3)
        assert mark_delivered(engine, "1700.0001", "U1") is True
        assert mark_delivered(engine, "1700.0001", "U1") is False
        assert get_reaction(engine, "1700.0001", "U1").delivered is True

    def test_missing_row_reports_no_change(self, engine):
        assert mark_delivered(engine, "1700.0001", "U1") is False
        assert _row_count(engine) == 0
