"""
tests/test_rule_service.py — Rule Store Tests
==============================================
Rule creation, channel-name lookup, soft delete and the admin audit trail.

Uses an in-memory SQLite database via the shared conftest fixtures.
"""

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from poapbot.database.engine import init_db
from poapbot.database.models import AdminLog, PoapRule
from poapbot.database.seed import SAMPLE_RULE, seed_sample_rule
from poapbot.services import rule_service


@pytest.fixture
def engine(db_engine):
    return db_engine


def _create(engine, channel="general", threshold=3, event="evt-1", name="Engaged"):
    return rule_service.create_rule(
        engine, channel, threshold, event, name, actor_id="U_ADMIN",
    )


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------
class TestGetRuleByChannelName:
    def test_returns_active_rule(self, engine):
        _create(engine, channel="general", threshold=5)
        rule = rule_service.get_rule_by_channel_name(engine, "general")
        assert rule is not None
        assert rule.reaction_threshold == 5
        assert rule.poap_event_id == "evt-1"

    def test_unknown_channel_returns_none(self, engine):
        _create(engine, channel="general")
        assert rule_service.get_rule_by_channel_name(engine, "random") is None

    def test_inactive_rule_is_ignored(self, engine):
        rule_id = _create(engine, channel="general")
        rule_service.deactivate_rule(engine, rule_id, actor_id="U_ADMIN")
        assert rule_service.get_rule_by_channel_name(engine, "general") is None

    def test_lowest_id_wins_among_duplicates(self, engine):
        first = _create(engine, channel="general", event="evt-first")
        _create(engine, channel="general", event="evt-second")
        rule = rule_service.get_rule_by_channel_name(engine, "general")
        assert rule.id == first
        assert rule.poap_event_id == "evt-first"

    def test_rule_keyed_by_raw_id_never_matches_name(self, engine):
        _create(engine, channel="C0123ABCD")
        assert rule_service.get_rule_by_channel_name(engine, "general") is None

    def test_result_is_usable_after_session_closes(self, engine):
        _create(engine, channel="general", name="Detached POAP")
        rule = rule_service.get_rule_by_channel_name(engine, "general")
        assert rule.poap_name == "Detached POAP"


class TestListActiveRules:
    def test_lists_only_active_in_id_order(self, engine):
        a = _create(engine, channel="a")
        b = _create(engine, channel="b")
        c = _create(engine, channel="c")
        rule_service.deactivate_rule(engine, b, actor_id="U_ADMIN")

        rules = rule_service.list_active_rules(engine)
        assert [r.id for r in rules] == [a, c]

    def test_empty(self, engine):
        assert rule_service.list_active_rules(engine) == []


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
class TestCreateRule:
    def test_strips_leading_hash(self, engine):
        rule_id = _create(engine, channel="#announcements")
        with Session(engine) as s:
            assert s.get(PoapRule, rule_id).channel_id == "announcements"

    def test_rejects_non_positive_threshold(self, engine):
        with pytest.raises(ValueError, match="positive"):
            _create(engine, threshold=0)

    def test_rejects_blank_fields(self, engine):
        with pytest.raises(ValueError):
            _create(engine, event="   ")
        with pytest.raises(ValueError):
            _create(engine, channel="#")

    def test_writes_audit_row(self, engine):
        rule_id = _create(engine, channel="general", threshold=4)
        with Session(engine) as s:
            log = s.scalars(select(AdminLog)).one()
        assert log.action_type == "CREATE"
        assert log.target_table == "poap_rules"
        assert log.target_id == str(rule_id)
        assert log.actor_id == "U_ADMIN"
        assert log.before_snapshot is None
        assert log.after_snapshot["reaction_threshold"] == 4


class TestDeactivateRule:
    def test_missing_rule_returns_false(self, engine):
        assert rule_service.deactivate_rule(engine, 999, actor_id="U_ADMIN") is False

    def test_soft_deletes_and_audits(self, engine):
        rule_id = _create(engine)
        assert rule_service.deactivate_rule(engine, rule_id, actor_id="U_OTHER") is True

        with Session(engine) as s:
            rule = s.get(PoapRule, rule_id)
            assert rule is not None
            assert rule.is_active is False
            logs = s.scalars(
                select(AdminLog).where(AdminLog.action_type == "DELETE")
            ).all()
        assert len(logs) == 1
        assert logs[0].actor_id == "U_OTHER"
        assert logs[0].before_snapshot["is_active"] is True
        assert logs[0].after_snapshot["is_active"] is False

    def test_second_deactivation_is_not_audited_again(self, engine):
        rule_id = _create(engine)
        rule_service.deactivate_rule(engine, rule_id, actor_id="U_ADMIN")
        assert rule_service.deactivate_rule(engine, rule_id, actor_id="U_ADMIN") is True
        with Session(engine) as s:
            deletes = s.scalars(
                select(AdminLog).where(AdminLog.action_type == "DELETE")
            ).all()
        assert len(deletes) == 1


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------
class TestSeed:
    def test_init_db_seeds_sample_rule_once(self, engine):
        init_db(engine)
        init_db(engine)
        rules = rule_service.list_active_rules(engine)
        assert len(rules) == 1
        assert rules[0].channel_id == SAMPLE_RULE["channel_id"]
        assert rules[0].poap_event_id == "sample-poap-001"

    def test_seed_skips_when_rules_exist(self, engine):
        rule_id = _create(engine, channel="random")
        rule_service.deactivate_rule(engine, rule_id, actor_id="U_ADMIN")
        assert seed_sample_rule(engine) is False
        assert rule_service.list_active_rules(engine) == []
