"""
poapbot.services.rule_service — Per-Channel POAP Rules
=======================================================

The rule store read by the evaluator and mutated by admins (REST API and
``/poap-create``).  Every mutation follows the audited pattern:
  1. Begin transaction
  2. Read "before" snapshot
  3. Apply change
  4. Write admin_log with before/after JSON
  5. Commit

Rules are soft-deleted only, so the audit trail and past deliveries always
resolve to a rule row.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from poapbot.database.models import AdminLog, PoapRule

logger = logging.getLogger(__name__)

RULES_TABLE = "poap_rules"


# ---------------------------------------------------------------------------
# Audit helpers
# ---------------------------------------------------------------------------
def _row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key, None)
        if isinstance(val, datetime):
            val = val.isoformat()
        result[col.name] = val
    return result


def _log_admin_action(
    session: Session,
    *,
    actor_id: str,
    action_type: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type,
        target_table=RULES_TABLE,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def list_active_rules(engine: Engine) -> list[PoapRule]:
    """All active rules, oldest first (detached)."""
    with Session(engine, expire_on_commit=False) as session:
        rules = session.scalars(
            select(PoapRule)
            .where(PoapRule.is_active.is_(True))
            .order_by(PoapRule.id)
        ).all()
        session.expunge_all()
        return list(rules)


def get_rule_by_channel_name(engine: Engine, channel_name: str) -> PoapRule | None:
    """Return the first active rule whose stored channel equals *channel_name*.

    Several active rules for one channel are tolerated; the lowest id wins.
    """
    with Session(engine, expire_on_commit=False) as session:
        rule = session.scalars(
            select(PoapRule)
            .where(
                PoapRule.channel_id == channel_name,
                PoapRule.is_active.is_(True),
            )
            .order_by(PoapRule.id)
            .limit(1)
        ).first()
        if rule is not None:
            session.expunge(rule)
        return rule


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------
def create_rule(
    engine: Engine,
    channel_id: str,
    reaction_threshold: int,
    poap_event_id: str,
    poap_name: str,
    *,
    actor_id: str,
) -> int:
    """Create an active rule and return its id.

    Raises
    ------
    ValueError
        If the threshold is below 1 or a text field is blank.
    """
    channel_id = channel_id.strip().lstrip("#")
    if reaction_threshold < 1:
        raise ValueError("Reaction threshold must be a positive number.")
    if not channel_id or not poap_event_id.strip() or not poap_name.strip():
        raise ValueError("Channel, POAP event id and POAP name are required.")

    with Session(engine, expire_on_commit=False) as session:
        rule = PoapRule(
            channel_id=channel_id,
            reaction_threshold=reaction_threshold,
            poap_event_id=poap_event_id.strip(),
            poap_name=poap_name.strip(),
            is_active=True,
        )
        session.add(rule)
        session.flush()
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type="CREATE",
            target_id=str(rule.id),
            before=None,
            after=_row_to_dict(rule),
        )
        session.commit()
        logger.info(
            "Rule %d created by %s: #%s ≥ %d reactions → %s",
            rule.id, actor_id, rule.channel_id, rule.reaction_threshold,
            rule.poap_event_id,
        )
        return rule.id


def deactivate_rule(engine: Engine, rule_id: int, *, actor_id: str) -> bool:
    """Soft-delete a rule.

    Returns ``True`` if the rule exists (deactivating an inactive rule is a
    no-op that is still reported as success, and is not audited twice).
    """
    with Session(engine) as session:
        rule = session.get(PoapRule, rule_id)
        if rule is None:
            return False
        if not rule.is_active:
            return True
        before = _row_to_dict(rule)
        rule.is_active = False
        session.flush()
        _log_admin_action(
            session,
            actor_id=actor_id,
            action_type="DELETE",
            target_id=str(rule.id),
            before=before,
            after=_row_to_dict(rule),
        )
        session.commit()
        logger.info("Rule %d deactivated by %s", rule_id, actor_id)
        return True
