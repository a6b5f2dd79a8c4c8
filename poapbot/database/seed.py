"""
poapbot.database.seed — Sample Rule Seeder
===========================================

Inserts one sample rule on first startup so a fresh install reacts to
``#general`` out of the box.

Idempotent: only writes when the ``poap_rules`` table is empty, so rules
an admin has since deactivated are never resurrected.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session

from poapbot.database.models import PoapRule

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default rule
# ---------------------------------------------------------------------------
SAMPLE_RULE: dict[str, object] = {
    "channel_id": "general",
    "reaction_threshold": 3,
    "poap_event_id": "sample-poap-001",
    "poap_name": "Slack Engagement POAP",
}


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_sample_rule(engine: Engine) -> bool:
    """Insert :data:`SAMPLE_RULE` if no rule exists yet.

    Returns True when a row was written.
    """
    session = Session(engine)
    try:
        existing = session.scalar(select(func.count(PoapRule.id))) or 0
        if existing:
            return False
        session.add(PoapRule(**SAMPLE_RULE))
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    logger.info("Seeded sample rule for #%s.", SAMPLE_RULE["channel_id"])
    return True
