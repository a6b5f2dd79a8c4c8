"""
poapbot.bot.commands — Slash Commands
======================================

Slack slash commands for workspace admins:
- /poap-stats  — delivery totals
- /poap-rules  — active rules
- /poap-create — create a rule: ``<channel> <threshold> <poap-event-id> <poap-name…>``
- /poap-admin  — help + link to the admin page

Each handler returns a Slack response payload (``response_type`` + ``text``)
that the HTTP layer sends back as the command's immediate reply.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from poapbot.constants import (
    ADMIN_HELP,
    CREATE_USAGE,
    SLASH_ADMIN,
    SLASH_CREATE,
    SLASH_RULES,
    SLASH_STATS,
)
from poapbot.database.engine import run_db
from poapbot.services.delivery_service import get_delivery_stats
from poapbot.services.rule_service import create_rule, list_active_rules

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def _ephemeral(text: str) -> dict[str, Any]:
    return {"response_type": "ephemeral", "text": text}


def _in_channel(text: str) -> dict[str, Any]:
    return {"response_type": "in_channel", "text": text}


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------
async def poap_stats(engine: Engine) -> dict[str, Any]:
    try:
        stats = await run_db(get_delivery_stats, engine)
    except Exception:
        logger.exception("Failed to load POAP stats")
        return _ephemeral("Sorry, there was an error fetching POAP stats.")
    return _ephemeral(
        "\U0001f4ca POAP Stats:\n"
        f"• Total POAPs delivered: {stats.total_deliveries}\n"
        f"• Unique recipients: {stats.unique_users}\n"
        f"• Different POAP events: {stats.unique_events}"
    )


async def poap_rules(engine: Engine, admin_url: str) -> dict[str, Any]:
    try:
        rules = await run_db(list_active_rules, engine)
    except Exception:
        logger.exception("Failed to load POAP rules")
        return _ephemeral("Sorry, there was an error fetching POAP rules.")

    if not rules:
        return _ephemeral(
            "No active POAP rules found.\n\n"
            f"Use `/poap-create` to create a new rule or visit the admin panel: {admin_url}"
        )

    lines = ["\U0001f3c6 Active POAP Rules:", ""]
    for rule in rules:
        lines.append(f"• Channel: #{rule.channel_id}")
        lines.append(f"  Threshold: {rule.reaction_threshold} reactions")
        lines.append(f"  POAP: {rule.poap_name}")
        lines.append("")
    lines.append(f"Manage rules: {admin_url}")
    return _ephemeral("\n".join(lines))


def parse_create_args(text: str) -> tuple[str, int, str, str]:
    """Split ``/poap-create`` text into (channel, threshold, event id, name).

    Raises
    ------
    ValueError
        With a user-facing message when the text is malformed.
    """
    args = text.strip().split()
    if len(args) < 4:
        raise ValueError("usage")
    channel = args[0].lstrip("#")
    try:
        threshold = int(args[1])
    except ValueError:
        threshold = 0
    if threshold < 1:
        raise ValueError("❌ Reaction threshold must be a positive number.")
    name = " ".join(args[3:]).replace('"', "")
    return channel, threshold, args[2], name


async def poap_create(
    engine: Engine, admin_url: str, text: str, user_id: str,
) -> dict[str, Any]:
    try:
        channel, threshold, event_id, name = parse_create_args(text)
    except ValueError as exc:
        if str(exc) == "usage":
            return _ephemeral(CREATE_USAGE.format(admin_url=admin_url))
        return _ephemeral(str(exc))

    try:
        await run_db(
            create_rule, engine, channel, threshold, event_id, name, actor_id=user_id,
        )
    except Exception as exc:
        logger.exception("/poap-create failed for %s", user_id)
        return _ephemeral(f"❌ Error creating POAP rule: {exc}")

    return _in_channel(
        "✅ POAP rule created successfully!\n\n"
        f"\U0001f4cd Channel: #{channel}\n"
        f"⚡ Threshold: {threshold} reactions\n"
        f"\U0001f3af POAP: {name}\n"
        f"\U0001f194 Event ID: {event_id}\n\n"
        f"Users will now receive this POAP when their messages in #{channel} "
        f"get {threshold}+ reactions!"
    )


def poap_admin(admin_url: str) -> dict[str, Any]:
    return _ephemeral(ADMIN_HELP.format(admin_url=admin_url))


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------
async def handle_command(
    engine: Engine,
    admin_url: str,
    *,
    command: str,
    text: str,
    user_id: str,
) -> dict[str, Any]:
    """Route a slash command to its handler."""
    logger.info("Slash command %s from %s", command, user_id)
    if command == SLASH_STATS:
        return await poap_stats(engine)
    if command == SLASH_RULES:
        return await poap_rules(engine, admin_url)
    if command == SLASH_CREATE:
        return await poap_create(engine, admin_url, text, user_id)
    if command == SLASH_ADMIN:
        return poap_admin(admin_url)
    return _ephemeral(f"Unknown command: {command}")
