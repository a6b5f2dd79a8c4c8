"""
poapbot.constants — Shared User-Facing Text
============================================

Single source of truth for the Slack messages the bot sends.  Import from
here instead of duplicating strings in the notifier and command handlers.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Direct messages to POAP recipients
# ---------------------------------------------------------------------------
MISSING_EMAIL_DM = (
    "\U0001f389 Congratulations! Your message got {count} reactions and earned "
    "you a POAP! However, we need your email address to send it. Please update "
    "your Slack profile with your email address."
)

DELIVERED_DM = (
    "\U0001f389 Congratulations {name}! Your message in #{channel} got {count} "
    "reactions and earned you a POAP! Check your email ({email}) for claim "
    "instructions."
)


# ---------------------------------------------------------------------------
# Slash commands
# ---------------------------------------------------------------------------
SLASH_STATS = "/poap-stats"
SLASH_RULES = "/poap-rules"
SLASH_CREATE = "/poap-create"
SLASH_ADMIN = "/poap-admin"

CREATE_USAGE = (
    "❌ Usage: `/poap-create <channel> <threshold> <poap-event-id> <poap-name>`\n\n"
    'Example: `/poap-create general 3 event-123 "Community Engagement POAP"`\n\n'
    "Or use the web interface: {admin_url}"
)

ADMIN_HELP = (
    "\U0001f527 POAP Bot Admin Panel\n\n"
    "\U0001f310 Web Interface: {admin_url}\n\n"
    "\U0001f4cb Available Commands:\n"
    "• `/poap-stats` - View delivery statistics\n"
    "• `/poap-rules` - List active rules\n"
    "• `/poap-create` - Create new rule\n"
    "• `/poap-admin` - Show this help\n\n"
    "\U0001f4a1 Tip: Use the web interface for easier rule management!"
)
