"""
poapbot.services.notification_service — Recipient Notifications
================================================================

Everything the recipient sees: the claim email plus two Slack DMs
("set your email" and "check your inbox").

None of these coroutines raise.  The email result decides whether a
delivery is recorded; DMs are best-effort and their failure never undoes
a delivery that has already been committed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from poapbot.constants import DELIVERED_DM, MISSING_EMAIL_DM
from poapbot.services.email_service import EmailResult, EmailService

if TYPE_CHECKING:
    from poapbot.bot.gateway import SlackGateway

logger = logging.getLogger(__name__)


class Notifier:
    def __init__(self, email: EmailService, slack: SlackGateway) -> None:
        self.email = email
        self.slack = slack

    async def send_claim_email(
        self,
        email: str,
        user_name: str,
        poap_name: str,
        claim_link: str | None,
        *,
        reaction_threshold: int | None = None,
    ) -> EmailResult:
        try:
            return await self.email.send_claim_email(
                email,
                user_name,
                poap_name,
                claim_link,
                reaction_threshold=reaction_threshold,
            )
        except Exception as exc:
            logger.exception("Email service raised while mailing %s", email)
            return EmailResult(success=False, error=str(exc))

    async def _dm(self, user_id: str, text: str) -> bool:
        try:
            return await self.slack.send_direct_message(user_id, text)
        except Exception:
            logger.exception("Failed to DM user %s", user_id)
            return False

    async def prompt_for_email(self, user_id: str, reaction_count: int) -> bool:
        """Ask a winner without a profile email to add one."""
        return await self._dm(user_id, MISSING_EMAIL_DM.format(count=reaction_count))

    async def announce_delivery(
        self,
        user_id: str,
        *,
        user_name: str,
        channel_name: str,
        reaction_count: int,
        email: str,
    ) -> bool:
        """Tell the recipient their POAP email is on its way."""
        return await self._dm(
            user_id,
            DELIVERED_DM.format(
                name=user_name, channel=channel_name, count=reaction_count, email=email,
            ),
        )
