"""
poapbot.services.email_service — Claim Email over SMTP
=======================================================

Sends the "you've earned a POAP" email.  ``smtplib`` is blocking, so the
actual send runs on a worker thread via :func:`asyncio.to_thread`.

Without ``SMTP_HOST``/``SMTP_USER`` the service runs in mock mode: it logs
what it would have sent and reports success, which lets the rest of the
delivery pipeline (ledger flag, journal row) run in dev environments.
"""

from __future__ import annotations

import asyncio
import html
import logging
import os
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import make_msgid, parseaddr
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from poapbot.config import PoapBotConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EmailResult:
    success: bool
    error: str | None = None
    mock: bool = False
    message_id: str | None = None


@dataclass(frozen=True, slots=True)
class SmtpSettings:
    host: str
    port: int
    user: str
    password: str
    sender: str
    timeout: float = 30.0


# ---------------------------------------------------------------------------
# Message construction
# ---------------------------------------------------------------------------
def build_claim_email(
    *,
    sender: str,
    recipient: str,
    user_name: str,
    poap_name: str,
    claim_link: str | None,
    reaction_threshold: int | None = None,
) -> EmailMessage:
    """Build the multipart (text + HTML) claim email."""
    earned_for = (
        f"Getting {reaction_threshold}+ reactions on your message"
        if reaction_threshold
        else "Getting lots of reactions on your message"
    )

    msg = EmailMessage()
    msg["Subject"] = f"\U0001f389 You've earned a POAP: {poap_name}!"
    msg["From"] = sender
    msg["To"] = recipient
    msg["Message-ID"] = make_msgid(domain=parseaddr(sender)[1].partition("@")[2] or None)

    if claim_link:
        claim_text = f"Claim your POAP: {claim_link}"
    else:
        claim_text = (
            "Your POAP claim link will be available soon. You'll receive "
            "another email with the claim instructions."
        )
    msg.set_content(
        f"Congratulations {user_name}!\n\n"
        "You've earned a POAP (Proof of Attendance Protocol) collectible for "
        "your engagement in our Slack community!\n\n"
        f"Event: {poap_name}\n"
        f"Earned for: {earned_for}\n\n"
        f"{claim_text}\n"
    )

    name = html.escape(user_name)
    event = html.escape(poap_name)
    if claim_link:
        claim_block = (
            '<div style="text-align: center; margin: 30px 0;">'
            f'<a href="{html.escape(claim_link, quote=True)}" '
            'style="background: #6C5CE7; color: white; padding: 15px 30px; '
            'text-decoration: none; border-radius: 5px; display: inline-block;">'
            "Claim Your POAP</a></div>"
        )
    else:
        claim_block = (
            '<div style="background: #fff3cd; padding: 15px; border-radius: 5px;">'
            f"<p><strong>Note:</strong> {html.escape(claim_text)}</p></div>"
        )
    msg.add_alternative(
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f'<h1 style="color: #6C5CE7;">\U0001f389 Congratulations {name}!</h1>'
        "<p>You've earned a POAP (Proof of Attendance Protocol) collectible for "
        "your engagement in our Slack community!</p>"
        '<div style="background: #f8f9fa; padding: 20px; border-radius: 8px;">'
        '<h3 style="margin-top: 0;">POAP Details:</h3>'
        f"<p><strong>Event:</strong> {event}</p>"
        f"<p><strong>Earned for:</strong> {html.escape(earned_for)}</p></div>"
        f"{claim_block}"
        '<p style="color: #999; font-size: 12px;">This email was sent by the Slack '
        "POAP Bot. If you have questions, please reach out to your workspace admin.</p>"
        "</div>",
        subtype="html",
    )
    return msg


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
class EmailService:
    """Claim-email sender.  Public coroutines never raise."""

    def __init__(self, settings: SmtpSettings | None) -> None:
        self.settings = settings

    @classmethod
    def from_env(cls, cfg: PoapBotConfig) -> EmailService:
        host = os.getenv("SMTP_HOST", "").strip()
        user = os.getenv("SMTP_USER", "").strip()
        if not host or not user:
            logger.warning(
                "Email configuration not found (SMTP_HOST/SMTP_USER). "
                "Emails will be logged, not sent."
            )
            return cls(None)
        return cls(SmtpSettings(
            host=host,
            port=cfg.smtp_port,
            user=user,
            password=os.getenv("SMTP_PASS", ""),
            sender=cfg.email_from or user,
        ))

    @property
    def configured(self) -> bool:
        return self.settings is not None

    def _connect(self) -> smtplib.SMTP:
        s = self.settings
        if s is None:
            raise RuntimeError("No SMTP transport configured")
        smtp = smtplib.SMTP(s.host, s.port, timeout=s.timeout)
        try:
            smtp.ehlo()
            if smtp.has_extn("starttls"):
                smtp.starttls()
                smtp.ehlo()
            smtp.login(s.user, s.password)
        except Exception:
            smtp.close()
            raise
        return smtp

    def _send_sync(self, msg: EmailMessage) -> None:
        with self._connect() as smtp:
            smtp.send_message(msg)

    def _verify_sync(self) -> None:
        with self._connect() as smtp:
            smtp.noop()

    async def send_claim_email(
        self,
        email: str,
        user_name: str,
        poap_name: str,
        claim_link: str | None = None,
        *,
        reaction_threshold: int | None = None,
    ) -> EmailResult:
        """Send the claim email to *email*."""
        if self.settings is None:
            logger.info("Would send POAP email to %s for %s", email, poap_name)
            logger.info("Claim link: %s", claim_link or "To be generated")
            return EmailResult(success=True, mock=True)

        msg = build_claim_email(
            sender=self.settings.sender,
            recipient=email,
            user_name=user_name,
            poap_name=poap_name,
            claim_link=claim_link,
            reaction_threshold=reaction_threshold,
        )
        try:
            await asyncio.to_thread(self._send_sync, msg)
        except Exception as exc:
            logger.error("Error sending POAP email to %s: %s", email, exc)
            return EmailResult(success=False, error=str(exc))

        message_id = msg.get("Message-ID")
        logger.info("POAP email sent to %s (%s)", email, message_id or "no message id")
        return EmailResult(success=True, message_id=message_id)

    async def test_connection(self) -> EmailResult:
        """Open and authenticate an SMTP session without sending anything."""
        if self.settings is None:
            return EmailResult(success=False, error="No SMTP transport configured")
        try:
            await asyncio.to_thread(self._verify_sync)
        except Exception as exc:
            return EmailResult(success=False, error=str(exc))
        return EmailResult(success=True)
