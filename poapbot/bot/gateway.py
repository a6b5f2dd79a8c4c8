"""
poapbot.bot.gateway — Slack Web API Gateway
============================================

Every Slack call the delivery pipeline makes goes through here:

- ``fetch_message``        — conversations.history, exact ``ts`` match
- ``get_channel_name``     — conversations.info
- ``count_reactions``      — reactions.get, summed across all emoji
- ``get_user_profile``     — users.info → email + display name
- ``send_direct_message``  — chat.postMessage to the user's DM
- ``list_channels``        — conversations.list (admin API)

``slack_sdk.WebClient`` is synchronous; each call is shipped to a worker
thread with :func:`asyncio.to_thread`, the same bridge ``run_db`` uses
for the database.  Slack-level errors (``SlackApiError``) are logged and
turned into ``None``/``False``; transport failures propagate.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Any

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UserProfile:
    user_id: str
    display_name: str
    email: str | None


def _slack_error(exc: SlackApiError) -> str:
    response = exc.response
    try:
        return str(response.get("error") or exc)
    except AttributeError:
        return str(exc)


class SlackGateway:
    """Async facade over a :class:`slack_sdk.WebClient`."""

    def __init__(self, client: WebClient) -> None:
        self.client = client

    @classmethod
    def from_env(cls) -> SlackGateway:
        """Build from ``SLACK_BOT_TOKEN`` (or the legacy ``SLACK_ACCESS_TOKEN``).

        Raises
        ------
        RuntimeError
            If neither variable is set.
        """
        token = os.getenv("SLACK_BOT_TOKEN") or os.getenv("SLACK_ACCESS_TOKEN")
        if not token:
            raise RuntimeError(
                "SLACK_BOT_TOKEN is not set.  "
                "Copy .env.example → .env and paste your bot token."
            )
        return cls(WebClient(token=token))

    async def _call(self, method: str, **kwargs: Any) -> Any:
        return await asyncio.to_thread(getattr(self.client, method), **kwargs)

    # -----------------------------------------------------------------------
    # Lookups
    # -----------------------------------------------------------------------
    async def fetch_message(self, channel_id: str, ts: str) -> dict[str, Any] | None:
        """Return the message posted at *ts* in *channel_id*, or ``None``.

        ``conversations.history`` with ``latest=ts, inclusive, limit=1``
        returns the newest top-level message at or before *ts*; anything
        other than an exact match (a thread reply, a deleted message) is
        treated as not found.
        """
        try:
            resp = await self._call(
                "conversations_history",
                channel=channel_id,
                latest=ts,
                inclusive=True,
                limit=1,
            )
        except SlackApiError as exc:
            logger.warning(
                "conversations.history failed for %s/%s: %s",
                channel_id, ts, _slack_error(exc),
            )
            return None

        messages = resp.get("messages") or []
        if not messages or messages[0].get("ts") != ts:
            return None
        return messages[0]

    async def get_channel_name(self, channel_id: str) -> str | None:
        """Human-readable channel name (falls back to the id when nameless)."""
        try:
            resp = await self._call("conversations_info", channel=channel_id)
        except SlackApiError as exc:
            logger.warning(
                "conversations.info failed for %s: %s", channel_id, _slack_error(exc),
            )
            return None
        channel = resp.get("channel") or {}
        return channel.get("name") or channel_id

    async def count_reactions(self, channel_id: str, ts: str) -> int | None:
        """Total reactions on the message, summed over every emoji."""
        try:
            resp = await self._call(
                "reactions_get", channel=channel_id, timestamp=ts, full=True,
            )
        except SlackApiError as exc:
            logger.warning(
                "reactions.get failed for %s/%s: %s", channel_id, ts, _slack_error(exc),
            )
            return None
        message = resp.get("message") or {}
        return sum(int(r.get("count", 0)) for r in message.get("reactions") or [])

    async def get_user_profile(self, user_id: str) -> UserProfile | None:
        try:
            resp = await self._call("users_info", user=user_id)
        except SlackApiError as exc:
            logger.warning("users.info failed for %s: %s", user_id, _slack_error(exc))
            return None
        user = resp.get("user") or {}
        profile = user.get("profile") or {}
        return UserProfile(
            user_id=user_id,
            display_name=user.get("real_name") or user.get("name") or user_id,
            email=profile.get("email") or None,
        )

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------
    async def send_direct_message(self, user_id: str, text: str) -> bool:
        """Post *text* to the user's DM channel.  Returns success."""
        try:
            await self._call("chat_postMessage", channel=user_id, text=text)
        except SlackApiError as exc:
            logger.warning("DM to %s failed: %s", user_id, _slack_error(exc))
            return False
        return True

    # -----------------------------------------------------------------------
    # Admin helpers
    # -----------------------------------------------------------------------
    async def list_channels(self) -> list[dict[str, Any]]:
        """Non-archived public and private channels visible to the bot.

        Raises ``SlackApiError``; the admin API reports it as a 502.
        """
        channels: list[dict[str, Any]] = []
        cursor: str | None = None
        while True:
            params: dict[str, Any] = {
                "types": "public_channel,private_channel",
                "exclude_archived": True,
                "limit": 200,
            }
            if cursor:
                params["cursor"] = cursor
            resp = await self._call("conversations_list", **params)
            for ch in resp.get("channels") or []:
                if ch.get("is_archived"):
                    continue
                channels.append({
                    "id": ch.get("id"),
                    "name": ch.get("name"),
                    "is_private": bool(ch.get("is_private")),
                    "is_archived": False,
                })
            cursor = (resp.get("response_metadata") or {}).get("next_cursor")
            if not cursor:
                return channels
