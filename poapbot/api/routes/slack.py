"""
poapbot.api.routes.slack — Slack Events API + slash commands
=============================================================

Slack retries any callback not acknowledged within 3 seconds, so the
events endpoint only verifies, schedules and returns.  Evaluation runs
as a runtime-owned background task.
"""

from __future__ import annotations

import json
import logging
import os
from urllib.parse import parse_qs

from fastapi import APIRouter, Depends, HTTPException, Request, status
from slack_sdk.signature import SignatureVerifier

from poapbot.api.deps import get_runtime
from poapbot.bot.commands import handle_command
from poapbot.bot.events import reaction_event_from_callback
from poapbot.runtime import PoapBotRuntime

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/slack", tags=["slack"])

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def verify_slack_request(body: bytes, headers) -> None:
    """Reject requests whose Slack signature doesn't match.

    Verification is skipped (with a warning) when ``SLACK_SIGNING_SECRET``
    is unset, which is only sensible for local development.
    """
    secret = os.getenv("SLACK_SIGNING_SECRET", "")
    if not secret:
        logger.warning("SLACK_SIGNING_SECRET not set — skipping request verification")
        return
    if not SignatureVerifier(secret).is_valid_request(body, dict(headers)):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid Slack signature")


def _form_fields(body: bytes) -> dict[str, str]:
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Form body is not UTF-8")
    parsed = parse_qs(text, keep_blank_values=True)
    return {key: values[0] for key, values in parsed.items()}


async def _dispatch_command(runtime: PoapBotRuntime, body: bytes) -> dict:
    form = _form_fields(body)
    command = form.get("command", "")
    if not command:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Missing command")
    return await handle_command(
        runtime.engine,
        runtime.cfg.admin_url,
        command=command,
        text=form.get("text", ""),
        user_id=form.get("user_id", ""),
    )


@router.post("/events")
async def slack_events(
    request: Request,
    runtime: PoapBotRuntime = Depends(get_runtime),
):
    """Events API callbacks (JSON) and slash commands (form posts)."""
    body = await request.body()
    verify_slack_request(body, request.headers)

    if request.headers.get("content-type", "").startswith(FORM_CONTENT_TYPE):
        return await _dispatch_command(runtime, body)

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Body is not JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Body is not a JSON object")

    if payload.get("type") == "url_verification":
        return {"challenge": payload.get("challenge")}

    event = reaction_event_from_callback(payload)
    if event is not None:
        logger.info(
            "Reaction added to message %s in %s", event.message_id, event.channel_id,
        )
        runtime.submit(event)
    return {"ok": True}


@router.post("/commands")
async def slack_commands(
    request: Request,
    runtime: PoapBotRuntime = Depends(get_runtime),
):
    """Slash-command endpoint for apps configured with a separate URL."""
    body = await request.body()
    verify_slack_request(body, request.headers)
    return await _dispatch_command(runtime, body)
