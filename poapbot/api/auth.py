"""
poapbot.api.auth — Admin password → JWT
========================================

A single shared ``ADMIN_PASSWORD`` guards the admin API.  Exchanging it
yields a 12-hour HS256 token that every admin route checks.
"""

from __future__ import annotations

import hmac
import logging
import os
from datetime import UTC, datetime, timedelta

import jwt
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from poapbot.api.deps import JWT_ALGORITHM, JWT_SECRET, get_current_admin

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])

TOKEN_LIFETIME = timedelta(hours=12)


class TokenRequest(BaseModel):
    password: str
    username: str = "admin"


def issue_admin_token(username: str) -> str:
    payload = {
        "sub": username,
        "username": username,
        "is_admin": True,
        "exp": datetime.now(UTC) + TOKEN_LIFETIME,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


@router.post("/token")
async def token(body: TokenRequest):
    """Exchange the admin password for a bearer token."""
    expected = os.getenv("ADMIN_PASSWORD", "")
    if not expected:
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Admin login is not configured: missing ADMIN_PASSWORD",
        )
    if not hmac.compare_digest(body.password.encode(), expected.encode()):
        logger.warning("Rejected admin login for %r", body.username)
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid credentials")

    return {
        "access_token": issue_admin_token(body.username),
        "token_type": "bearer",
        "expires_in": int(TOKEN_LIFETIME.total_seconds()),
    }


@router.get("/me")
async def me(admin: dict = Depends(get_current_admin)):
    """Return the current authenticated admin's info."""
    return {
        "id": admin["sub"],
        "username": admin.get("username", "admin"),
        "is_admin": True,
    }
