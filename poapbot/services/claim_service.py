"""
poapbot.services.claim_service — POAP Claim-Link Issuer
========================================================

Turns (POAP event id, recipient email) into a one-time claim URL.

Credentials:
    The POAP API wants a static API key (``X-API-Key``) *and* a bearer
    token from an OAuth client-credentials exchange.  Tokens live 24 h;
    :class:`CredentialCache` keeps one in a single shared slot and treats
    it as stale an hour early so no request races the real expiry.  Two
    issuances on a cold cache may both run the exchange.

Degradation:
    ``issue_claim_link`` never raises.  Any failure on the primary path
    (token exchange, HTTP error, malformed response) yields a placeholder
    link so the email still goes out.  Placeholders do not redeem; they
    are logged as ``fallback`` so operators can find and reissue them.
    Without an API key the issuer runs in mock mode.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from poapbot.config import PoapBotConfig

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIFETIME_SECONDS = 24 * 60 * 60
TOKEN_REFRESH_MARGIN_SECONDS = 60 * 60


class ClaimIssuanceError(Exception):
    """The POAP provider did not produce a usable claim link."""


# ---------------------------------------------------------------------------
# Credential cache: single shared slot
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class _Credential:
    token: str
    expires_at: float


class CredentialCache:
    """Process-wide holder for the current POAP bearer token."""

    def __init__(
        self,
        *,
        refresh_margin: float = TOKEN_REFRESH_MARGIN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.refresh_margin = refresh_margin
        self._clock = clock
        self._credential: _Credential | None = None

    def get(self) -> str | None:
        """Return the cached token, or ``None`` if absent or stale."""
        cred = self._credential
        if cred is None or self._clock() >= cred.expires_at:
            return None
        return cred.token

    def store(self, token: str, lifetime_seconds: float) -> None:
        """Cache *token*, expiring ``refresh_margin`` before the provider does."""
        if lifetime_seconds > self.refresh_margin:
            usable = lifetime_seconds - self.refresh_margin
        else:
            usable = lifetime_seconds / 2
        self._credential = _Credential(token=token, expires_at=self._clock() + usable)

    def clear(self) -> None:
        self._credential = None


# ---------------------------------------------------------------------------
# Issuer
# ---------------------------------------------------------------------------
class ClaimLinkIssuer:
    """POAP API client that always hands back *some* claim link."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        api_url: str,
        auth_url: str,
        audience: str,
        claim_base_url: str,
        api_key: str | None,
        client_id: str | None = None,
        client_secret: str | None = None,
        cache: CredentialCache | None = None,
    ) -> None:
        self.http = http
        self.api_url = api_url.rstrip("/")
        self.auth_url = auth_url
        self.audience = audience
        self.claim_base_url = claim_base_url.rstrip("/")
        self.api_key = api_key or None
        self.client_id = client_id or None
        self.client_secret = client_secret or None
        self.cache = cache if cache is not None else CredentialCache()

    @classmethod
    def from_env(cls, cfg: PoapBotConfig, http: httpx.AsyncClient) -> ClaimLinkIssuer:
        """Build an issuer from ``config.yaml`` URLs and ``POAP_*`` env secrets."""
        issuer = cls(
            http,
            api_url=cfg.poap_api_url,
            auth_url=cfg.poap_auth_url,
            audience=cfg.poap_audience,
            claim_base_url=cfg.poap_claim_base_url,
            api_key=os.getenv("POAP_API_KEY"),
            client_id=os.getenv("POAP_CLIENT_ID"),
            client_secret=os.getenv("POAP_CLIENT_SECRET"),
        )
        if not issuer.configured:
            logger.warning("POAP_API_KEY not set — claim links will be mocked.")
        return issuer

    @property
    def configured(self) -> bool:
        return self.api_key is not None

    @property
    def _has_client_credentials(self) -> bool:
        return self.client_id is not None and self.client_secret is not None

    # -----------------------------------------------------------------------
    # Credentials
    # -----------------------------------------------------------------------
    async def _access_token(self) -> str | None:
        """Return a bearer token, exchanging client credentials if needed.

        ``None`` means no client credentials are configured; the API key
        is then sent on its own.  Exchange failures raise.
        """
        if not self._has_client_credentials:
            return None

        token = self.cache.get()
        if token is not None:
            return token

        resp = await self.http.post(
            self.auth_url,
            json={
                "audience": self.audience,
                "grant_type": "client_credentials",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
        )
        resp.raise_for_status()
        body = resp.json()
        token = body.get("access_token")
        if not token:
            raise ClaimIssuanceError("Token endpoint returned no access_token")

        lifetime = float(body.get("expires_in") or DEFAULT_TOKEN_LIFETIME_SECONDS)
        self.cache.store(token, lifetime)
        logger.info("POAP access token refreshed (lifetime %ds)", int(lifetime))
        return token

    async def _headers(self) -> dict[str, str]:
        headers = {"X-API-Key": self.api_key or "", "Accept": "application/json"}
        token = await self._access_token()
        if token is not None:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    # -----------------------------------------------------------------------
    # Links
    # -----------------------------------------------------------------------
    def _placeholder_link(self, kind: str, poap_event_id: str) -> str:
        return f"{self.claim_base_url}/{kind}-{poap_event_id}-{int(time.time() * 1000)}"

    async def _request_claim_link(self, poap_event_id: str, recipient_email: str) -> str:
        resp = await self.http.post(
            f"{self.api_url}/actions/claim-qr",
            json={"event_id": poap_event_id, "recipient": recipient_email},
            headers=await self._headers(),
        )
        if resp.status_code == 401:
            # Token revoked or rotated early; force a fresh exchange next time.
            self.cache.clear()
        resp.raise_for_status()

        body = resp.json()
        if body.get("claim_url"):
            return str(body["claim_url"])
        if body.get("qr_hash"):
            return f"{self.claim_base_url}/{body['qr_hash']}"
        raise ClaimIssuanceError("Issuance response had neither claim_url nor qr_hash")

    async def issue_claim_link(self, poap_event_id: str, recipient_email: str) -> str:
        """Return a claim link for *recipient_email*.  Never raises."""
        if not self.configured:
            link = self._placeholder_link("mock", poap_event_id)
            logger.info(
                "Mock: would issue POAP claim link for event %s to %s → %s",
                poap_event_id, recipient_email, link,
            )
            return link

        try:
            link = await self._request_claim_link(poap_event_id, recipient_email)
        except Exception as exc:
            link = self._placeholder_link("fallback", poap_event_id)
            logger.warning(
                "POAP issuance failed for event %s (%s: %s) — using fallback link %s",
                poap_event_id, type(exc).__name__, exc, link,
            )
            return link

        logger.info("Issued POAP claim link for event %s", poap_event_id)
        return link

    # -----------------------------------------------------------------------
    # Event details
    # -----------------------------------------------------------------------
    async def get_event_details(self, poap_event_id: str) -> dict[str, Any] | None:
        """Fetch the provider's description of a POAP event.

        Returns a mock description when unconfigured and ``None`` on failure.
        """
        if not self.configured:
            return {
                "id": poap_event_id,
                "name": "Mock POAP Event",
                "description": "Mock event for testing",
                "image_url": "https://poap.xyz/logo.png",
            }
        try:
            resp = await self.http.get(
                f"{self.api_url}/events/id/{poap_event_id}",
                headers=await self._headers(),
            )
            resp.raise_for_status()
            return resp.json()
        except Exception as exc:
            logger.warning(
                "Could not fetch POAP event %s: %s", poap_event_id, exc,
            )
            return None
