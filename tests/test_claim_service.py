"""
tests/test_claim_service.py — Claim-Link Issuer Tests
======================================================
Credential caching, refresh, the placeholder fallback and mock mode.
The POAP provider is faked with ``httpx.MockTransport``.
"""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from poapbot.services.claim_service import ClaimLinkIssuer, CredentialCache


# Helper to run async tests without pytest-asyncio
def run_async(coro):
    """Run an async coroutine in a new event loop."""
    return asyncio.get_event_loop_policy().new_event_loop().run_until_complete(coro)


AUTH_URL = "https://auth.poap.test/oauth/token"
API_URL = "https://api.poap.test"
CLAIM_BASE = "https://poap.test/claim"


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakePoap:
    """Scriptable POAP provider; records every request it sees."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.token_responses: list[httpx.Response] = []
        self.claim_responses: list[httpx.Response] = []
        self.token_counter = 0

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if str(request.url) == AUTH_URL:
            if self.token_responses:
                return self.token_responses.pop(0)
            self.token_counter += 1
            return httpx.Response(
                200, json={"access_token": f"tok-{self.token_counter}", "expires_in": 86400},
            )
        if request.url.path == "/actions/claim-qr":
            if self.claim_responses:
                return self.claim_responses.pop(0)
            return httpx.Response(200, json={"qr_hash": "abc123"})
        if request.url.path.startswith("/events/id/"):
            return httpx.Response(200, json={"id": 42, "name": "Real Event"})
        return httpx.Response(404)

    def token_calls(self) -> int:
        return sum(1 for r in self.requests if str(r.url) == AUTH_URL)

    def claim_calls(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/actions/claim-qr"]


def _issuer(fake: FakePoap, *, api_key="key", client_id="cid", client_secret="csecret", clock=None):
    http = httpx.AsyncClient(transport=httpx.MockTransport(fake.handler))
    return ClaimLinkIssuer(
        http,
        api_url=API_URL,
        auth_url=AUTH_URL,
        audience="poap-test",
        claim_base_url=CLAIM_BASE,
        api_key=api_key,
        client_id=client_id,
        client_secret=client_secret,
        cache=CredentialCache(clock=clock or FakeClock()),
    )


# ---------------------------------------------------------------------------
# CredentialCache
# ---------------------------------------------------------------------------
class TestCredentialCache:
    def test_empty_cache(self):
        assert CredentialCache().get() is None

    def test_token_goes_stale_before_provider_expiry(self):
        clock = FakeClock(0)
        cache = CredentialCache(clock=clock)
        cache.store("tok", 86400)

        clock.now = 86400 - 3600 - 1
        assert cache.get() == "tok"
        clock.now = 86400 - 3600
        assert cache.get() is None

    def test_short_lifetime_uses_half(self):
        clock = FakeClock(0)
        cache = CredentialCache(clock=clock)
        cache.store("tok", 600)
        clock.now = 299
        assert cache.get() == "tok"
        clock.now = 300
        assert cache.get() is None

    def test_clear(self):
        cache = CredentialCache()
        cache.store("tok", 86400)
        cache.clear()
        assert cache.get() is None


# ---------------------------------------------------------------------------
# Issuance: primary path
# ---------------------------------------------------------------------------
class TestIssueClaimLink:
    def test_qr_hash_becomes_claim_url(self):
        fake = FakePoap()
        link = run_async(_issuer(fake).issue_claim_link("42", "a@example.com"))
        assert link == f"{CLAIM_BASE}/abc123"

        claim = fake.claim_calls()[0]
        assert json.loads(claim.content) == {"event_id": "42", "recipient": "a@example.com"}
        assert claim.headers["X-API-Key"] == "key"
        assert claim.headers["Authorization"] == "Bearer tok-1"

    def test_explicit_claim_url_is_returned_verbatim(self):
        fake = FakePoap()
        fake.claim_responses.append(
            httpx.Response(200, json={"claim_url": "https://poap.xyz/claim/zzz"})
        )
        link = run_async(_issuer(fake).issue_claim_link("42", "a@example.com"))
        assert link == "https://poap.xyz/claim/zzz"

    def test_token_exchange_sends_client_credentials(self):
        fake = FakePoap()
        run_async(_issuer(fake).issue_claim_link("42", "a@example.com"))
        token_req = fake.requests[0]
        assert str(token_req.url) == AUTH_URL
        assert json.loads(token_req.content) == {
            "audience": "poap-test",
            "grant_type": "client_credentials",
            "client_id": "cid",
            "client_secret": "csecret",
        }

    def test_token_is_reused_within_lifetime(self):
        fake = FakePoap()
        issuer = _issuer(fake)

        async def _two():
            await issuer.issue_claim_link("42", "a@example.com")
            await issuer.issue_claim_link("42", "b@example.com")

        run_async(_two())
        assert fake.token_calls() == 1
        assert len(fake.claim_calls()) == 2

    def test_token_is_refreshed_after_margin(self):
        fake = FakePoap()
        clock = FakeClock(0)
        issuer = _issuer(fake, clock=clock)

        async def _across_expiry():
            await issuer.issue_claim_link("42", "a@example.com")
            clock.now = 86400 - 3600
            await issuer.issue_claim_link("42", "b@example.com")

        run_async(_across_expiry())
        assert fake.token_calls() == 2
        assert fake.claim_calls()[1].headers["Authorization"] == "Bearer tok-2"

    def test_api_key_only_skips_token_exchange(self):
        fake = FakePoap()
        issuer = _issuer(fake, client_id=None, client_secret=None)
        link = run_async(issuer.issue_claim_link("42", "a@example.com"))
        assert link == f"{CLAIM_BASE}/abc123"
        assert fake.token_calls() == 0
        assert "Authorization" not in fake.claim_calls()[0].headers


# ---------------------------------------------------------------------------
# Issuance: degradation
# ---------------------------------------------------------------------------
class TestFallback:
    def test_provider_error_yields_fallback_link(self, caplog):
        fake = FakePoap()
        fake.claim_responses.append(httpx.Response(500, json={"error": "boom"}))
        link = run_async(_issuer(fake).issue_claim_link("42", "a@example.com"))
        assert link.startswith(f"{CLAIM_BASE}/fallback-42-")
        assert "fallback" in caplog.text

    def test_token_exchange_failure_yields_fallback(self):
        fake = FakePoap()
        fake.token_responses.append(httpx.Response(403, json={"error": "denied"}))
        link = run_async(_issuer(fake).issue_claim_link("42", "a@example.com"))
        assert link.startswith(f"{CLAIM_BASE}/fallback-42-")
        assert fake.claim_calls() == []

    def test_malformed_response_yields_fallback(self):
        fake = FakePoap()
        fake.claim_responses.append(httpx.Response(200, json={"unexpected": True}))
        link = run_async(_issuer(fake).issue_claim_link("42", "a@example.com"))
        assert "/fallback-42-" in link

    def test_unauthorized_clears_cached_token(self):
        fake = FakePoap()
        issuer = _issuer(fake)
        fake.claim_responses.append(httpx.Response(401))

        async def _twice():
            first = await issuer.issue_claim_link("42", "a@example.com")
            second = await issuer.issue_claim_link("42", "a@example.com")
            return first, second

        first, second = run_async(_twice())
        assert "/fallback-" in first
        assert second == f"{CLAIM_BASE}/abc123"
        assert fake.token_calls() == 2

    def test_transport_error_yields_fallback(self):
        def _explode(request):
            raise httpx.ConnectError("unreachable", request=request)

        issuer = ClaimLinkIssuer(
            httpx.AsyncClient(transport=httpx.MockTransport(_explode)),
            api_url=API_URL,
            auth_url=AUTH_URL,
            audience="poap-test",
            claim_base_url=CLAIM_BASE,
            api_key="key",
        )
        link = run_async(issuer.issue_claim_link("42", "a@example.com"))
        assert "/fallback-42-" in link


class TestMockMode:
    def test_unconfigured_issuer_returns_mock_link_without_http(self):
        fake = FakePoap()
        issuer = _issuer(fake, api_key=None)
        assert issuer.configured is False
        link = run_async(issuer.issue_claim_link("42", "a@example.com"))
        assert link.startswith(f"{CLAIM_BASE}/mock-42-")
        assert fake.requests == []


# ---------------------------------------------------------------------------
# Event details
# ---------------------------------------------------------------------------
class TestEventDetails:
    def test_fetches_event(self):
        fake = FakePoap()
        details = run_async(_issuer(fake).get_event_details("42"))
        assert details == {"id": 42, "name": "Real Event"}
        assert fake.requests[-1].url.path == "/events/id/42"

    def test_mock_when_unconfigured(self):
        details = run_async(_issuer(FakePoap(), api_key=None).get_event_details("42"))
        assert details["id"] == "42"
        assert details["name"] == "Mock POAP Event"

    def test_failure_returns_none(self):
        issuer = ClaimLinkIssuer(
            httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(404))),
            api_url=API_URL,
            auth_url=AUTH_URL,
            audience="poap-test",
            claim_base_url=CLAIM_BASE,
            api_key="key",
        )
        assert run_async(issuer.get_event_details("42")) is None


@pytest.mark.parametrize("env_key, configured", [("key", True), ("", False)])
def test_from_env(monkeypatch, poap_config, env_key, configured):
    monkeypatch.setenv("POAP_API_KEY", env_key)
    monkeypatch.delenv("POAP_CLIENT_ID", raising=False)
    monkeypatch.delenv("POAP_CLIENT_SECRET", raising=False)
    issuer = ClaimLinkIssuer.from_env(poap_config, httpx.AsyncClient())
    assert issuer.configured is configured
    assert issuer.claim_base_url == "https://poap.test/claim"
