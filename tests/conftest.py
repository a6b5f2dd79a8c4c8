"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of poapbot.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite renders the admin_log snapshot columns as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402

from poapbot.database.models import Base  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all POAP bot tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def file_engine(tmp_path) -> Engine:
    """File-backed SQLite engine: one connection per thread.

    Use this when several ``run_db`` calls may be in flight at once.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'poapbot.db'}",
        echo=False,
        connect_args={"check_same_thread": False, "timeout": 15},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def admin_token():
    """Generate a valid admin JWT for use in API integration tests."""
    return make_admin_token()


def make_admin_token(sub: str = "admin", username: str = "FixtureAdmin") -> str:
    """Create an admin JWT.  Usable as both a fixture and a factory function."""
    import jwt

    from poapbot.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": username, "is_admin": True},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


@pytest.fixture
def poap_config():
    """A config object with test URLs."""
    from poapbot.config import PoapBotConfig

    return PoapBotConfig(
        app_name="Test POAP Bot",
        admin_url="http://localhost:3000/admin",
        port=3000,
        poap_api_url="https://api.poap.test",
        poap_auth_url="https://auth.poap.test/oauth/token",
        poap_audience="poap-test",
        poap_claim_base_url="https://poap.test/claim",
        smtp_port=587,
        max_concurrent_deliveries=2,
    )
