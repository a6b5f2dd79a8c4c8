"""
poapbot.database.engine — Database Connection & Async Helper
=============================================================

**Why this file exists:**
Slack events are handled on an ``asyncio`` event loop, but SQLAlchemy +
psycopg2 is **synchronous**; calling the DB directly from a coroutine
would stall every other in-flight event until the query returns.

The bridge pattern:

    1. A reaction event arrives (async world).
    2. The evaluator calls ``await run_db(some_function, arg1, arg2)``.
    3. ``run_db`` ships the synchronous function to a **thread pool** via
       ``asyncio.to_thread()``.
    4. The DB work happens on a background thread; the event loop stays free.
    5. The result is awaited back in the evaluator.

Every service function is therefore a plain sync function taking the
engine as its first argument.

Usage::

    from poapbot.database.engine import create_db_engine, init_db, run_db

    engine = create_db_engine()          # reads DATABASE_URL from .env
    init_db(engine)                      # CREATE TABLE IF NOT EXISTS …

    # Inside a coroutine:
    rule = await run_db(get_rule_by_channel_name, engine, "general")
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from poapbot.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine() -> Engine:
    """Build a SQLAlchemy :class:`Engine` from the ``DATABASE_URL`` env var.

    The pool is sized for bursts of reaction events, each of which holds a
    connection only for a single short read-modify-write:
    * ``pool_size=5`` — five persistent connections.
    * ``max_overflow=10`` — up to 10 extra connections under load.
    * ``pool_timeout=10`` — fail after 10 s if no connection is available.
    * ``pool_recycle=3600`` — recycle connections after 1 hour.

    Raises
    ------
    RuntimeError
        If ``DATABASE_URL`` is not set.
    """
    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and set a valid PostgreSQL URL."
        )

    engine = create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_timeout=10,
        pool_recycle=3600,
    )
    logger.info("Database engine created → %s", engine.url.host)
    return engine


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def init_db(engine: Engine) -> None:
    """Create all tables defined in :mod:`poapbot.database.models`.

    Safe to call on every startup (``CREATE TABLE IF NOT EXISTS`` under the
    hood).  Seeds the sample ``#general`` rule when the rule table is empty.

    .. note::

        In production the schema is managed by Alembic (``alembic upgrade
        head``).  ``create_all`` is retained for dev/test environments where
        Alembic may not have run.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    from poapbot.database.seed import seed_sample_rule

    seed_sample_rule(engine)


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** database function on a background thread.

    Every DB call made from a coroutine should go through this wrapper::

        snapshot = await run_db(upsert_reaction, engine, ts, channel, user, 4)

    Under the hood it calls :func:`asyncio.to_thread`, which schedules
    *func* on the default ``ThreadPoolExecutor`` so the event loop is never
    blocked.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
