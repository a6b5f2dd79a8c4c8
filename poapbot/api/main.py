"""
poapbot.api.main — FastAPI application entry point
===================================================

Run with::

    uvicorn poapbot.api.main:app --port 3000

or ``python -m poapbot`` (reads the port from ``config.yaml``).
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from poapbot.api.auth import router as auth_router  # noqa: E402
from poapbot.api.routes.admin import router as admin_router  # noqa: E402
from poapbot.api.routes.public import router as public_router  # noqa: E402
from poapbot.api.routes.slack import router as slack_router  # noqa: E402
from poapbot.config import load_config  # noqa: E402
from poapbot.database.engine import create_db_engine, init_db, run_db  # noqa: E402
from poapbot.runtime import PoapBotRuntime  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Allowed CORS origins for an externally hosted admin page.

    ``CORS_ALLOW_ORIGINS`` is a comma-separated list; empty means none.
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — build and drain the runtime."""
    cfg = load_config()
    engine = create_db_engine()
    await run_db(init_db, engine)

    runtime = PoapBotRuntime.build(cfg, engine)
    app.state.runtime = runtime
    logger.info("%s started — engine ready (%s)", cfg.app_name, engine.url.database)
    try:
        yield
    finally:
        logger.info("%s shutting down", cfg.app_name)
        await runtime.close()
        engine.dispose()
        app.state.runtime = None


app = FastAPI(
    title="Slack POAP Bot",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(slack_router)
app.include_router(auth_router, prefix="/api")
app.include_router(public_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
