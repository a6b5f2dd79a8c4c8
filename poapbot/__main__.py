"""
poapbot.__main__ — Entry point for ``python -m poapbot``
=========================================================

Wiring:
1. Configure logging.
2. Load .env (secrets) and config.yaml (port).
3. Serve :mod:`poapbot.api.main` with uvicorn.  The app's lifespan creates
   the engine, seeds the database and builds the runtime.

Run with::

    python -m poapbot
"""

from __future__ import annotations

import logging
import os
import sys

import uvicorn
from dotenv import load_dotenv

from poapbot.config import load_config

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("poapbot")


def main() -> None:
    """Bootstrap and serve the POAP bot."""
    load_dotenv()

    if not (os.getenv("SLACK_BOT_TOKEN") or os.getenv("SLACK_ACCESS_TOKEN")):
        logger.critical(
            "SLACK_BOT_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    cfg = load_config()
    logger.info("Config loaded — %s on port %d", cfg.app_name, cfg.port)

    try:
        # log_config=None keeps the basicConfig format above
        uvicorn.run("poapbot.api.main:app", host="0.0.0.0", port=cfg.port, log_config=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
