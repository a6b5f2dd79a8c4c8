"""
poapbot.config — YAML Configuration Loader
===========================================

**Why this file exists:**
This module reads ``config.yaml`` for **non-secret** settings (provider
URLs, admin page location, concurrency limits).  Secrets (Slack tokens,
POAP credentials, SMTP passwords, ``DATABASE_URL``) stay in the
environment (``.env``) and are read where they are used.

Usage::

    from poapbot.config import load_config

    cfg = load_config()          # reads ./config.yaml by default
    print(cfg.app_name)          # "Slack POAP Bot"
    print(cfg.poap_api_url)      # "https://api.poap.tech"
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object: infrastructure only, no secrets.
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PoapBotConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    app_name: str
    admin_url: str  # Linked from slash-command replies

    # HTTP server
    port: int

    # POAP provider
    poap_api_url: str
    poap_auth_url: str  # OAuth client-credentials token endpoint
    poap_audience: str
    poap_claim_base_url: str  # Prefix for qr-hash and placeholder links

    # Email
    smtp_port: int

    # Concurrency: simultaneous outbound claim-link + email deliveries
    max_concurrent_deliveries: int

    # Optional
    email_from: str | None = None  # Defaults to SMTP_USER when unset


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> PoapBotConfig:
    """Read *path* and return a :class:`PoapBotConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If ``max_concurrent_deliveries`` is not positive.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh)

    max_deliveries = int(raw["max_concurrent_deliveries"])
    if max_deliveries < 1:
        raise ValueError("max_concurrent_deliveries must be at least 1")

    return PoapBotConfig(
        app_name=raw["app_name"],
        admin_url=raw["admin_url"],
        port=int(raw["port"]),
        poap_api_url=raw["poap_api_url"].rstrip("/"),
        poap_auth_url=raw["poap_auth_url"],
        poap_audience=raw["poap_audience"],
        poap_claim_base_url=raw["poap_claim_base_url"].rstrip("/"),
        smtp_port=int(raw["smtp_port"]),
        max_concurrent_deliveries=max_deliveries,
        email_from=raw.get("email_from") or None,
    )
