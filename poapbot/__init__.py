"""
PoapBot — Reaction-Threshold POAP Delivery for Slack
=====================================================
Watches reactions on Slack messages and, when a message in a configured
channel collects enough of them, emails its author a one-time POAP claim
link.  Each (message, author) pair is delivered at most once per ledger.

Package layout::

    poapbot/
    ├── config.py          # YAML → typed Python config
    ├── runtime.py         # Process-scoped state (clients, caches, tasks)
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # ORM models (rules, ledger, deliveries, audit)
    │   └── seed.py        # Sample #general rule on first start
    ├── engine/
    │   ├── events.py      # ReactionEvent envelope
    │   ├── evaluator.py   # Reaction → delivery state machine
    │   └── locks.py       # Per-key asyncio serialization
    ├── services/
    │   ├── rule_service.py         # Per-channel rules (audited)
    │   ├── ledger_service.py       # Reaction snapshots + delivered flag
    │   ├── delivery_service.py     # Append-only delivery audit
    │   ├── claim_service.py        # POAP claim links + credential cache
    │   ├── email_service.py        # SMTP claim email
    │   └── notification_service.py # Email + Slack DMs, never raises
    ├── bot/
    │   ├── gateway.py     # Slack Web API wrapper
    │   ├── events.py      # Events API payload → ReactionEvent
    │   └── commands.py    # /poap-* slash commands
    └── api/
        ├── main.py        # FastAPI app + lifespan
        ├── auth.py        # Admin password → JWT
        └── routes/        # Slack receiver + admin REST endpoints
"""

__version__ = "0.1.0"
