"""Alembic environment for the POAP bot schema.

Online migrations reuse :func:`poapbot.database.engine.create_db_engine`, so
``DATABASE_URL`` (from the environment or ``.env``) is the only connection
setting.  Offline mode renders SQL against the same URL.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from dotenv import load_dotenv

from alembic import context

load_dotenv()

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

from poapbot.database.engine import create_db_engine  # noqa: E402
from poapbot.database.models import Base  # noqa: E402

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_db_engine()
    try:
        with engine.connect() as connection:
            context.configure(connection=connection, target_metadata=target_metadata)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
