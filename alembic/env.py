"""Alembic environment for the Clienter schema.

Runs synchronously against the same database as the application, using
the psycopg2 form of DATABASE_URL.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from src.clienter.config import get_settings
from src.clienter.core.database import Base

# Import models so their tables register on Base.metadata
from src.clienter.clients import models as _clients  # noqa: F401
from src.clienter.meetings import models as _meetings  # noqa: F401
from src.clienter.profiles import models as _profiles  # noqa: F401
from src.clienter.reminders import models as _reminders  # noqa: F401

# Alembic Config object
config = context.config

# Interpret the config file for Python logging
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _sync_url() -> str:
    """Migration URL: `-x db_url=...` when given, else DATABASE_URL without +asyncpg."""
    override = context.get_x_argument(as_dictionary=True).get("db_url")
    return override or get_settings().DATABASE_URL.replace("+asyncpg", "")


def run_migrations_offline() -> None:
    """Emit SQL without a database connection."""
    context.configure(
        url=_sync_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations over a short-lived sync connection."""
    connectable = create_engine(_sync_url(), poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
