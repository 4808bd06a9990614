"""
Alembic environment for the panel registry schema.

Migrations run against the async (asyncpg) engine the service itself uses.
The target URL is resolved in order from ``alembic -x database_url=...``,
the DATABASE_URL environment variable (the variable
MonitorSettings.database_url is loaded from), and ``sqlalchemy.url`` in
alembic.ini.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import asyncio
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from energy_monitor.src.db.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)


def resolve_database_url() -> str:
    """Return the registry database URL for this migration run.

    Raises:
        RuntimeError: If no URL is given on the command line, in the
            environment, or in alembic.ini.
    """
    url = (
        context.get_x_argument(as_dictionary=True).get("database_url")
        or os.environ.get("DATABASE_URL")
        or config.get_main_option("sqlalchemy.url")
    )
    if not url:
        raise RuntimeError(
            "No database URL: pass -x database_url=... or set DATABASE_URL"
        )
    return url


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=Base.metadata,
        compare_type=True,
        **kwargs,
    )
    with context.begin_transaction():
        context.run_migrations()


def _migrate_on(connection: Connection) -> None:
    _configure(connection=connection)


async def migrate_online(url: str) -> None:
    """Apply migrations through a throwaway async engine."""
    engine = create_async_engine(url, poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_migrate_on)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    _configure(
        url=resolve_database_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
else:
    asyncio.run(migrate_online(resolve_database_url()))
