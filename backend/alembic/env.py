"""Alembic migration environment configuration.

Runs migrations for the report scheduler tables with the async engine,
reading the database URL from application settings. PostgreSQL (asyncpg)
is the production target; SQLite (aiosqlite) is supported for local
development with batch mode for ALTER statements.
"""

import asyncio
import os
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

# All models must be imported for Alembic autogenerate to detect them
from app.models import Base, ReportExecution, ScheduledReport  # noqa: F401

# This is the Alembic Config object
config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

_ASYNC_DRIVERS = {
    "postgresql://": "postgresql+asyncpg://",
    "postgres://": "postgresql+asyncpg://",
    "sqlite://": "sqlite+aiosqlite://",
}


def get_url() -> str:
    """Get the async database URL from application settings.

    Raises:
        ValueError: If DATABASE_URL is not configured.
    """
    from app.core.config import settings

    if settings.DATABASE_URL is None:
        raise ValueError(
            "DATABASE_URL is not set. Please configure it in your .env file."
        )

    url = str(settings.DATABASE_URL)
    for sync_prefix, async_prefix in _ASYNC_DRIVERS.items():
        if url.startswith(sync_prefix):
            return url.replace(sync_prefix, async_prefix, 1)
    return url


def check_production_safety() -> None:
    """Refuse production migrations without explicit confirmation.

    Set ``ENVIRONMENT=production`` together with
    ``CONFIRM_PRODUCTION_MIGRATION=true`` to migrate a production database.

    Raises:
        RuntimeError: If running in production without confirmation.
    """
    if os.getenv("ENVIRONMENT", "").lower() != "production":
        return
    if os.getenv("CONFIRM_PRODUCTION_MIGRATION", "").lower() != "true":
        raise RuntimeError(
            "Production migration requires CONFIRM_PRODUCTION_MIGRATION=true."
        )


def run_migrations_offline() -> None:
    """Emit migration SQL without connecting to a database."""
    url = get_url()
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=url.startswith("sqlite"),
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    """Run migrations with the given connection."""
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
        render_as_batch=connection.dialect.name == "sqlite",
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Run migrations in 'online' mode with an async engine."""
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = get_url()

    connectable = async_engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode after the production safety check."""
    check_production_safety()
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
