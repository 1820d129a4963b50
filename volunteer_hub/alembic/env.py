"""
Alembic entry point for the volunteer hub schema.

The URL never comes from alembic.ini: migrations run against the same
DATABASE_URL the app uses, through the asyncpg driver.
"""

from logging.config import fileConfig
import asyncio
import logging
from sqlalchemy import pool
from sqlalchemy.engine import Connection, make_url
from sqlalchemy.ext.asyncio import async_engine_from_config
from alembic import context

from volunteer_hub.database.db import Base, DATABASE_URL

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

target_metadata = Base.metadata


def _configure(**kwargs) -> None:
    context.configure(target_metadata=target_metadata, compare_type=True, **kwargs)
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of touching a database."""
    _configure(url=DATABASE_URL, literal_binds=True, dialect_opts={"paramstyle": "named"})


def _run_on_connection(connection: Connection) -> None:
    _configure(connection=connection)


async def _run_async() -> None:
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = DATABASE_URL
    connectable = async_engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    try:
        async with connectable.connect() as connection:
            await connection.run_sync(_run_on_connection)
    finally:
        await connectable.dispose()


def run_migrations_online() -> None:
    """Apply migrations to the configured database."""
    logger.info(f"Migrating database on {make_url(DATABASE_URL).host or 'local socket'}")
    asyncio.run(_run_async())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
