"""
Async SQLAlchemy engine and sessions for the volunteer hub.

The hosted Postgres hands out ``postgres://`` / ``postgresql://`` URLs; they are
rewritten to the asyncpg dialect here so the rest of the app never cares.
"""

import os
from typing import AsyncGenerator
from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine
)
from sqlalchemy.orm import DeclarativeBase
from dotenv import load_dotenv

load_dotenv()


def _async_database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if not url:
        user = os.getenv("POSTGRES_USER", "volunteers")
        password = os.getenv("POSTGRES_PASSWORD", "volunteers")
        host = os.getenv("POSTGRES_HOST", "localhost")
        port = os.getenv("POSTGRES_PORT", "5432")
        name = os.getenv("POSTGRES_DB", "volunteers")
        return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{name}"
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+asyncpg://" + url[len(prefix):]
    return url


DATABASE_URL = _async_database_url()

engine: AsyncEngine = create_async_engine(
    DATABASE_URL,
    echo=os.getenv("SQL_ECHO", "false").lower() == "true",
    pool_pre_ping=True,
    pool_size=int(os.getenv("DB_POOL_SIZE", "5")),
    max_overflow=int(os.getenv("DB_MAX_OVERFLOW", "10")),
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """Declarative base for every volunteer hub table."""
    pass


# Registers the tables on Base.metadata; must follow the Base definition
from volunteer_hub.database import models  # noqa: F401, E402


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    One session per request: committed if the handler returns, rolled back if it raises.

    Services that need an earlier commit (the signup registrar) commit themselves.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_database():
    """
    Create any missing tables and make sure the waiver settings row exists.

    Alembic owns the schema in deployed environments; this keeps a fresh local
    database usable without running migrations first.
    """
    async with engine.begin() as conn:
        await conn.run_sync(lambda sync_conn: Base.metadata.create_all(bind=sync_conn, checkfirst=True))
        existing = await conn.execute(select(models.WaiverSettings.id).where(models.WaiverSettings.id == 1))
        if existing.first() is None:
            await conn.execute(insert(models.WaiverSettings).values(id=1, waiver_text="", version=1))
