"""Database configuration for the FastAPI backend.

This module provides a SQLAlchemy async engine and session factory built from
the ``DATABASE_URL`` environment variable. Postgres connection strings are
converted to the ``postgresql+asyncpg`` driver; any other async URL (for
example ``sqlite+aiosqlite:///./portal.db`` for local development) is used
unchanged.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from dotenv import find_dotenv, load_dotenv
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from . import migrations
from .services.notifications import get_notification_dispatcher

logger = logging.getLogger(__name__)

# Load DATABASE_URL and other environment variables from the project root ``.env``
# file, if present. ``find_dotenv`` walks up from the current working directory,
# so it will locate the repository-level configuration even when this module is
# imported from nested packages.
_DOTENV_PATH = find_dotenv(filename=".env", raise_error_if_not_found=False, usecwd=True)
if _DOTENV_PATH:
    load_dotenv(_DOTENV_PATH)

_DATABASE_URL_ENV = "DATABASE_URL"


def _build_async_database_url(raw_url: str) -> str:
    """Ensure Postgres URLs use the asyncpg driver."""

    if raw_url.startswith("postgresql+asyncpg://"):
        return raw_url
    if raw_url.startswith("postgres://"):
        raw_url = raw_url.replace("postgres://", "postgresql://", 1)
    if raw_url.startswith("postgresql://"):
        return raw_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return raw_url


def _is_postgres(url: str) -> bool:
    return url.startswith("postgresql")


def get_database_url() -> str:
    try:
        raw_url = os.environ[_DATABASE_URL_ENV]
    except KeyError as exc:  # pragma: no cover - configuration error should be explicit
        raise RuntimeError(
            "DATABASE_URL environment variable must be set to connect to the event store"
        ) from exc
    return _build_async_database_url(raw_url)


def get_engine_kwargs(url: str) -> dict:
    """Get engine configuration based on the database backend."""
    kwargs: dict = {"echo": False}

    if _is_postgres(url):
        kwargs.update(
            {
                "pool_size": 5,
                "max_overflow": 10,
                "pool_pre_ping": True,  # Verify connections before using them
                "pool_recycle": 3600,   # Recycle connections after 1 hour
            }
        )
        logger.info("Database configured: pooled Postgres connection")
    else:
        logger.info("Database configured: %s", url.split("://", 1)[0])

    return kwargs


def enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """Turn on SQLite foreign key enforcement so ON DELETE rules apply."""

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):  # pragma: no cover - driver hook
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


_database_url = get_database_url()
ASYNC_ENGINE = create_async_engine(_database_url, **get_engine_kwargs(_database_url))
if _database_url.startswith("sqlite"):
    enable_sqlite_foreign_keys(ASYNC_ENGINE)
ASYNC_SESSION_FACTORY = async_sessionmaker(
    ASYNC_ENGINE, expire_on_commit=False, class_=AsyncSession
)


@asynccontextmanager
async def lifespan(app):  # pragma: no cover - FastAPI hook
    """Apply the schema, run the notification worker, and dispose the engine on shutdown."""

    try:
        applied, _ = await migrations.ensure_schema(ASYNC_ENGINE)
        if applied:
            logger.info("Database schema applied during startup")
    except RuntimeError:
        logger.exception("Failed to apply database schema during startup")
        raise

    dispatcher = get_notification_dispatcher()
    dispatcher.start()

    yield

    await dispatcher.stop()
    await ASYNC_ENGINE.dispose()


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency that yields an ``AsyncSession``."""

    async with ASYNC_SESSION_FACTORY() as session:
        yield session
