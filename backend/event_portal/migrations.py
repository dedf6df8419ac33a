"""Utilities for applying the database schema at runtime."""

from __future__ import annotations

import hashlib
import logging

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.schema import CreateTable

from .models import Base, SchemaMigration

LOGGER = logging.getLogger(__name__)


def schema_fingerprint(engine: AsyncEngine) -> str:
    """Hash the DDL the ORM metadata renders for ``engine``'s dialect."""

    ddl = "\n".join(
        str(CreateTable(table).compile(dialect=engine.dialect))
        for table in Base.metadata.sorted_tables
    )
    return hashlib.sha256(ddl.encode("utf-8")).hexdigest()


async def ensure_schema(engine: AsyncEngine) -> tuple[bool, int]:
    """Create missing tables and record the schema fingerprint once per version.

    Returns ``(applied, table_count)``; ``applied`` is ``False`` when the current
    fingerprint was already recorded by this or another process.
    """

    schema_hash = schema_fingerprint(engine)
    tables = Base.metadata.sorted_tables

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

        result = await conn.execute(
            select(SchemaMigration.schema_hash).where(SchemaMigration.schema_hash == schema_hash)
        )
        if result.first() is not None:
            LOGGER.debug("Database schema already applied (hash=%s)", schema_hash)
            return False, 0

        await conn.execute(insert(SchemaMigration).values(schema_hash=schema_hash))

    LOGGER.info("Applied database schema (%d tables, hash=%s)", len(tables), schema_hash)
    return True, len(tables)
