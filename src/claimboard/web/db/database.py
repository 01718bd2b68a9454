"""Async SQLite connection management.

Each unit of work gets its own connection so that SQLite's transaction
isolation (WAL + busy timeout) arbitrates concurrent writers.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

_db_path: str = ""


async def connect(db_path: str) -> aiosqlite.Connection:
    """Open a connection configured for concurrent access."""
    db = await aiosqlite.connect(db_path)
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA foreign_keys=ON")
    await db.execute("PRAGMA busy_timeout=5000")
    return db


async def apply_schema(db: aiosqlite.Connection) -> None:
    """Run schema.sql on an open connection; every statement is idempotent."""
    await db.executescript(SCHEMA_PATH.read_text())
    await db.commit()


async def init_db(db_path: str) -> None:
    """Initialize the database file and remember its path for later sessions."""
    global _db_path
    _db_path = db_path

    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    db = await connect(db_path)
    try:
        await apply_schema(db)
    finally:
        await db.close()
    logger.info("Database ready at %s", db_path)


@asynccontextmanager
async def session() -> AsyncIterator[aiosqlite.Connection]:
    """Open a connection for one unit of work."""
    if not _db_path:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    db = await connect(_db_path)
    try:
        yield db
    finally:
        await db.close()


@asynccontextmanager
async def transaction(db: aiosqlite.Connection) -> AsyncIterator[aiosqlite.Connection]:
    """All-or-nothing block. Nested use joins the outer transaction."""
    if db.in_transaction:
        yield db
        return

    await db.execute("BEGIN IMMEDIATE")
    try:
        yield db
    except BaseException:
        await db.rollback()
        raise
    else:
        await db.commit()
