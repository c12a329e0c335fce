"""
database.py — Scrim Bot Database Module
---------------------------------------
Provides DB initialization and schema validation for the scrim bot.

Tables:
- meta: Schema version tracking
- queue_entries: Snapshot of the current queue (with optional join messages)
- steam_ids: Discord user -> SteamID registry
- team_names: Discord user -> custom team name
- map_pool: Maps available in the map vote
"""

from __future__ import annotations

import logging
import os
import time
from typing import Optional

import aiosqlite

log = logging.getLogger(__name__)

DB_NAME = os.getenv("SCRIM_DB", "scrim_bot.db")

SCHEMA_VERSION = 1

# Idempotency flag
_db_initialized = False


async def init_db_once(db_path: Optional[str] = None) -> float:
    """
    Idempotent database initialization. Safe to call multiple times.

    Returns the time taken in seconds (0 if already initialized).
    """
    global _db_initialized
    if _db_initialized:
        log.debug("Database already initialized, skipping")
        return 0.0

    start = time.perf_counter()
    await init_db(db_path)
    _db_initialized = True
    elapsed = time.perf_counter() - start
    return elapsed


def reset_db_init_flag():
    """Reset the initialization flag (for testing only)."""
    global _db_initialized
    _db_initialized = False


async def init_db(db_path: Optional[str] = None) -> None:
    """Initialize the database file with the scrim schema."""
    target_db = db_path or DB_NAME

    async with aiosqlite.connect(target_db) as db:
        await create_tables(db)
    log.info("[SCRIM-DB] Schema initialized at %s (v%s)", target_db, SCHEMA_VERSION)


async def create_tables(db: aiosqlite.Connection) -> None:
    """Create all scrim tables on an open connection."""
    # ------------------------------------------------------------------
    # META - Schema version tracking
    # ------------------------------------------------------------------
    await db.execute(
        """
        CREATE TABLE IF NOT EXISTS meta (
            key   TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
        """
    )

    await db.execute(
        """
        INSERT OR REPLACE INTO meta (key, value)
        VALUES ('schema_version', ?)
        """,
        (str(SCHEMA_VERSION),),
    )

    # ------------------------------------------------------------------
    # QUEUE_ENTRIES - Whole-queue snapshot, rewritten after every change
    # position keeps join order
    # ------------------------------------------------------------------
    await db.execute(
        """
        CREATE TABLE IF NOT EXISTS queue_entries (
            position        INTEGER PRIMARY KEY,
            user_id         INTEGER NOT NULL UNIQUE,
            display_name    TEXT,
            message         TEXT,
            joined_at       INTEGER DEFAULT (strftime('%s', 'now'))
        )
        """
    )

    # ------------------------------------------------------------------
    # STEAM_IDS - SteamID registry (STEAM_X:Y:Z format)
    # ------------------------------------------------------------------
    await db.execute(
        """
        CREATE TABLE IF NOT EXISTS steam_ids (
            user_id         INTEGER PRIMARY KEY,
            steam_id        TEXT NOT NULL,
            updated_at      INTEGER DEFAULT (strftime('%s', 'now'))
        )
        """
    )

    # ------------------------------------------------------------------
    # TEAM_NAMES - Custom team names, used when the user captains
    # ------------------------------------------------------------------
    await db.execute(
        """
        CREATE TABLE IF NOT EXISTS team_names (
            user_id         INTEGER PRIMARY KEY,
            team_name       TEXT NOT NULL,
            updated_at      INTEGER DEFAULT (strftime('%s', 'now'))
        )
        """
    )

    # ------------------------------------------------------------------
    # MAP_POOL - Maps offered in the vote, in display order
    # ------------------------------------------------------------------
    await db.execute(
        """
        CREATE TABLE IF NOT EXISTS map_pool (
            position        INTEGER PRIMARY KEY,
            name            TEXT NOT NULL UNIQUE
        )
        """
    )

    await db.commit()


async def validate_db_connectivity(db_path: Optional[str] = None) -> bool:
    """
    Validate database connectivity.
    Returns True if connection succeeds, raises exception otherwise.
    """
    target_db = db_path or DB_NAME
    try:
        async with aiosqlite.connect(target_db) as db:
            await db.execute("SELECT 1")
        return True
    except Exception as e:
        log.error(f"[SCRIM-DB] Database connectivity check failed: {e}")
        raise


async def get_core_tables() -> list[str]:
    """Return list of core tables that should exist."""
    return [
        "meta",
        "queue_entries",
        "steam_ids",
        "team_names",
        "map_pool",
    ]


async def validate_schema(db_path: Optional[str] = None) -> dict:
    """
    Validate all core tables exist.
    Returns dict with table names and their existence status.
    """
    target_db = db_path or DB_NAME
    core_tables = await get_core_tables()
    result = {}

    async with aiosqlite.connect(target_db) as db:
        for table in core_tables:
            async with db.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,)
            ) as cursor:
                row = await cursor.fetchone()
                result[table] = row is not None

    return result
