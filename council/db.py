"""Async key/hash/set/list store over SQLite.

Gives the session store the handful of primitives it needs (set membership,
field maps, ordered lists, counters) with each call committed as one
transaction.  Every operation opens its own ``aiosqlite`` connection, so
concurrent callers are serialized by SQLite's write lock.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import aiosqlite

from council.config import settings

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS kv_hashes (
        key   TEXT NOT NULL,
        field TEXT NOT NULL,
        value TEXT NOT NULL,
        PRIMARY KEY (key, field)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS kv_sets (
        key    TEXT NOT NULL,
        member TEXT NOT NULL,
        PRIMARY KEY (key, member)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS kv_lists (
        seq   INTEGER PRIMARY KEY AUTOINCREMENT,
        key   TEXT NOT NULL,
        value TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS kv_lists_key ON kv_lists (key, seq)",
)


class KeyValueStore:
    """Durable store with Redis-like primitives.

    Pass an explicit *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        await db.execute("PRAGMA busy_timeout=5000")
        if not self._initialised:
            await db.execute("PRAGMA journal_mode=WAL")
            for statement in _SCHEMA:
                await db.execute(statement)
            await db.commit()
            self._initialised = True
        return db

    # -- Keys ------------------------------------------------------------------

    async def exists(self, key: str) -> bool:
        """True if *key* holds a hash, set or list."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                """
                SELECT 1 FROM kv_hashes WHERE key = ?
                UNION ALL SELECT 1 FROM kv_sets WHERE key = ?
                UNION ALL SELECT 1 FROM kv_lists WHERE key = ?
                LIMIT 1
                """,
                (key, key, key),
            )
            return await cursor.fetchone() is not None
        finally:
            await db.close()

    async def delete(self, key: str) -> None:
        """Remove whatever *key* holds."""
        db = await self._connect()
        try:
            await db.execute("DELETE FROM kv_hashes WHERE key = ?", (key,))
            await db.execute("DELETE FROM kv_sets WHERE key = ?", (key,))
            await db.execute("DELETE FROM kv_lists WHERE key = ?", (key,))
            await db.commit()
        finally:
            await db.close()

    # -- Sets ------------------------------------------------------------------

    async def sadd(self, key: str, *members: str) -> None:
        if not members:
            return
        db = await self._connect()
        try:
            await db.executemany(
                "INSERT OR IGNORE INTO kv_sets (key, member) VALUES (?, ?)",
                [(key, m) for m in members],
            )
            await db.commit()
        finally:
            await db.close()

    async def smembers(self, key: str) -> set[str]:
        db = await self._connect()
        try:
            cursor = await db.execute("SELECT member FROM kv_sets WHERE key = ?", (key,))
            rows = await cursor.fetchall()
            return {row[0] for row in rows}
        finally:
            await db.close()

    # -- Hashes ----------------------------------------------------------------

    async def hset(self, key: str, mapping: dict[str, str | int]) -> None:
        """Set several fields of a hash at once."""
        if not mapping:
            return
        db = await self._connect()
        try:
            await db.executemany(
                """
                INSERT INTO kv_hashes (key, field, value) VALUES (?, ?, ?)
                ON CONFLICT (key, field) DO UPDATE SET value = excluded.value
                """,
                [(key, field, str(value)) for field, value in mapping.items()],
            )
            await db.commit()
        finally:
            await db.close()

    async def hgetall(self, key: str) -> dict[str, str]:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT field, value FROM kv_hashes WHERE key = ?", (key,)
            )
            rows = await cursor.fetchall()
            return {field: value for field, value in rows}
        finally:
            await db.close()

    async def hincrby(self, key: str, increments: dict[str, int]) -> dict[str, int]:
        """Add integer deltas to hash fields in one transaction.

        Missing or non-numeric fields count as zero. Returns the new values.
        """
        if not increments:
            return {}
        db = await self._connect()
        try:
            await db.executemany(
                """
                INSERT INTO kv_hashes (key, field, value) VALUES (?, ?, ?)
                ON CONFLICT (key, field) DO UPDATE
                SET value = CAST(CAST(value AS INTEGER) + CAST(excluded.value AS INTEGER) AS TEXT)
                """,
                [(key, field, str(int(delta))) for field, delta in increments.items()],
            )
            placeholders = ", ".join("?" for _ in increments)
            cursor = await db.execute(
                "SELECT field, value FROM kv_hashes "
                f"WHERE key = ? AND field IN ({placeholders})",  # noqa: S608
                (key, *increments.keys()),
            )
            rows = await cursor.fetchall()
            await db.commit()
            return {field: int(value) for field, value in rows}
        finally:
            await db.close()

    # -- Lists -----------------------------------------------------------------

    async def rpush(self, key: str, *values: str) -> None:
        """Append values to the end of a list, all or nothing."""
        if not values:
            return
        db = await self._connect()
        try:
            await db.executemany(
                "INSERT INTO kv_lists (key, value) VALUES (?, ?)",
                [(key, v) for v in values],
            )
            await db.commit()
        finally:
            await db.close()

    async def lrange(self, key: str) -> list[str]:
        """Return the full list in insertion order."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT value FROM kv_lists WHERE key = ? ORDER BY seq", (key,)
            )
            rows = await cursor.fetchall()
            return [row[0] for row in rows]
        finally:
            await db.close()
