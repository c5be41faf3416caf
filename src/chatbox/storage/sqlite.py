"""SQLite key-value backend.

Provides persistent blob storage in a single SQLite table.
Uses aiosqlite for async access.
"""

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from ..errors import PersistenceError
from .base import KeyValueStore

logger = logging.getLogger(__name__)


class SQLiteKeyValueStore(KeyValueStore):
    """SQLite-backed key-value store.

    Stores each blob as one row of the `kv` table.
    Supports persistent storage across application runs.
    """

    def __init__(self, path: str | Path = "./chatbox.db"):
        self._db_path = Path(path).expanduser()
        self._connection: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open the database and create the schema."""
        if self._connection is not None:
            return
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = await aiosqlite.connect(self._db_path)
            await self._create_schema()
        except (OSError, sqlite3.Error) as e:
            raise PersistenceError(f"Cannot open {self._db_path}: {e}") from e
        logger.debug("Opened key-value store at %s", self._db_path)

    async def _create_schema(self) -> None:
        """Create database tables."""
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value BLOB NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        await self._connection.commit()

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    def _require_connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise PersistenceError("Key-value store is not connected")
        return self._connection

    async def get(self, key: str) -> bytes | None:
        connection = self._require_connection()
        try:
            async with connection.execute(
                "SELECT value FROM kv WHERE key = ?",
                (key,)
            ) as cursor:
                row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot read {key!r}: {e}") from e

        return bytes(row[0]) if row else None

    async def set(self, key: str, value: bytes) -> None:
        connection = self._require_connection()
        now = datetime.now(timezone.utc).isoformat()
        try:
            await connection.execute("""
                INSERT INTO kv (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
            """, (key, value, now))
            await connection.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot write {key!r}: {e}") from e

    async def delete(self, key: str) -> None:
        connection = self._require_connection()
        try:
            await connection.execute("DELETE FROM kv WHERE key = ?", (key,))
            await connection.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot delete {key!r}: {e}") from e

    @property
    def backend_type(self) -> str:
        return "sqlite"

    @property
    def db_path(self) -> Path:
        return self._db_path
