"""
Database module for persistent storage using SQLite.

Holds the durable Pokemon cache: one JSON document per key with the time it
was last written. Errors are not swallowed here; `pokedex.store.StoreGateway`
decides which of them are connectivity problems.
"""

import asyncio
import json
import logging
import time
from typing import Any, Optional, Tuple
from urllib.parse import urlparse

import aiosqlite

from config.settings import DB_CONNECTION_STRING
from pokedex.api_models import CacheRecord

logger = logging.getLogger("pokedex_bot.database")


class Database:
    """
    Async Database interface for the Pokemon cache.
    Currently supports SQLite via aiosqlite.

    Schema:
    - **pokemon_cache**: One row per cached document.
      Columns: name (PK), payload (JSON), updated_at (epoch seconds).
      Rows are overwritten on refresh and never deleted; staleness is
      evaluated by readers against `updated_at`.
    """

    def __init__(self, connection_string: str = DB_CONNECTION_STRING):
        """
        Initialize the database instance.

        Args:
            connection_string: The connection URI (e.g., 'sqlite:///data/pokedex.db').
        """
        self.connection_string = connection_string
        self._conn: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

        self.db_type, self.db_path = self._parse_connection_string(connection_string)

    def _parse_connection_string(self, conn_str: str) -> Tuple[str, str]:
        """
        Parse connection string to determine database type and path/host.

        Args:
            conn_str: Connection string in format 'scheme:///path'.

        Returns:
            Tuple containing (scheme, path).
        """
        # Handle simple sqlite paths manually to avoid os-specific parsing issues
        if conn_str.startswith("sqlite:///"):
            return "sqlite", conn_str.replace("sqlite:///", "")

        parsed = urlparse(conn_str)
        return parsed.scheme, parsed.path

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    async def connect(self) -> None:
        """
        Initialize database connection and create tables.

        Raises:
            ValueError: If the database type is not supported (currently only 'sqlite').
        """
        if self.db_type != "sqlite":
            raise ValueError(
                f"Unsupported database type: {self.db_type}. Only 'sqlite' is currently supported."
            )

        conn = await aiosqlite.connect(self.db_path)
        conn.row_factory = aiosqlite.Row
        try:
            await self._create_tables(conn)
        except Exception:
            await conn.close()
            raise
        self._conn = conn
        logger.info(f"Database connected ({self.db_type}): {self.db_path}")

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None
            logger.info("Database connection closed")

    async def _create_tables(self, conn: aiosqlite.Connection) -> None:
        """Create database tables if they don't exist."""
        async with self._lock:
            await conn.execute(
                """
                CREATE TABLE IF NOT EXISTS pokemon_cache (
                    name TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    updated_at REAL NOT NULL
                )
            """
            )
            await conn.commit()
            logger.info("Database tables initialized")

    def _require_connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("Database is not connected")
        return self._conn

    # ==================== POKEMON CACHE ====================

    async def get_record(self, key: str) -> Optional[CacheRecord]:
        """
        Retrieve a cached document regardless of its age.

        Args:
            key: Pokemon name or reserved cache key.

        Returns:
            The record with its decoded payload and `updated_at`, or None.
        """
        conn = self._require_connection()
        async with self._lock:
            cursor = await conn.execute(
                "SELECT payload, updated_at FROM pokemon_cache WHERE name = ?",
                (key,),
            )
            row = await cursor.fetchone()

        if row is None:
            return None

        return {
            "key": key,
            "payload": json.loads(row["payload"]),
            "updated_at": float(row["updated_at"]),
        }

    async def upsert_record(
        self, key: str, payload: Any, updated_at: Optional[float] = None
    ) -> None:
        """
        Insert or overwrite a cached document.

        Args:
            key: Pokemon name or reserved cache key.
            payload: JSON-serializable document.
            updated_at: Write timestamp; defaults to now.
        """
        conn = self._require_connection()
        payload_json = json.dumps(payload)
        timestamp = time.time() if updated_at is None else updated_at

        async with self._lock:
            await conn.execute(
                """
                INSERT INTO pokemon_cache (name, payload, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    payload = excluded.payload,
                    updated_at = excluded.updated_at
                """,
                (key, payload_json, timestamp),
            )
            await conn.commit()

        logger.debug(f"Cached: {key[:50]}")

    async def count_records(self) -> int:
        """Return the number of cached documents."""
        conn = self._require_connection()
        async with self._lock:
            cursor = await conn.execute("SELECT COUNT(*) AS count FROM pokemon_cache")
            row = await cursor.fetchone()
        return int(row["count"]) if row else 0
