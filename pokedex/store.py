"""
Durable store gateway.

Wraps `pokedex.database.Database` with an availability switch so that a dead
or unreachable store degrades the cache layer to "always fetch upstream"
instead of failing requests.

States:
- AVAILABLE: calls go to the database.
- UNAVAILABLE: a connectivity error was seen; calls short-circuit (reads miss,
  writes are dropped) until the retry deadline passes, after which the next
  call tries the database again.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Optional

from config.settings import DISABLE_STORE_CACHE, STORE_RETRY_BACKOFF_MS
from pokedex.api_models import CacheRecord, StoreStats
from pokedex.database import Database
from pokedex.errors import StoreConnectivityError

logger = logging.getLogger("pokedex_bot.store")

# Lowercased message fragments of errors raised when the store cannot be reached
CONNECTIVITY_ERROR_MARKERS = (
    "unable to open database",
    "connection refused",
    "could not connect",
    "can't reach database",
    "connection reset",
)


def is_connectivity_error(error: BaseException) -> bool:
    """
    Tell unreachable-store errors apart from logical ones.

    Args:
        error: Exception raised by the database layer.

    Returns:
        True if the error means the store is unreachable.
    """
    if isinstance(error, (StoreConnectivityError, ConnectionError, OSError)):
        return True

    message = str(error).lower()
    return any(marker in message for marker in CONNECTIVITY_ERROR_MARKERS)


class StoreGateway:
    """
    Get/upsert access to the durable cache that never fails on connectivity.

    Connectivity errors flip the gateway to unavailable for
    `retry_backoff_ms`; any other database error propagates unchanged.
    """

    def __init__(
        self,
        database: Database,
        retry_backoff_ms: int = STORE_RETRY_BACKOFF_MS,
        disabled: bool = DISABLE_STORE_CACHE,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            database: Database holding the cache table. Connected lazily.
            retry_backoff_ms: How long to stay unavailable after a connectivity error.
            disabled: Keep the gateway permanently unavailable.
            clock: Monotonic time source, injectable for tests.
        """
        self._db = database
        self.retry_backoff = retry_backoff_ms / 1000
        self.disabled = disabled
        self._clock = clock
        self._available = not disabled
        self._retry_at: Optional[float] = None
        self._connect_lock = asyncio.Lock()

        if disabled:
            logger.warning("Durable cache disabled, every read goes to PokeAPI")

    @property
    def available(self) -> bool:
        """Whether the next call will reach the database."""
        return self._check_available()

    def _check_available(self) -> bool:
        if self.disabled:
            return False

        if (
            not self._available
            and self._retry_at is not None
            and self._clock() >= self._retry_at
        ):
            logger.info("Retry window elapsed, re-enabling durable cache")
            self._available = True
            self._retry_at = None

        return self._available

    def _mark_unavailable(self, error: BaseException) -> None:
        self._available = False
        self._retry_at = self._clock() + self.retry_backoff
        logger.warning(
            "Durable cache unreachable, disabling it temporarily",
            extra={"error": str(error), "retry_in_seconds": self.retry_backoff},
        )

    async def _ensure_connected(self) -> None:
        if self._db.is_connected:
            return
        async with self._connect_lock:
            if not self._db.is_connected:
                await self._db.connect()

    async def get(self, key: str) -> Optional[CacheRecord]:
        """
        Read a cached document.

        Returns:
            The record, or None if missing or the store is unavailable.

        Raises:
            Exception: Any non-connectivity database error.
        """
        if not self._check_available():
            return None

        try:
            await self._ensure_connected()
            return await self._db.get_record(key)
        except Exception as e:
            if is_connectivity_error(e):
                self._mark_unavailable(e)
                return None
            raise

    async def upsert(self, key: str, payload: Any) -> None:
        """
        Write a cached document, silently dropping it if the store is unavailable.

        Raises:
            Exception: Any non-connectivity database error.
        """
        if not self._check_available():
            return

        try:
            await self._ensure_connected()
            await self._db.upsert_record(key, payload)
        except Exception as e:
            if is_connectivity_error(e):
                self._mark_unavailable(e)
                return
            raise

    async def count(self) -> Optional[int]:
        """Number of cached documents, or None when the store is unavailable."""
        if not self._check_available():
            return None

        try:
            await self._ensure_connected()
            return await self._db.count_records()
        except Exception as e:
            if is_connectivity_error(e):
                self._mark_unavailable(e)
                return None
            raise

    async def close(self) -> None:
        await self._db.close()

    def get_stats(self) -> StoreStats:
        """
        Get gateway statistics.

        Returns:
            Availability flags and the remaining retry window.
        """
        available = self._check_available()
        retry_in = None
        if self._retry_at is not None:
            retry_in = max(0.0, self._retry_at - self._clock())
        return {
            "available": available,
            "disabled": self.disabled,
            "retry_in_seconds": retry_in,
        }
