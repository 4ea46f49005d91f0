"""
Index cache coordinator.

Owns the in-memory index snapshot and the single in-flight rebuild task.
Callers ask for the index; the coordinator answers from memory, from the
durable store, or by building it, and never runs two builds at once.

States:
- EMPTY: no snapshot.
- FRESH: snapshot younger than the TTL; served without I/O.
- STALE: snapshot older than the TTL; the next request rebuilds.
- BUILDING: a rebuild task is in flight; new requests join it.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

from config.settings import INDEX_CACHE_TTL_HOURS
from pokedex.api_models import IndexStats, PokemonListItem
from pokedex.constants import POKEMON_INDEX_CACHE_KEY
from pokedex.index_builder import IndexBuilder
from pokedex.store import StoreGateway

logger = logging.getLogger("pokedex_bot.index")

PokemonIndex = Tuple[PokemonListItem, ...]


class IndexState(Enum):
    EMPTY = "empty"
    FRESH = "fresh"
    STALE = "stale"
    BUILDING = "building"


def normalize_stored_index(payload: List[Any]) -> PokemonIndex:
    """Drop entries that are not list items and sort the rest by id."""
    items = [
        item
        for item in payload
        if isinstance(item, dict) and isinstance(item.get("id"), int)
    ]
    return tuple(sorted(items, key=lambda item: item["id"]))


@dataclass(frozen=True)
class IndexSnapshot:
    items: PokemonIndex
    built_at: float


class IndexCacheCoordinator:
    """
    Single-flight cache around `IndexBuilder.build_index()`.

    A snapshot is only ever replaced as a whole, after a build succeeded.
    A failed build leaves the previous snapshot in place; if there is one it
    is served instead of the error.
    """

    def __init__(
        self,
        builder: IndexBuilder,
        store: StoreGateway,
        ttl_hours: float = INDEX_CACHE_TTL_HOURS,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            builder: Builds the index from PokeAPI.
            store: Durable store used to share the index across restarts.
            ttl_hours: Snapshot lifetime.
            clock: Wall-clock time source, comparable with store timestamps.
        """
        self.builder = builder
        self.store = store
        self.ttl = ttl_hours * 3600
        self._clock = clock

        self._snapshot: Optional[IndexSnapshot] = None
        self._build_task: Optional[asyncio.Task] = None

        self.builds_started = 0
        self.builds_failed = 0

    def _is_fresh(self, built_at: float) -> bool:
        return self._clock() - built_at < self.ttl

    @property
    def state(self) -> IndexState:
        if self._build_task is not None and not self._build_task.done():
            return IndexState.BUILDING
        if self._snapshot is None:
            return IndexState.EMPTY
        if self._is_fresh(self._snapshot.built_at):
            return IndexState.FRESH
        return IndexState.STALE

    async def get_index(self) -> PokemonIndex:
        """
        Get the full Pokedex index.

        Returns:
            The index, sorted by id. Concurrent callers served by the same
            build receive the same tuple.

        Raises:
            UpstreamError: If a build failed and no earlier snapshot exists.
        """
        snapshot = self._snapshot
        if snapshot is not None and self._is_fresh(snapshot.built_at):
            return snapshot.items

        hydrated = await self._hydrate()
        if hydrated is not None:
            return hydrated.items

        # A build may have finished while the store was being read
        snapshot = self._snapshot
        if snapshot is not None and self._is_fresh(snapshot.built_at):
            return snapshot.items

        try:
            return await self._join_build()
        except Exception as e:
            if self._snapshot is None:
                raise
            logger.warning(
                f"Index rebuild failed, serving stale snapshot: {e}",
                extra={"size": len(self._snapshot.items)},
            )
            return self._snapshot.items

    async def rebuild(self) -> PokemonIndex:
        """
        Rebuild the index regardless of snapshot age.

        Joins the running build if there is one.

        Raises:
            UpstreamError: If the build fails.
        """
        return await self._join_build()

    async def _hydrate(self) -> Optional[IndexSnapshot]:
        """
        Adopt the index persisted in the durable store.

        Returns:
            The adopted snapshot if the stored index is younger than the TTL.
            An older stored index is kept as a stale fallback when memory is
            empty, and None is returned.
        """
        try:
            record = await self.store.get(POKEMON_INDEX_CACHE_KEY)
        except Exception as e:
            logger.warning(f"Could not read stored index: {e}", exc_info=True)
            return None

        if record is None or not isinstance(record["payload"], list):
            return None

        snapshot = IndexSnapshot(
            normalize_stored_index(record["payload"]), record["updated_at"]
        )
        if self._is_fresh(snapshot.built_at):
            self._snapshot = snapshot
            logger.info(f"Index hydrated from store ({len(snapshot.items)} entries)")
            return snapshot

        if self._snapshot is None:
            self._snapshot = snapshot
        return None

    def _join_build(self) -> "asyncio.Future[PokemonIndex]":
        # No await between the check and the assignment, so only one task exists
        if self._build_task is None:
            self.builds_started += 1
            self._build_task = asyncio.create_task(self._build_and_install())
            self._build_task.add_done_callback(self._on_build_done)
            logger.info("Index rebuild started")
        else:
            logger.debug("Joining in-flight index rebuild")

        # A cancelled caller must not cancel the build for everyone else
        return asyncio.shield(self._build_task)

    async def _build_and_install(self) -> PokemonIndex:
        items = tuple(await self.builder.build_index())
        self._snapshot = IndexSnapshot(items, self._clock())
        await self._persist(items)
        return items

    async def _persist(self, items: PokemonIndex) -> None:
        try:
            await self.store.upsert(POKEMON_INDEX_CACHE_KEY, list(items))
        except Exception as e:
            logger.warning(f"Failed to persist index: {e}", exc_info=True)

    def _on_build_done(self, task: asyncio.Task) -> None:
        if self._build_task is task:
            self._build_task = None

        if task.cancelled():
            self.builds_failed += 1
            logger.warning("Index rebuild cancelled")
            return

        error = task.exception()
        if error is not None:
            self.builds_failed += 1
            logger.error(f"Index rebuild failed: {error}")

    def get_stats(self) -> IndexStats:
        """
        Get coordinator statistics.

        Returns:
            Current state, snapshot size and age, and build counters.
        """
        snapshot = self._snapshot
        return {
            "state": self.state.value,
            "size": len(snapshot.items) if snapshot else 0,
            "age_seconds": self._clock() - snapshot.built_at if snapshot else None,
            "builds_started": self.builds_started,
            "builds_failed": self.builds_failed,
        }
