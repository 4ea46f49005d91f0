"""
Read-through cache for individual Pokemon records.
"""

import logging
import time
from typing import Any, Callable, Optional

from config.settings import ENTITY_CACHE_TTL_HOURS
from pokedex.api_client import PokeAPIClient, parse_pokemon
from pokedex.api_models import PokemonApiResponse
from pokedex.store import StoreGateway

logger = logging.getLogger("pokedex_bot.entity_cache")


class EntityCache:
    """
    Serve Pokemon details from the durable store while they are younger than
    the TTL, refreshing them from PokeAPI otherwise.

    Upstream errors (`NotFoundError`, `UpstreamUnavailableError`) propagate
    to the caller. Persisting a refreshed record never fails the read.
    """

    def __init__(
        self,
        store: StoreGateway,
        client: PokeAPIClient,
        ttl_hours: float = ENTITY_CACHE_TTL_HOURS,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.client = client
        self.ttl = ttl_hours * 3600
        self._clock = clock
        self.hits = 0
        self.misses = 0

    def _is_fresh(self, updated_at: float) -> bool:
        return self._clock() - updated_at < self.ttl

    async def get_entity(self, name: str) -> PokemonApiResponse:
        """
        Get a Pokemon by name.

        Args:
            name: Lowercase Pokemon name (or numeric id as string).

        Returns:
            The cached record if fresh, otherwise a freshly fetched one.

        Raises:
            NotFoundError: If PokeAPI has no such Pokemon.
            UpstreamUnavailableError: If PokeAPI cannot be reached.
        """
        key = name.strip().lower()
        record = await self.store.get(key)

        if record is not None and self._is_fresh(record["updated_at"]):
            cached = self._load(key, record["payload"])
            if cached is not None:
                self.hits += 1
                logger.debug(f"Entity cache hit: {key}")
                return cached

        self.misses += 1
        detail = await self.client.fetch_pokemon(key)
        await self._persist(key, detail)
        return detail

    async def _persist(self, key: str, detail: PokemonApiResponse) -> None:
        try:
            await self.store.upsert(key, detail)
        except Exception as e:
            logger.warning(f"Failed to persist {key}: {e}", exc_info=True)

    def _load(self, key: str, payload: Any) -> Optional[PokemonApiResponse]:
        try:
            return parse_pokemon(payload)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding malformed cached record for {key}: {e!r}")
            return None
