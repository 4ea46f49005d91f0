"""
Full Pokedex index construction.

A build lists every Pokemon name, fetches each one's detail and species
metadata in bounded batches, keeps the lowest-id variant of each species and
returns the enriched entries sorted by id. A complete build issues well over
a thousand upstream requests.
"""

import logging
import time
from typing import Dict, Iterable, List, Optional, Tuple

from config.settings import (
    INDEX_BUILD_CONCURRENCY,
    MAX_POKEMON_COUNT,
    UPSTREAM_PAGE_SIZE,
)
from pokedex.api_client import PokeAPIClient
from pokedex.api_models import PokemonListItem
from pokedex.batching import map_batches
from pokedex.enrichment import PokemonEnricher, species_name_of
from pokedex.errors import UpstreamError

logger = logging.getLogger("pokedex_bot.index")


def dedupe_by_species(
    entries: Iterable[Tuple[str, PokemonListItem]],
) -> List[PokemonListItem]:
    """Sort entries by id and keep the lowest-id entry of each species."""
    kept: Dict[str, PokemonListItem] = {}
    for species_name, item in sorted(entries, key=lambda entry: entry[1]["id"]):
        kept.setdefault(species_name, item)
    return list(kept.values())


class IndexBuilder:
    """
    Builds the enriched, species-deduplicated Pokedex index.

    Attributes:
        client: PokeAPI client.
        enricher: Adds species and evolution metadata to each detail.
        concurrency: Batch size for detail/species fetches.
        page_size: Names requested per listing page.
        max_items: Hard cap on the number of names listed.
    """

    def __init__(
        self,
        client: PokeAPIClient,
        enricher: Optional[PokemonEnricher] = None,
        concurrency: int = INDEX_BUILD_CONCURRENCY,
        page_size: int = UPSTREAM_PAGE_SIZE,
        max_items: int = MAX_POKEMON_COUNT,
    ):
        self.client = client
        self.enricher = enricher or PokemonEnricher(client)
        self.concurrency = concurrency
        self.page_size = page_size
        self.max_items = max_items

    async def build_index(self) -> List[PokemonListItem]:
        """
        Build the index from scratch.

        Returns:
            Enriched entries sorted ascending by id, one per species.

        Raises:
            UpstreamError: If the name listing cannot be fetched. Failures on
                individual Pokemon only drop that Pokemon.
        """
        started = time.monotonic()
        names = await self.client.fetch_all_pokemon_names(
            page_size=self.page_size, max_items=self.max_items
        )
        logger.info(f"Building Pokedex index from {len(names)} names")

        # Species name -> lowest Pokemon id that claimed it during this build
        claimed: Dict[str, int] = {}

        async def build_entry(name: str) -> Optional[Tuple[str, PokemonListItem]]:
            try:
                detail = await self.client.fetch_pokemon(name)
                species_name = species_name_of(detail)
                claimed_id = claimed.get(species_name)
                if claimed_id is not None and claimed_id < detail["id"]:
                    return None
                # Claimed before the next await so concurrent variants see it
                claimed[species_name] = detail["id"]
                return species_name, await self.enricher.enrich_strict(detail)
            except UpstreamError as e:
                logger.warning(f"Dropping {name} from index: {e}")
                return None
            except Exception as e:
                logger.error(f"Unexpected error indexing {name}: {e}", exc_info=True)
                return None

        entries = await map_batches(names, self.concurrency, build_entry)
        items = dedupe_by_species(entry for entry in entries if entry is not None)

        logger.info(
            "Pokedex index built",
            extra={
                "size": len(items),
                "listed": len(names),
                "seconds": round(time.monotonic() - started, 2),
            },
        )
        return items
