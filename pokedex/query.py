"""
Query layer: search, filter and paginate the Pokedex.

This is the surface consumed by the Discord cog. It decides per request
whether to answer from a single cached entity, from the full index, or from
PokeAPI's own paginated listing when the index is unavailable.
"""

import asyncio
import logging
import math
from typing import List, Optional, Sequence, Tuple

from config.settings import (
    DEFAULT_PAGE_SIZE,
    EVOLUTION_STAGE_OPTIONS,
    LEGENDARY_FILTER_OPTIONS,
    LISTING_BATCH_CONCURRENCY,
    MAX_POKEMON_COUNT,
    POKEMON_GENERATIONS,
    POKEMON_TYPE_OPTIONS,
    PREFERRED_FLAVOR_LANGUAGES,
)
from pokedex.api_client import PokeAPIClient
from pokedex.api_models import (
    FilterOptions,
    NamedAPIResource,
    PokemonApiResponse,
    PokemonEncounterResponse,
    PokemonFilters,
    PokemonListItem,
    PokemonListPayload,
    PokemonProfile,
    PokemonSpeciesResponse,
    SpriteVariant,
)
from pokedex.batching import map_batches
from pokedex.constants import MAX_ENCOUNTER_LOCATIONS, MAX_ENCOUNTER_VERSIONS
from pokedex.entity_cache import EntityCache
from pokedex.enrichment import (
    PokemonEnricher,
    build_fallback_item,
    build_list_item,
    normalize_simple_item,
    species_name_of,
)
from pokedex.errors import NotFoundError, UpstreamError
from pokedex.evolution import resolve_evolution_metadata
from pokedex.index_cache import IndexCacheCoordinator

logger = logging.getLogger("pokedex_bot.query")


# ==================== FILTERING & PAGINATION ====================


def has_active_filters(filters: Optional[PokemonFilters]) -> bool:
    return filters is not None and filters.is_active


def matches_filters(item: PokemonListItem, filters: PokemonFilters) -> bool:
    """
    Check an index entry against every set filter field (AND semantics).

    Args:
        item: Enriched index entry.
        filters: Constraints; unset fields match anything.

    Returns:
        True if the entry satisfies all set constraints.
    """
    if filters.type and filters.type not in item["types"]:
        return False
    if filters.generation and item["generation"] != filters.generation:
        return False
    if filters.evolution and item["evolution_stage"] != filters.evolution:
        return False
    if filters.legendary:
        wants_legendary = filters.legendary == "legendary"
        if item["is_legendary"] != wants_legendary:
            return False
    return True


def count_pages(total: int, page_size: int) -> int:
    return max(1, math.ceil(total / page_size))


def clamp_page(page: int, total_pages: int) -> int:
    return min(max(1, page), total_pages)


def paginate(
    items: Sequence[PokemonListItem], page: int, page_size: int
) -> Tuple[List[PokemonListItem], int, int]:
    """
    Slice one page out of a sequence, clamping the page number.

    Args:
        items: Full result set.
        page: Requested page (1-based; out-of-range values are clamped).
        page_size: Entries per page.

    Returns:
        Tuple of (page items, clamped page, total pages).
    """
    total_pages = count_pages(len(items), page_size)
    page = clamp_page(page, total_pages)
    start = (page - 1) * page_size
    return list(items[start : start + page_size]), page, total_pages


# ==================== PROFILE HELPERS ====================


def normalize_flavor_text(text: str) -> str:
    return " ".join(text.split())


def select_flavor_text(
    species: PokemonSpeciesResponse,
    languages: Sequence[str] = PREFERRED_FLAVOR_LANGUAGES,
) -> Optional[str]:
    """Pick the first flavor text in a preferred language, else the first one."""
    entries = species["flavor_text_entries"]
    if not entries:
        return None

    for language in languages:
        for entry in entries:
            if entry["language"]["name"] == language:
                return normalize_flavor_text(entry["flavor_text"])

    return normalize_flavor_text(entries[0]["flavor_text"])


def build_sprite_gallery(pokemon: PokemonApiResponse) -> List[SpriteVariant]:
    """Collect the available sprites, skipping missing and duplicate URLs."""
    sprites = pokemon["sprites"]
    other = sprites.get("other", {})
    artwork = other.get("official-artwork", {})

    candidates = [
        ("official", "Official artwork", artwork.get("front_default")),
        ("front-default", "Front", sprites.get("front_default")),
        ("back-default", "Back", sprites.get("back_default")),
        (
            "front-shiny",
            "Front shiny",
            sprites.get("front_shiny") or artwork.get("front_shiny"),
        ),
        ("back-shiny", "Back shiny", sprites.get("back_shiny")),
        ("home", "Home model", other.get("home", {}).get("front_default")),
    ]

    gallery: List[SpriteVariant] = []
    seen_urls = set()
    for key, label, url in candidates:
        if url and url not in seen_urls:
            seen_urls.add(url)
            gallery.append({"key": key, "label": label, "url": url})
    return gallery


def format_slug(value: str) -> str:
    """'kanto-route-2-south' -> 'Kanto Route 2 South'"""
    chunks = value.replace("_", "-").split("-")
    return " ".join(chunk[:1].upper() + chunk[1:] for chunk in chunks if chunk)


def build_encounter_locations(
    encounters: Sequence[PokemonEncounterResponse],
) -> List[str]:
    """
    Summarize wild encounter areas as 'Area (Version, Version)' labels.

    Returns:
        Up to MAX_ENCOUNTER_LOCATIONS unique labels, each listing at most
        MAX_ENCOUNTER_VERSIONS game versions.
    """
    labels: List[str] = []
    for encounter in encounters:
        location = format_slug(encounter["location_area"]["name"])
        versions = list(
            dict.fromkeys(
                format_slug(detail["version"]["name"])
                for detail in encounter["version_details"]
            )
        )[:MAX_ENCOUNTER_VERSIONS]

        label = f"{location} ({', '.join(versions)})" if versions else location
        if label not in labels:
            labels.append(label)

    return labels[:MAX_ENCOUNTER_LOCATIONS]


# ==================== SERVICE ====================


class PokedexService:
    """
    Entry point for every Pokedex read.

    Attributes:
        entity_cache: Read-through cache of Pokemon details.
        coordinator: Owner of the full index.
        client: PokeAPI client, used for listing and profile lookups.
        enricher: Builds list entries from details.
    """

    def __init__(
        self,
        entity_cache: EntityCache,
        coordinator: IndexCacheCoordinator,
        client: PokeAPIClient,
        enricher: Optional[PokemonEnricher] = None,
        listing_concurrency: int = LISTING_BATCH_CONCURRENCY,
    ):
        self.entity_cache = entity_cache
        self.coordinator = coordinator
        self.client = client
        self.enricher = enricher or PokemonEnricher(client)
        self.listing_concurrency = listing_concurrency

    async def get_entity(self, name: str) -> PokemonApiResponse:
        """Get a Pokemon detail record through the entity cache."""
        return await self.entity_cache.get_entity(name.strip().lower())

    async def warm_index(self) -> None:
        """Load or build the index ahead of the first request."""
        try:
            index = await self.coordinator.get_index()
            logger.info(f"Pokedex index ready ({len(index)} entries)")
        except UpstreamError as e:
            logger.warning(f"Index warm-up failed: {e}")

    async def list_pokemon(
        self,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        query: Optional[str] = None,
        filters: Optional[PokemonFilters] = None,
    ) -> PokemonListPayload:
        """
        List one page of Pokemon.

        Args:
            page: Requested page, clamped into range.
            page_size: Entries per page.
            query: Exact Pokemon name or id. Takes precedence over paging.
            filters: Optional constraints on the listing.

        Returns:
            The page payload.

        Raises:
            UpstreamError: If nothing usable could be fetched.
        """
        if page_size < 1:
            raise ValueError("page_size must be at least 1")

        search = (query or "").strip().lower()
        filtered = has_active_filters(filters)

        if search:
            return await self._search(search, filters)

        if filtered:
            index = await self.coordinator.get_index()
            matches = [item for item in index if matches_filters(item, filters)]
            items, page, total_pages = paginate(matches, page, page_size)
            return {
                "items": items,
                "total": len(matches),
                "page": page,
                "page_size": page_size,
                "total_pages": total_pages,
                "is_search": True,
                "filters_applied": True,
            }

        try:
            index = await self.coordinator.get_index()
        except UpstreamError as e:
            logger.warning(f"Index unavailable, listing from PokeAPI: {e}")
            index = ()

        if index:
            capped = index[:MAX_POKEMON_COUNT]
            items, page, total_pages = paginate(capped, page, page_size)
            return {
                "items": items,
                "total": len(capped),
                "page": page,
                "page_size": page_size,
                "total_pages": total_pages,
                "is_search": False,
                "filters_applied": False,
            }

        return await self._list_from_upstream(page, page_size)

    async def _search(
        self, name: str, filters: Optional[PokemonFilters]
    ) -> PokemonListPayload:
        filtered = has_active_filters(filters)
        payload: PokemonListPayload = {
            "items": [],
            "total": 0,
            "page": 1,
            "page_size": 1,
            "total_pages": 1,
            "is_search": True,
            "filters_applied": filtered,
        }

        try:
            detail = await self.entity_cache.get_entity(name)
        except NotFoundError:
            logger.debug(f"No Pokemon named {name}")
            return payload

        item = await self.enricher.enrich(detail)
        if not filtered or matches_filters(item, filters):
            payload["items"] = [item]
            payload["total"] = 1
        return payload

    async def _list_from_upstream(self, page: int, page_size: int) -> PokemonListPayload:
        page = max(1, page)
        listing = await self.client.fetch_pokemon_page((page - 1) * page_size, page_size)
        total = min(listing["count"], MAX_POKEMON_COUNT)
        total_pages = count_pages(total, page_size)

        if page > total_pages:
            page = total_pages
            listing = await self.client.fetch_pokemon_page(
                (page - 1) * page_size, page_size
            )

        async def load_item(result: NamedAPIResource) -> PokemonListItem:
            try:
                detail = await self.entity_cache.get_entity(result["name"])
            except UpstreamError as e:
                logger.debug(f"Using minimal entry for {result['name']}: {e}")
                return normalize_simple_item(result)
            return await self.enricher.enrich(detail)

        items = await map_batches(listing["results"], self.listing_concurrency, load_item)
        return {
            "items": items,
            "total": total,
            "page": page,
            "page_size": page_size,
            "total_pages": total_pages,
            "is_search": False,
            "filters_applied": False,
        }

    async def get_pokemon_profile(self, name: str) -> PokemonProfile:
        """
        Get everything needed for a Pokemon's profile page.

        Species and encounter lookups are best-effort; only the Pokemon
        itself is required.

        Raises:
            NotFoundError: If the Pokemon does not exist.
            UpstreamUnavailableError: If the Pokemon cannot be fetched.
        """
        pokemon = await self.get_entity(name)
        species, encounters = await asyncio.gather(
            self.client.fetch_species(species_name_of(pokemon)),
            self.client.fetch_encounters(pokemon["name"]),
            return_exceptions=True,
        )

        if isinstance(species, UpstreamError):
            logger.warning(f"No species data for {pokemon['name']}: {species}")
            species = None
        elif isinstance(species, BaseException):
            raise species

        if isinstance(encounters, UpstreamError):
            logger.warning(f"No encounter data for {pokemon['name']}: {encounters}")
            encounters = []
        elif isinstance(encounters, BaseException):
            raise encounters

        if species is None:
            summary = build_fallback_item(pokemon)
            flavor_text = None
        else:
            evolution = await resolve_evolution_metadata(self.client, species)
            summary = build_list_item(pokemon, species, evolution)
            flavor_text = select_flavor_text(species)

        return {
            "pokemon": pokemon,
            "summary": summary,
            "flavor_text": flavor_text,
            "sprite_gallery": build_sprite_gallery(pokemon),
            "encounter_locations": build_encounter_locations(encounters),
        }

    def get_filter_options(self) -> FilterOptions:
        """Selectable values for each filterable dimension."""
        return {
            "types": [
                {"value": type_name, "label": type_name.capitalize()}
                for type_name in POKEMON_TYPE_OPTIONS
            ],
            "generations": [
                {"value": key, "label": label}
                for key, label in POKEMON_GENERATIONS.items()
            ],
            "evolution_stages": [
                {"value": key, "label": label}
                for key, label in EVOLUTION_STAGE_OPTIONS.items()
            ],
            "legendary": [
                {"value": key, "label": label}
                for key, label in LEGENDARY_FILTER_OPTIONS.items()
            ],
        }
