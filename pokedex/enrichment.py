"""
Turning raw Pokemon records into denormalized index entries.

An entry combines the Pokemon detail with its species metadata (generation,
legendary/mythical flags) and evolution stage. When enrichment fails the
entry degrades to a fallback shape built from whatever is already known.
"""

import logging
from typing import TYPE_CHECKING, Optional

from config.settings import (
    EVOLUTION_STAGE_OPTIONS,
    OFFICIAL_ARTWORK_URL,
    POKEMON_GENERATIONS,
    UNKNOWN_GENERATION_LABEL,
)
from pokedex.api_models import (
    EvolutionMetadata,
    NamedAPIResource,
    PokemonApiResponse,
    PokemonListItem,
    PokemonSpeciesResponse,
)
from pokedex.constants import POKEMON_URL_ID_PATTERN
from pokedex.errors import UpstreamError
from pokedex.evolution import resolve_evolution_metadata

if TYPE_CHECKING:
    from pokedex.api_client import PokeAPIClient

logger = logging.getLogger("pokedex_bot.enrichment")


def format_pokemon_id(pokemon_id: int) -> str:
    """Format an id the way the Pokedex shows it (e.g. 25 -> '#0025')."""
    return f"#{pokemon_id:04d}"


def get_artwork_url(pokemon_id: int) -> str:
    return f"{OFFICIAL_ARTWORK_URL}/{pokemon_id}.png"


def get_generation_label(generation: Optional[str]) -> str:
    """
    Display label for a generation key.

    Args:
        generation: Key such as 'generation-iv', or None.

    Returns:
        'Generation IV', or a generic label for unknown values.
    """
    if not generation:
        return UNKNOWN_GENERATION_LABEL
    if generation in POKEMON_GENERATIONS:
        return POKEMON_GENERATIONS[generation]
    if generation.startswith("generation-"):
        return f"Generation {generation[len('generation-'):].upper()}"
    return generation


def pick_sprite(detail: PokemonApiResponse) -> str:
    """Official artwork first, then the classic front sprite, then the artwork URL by id."""
    sprites = detail["sprites"]
    artwork = sprites.get("other", {}).get("official-artwork", {}).get("front_default")
    return artwork or sprites.get("front_default") or get_artwork_url(detail["id"])


def extract_id(url: str) -> Optional[int]:
    """Pull the numeric id out of a `/pokemon/<id>/` resource URL."""
    match = POKEMON_URL_ID_PATTERN.search(url)
    return int(match.group(1)) if match else None


def build_list_item(
    detail: PokemonApiResponse,
    species: PokemonSpeciesResponse,
    evolution: EvolutionMetadata,
) -> PokemonListItem:
    """Assemble a fully enriched index entry."""
    generation = species["generation"]["name"] if species["generation"] else None
    return {
        "id": detail["id"],
        "formatted_id": format_pokemon_id(detail["id"]),
        "name": detail["name"],
        "sprite": pick_sprite(detail),
        "types": [entry["type"]["name"] for entry in detail["types"]],
        "generation": generation,
        "generation_label": get_generation_label(generation),
        "is_legendary": bool(species["is_legendary"] or species["is_mythical"]),
        "evolution_stage": evolution["stage"],
        "evolution_label": evolution["label"],
        "evolves_from": evolution["evolves_from"],
    }


def build_fallback_item(detail: PokemonApiResponse) -> PokemonListItem:
    """Entry for a Pokemon whose species metadata could not be fetched."""
    return {
        "id": detail["id"],
        "formatted_id": format_pokemon_id(detail["id"]),
        "name": detail["name"],
        "sprite": pick_sprite(detail),
        "types": [entry["type"]["name"] for entry in detail["types"]],
        "generation": None,
        "generation_label": UNKNOWN_GENERATION_LABEL,
        "is_legendary": False,
        "evolution_stage": "base",
        "evolution_label": EVOLUTION_STAGE_OPTIONS["base"],
        "evolves_from": None,
    }


def normalize_simple_item(result: NamedAPIResource) -> PokemonListItem:
    """Minimal entry built only from a listing reference (no detail available)."""
    pokemon_id = extract_id(result["url"]) or 0
    return {
        "id": pokemon_id,
        "formatted_id": format_pokemon_id(pokemon_id),
        "name": result["name"],
        "sprite": get_artwork_url(pokemon_id),
        "types": [],
        "generation": None,
        "generation_label": UNKNOWN_GENERATION_LABEL,
        "is_legendary": False,
        "evolution_stage": "base",
        "evolution_label": EVOLUTION_STAGE_OPTIONS["base"],
        "evolves_from": None,
    }


def species_name_of(detail: PokemonApiResponse) -> str:
    """Canonical species identity of a Pokemon (shared by regional forms)."""
    return detail["species"]["name"] or detail["name"]


class PokemonEnricher:
    """
    Enrich Pokemon details with species and evolution metadata.

    Attributes:
        client: PokeAPI client used for species and evolution chain lookups.
    """

    def __init__(self, client: "PokeAPIClient"):
        self.client = client

    async def enrich_strict(self, detail: PokemonApiResponse) -> PokemonListItem:
        """
        Enrich a detail record, propagating species lookup failures.

        Raises:
            UpstreamError: If the species metadata cannot be fetched.
        """
        species = await self.client.fetch_species(species_name_of(detail))
        evolution = await resolve_evolution_metadata(self.client, species)
        return build_list_item(detail, species, evolution)

    async def enrich(self, detail: PokemonApiResponse) -> PokemonListItem:
        """Enrich a detail record, degrading to the fallback shape on failure."""
        try:
            return await self.enrich_strict(detail)
        except UpstreamError as e:
            logger.warning(f"Could not enrich {detail['name']}: {e}")
            return build_fallback_item(detail)
