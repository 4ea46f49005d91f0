"""
Evolution stage resolution.

A species' stage is its depth in the evolution tree rooted at the chain's base
species: depth 0 is 'base', 1 is 'stage-1', 2 or more is 'stage-2'. Species
that cannot be located are treated as 'base'.
"""

import logging
from typing import TYPE_CHECKING

from config.settings import EVOLUTION_STAGE_OPTIONS
from pokedex.api_models import (
    EvolutionChainLink,
    EvolutionMetadata,
    EvolutionStage,
    PokemonSpeciesResponse,
)
from pokedex.errors import UpstreamError

if TYPE_CHECKING:
    from pokedex.api_client import PokeAPIClient

logger = logging.getLogger("pokedex_bot.evolution")


def find_species_depth(node: EvolutionChainLink, target_name: str, depth: int = 0) -> int:
    """
    Depth-first search for a species in an evolution tree.

    Args:
        node: Current chain link.
        target_name: Species name to locate.
        depth: Depth of `node`.

    Returns:
        Depth of the species, or -1 if it is not in the tree.
    """
    if node["species"]["name"] == target_name:
        return depth

    for child in node["evolves_to"]:
        result = find_species_depth(child, target_name, depth + 1)
        if result != -1:
            return result

    return -1


def stage_from_depth(depth: int) -> EvolutionStage:
    if depth <= 0:
        return "base"
    if depth == 1:
        return "stage-1"
    return "stage-2"


def build_evolution_metadata(
    stage: EvolutionStage, species: PokemonSpeciesResponse
) -> EvolutionMetadata:
    predecessor = species["evolves_from_species"]
    return {
        "stage": stage,
        "label": EVOLUTION_STAGE_OPTIONS[stage],
        "evolves_from": predecessor["name"] if predecessor else None,
    }


async def resolve_evolution_metadata(
    client: "PokeAPIClient", species: PokemonSpeciesResponse
) -> EvolutionMetadata:
    """
    Compute a species' evolution metadata, fetching its chain if needed.

    A missing chain reference or a failed chain fetch falls back to 'base'
    rather than failing the enrichment.
    """
    chain_ref = species["evolution_chain"]
    if not chain_ref:
        return build_evolution_metadata("base", species)

    try:
        chain = await client.fetch_evolution_chain(chain_ref["url"])
    except UpstreamError as e:
        logger.warning(
            f"Could not fetch evolution chain for {species['name']}: {e}"
        )
        return build_evolution_metadata("base", species)

    depth = find_species_depth(chain["chain"], species["name"])
    return build_evolution_metadata(stage_from_depth(depth), species)
