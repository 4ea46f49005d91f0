"""
Type definitions for API responses and cached records.

Raw PokeAPI payloads are narrowed into these shapes at the client boundary;
everything past the client works on them only.
"""

from dataclasses import dataclass
from typing import Dict, List, Literal, Optional, TypedDict, Union

EvolutionStage = Literal["base", "stage-1", "stage-2"]
LegendaryFilter = Literal["legendary", "standard"]


class NamedAPIResource(TypedDict):
    """A `{name, url}` reference as used all over PokeAPI."""

    name: str
    url: str


class PokemonListResponse(TypedDict):
    """
    One page of the `/pokemon` listing.

    Attributes:
        count: Total number of entries upstream.
        next: URL of the following page, or None on the last page.
        results: Name references for this page.
    """

    count: int
    next: Optional[str]
    previous: Optional[str]
    results: List[NamedAPIResource]


class PokemonSprites(TypedDict, total=False):
    front_default: Optional[str]
    back_default: Optional[str]
    front_shiny: Optional[str]
    back_shiny: Optional[str]
    other: Dict[str, Dict[str, Optional[str]]]


class PokemonTypeSlot(TypedDict):
    slot: int
    type: NamedAPIResource


class PokemonStat(TypedDict):
    base_stat: int
    stat: NamedAPIResource


class PokemonAbility(TypedDict):
    ability: NamedAPIResource
    is_hidden: bool


class PokemonApiResponse(TypedDict):
    """
    Detail payload of `/pokemon/{name}`, trimmed to the fields we use.

    This is also the document stored per entity in the durable cache.
    """

    id: int
    name: str
    height: int
    weight: int
    species: NamedAPIResource
    sprites: PokemonSprites
    stats: List[PokemonStat]
    abilities: List[PokemonAbility]
    types: List[PokemonTypeSlot]


class FlavorTextEntry(TypedDict):
    flavor_text: str
    language: NamedAPIResource


class PokemonSpeciesResponse(TypedDict):
    """Species metadata from `/pokemon-species/{name}`."""

    id: int
    name: str
    generation: Optional[NamedAPIResource]
    is_legendary: bool
    is_mythical: bool
    evolves_from_species: Optional[NamedAPIResource]
    evolution_chain: Optional[Dict[str, str]]
    flavor_text_entries: List[FlavorTextEntry]


class EvolutionChainLink(TypedDict):
    """One node of an evolution tree: a species and the species it evolves into."""

    species: NamedAPIResource
    evolves_to: List["EvolutionChainLink"]


class EvolutionChainResponse(TypedDict):
    id: int
    chain: EvolutionChainLink


class EncounterVersionDetail(TypedDict):
    version: NamedAPIResource
    max_chance: int


class PokemonEncounterResponse(TypedDict):
    location_area: NamedAPIResource
    version_details: List[EncounterVersionDetail]


class EvolutionMetadata(TypedDict):
    """
    Derived evolution attributes of a species.

    Attributes:
        stage: 'base', 'stage-1' or 'stage-2'.
        label: Display label for the stage.
        evolves_from: Name of the predecessor species, if any.
    """

    stage: EvolutionStage
    label: str
    evolves_from: Optional[str]


class PokemonListItem(TypedDict):
    """
    A denormalized, enriched entry of the Pokedex index.

    Stored verbatim inside the index cache record, so every field is
    JSON-native.
    """

    id: int
    formatted_id: str
    name: str
    sprite: str
    types: List[str]
    generation: Optional[str]
    generation_label: str
    is_legendary: bool
    evolution_stage: EvolutionStage
    evolution_label: str
    evolves_from: Optional[str]


class PokemonListPayload(TypedDict):
    """
    A page of Pokedex results.

    Attributes:
        items: Entries on this page.
        total: Number of entries across all pages.
        page: The (clamped) page number served.
        page_size: Entries per page.
        total_pages: Always at least 1.
        is_search: True for name searches and filtered listings.
        filters_applied: True when at least one filter constrained the result.
    """

    items: List[PokemonListItem]
    total: int
    page: int
    page_size: int
    total_pages: int
    is_search: bool
    filters_applied: bool


class SpriteVariant(TypedDict):
    key: str
    label: str
    url: str


class PokemonProfile(TypedDict):
    """Everything shown on a single Pokemon's profile."""

    pokemon: PokemonApiResponse
    summary: PokemonListItem
    flavor_text: Optional[str]
    sprite_gallery: List[SpriteVariant]
    encounter_locations: List[str]


class FilterOption(TypedDict):
    value: str
    label: str


class FilterOptions(TypedDict):
    types: List[FilterOption]
    generations: List[FilterOption]
    evolution_stages: List[FilterOption]
    legendary: List[FilterOption]


class CacheRecord(TypedDict):
    """
    A row of the durable cache.

    Attributes:
        key: Pokemon name, or the reserved index key.
        payload: Decoded JSON document.
        updated_at: Epoch seconds of the last write.
    """

    key: str
    payload: Union[Dict, List]
    updated_at: float


class StoreStats(TypedDict):
    available: bool
    disabled: bool
    retry_in_seconds: Optional[float]


class IndexStats(TypedDict):
    state: str
    size: int
    age_seconds: Optional[float]
    builds_started: int
    builds_failed: int


@dataclass(frozen=True)
class PokemonFilters:
    """
    Optional constraints applied to the index. All set fields must match.

    Attributes:
        type: Elemental type the Pokemon must have (e.g. 'fire').
        generation: Generation key (e.g. 'generation-i').
        evolution: Evolution stage ('base', 'stage-1', 'stage-2').
        legendary: 'legendary' or 'standard'.
    """

    type: Optional[str] = None
    generation: Optional[str] = None
    evolution: Optional[EvolutionStage] = None
    legendary: Optional[LegendaryFilter] = None

    @property
    def is_active(self) -> bool:
        return bool(self.type or self.generation or self.evolution or self.legendary)
