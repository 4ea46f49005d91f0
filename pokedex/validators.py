"""
Input validation and sanitization functions.

User input from Discord commands passes through here before it reaches the
query layer: names are sanitized and length/charset checked, filter
arguments are normalized into a `PokemonFilters`.
"""

from typing import Optional, Tuple

from config.settings import (
    EVOLUTION_STAGE_OPTIONS,
    GENERATION_MAP,
    LEGENDARY_FILTER_OPTIONS,
    MAX_PAGE_SIZE,
    POKEMON_GENERATIONS,
    POKEMON_TYPE_OPTIONS,
)
from pokedex.api_models import PokemonFilters
from pokedex.constants import (
    MAX_POKEMON_NAME_LENGTH,
    MIN_POKEMON_NAME_LENGTH,
    POKEMON_NAME_PATTERN,
)

# Accepted spellings for the legendary filter
LEGENDARY_ALIASES = {
    "legendary": "legendary",
    "yes": "legendary",
    "true": "legendary",
    "standard": "standard",
    "no": "standard",
    "false": "standard",
    "non-legendary": "standard",
}

EVOLUTION_ALIASES = {
    "base": "base",
    "basic": "base",
    "0": "base",
    "stage-1": "stage-1",
    "stage1": "stage-1",
    "1": "stage-1",
    "stage-2": "stage-2",
    "stage2": "stage-2",
    "2": "stage-2",
    "final": "stage-2",
}


def sanitize_input(text: str) -> str:
    """
    Sanitize user input by removing potentially harmful characters.

    Allowed characters are: alphanumeric, hyphens, underscores, and spaces.

    Args:
        text: Raw user input string.

    Returns:
        Sanitized string with special characters removed.
    """
    if not text:
        return ""

    text = text.strip()
    return "".join(c for c in text if c.isalnum() or c in "-_ ")


def normalize_pokemon_name(name: str) -> str:
    """'Mr Mime ' -> 'mr-mime', the form PokeAPI uses."""
    return "-".join(sanitize_input(name).lower().split())


def validate_pokemon_name(name: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a Pokemon name against length and regex constraints.

    Args:
        name: Pokemon name to validate.

    Returns:
        Tuple containing (is_valid, error_message).
        If valid, error_message is None.
    """
    if not name:
        return False, "Pokemon name cannot be empty."

    if len(name) < MIN_POKEMON_NAME_LENGTH:
        return (
            False,
            f"Pokemon name must be at least {MIN_POKEMON_NAME_LENGTH} character.",
        )

    if len(name) > MAX_POKEMON_NAME_LENGTH:
        return (
            False,
            f"Pokemon name is too long (max {MAX_POKEMON_NAME_LENGTH} characters).",
        )

    if not POKEMON_NAME_PATTERN.match(name):
        return (
            False,
            "Pokemon name contains invalid characters. Use only letters, numbers, hyphens, and spaces.",
        )

    return True, None


def validate_generation(generation: Optional[str]) -> Tuple[bool, Optional[str], Optional[str]]:
    """
    Validate and normalize a generation filter.

    Args:
        generation: '4', 'gen4' or 'generation-iv'. Empty means no filter.

    Returns:
        Tuple containing (is_valid, error_message, normalized_generation).
        Example success: (True, None, 'generation-iv').
    """
    if not generation:
        return True, None, None

    gen_input = generation.lower().strip()
    gen_normalized = GENERATION_MAP.get(gen_input, gen_input)

    if gen_normalized not in POKEMON_GENERATIONS:
        return False, "Invalid generation. Use a number from 1 to 9.", None

    return True, None, gen_normalized


def validate_page(page: int, page_size: int) -> Tuple[bool, Optional[str]]:
    if page < 1:
        return False, "Page must be 1 or higher."
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        return False, f"Page size must be between 1 and {MAX_PAGE_SIZE}."
    return True, None


def validate_filters(
    type_name: Optional[str] = None,
    generation: Optional[str] = None,
    evolution: Optional[str] = None,
    legendary: Optional[str] = None,
) -> Tuple[bool, Optional[str], Optional[PokemonFilters]]:
    """
    Validate raw filter arguments and build a `PokemonFilters`.

    Args:
        type_name: Elemental type (e.g. 'Fire').
        generation: Generation in any accepted spelling.
        evolution: Stage ('base', 'stage-1', 'stage-2' or an alias).
        legendary: 'legendary'/'standard' or yes/no.

    Returns:
        Tuple containing (is_valid, error_message, filters).
    """
    normalized_type = None
    if type_name:
        normalized_type = type_name.lower().strip()
        if normalized_type not in POKEMON_TYPE_OPTIONS:
            return False, f"Unknown type '{type_name}'.", None

    is_valid, error_msg, normalized_gen = validate_generation(generation)
    if not is_valid:
        return False, error_msg, None

    normalized_stage = None
    if evolution:
        normalized_stage = EVOLUTION_ALIASES.get(evolution.lower().strip())
        if normalized_stage not in EVOLUTION_STAGE_OPTIONS:
            return False, "Evolution must be base, stage-1 or stage-2.", None

    normalized_legendary = None
    if legendary:
        normalized_legendary = LEGENDARY_ALIASES.get(legendary.lower().strip())
        if normalized_legendary not in LEGENDARY_FILTER_OPTIONS:
            return False, "Legendary must be 'legendary' or 'standard'.", None

    return (
        True,
        None,
        PokemonFilters(
            type=normalized_type,
            generation=normalized_gen,
            evolution=normalized_stage,
            legendary=normalized_legendary,
        ),
    )
