"""
Helper functions for Discord embed creation and text formatting.

This module contains utility functions to:
- Sanitize text to prevent Discord mention exploits.
- Format Pokemon data (names, types, stats) for display.
- Create standardized status embeds and the Pokedex page/profile embeds.
- Truncate text to ensure compliance with Discord API limits.
"""

from typing import List, Optional

import discord

from config.settings import (
    BOT_COLOR,
    COLOR_ERROR,
    COLOR_INFO,
    COLOR_SUCCESS,
    COLOR_WARNING,
    EVOLUTION_STAGE_OPTIONS,
    LEGENDARY_FILTER_OPTIONS,
)
from pokedex.api_models import (
    PokemonFilters,
    PokemonListItem,
    PokemonListPayload,
    PokemonProfile,
)
from pokedex.assets import LEGENDARY_EMOJI, STAGE_EMOJIS, STAT_LABELS, TYPE_EMOJIS
from pokedex.constants import (
    DISCORD_EMBED_DESCRIPTION_LIMIT,
    DISCORD_EMBED_FIELD_COUNT_LIMIT,
    DISCORD_EMBED_FIELD_VALUE_LIMIT,
    DISCORD_EMBED_TITLE_LIMIT,
    DISCORD_EMBED_TOTAL_LIMIT,
)
from pokedex.enrichment import get_generation_label


def sanitize_embed_content(text: str) -> str:
    """
    Sanitize text for safe embedding by escaping mentions and markdown.

    Injects a zero-width space after every `@` so that `@everyone` and user
    mentions cannot ping anyone, and escapes markdown control characters.

    Args:
        text: Text to sanitize.

    Returns:
        Sanitized text safe for Discord embeds.
    """
    if not text:
        return ""

    text = text.replace("@", "@\u200b")
    for char in "`*_~|":
        text = text.replace(char, f"\\{char}")
    return text


def capitalize_pokemon_name(name: str) -> str:
    """
    Properly capitalize Pokemon names with special handling for forms.

    Args:
        name: Pokemon name (e.g., 'garchomp', 'landorus-therian').

    Returns:
        Display name (e.g., 'Landorus-Therian', 'Mr. Mime').
    """
    special_cases = {
        "nidoran-f": "Nidoran♀",
        "nidoran-m": "Nidoran♂",
        "mr-mime": "Mr. Mime",
        "mr-rime": "Mr. Rime",
        "mime-jr": "Mime Jr.",
        "type-null": "Type: Null",
        "ho-oh": "Ho-Oh",
        "porygon-z": "Porygon-Z",
        "farfetchd": "Farfetch'd",
        "sirfetchd": "Sirfetch'd",
    }

    name_lower = name.lower()
    if name_lower in special_cases:
        return special_cases[name_lower]

    return "-".join(part.capitalize() for part in name.split("-"))


def format_types(types: List[str]) -> str:
    """'fire', 'flying' -> '🔥 Fire / 🪽 Flying'"""
    if not types:
        return "Unknown"
    return " / ".join(
        f"{TYPE_EMOJIS.get(type_name, '•')} {type_name.capitalize()}"
        for type_name in types
    )


def format_evolution(item: PokemonListItem) -> str:
    stage = STAGE_EMOJIS.get(item["evolution_stage"], "")
    evolution = f"{stage} {item['evolution_label']}".strip()
    if item["evolves_from"]:
        evolution += f" (from {capitalize_pokemon_name(item['evolves_from'])})"
    return evolution


def format_list_entry(item: PokemonListItem) -> str:
    """One line of a Pokedex page."""
    parts = [
        format_types(item["types"]),
        item["generation_label"],
        format_evolution(item),
    ]

    if item["is_legendary"]:
        parts.append(f"{LEGENDARY_EMOJI} Legendary")

    return " • ".join(parts)


def describe_filters(filters: Optional[PokemonFilters]) -> Optional[str]:
    """Human readable summary of the active filters, or None."""
    if filters is None or not filters.is_active:
        return None

    described = []
    if filters.type:
        described.append(f"Type: {filters.type.capitalize()}")
    if filters.generation:
        described.append(get_generation_label(filters.generation))
    if filters.evolution:
        described.append(EVOLUTION_STAGE_OPTIONS[filters.evolution])
    if filters.legendary:
        described.append(LEGENDARY_FILTER_OPTIONS[filters.legendary])
    return ", ".join(described)


def truncate_text(text: str, max_length: int = 1024, smart: bool = True) -> str:
    """
    Truncate text to fit within Discord API limits.

    Args:
        text: The text to truncate.
        max_length: The absolute maximum characters allowed.
        smart: If True, cut at the last space before the limit when that
            keeps at least half of the text.

    Returns:
        Truncated text, ending with '...' if truncation occurred.
    """
    if len(text) <= max_length:
        return text

    if smart:
        truncate_point = text.rfind(" ", 0, max_length - 3)
        if truncate_point > max_length // 2:
            return text[:truncate_point] + "..."

    return text[: max_length - 3] + "..."


def _status_embed(icon: str, title: str, description: str, color: int) -> discord.Embed:
    safe_title = sanitize_embed_content(title)
    safe_description = sanitize_embed_content(description)
    return discord.Embed(
        title=f"{icon} {safe_title}",
        description=truncate_text(safe_description, DISCORD_EMBED_DESCRIPTION_LIMIT),
        color=color,
    )


def create_error_embed(title: str, description: str) -> discord.Embed:
    """Create a standardized error embed (Red)."""
    return _status_embed("❌", title, description, COLOR_ERROR)


def create_success_embed(title: str, description: str) -> discord.Embed:
    """Create a standardized success embed (Green)."""
    return _status_embed("✅", title, description, COLOR_SUCCESS)


def create_warning_embed(title: str, description: str) -> discord.Embed:
    """Create a standardized warning embed (Amber)."""
    return _status_embed("⚠️", title, description, COLOR_WARNING)


def create_info_embed(title: str, description: str) -> discord.Embed:
    """Create a standardized info embed (Blue)."""
    return _status_embed("ℹ️", title, description, COLOR_INFO)


def create_pokedex_page_embed(
    payload: PokemonListPayload,
    filters: Optional[PokemonFilters] = None,
    query: Optional[str] = None,
) -> discord.Embed:
    """
    Render one page of a Pokedex listing.

    Args:
        payload: Result of `PokedexService.list_pokemon`.
        filters: Filters used, shown in the description.
        query: Searched name, if any.

    Returns:
        Embed with one field per Pokemon.
    """
    if query:
        title = f"Pokedex search: {capitalize_pokemon_name(query)}"
    else:
        title = "Pokedex"

    lines = []
    filter_summary = describe_filters(filters)
    if filter_summary:
        lines.append(f"**Filters:** {sanitize_embed_content(filter_summary)}")
    lines.append(f"{payload['total']} Pokemon found")

    embed = discord.Embed(
        title=truncate_text(title, DISCORD_EMBED_TITLE_LIMIT),
        description="\n".join(lines),
        color=BOT_COLOR,
    )

    for item in payload["items"][:DISCORD_EMBED_FIELD_COUNT_LIMIT]:
        embed.add_field(
            name=f"{item['formatted_id']} {capitalize_pokemon_name(item['name'])}",
            value=truncate_text(format_list_entry(item), DISCORD_EMBED_FIELD_VALUE_LIMIT),
            inline=False,
        )

    if payload["items"]:
        embed.set_thumbnail(url=payload["items"][0]["sprite"])
    else:
        embed.add_field(
            name="No results",
            value="No Pokemon match this search.",
            inline=False,
        )

    embed.set_footer(text=f"Page {payload['page']}/{payload['total_pages']}")
    return validate_and_truncate_embed(embed)


def create_profile_embed(profile: PokemonProfile) -> discord.Embed:
    """
    Render a Pokemon profile.

    Args:
        profile: Result of `PokedexService.get_pokemon_profile`.

    Returns:
        Embed with summary, base stats, abilities and encounter areas.
    """
    pokemon = profile["pokemon"]
    summary = profile["summary"]

    embed = discord.Embed(
        title=f"{summary['formatted_id']} {capitalize_pokemon_name(pokemon['name'])}",
        description=truncate_text(
            profile["flavor_text"] or "No Pokedex entry available.",
            DISCORD_EMBED_DESCRIPTION_LIMIT,
        ),
        color=BOT_COLOR,
    )

    gallery = profile["sprite_gallery"]
    if gallery:
        embed.set_thumbnail(url=gallery[0]["url"])

    embed.add_field(name="Type", value=format_types(summary["types"]), inline=True)
    embed.add_field(name="Generation", value=summary["generation_label"], inline=True)
    embed.add_field(name="Evolution", value=format_evolution(summary), inline=True)

    # PokeAPI reports decimetres and hectograms
    embed.add_field(
        name="Size",
        value=f"{pokemon['height'] / 10:.1f} m • {pokemon['weight'] / 10:.1f} kg",
        inline=True,
    )

    if pokemon["stats"]:
        stats = " / ".join(
            f"{entry['base_stat']} {STAT_LABELS.get(entry['stat']['name'], entry['stat']['name'])}"
            for entry in pokemon["stats"]
        )
        total = sum(entry["base_stat"] for entry in pokemon["stats"])
        embed.add_field(name=f"Base Stats ({total})", value=stats, inline=False)

    if pokemon["abilities"]:
        abilities = ", ".join(
            capitalize_pokemon_name(entry["ability"]["name"])
            + (" (hidden)" if entry["is_hidden"] else "")
            for entry in pokemon["abilities"]
        )
        embed.add_field(name="Abilities", value=abilities, inline=False)

    if profile["encounter_locations"]:
        embed.add_field(
            name="Found in the wild",
            value=truncate_text(
                "\n".join(f"• {label}" for label in profile["encounter_locations"]),
                DISCORD_EMBED_FIELD_VALUE_LIMIT,
            ),
            inline=False,
        )

    if len(gallery) > 1:
        links = " • ".join(f"[{variant['label']}]({variant['url']})" for variant in gallery)
        embed.add_field(
            name="Sprites",
            value=truncate_text(links, DISCORD_EMBED_FIELD_VALUE_LIMIT, smart=False),
            inline=False,
        )

    embed.set_footer(text="Data from PokeAPI")
    return validate_and_truncate_embed(embed)


def validate_and_truncate_embed(embed: discord.Embed) -> discord.Embed:
    """
    Validate and truncate an embed to ensure it fits within Discord API limits.

    Args:
        embed: The Discord embed to validate.

    Returns:
        The modified (truncated) embed.
    """
    if embed.title and len(embed.title) > DISCORD_EMBED_TITLE_LIMIT:
        embed.title = embed.title[: DISCORD_EMBED_TITLE_LIMIT - 3] + "..."

    if embed.description and len(embed.description) > DISCORD_EMBED_DESCRIPTION_LIMIT:
        embed.description = truncate_text(
            embed.description, DISCORD_EMBED_DESCRIPTION_LIMIT
        )

    total_chars = len(embed)
    if total_chars > DISCORD_EMBED_TOTAL_LIMIT and embed.description:
        excess = total_chars - DISCORD_EMBED_TOTAL_LIMIT
        new_desc_length = max(100, len(embed.description) - excess - 50)
        embed.description = truncate_text(embed.description, new_desc_length)

    return embed
