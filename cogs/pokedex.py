"""
Pokedex cog.

Discord front end of the Pokedex service:
- Paginated, filterable listing of every Pokemon.
- Single Pokemon profiles.
- Filter option listing and cache status for users and the owner.
"""

import logging
from typing import Optional

import discord
from discord import app_commands
from discord.ext import commands

from config.settings import (
    BOT_COLOR,
    DEFAULT_PAGE_SIZE,
    OWNER_ID,
    POKEDEX_COMMAND_COOLDOWN,
    PROFILE_COMMAND_COOLDOWN,
)
from pokedex.constants import (
    ERROR_API_UNAVAILABLE,
    ERROR_MESSAGE_LIFETIME,
    ERROR_POKEMON_NOT_FOUND,
    INFO_INDEX_BUILDING,
)
from pokedex.decorators import hybrid_defer
from pokedex.errors import NotFoundError, UpstreamError
from pokedex.helpers import (
    capitalize_pokemon_name,
    create_error_embed,
    create_info_embed,
    create_pokedex_page_embed,
    create_profile_embed,
    create_success_embed,
)
from pokedex.index_cache import IndexState
from pokedex.query import PokedexService
from pokedex.validators import (
    normalize_pokemon_name,
    validate_filters,
    validate_page,
    validate_pokemon_name,
)

logger = logging.getLogger("pokedex_bot.pokedex")


class Pokedex(commands.Cog):
    """
    Cog exposing the Pokedex service.

    Attributes:
        bot: The Discord bot instance.
        service: Shared Pokedex service built by the bot at startup.
    """

    def __init__(self, bot: commands.Bot, service: PokedexService) -> None:
        self.bot = bot
        self.service = service

    def cog_unload(self) -> None:
        logger.info("Cog unloaded", extra={"cog": "pokedex"})

    async def _send_error(self, ctx: commands.Context, title: str, message: str) -> None:
        embed = create_error_embed(title, message)
        if ctx.interaction:
            await ctx.send(embed=embed, ephemeral=True)
        else:
            await ctx.send(embed=embed, delete_after=ERROR_MESSAGE_LIFETIME)

    @commands.hybrid_command(
        name="pokedex",
        description="Browse the Pokedex with optional search and filters",
        aliases=["dex"],
    )
    @app_commands.describe(
        page="Page number",
        name="Exact Pokemon name or number",
        type="Elemental type, e.g. fire",
        generation="Generation number, e.g. 4",
        evolution="Evolution stage",
        legendary="Legendary filter",
    )
    @app_commands.choices(
        evolution=[
            app_commands.Choice(name="Base form", value="base"),
            app_commands.Choice(name="First evolution", value="stage-1"),
            app_commands.Choice(name="Final evolution", value="stage-2"),
        ],
        legendary=[
            app_commands.Choice(name="Legendary", value="legendary"),
            app_commands.Choice(name="Non-legendary", value="standard"),
        ],
    )
    @commands.cooldown(1, POKEDEX_COMMAND_COOLDOWN, commands.BucketType.user)
    @commands.max_concurrency(10, commands.BucketType.default, wait=False)
    async def pokedex(
        self,
        ctx: commands.Context,
        page: int = 1,
        name: Optional[str] = None,
        type: Optional[str] = None,
        generation: Optional[str] = None,
        evolution: Optional[str] = None,
        legendary: Optional[str] = None,
    ) -> None:
        """
        List Pokemon, one page at a time.

        Args:
            ctx: The command context.
            page: Page number (clamped to the last page).
            name: Exact name lookup instead of a listing.
            type: Type filter.
            generation: Generation filter.
            evolution: Evolution stage filter.
            legendary: Legendary filter.
        """
        await self._process_pokedex_command(
            ctx, page, name, type, generation, evolution, legendary
        )  # type: ignore

    @hybrid_defer
    async def _process_pokedex_command(
        self,
        ctx: commands.Context,
        page: int,
        name: Optional[str],
        type_name: Optional[str],
        generation: Optional[str],
        evolution: Optional[str],
        legendary: Optional[str],
    ) -> None:
        logger.info(
            "Processing pokedex command",
            extra={
                "user_id": ctx.author.id,
                "page": page,
                "query": name,
                "guild_id": ctx.guild.id if ctx.guild else None,
            },
        )

        is_valid, error_msg = validate_page(page, DEFAULT_PAGE_SIZE)
        if not is_valid:
            await self._send_error(ctx, "Invalid Page", error_msg)  # type: ignore
            return

        query = None
        if name:
            query = normalize_pokemon_name(name)
            is_valid, error_msg = validate_pokemon_name(query)
            if not is_valid:
                await self._send_error(ctx, "Invalid Input", error_msg)  # type: ignore
                return

        is_valid, error_msg, filters = validate_filters(
            type_name, generation, evolution, legendary
        )
        if not is_valid:
            await self._send_error(ctx, "Invalid Filter", error_msg)  # type: ignore
            return

        if not query and self.service.coordinator.state in (
            IndexState.EMPTY,
            IndexState.BUILDING,
        ):
            await ctx.send(embed=create_info_embed("Please wait", INFO_INDEX_BUILDING))

        try:
            payload = await self.service.list_pokemon(
                page=page, page_size=DEFAULT_PAGE_SIZE, query=query, filters=filters
            )
        except UpstreamError as e:
            logger.error(f"Pokedex listing failed: {e}")
            await self._send_error(ctx, "Pokedex Unavailable", ERROR_API_UNAVAILABLE)
            return

        embed = create_pokedex_page_embed(payload, filters=filters, query=query)
        await ctx.send(embed=embed)

    @commands.hybrid_command(
        name="pokemon",
        description="Show a Pokemon's profile",
        aliases=["mon", "info"],
    )
    @app_commands.describe(name="Pokemon name or number")
    @commands.cooldown(1, PROFILE_COMMAND_COOLDOWN, commands.BucketType.user)
    @commands.max_concurrency(10, commands.BucketType.default, wait=False)
    async def pokemon(self, ctx: commands.Context, *, name: str) -> None:
        """
        Show a Pokemon profile with flavor text, stats, sprites and encounters.

        Args:
            ctx: The command context.
            name: Pokemon name or Pokedex number.
        """
        await self._process_profile_command(ctx, name)  # type: ignore

    @hybrid_defer
    async def _process_profile_command(self, ctx: commands.Context, name: str) -> None:
        query = normalize_pokemon_name(name)
        is_valid, error_msg = validate_pokemon_name(query)
        if not is_valid:
            await self._send_error(ctx, "Invalid Input", error_msg)  # type: ignore
            return

        try:
            profile = await self.service.get_pokemon_profile(query)
        except NotFoundError:
            await self._send_error(
                ctx,
                f"{capitalize_pokemon_name(query)} Not Found",
                ERROR_POKEMON_NOT_FOUND,
            )
            return
        except UpstreamError as e:
            logger.error(f"Profile lookup failed for {query}: {e}")
            await self._send_error(ctx, "PokeAPI Unavailable", ERROR_API_UNAVAILABLE)
            return

        await ctx.send(embed=create_profile_embed(profile))

    @commands.hybrid_command(
        name="pokedex-filters",
        description="List the values accepted by the pokedex filters",
    )
    @commands.max_concurrency(10, commands.BucketType.default, wait=False)
    async def pokedex_filters(self, ctx: commands.Context) -> None:
        options = self.service.get_filter_options()

        embed = discord.Embed(
            title="🔎 Pokedex Filters",
            description="Combine any of these with `pokedex`; all of them must match.",
            color=BOT_COLOR,
        )
        embed.add_field(
            name="Types",
            value=", ".join(option["label"] for option in options["types"]),
            inline=False,
        )
        embed.add_field(
            name="Generations",
            value=", ".join(
                f"{number} ({option['label']})"
                for number, option in enumerate(options["generations"], start=1)
            ),
            inline=False,
        )
        embed.add_field(
            name="Evolution",
            value="\n".join(
                f"`{option['value']}`: {option['label']}"
                for option in options["evolution_stages"]
            ),
            inline=True,
        )
        embed.add_field(
            name="Legendary",
            value="\n".join(
                f"`{option['value']}`: {option['label']}" for option in options["legendary"]
            ),
            inline=True,
        )

        await ctx.send(embed=embed, ephemeral=True if ctx.interaction else False)

    @commands.hybrid_command(
        name="pokedex-status", description="Show Pokedex cache status"
    )
    @commands.max_concurrency(10, commands.BucketType.default, wait=False)
    async def pokedex_status(self, ctx: commands.Context) -> None:
        """
        Display index, durable store and PokeAPI client statistics.
        """
        index_stats = self.service.coordinator.get_stats()
        store_stats = self.service.entity_cache.store.get_stats()
        client_stats = self.service.client.get_stats()
        entity_cache = self.service.entity_cache

        embed = discord.Embed(title="📊 Pokedex Status", color=BOT_COLOR)

        age = index_stats["age_seconds"]
        age_text = f"{int(age // 60)} min old" if age is not None else "never built"
        embed.add_field(
            name="📚 Index",
            value=(
                f"```{index_stats['state']}\n{index_stats['size']} entries\n{age_text}\n"
                f"{index_stats['builds_started']} builds, {index_stats['builds_failed']} failed```"
            ),
            inline=True,
        )

        if store_stats["disabled"]:
            store_text = "disabled"
        elif store_stats["available"]:
            store_text = "available"
        else:
            store_text = f"offline, retry in {int(store_stats['retry_in_seconds'] or 0)}s"
        embed.add_field(
            name="💾 Store",
            value=f"```{store_text}\n{entity_cache.hits} hits / {entity_cache.misses} misses```",
            inline=True,
        )

        embed.add_field(
            name="🌐 PokeAPI",
            value=(
                f"```{client_stats['requests']} requests\n"
                f"{client_stats['species_cached']} species memoized```"
            ),
            inline=True,
        )

        await ctx.send(embed=embed, ephemeral=True if ctx.interaction else False)

    @commands.hybrid_command(
        name="pokedex-rebuild", description="Rebuild the Pokedex index (Owner only)"
    )
    @commands.max_concurrency(1, commands.BucketType.default, wait=False)
    async def pokedex_rebuild(self, ctx: commands.Context) -> None:
        if not OWNER_ID or ctx.author.id != OWNER_ID:
            await self._send_error(
                ctx, "Access Denied", "This command is only available to the bot owner."
            )
            return

        await self._process_rebuild_command(ctx)  # type: ignore

    @hybrid_defer
    async def _process_rebuild_command(self, ctx: commands.Context) -> None:
        logger.info("Index rebuild requested", extra={"user_id": ctx.author.id})

        try:
            index = await self.service.coordinator.rebuild()
        except UpstreamError as e:
            logger.error(f"Manual index rebuild failed: {e}")
            await self._send_error(ctx, "Rebuild Failed", str(e))
            return

        await ctx.send(
            embed=create_success_embed(
                "Index Rebuilt", f"The Pokedex index now holds {len(index)} Pokemon."
            )
        )


async def setup(bot: commands.Bot) -> None:
    """Load the Pokedex cog."""
    service = getattr(bot, "pokedex_service", None)
    if service is None:
        raise RuntimeError("Bot has no pokedex_service; build it before loading the cog")

    await bot.add_cog(Pokedex(bot, service))
    logger.info("Pokedex cog loaded successfully")
