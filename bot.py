"""
Main entry point for the Pokedex Discord Bot.

This module configures logging, builds the Pokedex service stack (durable
store, PokeAPI client, entity and index caches), loads the cogs and handles
global events:
- Graceful startup/shutdown sequences.
- Optional background warm-up of the Pokedex index.
- Global error handling for prefix and slash commands.
"""

import asyncio
import logging
import sys
import time
from typing import Optional

import discord
from discord.ext import commands

from config.settings import (
    COMMAND_PREFIX,
    LOG_LEVEL,
    PREWARM_INDEX,
    require_discord_token,
    validate_settings,
)
from pokedex.api_client import PokeAPIClient
from pokedex.constants import ERROR_MESSAGE_LIFETIME
from pokedex.database import Database
from pokedex.entity_cache import EntityCache
from pokedex.enrichment import PokemonEnricher
from pokedex.helpers import create_error_embed, create_warning_embed
from pokedex.index_builder import IndexBuilder
from pokedex.index_cache import IndexCacheCoordinator
from pokedex.query import PokedexService
from pokedex.store import StoreGateway

# Setup logging FIRST
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler("bot.log", encoding="utf-8"),
    ],
)
logger = logging.getLogger("pokedex_bot")

logging.getLogger().setLevel(getattr(logging, LOG_LEVEL.upper(), logging.INFO))
logger.setLevel(getattr(logging, LOG_LEVEL.upper(), logging.INFO))


def build_pokedex_service() -> PokedexService:
    """
    Wire the Pokedex service stack.

    Every shared piece of state (store availability, index snapshot,
    in-flight rebuild, request dedup) lives on one of these objects, built
    once per process.
    """
    store = StoreGateway(Database())
    client = PokeAPIClient()
    enricher = PokemonEnricher(client)

    entity_cache = EntityCache(store, client)
    builder = IndexBuilder(client, enricher)
    coordinator = IndexCacheCoordinator(builder, store)

    return PokedexService(entity_cache, coordinator, client, enricher)


class PokedexBot(commands.Bot):
    """
    Custom bot class extending `commands.Bot`.

    Attributes:
        pokedex_service: Shared Pokedex service used by the cogs.
        start_time: Epoch seconds of the last startup.
    """

    def __init__(self, *args, pokedex_service: PokedexService, **kwargs):
        super().__init__(*args, **kwargs)
        self.pokedex_service = pokedex_service
        self.start_time: Optional[float] = None
        self._warmup_task: Optional[asyncio.Task] = None

    async def setup_hook(self) -> None:
        """
        Async initialization hook called before the bot connects to Discord.

        Performs:
        1. Time recording for uptime.
        2. Extension (Cog) loading.
        3. API connectivity validation.
        4. Index warm-up in the background.
        5. Slash command synchronization.
        """
        logger.info("Bot setup hook called - performing async initialization")
        self.start_time = time.time()

        await self.load_extensions()

        logger.info("Validating API connectivity...")
        await self.pokedex_service.client.validate_api_connectivity()

        if PREWARM_INDEX:
            self._warmup_task = asyncio.create_task(self.pokedex_service.warm_index())

        try:
            synced = await self.tree.sync()
            logger.info(f"✅ Synced {len(synced)} slash command(s) to Discord")
        except Exception as e:
            logger.error(f"❌ Failed to sync commands: {e}")

        self.tree.on_error = self.on_app_command_error

    async def load_extensions(self) -> None:
        """Load all bot cogs."""
        cogs = ["cogs.pokedex"]
        for cog in cogs:
            try:
                await self.load_extension(cog)
                logger.info(f"✅ Loaded {cog}")
            except Exception as e:
                logger.error(f"❌ Failed to load {cog}: {e}", exc_info=e)

    async def close(self) -> None:
        """
        Clean up resources during shutdown.

        Stops the warm-up, closes the PokeAPI session and the database
        before shutting down the bot instance.
        """
        logger.info("Bot shutdown initiated - cleaning up resources")

        if self._warmup_task and not self._warmup_task.done():
            self._warmup_task.cancel()

        await self.pokedex_service.client.close()
        await self.pokedex_service.entity_cache.store.close()
        await super().close()

    async def on_ready(self) -> None:
        """Called when the bot has successfully connected to the Gateway."""
        logger.info(f"✅ Bot is ready as {self.user.name}")  # type: ignore
        await self.change_presence(
            activity=discord.Game(name=f"Pokedex | {COMMAND_PREFIX}pokedex")
        )

    async def on_command_error(
        self, ctx: commands.Context, error: commands.CommandError
    ) -> None:
        """
        Global error handler for text-based prefix commands.

        Converts raw exceptions into standardized, user-friendly embeds.
        """
        if isinstance(error, commands.CommandNotFound):
            return

        if isinstance(error, commands.MaxConcurrencyReached):
            embed = create_warning_embed(
                "Busy",
                f"The bot is processing too many `{ctx.command.name}` commands. Try again momentarily.",  # type: ignore
            )
        elif isinstance(error, commands.CommandOnCooldown):
            embed = create_warning_embed(
                "Cooldown", f"Try again in **{error.retry_after:.1f}s**"
            )
        elif isinstance(error, commands.MissingRequiredArgument):
            embed = create_error_embed(
                "Missing Argument",
                f"Missing: `{error.param.name}`\nTry `{COMMAND_PREFIX}pokedex-filters` for options.",
            )
        elif isinstance(error, commands.BadArgument):
            embed = create_error_embed(
                "Invalid Argument", "Invalid input provided! Page numbers must be whole numbers."
            )
        elif isinstance(error, commands.CheckFailure):
            embed = create_error_embed(
                "Permission Denied", "You don't have permission to use this command!"
            )
        else:
            logger.error(f"Unexpected error: {error}", exc_info=error)
            embed = create_error_embed(
                "System Error", "An unexpected error occurred. Please try again later."
            )

        await ctx.send(embed=embed, delete_after=ERROR_MESSAGE_LIFETIME)

    async def on_app_command_error(
        self,
        interaction: discord.Interaction,
        error: discord.app_commands.AppCommandError,
    ) -> None:
        """
        Global error handler for application (slash) commands.

        Uses `followup` if the interaction is already acknowledged.
        """
        if interaction.response.is_done():
            send_method = interaction.followup.send
        else:
            send_method = interaction.response.send_message

        if isinstance(error, discord.app_commands.CommandOnCooldown):
            embed = create_warning_embed(
                "Cooldown", f"Try again in **{error.retry_after:.1f}s**"
            )
        else:
            logger.error(f"Unexpected slash error: {error}", exc_info=error)
            embed = create_error_embed(
                "System Error", "An unexpected error occurred. Please try again later."
            )

        try:
            await send_method(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Failed to send error message: {e}")


async def main() -> None:
    """
    Main bot startup function.

    Validates configuration, builds the service stack and runs the bot.
    """
    try:
        validate_settings()
        token = require_discord_token()
        logger.info("✅ Configuration validation passed")
    except ValueError as e:
        logger.critical(f"❌ Configuration validation failed: {e}")
        sys.exit(1)

    intents = discord.Intents.default()
    intents.message_content = True

    bot = PokedexBot(
        command_prefix=COMMAND_PREFIX,
        intents=intents,
        pokedex_service=build_pokedex_service(),
    )

    async with bot:
        await bot.start(token)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Bot stopped by user (Ctrl+C)")
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=e)
        sys.exit(1)
