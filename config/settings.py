import logging
import os
from pathlib import Path

from dotenv import load_dotenv

"""
Configuration settings for the Pokedex Bot.

This module loads environment variables, defines constants for the index and
cache layers, and validates the configuration to ensure stability. It handles
Discord tokens, API endpoints, cache TTLs, batching limits and filter options.
"""

load_dotenv()

logger = logging.getLogger("pokedex_bot.config")


def _env_int(name: str, default: int) -> int:
    """Read an integer environment variable, failing loudly on garbage."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"❌ {name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"❌ {name} must be a number, got {raw!r}")


# Bot Configuration
# The token is only required when the bot actually starts (see bot.main).
DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")
COMMAND_PREFIX = os.getenv("COMMAND_PREFIX", ".")

# Owner ID (for admin commands such as forcing an index rebuild)
OWNER_ID = os.getenv("OWNER_ID")
if OWNER_ID:
    try:
        OWNER_ID = int(OWNER_ID)
    except (ValueError, TypeError):
        raise ValueError(
            "❌ OWNER_ID must be a valid integer (your Discord user ID)!\n\n"
            "To find your Discord ID:\n"
            "1. Enable Developer Mode (User Settings > Advanced > Developer Mode)\n"
            "2. Right-click your username\n"
            "3. Click 'Copy User ID'\n"
            "4. Add to .env file: OWNER_ID=your_id_here"
        )
else:
    OWNER_ID = None

# Data Storage
DATA_DIR = Path("data")
DATA_DIR.mkdir(exist_ok=True)

# Database Configuration
# Format: scheme://path_or_host
# Defaults to a local SQLite file if not specified in environment
DB_CONNECTION_STRING = os.getenv(
    "DB_CONNECTION_STRING", f"sqlite:///{DATA_DIR / 'pokedex.db'}"
)

# Turns the durable cache off entirely; every read goes upstream
DISABLE_STORE_CACHE = os.getenv("DISABLE_STORE_CACHE", "").lower() in ("1", "true")

# API Configuration
POKEAPI_URL = os.getenv("POKEAPI_URL", "https://pokeapi.co/api/v2").rstrip("/")
OFFICIAL_ARTWORK_URL = (
    "https://raw.githubusercontent.com/PokeAPI/sprites/master/sprites/"
    "pokemon/other/official-artwork"
)
API_REQUEST_TIMEOUT = _env_float("API_REQUEST_TIMEOUT", 30)  # Seconds

# Retry Configuration
MAX_RETRY_ATTEMPTS = 3
RETRY_BASE_DELAY = 1  # Base delay in seconds for exponential backoff
RETRY_MAX_DELAY = 10  # Maximum delay in seconds between retries

# Cache Configuration
ENTITY_CACHE_TTL_HOURS = _env_float("ENTITY_CACHE_TTL_HOURS", 24)
INDEX_CACHE_TTL_HOURS = _env_float("INDEX_CACHE_TTL_HOURS", 6)
STORE_RETRY_BACKOFF_MS = _env_int("STORE_RETRY_BACKOFF_MS", 300_000)

# Index / Listing Configuration
INDEX_BUILD_CONCURRENCY = _env_int("INDEX_BUILD_CONCURRENCY", 40)
LISTING_BATCH_CONCURRENCY = _env_int("LISTING_BATCH_CONCURRENCY", 12)
DEFAULT_PAGE_SIZE = _env_int("DEFAULT_PAGE_SIZE", 20)
UPSTREAM_PAGE_SIZE = _env_int("UPSTREAM_PAGE_SIZE", 250)
MAX_POKEMON_COUNT = _env_int("MAX_POKEMON_COUNT", 1017)

# Build the index in the background as soon as the bot starts
PREWARM_INDEX = os.getenv("PREWARM_INDEX", "true").lower() in ("1", "true")

# Bot Settings
BOT_COLOR = 0xFF7BA9
MAX_PAGE_SIZE = 25  # One embed field per entry

# UI Colors
COLOR_ERROR = 0xFF5252  # Red
COLOR_SUCCESS = 0x4CAF50  # Green
COLOR_WARNING = 0xFFC107  # Amber
COLOR_INFO = 0x2196F3  # Blue

# Command Cooldowns (seconds)
POKEDEX_COMMAND_COOLDOWN = 3
PROFILE_COMMAND_COOLDOWN = 3

# Logging Configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Flavor text language preference for profiles
PREFERRED_FLAVOR_LANGUAGES = ["en", "es"]

# Filter options
POKEMON_TYPE_OPTIONS = [
    "bug",
    "dark",
    "dragon",
    "electric",
    "fairy",
    "fighting",
    "fire",
    "flying",
    "ghost",
    "grass",
    "ground",
    "ice",
    "normal",
    "poison",
    "psychic",
    "rock",
    "steel",
    "water",
]

POKEMON_GENERATIONS = {
    "generation-i": "Generation I",
    "generation-ii": "Generation II",
    "generation-iii": "Generation III",
    "generation-iv": "Generation IV",
    "generation-v": "Generation V",
    "generation-vi": "Generation VI",
    "generation-vii": "Generation VII",
    "generation-viii": "Generation VIII",
    "generation-ix": "Generation IX",
}

# User-facing aliases for generation filters
GENERATION_MAP = {
    "1": "generation-i",
    "2": "generation-ii",
    "3": "generation-iii",
    "4": "generation-iv",
    "5": "generation-v",
    "6": "generation-vi",
    "7": "generation-vii",
    "8": "generation-viii",
    "9": "generation-ix",
    "gen1": "generation-i",
    "gen2": "generation-ii",
    "gen3": "generation-iii",
    "gen4": "generation-iv",
    "gen5": "generation-v",
    "gen6": "generation-vi",
    "gen7": "generation-vii",
    "gen8": "generation-viii",
    "gen9": "generation-ix",
}

EVOLUTION_STAGE_OPTIONS = {
    "base": "Base form",
    "stage-1": "First evolution",
    "stage-2": "Final evolution",
}

LEGENDARY_FILTER_OPTIONS = {
    "legendary": "Legendary",
    "standard": "Non-legendary",
}

UNKNOWN_GENERATION_LABEL = "Unknown generation"


def validate_settings():
    """
    Validate all configuration settings to catch errors at startup.

    Raises:
        ValueError: If any configuration value is invalid (e.g., negative
            TTLs, zero concurrency, page sizes out of range).
    """
    # Validate cache settings
    if ENTITY_CACHE_TTL_HOURS <= 0:
        raise ValueError("ENTITY_CACHE_TTL_HOURS must be positive")

    if INDEX_CACHE_TTL_HOURS <= 0:
        raise ValueError("INDEX_CACHE_TTL_HOURS must be positive")

    if STORE_RETRY_BACKOFF_MS < 0:
        raise ValueError("STORE_RETRY_BACKOFF_MS must be non-negative")

    # Validate API settings
    if API_REQUEST_TIMEOUT <= 0:
        raise ValueError("API_REQUEST_TIMEOUT must be positive")

    if INDEX_BUILD_CONCURRENCY < 1:
        raise ValueError("INDEX_BUILD_CONCURRENCY must be at least 1")

    if LISTING_BATCH_CONCURRENCY < 1:
        raise ValueError("LISTING_BATCH_CONCURRENCY must be at least 1")

    # Validate retry settings
    if MAX_RETRY_ATTEMPTS < 1:
        raise ValueError("MAX_RETRY_ATTEMPTS must be at least 1")

    if RETRY_MAX_DELAY < RETRY_BASE_DELAY:
        raise ValueError("RETRY_MAX_DELAY must be >= RETRY_BASE_DELAY")

    # Validate paging settings
    if DEFAULT_PAGE_SIZE < 1 or DEFAULT_PAGE_SIZE > MAX_PAGE_SIZE:
        raise ValueError(f"DEFAULT_PAGE_SIZE must be between 1 and {MAX_PAGE_SIZE}")

    if UPSTREAM_PAGE_SIZE < 1:
        raise ValueError("UPSTREAM_PAGE_SIZE must be at least 1")

    if MAX_POKEMON_COUNT < 1:
        raise ValueError("MAX_POKEMON_COUNT must be at least 1")

    logger.info("✅ Configuration validation completed successfully")


def require_discord_token() -> str:
    """
    Return the Discord token or fail with setup instructions.

    Raises:
        ValueError: If DISCORD_TOKEN is not configured.
    """
    if not DISCORD_TOKEN:
        raise ValueError(
            "❌ DISCORD_TOKEN not found in environment variables!\n\n"
            "Please create a .env file in the project root with:\n"
            "  DISCORD_TOKEN=your_token_here\n\n"
            "Get your token from: https://discord.com/developers/applications"
        )
    return DISCORD_TOKEN
