"""
This module contains static constant definitions used throughout the application,
including:
- Discord API limits (embeds, fields, message lengths)
- API connection settings
- Cache keys reserved by the index layer
- Regular expressions for input validation
- User-facing messages (errors, status updates)
"""

import re

# Discord Embed Limits
DISCORD_EMBED_TITLE_LIMIT = 256
DISCORD_EMBED_DESCRIPTION_LIMIT = 4096
DISCORD_EMBED_FIELD_VALUE_LIMIT = 1024
DISCORD_EMBED_FIELD_COUNT_LIMIT = 25
DISCORD_EMBED_TOTAL_LIMIT = 6000

# Connection pool settings
CONNECTION_POOL_LIMIT = 100  # Total connections across all hosts
CONNECTION_POOL_LIMIT_PER_HOST = 50  # Above the index build batch size
CONNECTION_KEEPALIVE_TIMEOUT = 30  # Seconds to keep idle connections
API_STARTUP_VALIDATION_TIMEOUT = 10  # Seconds
USER_AGENT = "Pokedex-Discord-Bot/1.0"

# Cache Keys
# Reserved row of the durable cache holding the whole serialized index.
POKEMON_INDEX_CACHE_KEY = "__pokemon_index__"

# Profile rendering
MAX_ENCOUNTER_LOCATIONS = 4
MAX_ENCOUNTER_VERSIONS = 3

# View/UI Configuration
ERROR_MESSAGE_LIFETIME = 15  # Seconds before error messages auto-delete

# Input Validation
MAX_POKEMON_NAME_LENGTH = 50
MIN_POKEMON_NAME_LENGTH = 1
POKEMON_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\-\s]+$")
POKEMON_URL_ID_PATTERN = re.compile(r"/pokemon/(\d+)/?$")

# Error Messages
ERROR_POKEMON_NOT_FOUND = "Pokemon not found. Check spelling and try again."
ERROR_API_UNAVAILABLE = (
    "PokeAPI is temporarily unavailable and no cached Pokedex is available. "
    "Please try again later."
)

# Info Messages
INFO_INDEX_BUILDING = (
    "⏳ The Pokedex index is being built. This can take a minute the first time."
)
