"""
API Client module for fetching Pokemon data from PokeAPI.

This module is the only place that talks HTTP. It implements connection
pooling, retries with backoff, request deduplication for shared species and
evolution-chain lookups, and narrows every raw JSON payload into the typed
records of `pokedex.api_models` before handing it to the rest of the system.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

import aiohttp

from config.settings import API_REQUEST_TIMEOUT, POKEAPI_URL
from pokedex.api_models import (
    EvolutionChainLink,
    EvolutionChainResponse,
    NamedAPIResource,
    PokemonApiResponse,
    PokemonEncounterResponse,
    PokemonListResponse,
    PokemonSpeciesResponse,
    PokemonSprites,
)
from pokedex.constants import (
    API_STARTUP_VALIDATION_TIMEOUT,
    CONNECTION_KEEPALIVE_TIMEOUT,
    CONNECTION_POOL_LIMIT,
    CONNECTION_POOL_LIMIT_PER_HOST,
    USER_AGENT,
)
from pokedex.decorators import retry_on_error
from pokedex.errors import NotFoundError, UpstreamUnavailableError

logger = logging.getLogger("pokedex_bot.api")


class PokeAPIClient:
    """
    Typed client for the PokeAPI REST service.

    Key Features:
    - **Connection Pooling**: Uses `aiohttp.TCPConnector` to reuse connections.
    - **Retries**: 5xx answers, timeouts and network errors are retried with
      exponential backoff before surfacing as `UpstreamUnavailableError`.
    - **Request Deduplication**: Simultaneous requests for the same species or
      evolution chain share a single API call.
    - **Metadata Memo**: Species and evolution chains are kept for the process
      lifetime since many Pokemon share them.

    There is no global rate limiter: callers bound concurrency themselves
    (see `pokedex.batching.map_batches`).
    """

    def __init__(
        self, base_url: str = POKEAPI_URL, timeout: float = API_REQUEST_TIMEOUT
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session: Optional[aiohttp.ClientSession] = None

        # Session creation lock to prevent race conditions during lazy loading
        self._session_lock = asyncio.Lock()

        self._species_cache: Dict[str, PokemonSpeciesResponse] = {}
        self._evolution_cache: Dict[str, EvolutionChainResponse] = {}

        # Tracks in-flight requests to prevent duplicate API calls
        self._pending_requests: Dict[str, asyncio.Task] = {}
        self._request_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

        self.request_count = 0

    async def _deduplicate_request(
        self, key: str, fetch_func, *args, **kwargs
    ) -> Any:
        """
        Deduplicate concurrent requests for the same data.

        The lock is held only while creating or retrieving the pending task,
        never while awaiting the network result.

        Args:
            key: Unique key identifying this request resource.
            fetch_func: Async function to call if no request is pending.
            *args: Arguments for fetch_func.
            **kwargs: Keyword arguments for fetch_func.

        Returns:
            Result from fetch_func or shared result from a pending request.
        """
        created = False

        async with self._request_locks[key]:
            if key in self._pending_requests:
                task = self._pending_requests[key]
                logger.debug(
                    "Request deduplication: Joining existing request",
                    extra={"key": key[:50]},
                )
            else:
                task = asyncio.create_task(fetch_func(*args, **kwargs))
                self._pending_requests[key] = task
                created = True

        try:
            return await task
        finally:
            # Only the creator cleans up
            if created:
                async with self._request_locks[key]:
                    if self._pending_requests.get(key) is task:
                        del self._pending_requests[key]

    async def get_session(self) -> aiohttp.ClientSession:
        """
        Get or create aiohttp session with connection pooling configuration.

        Returns:
            Active aiohttp ClientSession.
        """
        async with self._session_lock:
            if self.session is None or self.session.closed:
                connector = aiohttp.TCPConnector(
                    limit=CONNECTION_POOL_LIMIT,
                    limit_per_host=CONNECTION_POOL_LIMIT_PER_HOST,
                    ttl_dns_cache=300,
                    keepalive_timeout=CONNECTION_KEEPALIVE_TIMEOUT,
                    enable_cleanup_closed=True,
                )

                self.session = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                    connector=connector,
                    headers={"User-Agent": USER_AGENT},
                )

                logger.info(
                    "Created aiohttp session with connection pooling",
                    extra={
                        "total_limit": CONNECTION_POOL_LIMIT,
                        "per_host_limit": CONNECTION_POOL_LIMIT_PER_HOST,
                        "base_url": self.base_url,
                    },
                )

        return self.session

    async def validate_api_connectivity(self) -> bool:
        """
        Validate connectivity to PokeAPI on startup.

        Returns:
            True if PokeAPI answered 200.
        """
        try:
            session = await self.get_session()
            async with asyncio.timeout(API_STARTUP_VALIDATION_TIMEOUT):
                async with session.get(self._resolve_url("/pokemon/1")) as resp:
                    if resp.status == 200:
                        logger.info("✅ PokeAPI is reachable")
                        return True
                    logger.warning(f"⚠️ PokeAPI returned status {resp.status}")
        except asyncio.TimeoutError:
            logger.error("❌ PokeAPI connection timed out")
        except aiohttp.ClientError as e:
            logger.error(f"❌ PokeAPI validation failed: {e}")

        logger.warning(
            "⚠️ PokeAPI is unreachable. Bot will serve cached data where possible."
        )
        return False

    async def close(self) -> None:
        """Close the aiohttp session."""
        if self.session and not self.session.closed:
            await self.session.close()
            logger.info(
                "API client session closed",
                extra={"requests": self.request_count},
            )

    def _resolve_url(self, endpoint: str) -> str:
        """Accept both absolute URLs (pagination cursors) and relative endpoints."""
        if endpoint.startswith("http://") or endpoint.startswith("https://"):
            return endpoint
        if not endpoint.startswith("/"):
            endpoint = f"/{endpoint}"
        return f"{self.base_url}{endpoint}"

    @retry_on_error()
    async def _request(self, url: str) -> Any:
        """
        Perform a single GET, retried on transient failures.

        404 raises `NotFoundError` immediately (never retried). 5xx and 429
        raise `aiohttp.ClientResponseError` so the retry decorator kicks in.
        """
        session = await self.get_session()
        self.request_count += 1

        async with session.get(url) as resp:
            if resp.status == 200:
                return await resp.json()

            if resp.status == 404:
                logger.debug(f"PokeAPI 404 for {url}")
                raise NotFoundError(url)

            if resp.status >= 500 or resp.status == 429:
                logger.warning(f"PokeAPI error {resp.status} for {url}")
                raise aiohttp.ClientResponseError(
                    request_info=resp.request_info,
                    history=resp.history,
                    status=resp.status,
                )

            raise UpstreamUnavailableError(
                f"PokeAPI request failed: {resp.status}",
                status=resp.status,
                endpoint=url,
            )

    async def get_json(self, endpoint: str) -> Any:
        """
        Fetch and decode a PokeAPI endpoint.

        Args:
            endpoint: Relative path (e.g. '/pokemon/pikachu') or absolute URL.

        Returns:
            Decoded JSON body.

        Raises:
            NotFoundError: On 404.
            UpstreamUnavailableError: On any other failure once retries are spent.
        """
        url = self._resolve_url(endpoint)
        try:
            return await self._request(url)
        except aiohttp.ClientResponseError as e:
            raise UpstreamUnavailableError(
                f"PokeAPI request failed: {e.status}", status=e.status, endpoint=url
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise UpstreamUnavailableError(
                f"PokeAPI request failed: {e!r}", endpoint=url
            ) from e
        except ValueError as e:
            raise UpstreamUnavailableError(
                f"PokeAPI returned invalid JSON: {e}", endpoint=url
            ) from e

    # ==================== TYPED FETCHES ====================

    async def fetch_pokemon(self, name: str) -> PokemonApiResponse:
        """
        Fetch a Pokemon's detail record.

        Args:
            name: Pokemon name or numeric id.

        Raises:
            NotFoundError: If PokeAPI has no such Pokemon.
        """
        key = name.strip().lower()
        data = await self.get_json(f"/pokemon/{key}")
        return _guard(parse_pokemon, data, f"/pokemon/{key}")

    async def fetch_pokemon_page(self, offset: int, limit: int) -> PokemonListResponse:
        """Fetch one page of the `/pokemon` listing."""
        endpoint = f"/pokemon?limit={limit}&offset={max(0, offset)}"
        data = await self.get_json(endpoint)
        return _guard(_parse_list, data, endpoint)

    async def fetch_all_pokemon_names(self, page_size: int, max_items: int) -> List[str]:
        """
        Collect every Pokemon name by following the listing's `next` cursor.

        Args:
            page_size: Entries requested per round trip.
            max_items: Hard cap on the number of names returned.

        Returns:
            Names in upstream order (ascending id).
        """
        names: List[str] = []
        endpoint: Optional[str] = f"/pokemon?limit={min(page_size, max_items)}&offset=0"

        while endpoint and len(names) < max_items:
            data = await self.get_json(endpoint)
            page = _guard(_parse_list, data, endpoint)
            if not page["results"]:
                break
            names.extend(entry["name"] for entry in page["results"])
            endpoint = page["next"]

        logger.info(f"Collected {min(len(names), max_items)} Pokemon names")
        return names[:max_items]

    async def fetch_species(self, name: str) -> PokemonSpeciesResponse:
        """Fetch species metadata, memoized for the process lifetime."""
        key = name.strip().lower()
        cached = self._species_cache.get(key)
        if cached is not None:
            return cached

        async def _fetch() -> PokemonSpeciesResponse:
            endpoint = f"/pokemon-species/{key}"
            species = _guard(_parse_species, await self.get_json(endpoint), endpoint)
            self._species_cache[key] = species
            return species

        return await self._deduplicate_request(f"species:{key}", _fetch)

    async def fetch_evolution_chain(self, url: str) -> EvolutionChainResponse:
        """Fetch an evolution chain by the URL referenced from its species."""
        key = url.rstrip("/")
        cached = self._evolution_cache.get(key)
        if cached is not None:
            return cached

        async def _fetch() -> EvolutionChainResponse:
            chain = _guard(_parse_evolution_chain, await self.get_json(key), key)
            self._evolution_cache[key] = chain
            return chain

        return await self._deduplicate_request(f"evolution:{key}", _fetch)

    async def fetch_encounters(self, name: str) -> List[PokemonEncounterResponse]:
        """Fetch the wild encounter locations of a Pokemon."""
        key = name.strip().lower()
        endpoint = f"/pokemon/{key}/encounters"
        return _guard(_parse_encounters, await self.get_json(endpoint), endpoint)

    def get_stats(self) -> Dict[str, int]:
        """
        Get client statistics.

        Returns:
            Request count, memo sizes and in-flight deduplicated requests.
        """
        return {
            "requests": self.request_count,
            "species_cached": len(self._species_cache),
            "evolution_chains_cached": len(self._evolution_cache),
            "pending_requests": len(self._pending_requests),
        }


# ==================== PAYLOAD VALIDATION ====================


def _guard(parser, data: Any, endpoint: str):
    """Run a payload parser, turning shape errors into upstream errors."""
    try:
        return parser(data)
    except (KeyError, TypeError, ValueError) as e:
        raise UpstreamUnavailableError(
            f"Malformed PokeAPI payload: {e!r}", endpoint=endpoint
        ) from e


def _parse_resource(data: Dict[str, Any]) -> NamedAPIResource:
    return {"name": str(data["name"]), "url": str(data.get("url") or "")}


def _parse_optional_resource(data: Optional[Dict[str, Any]]) -> Optional[NamedAPIResource]:
    if not data:
        return None
    return _parse_resource(data)


def _parse_sprites(data: Dict[str, Any]) -> PokemonSprites:
    sprites: PokemonSprites = {
        "front_default": data.get("front_default"),
        "back_default": data.get("back_default"),
        "front_shiny": data.get("front_shiny"),
        "back_shiny": data.get("back_shiny"),
        "other": {},
    }
    for key, variant in (data.get("other") or {}).items():
        if isinstance(variant, dict):
            sprites["other"][key] = {
                k: v for k, v in variant.items() if v is None or isinstance(v, str)
            }
    return sprites


def parse_pokemon(data: Dict[str, Any]) -> PokemonApiResponse:
    name = str(data["name"])
    return {
        "id": int(data["id"]),
        "name": name,
        "height": int(data.get("height") or 0),
        "weight": int(data.get("weight") or 0),
        "species": _parse_resource(data.get("species") or {"name": name}),
        "sprites": _parse_sprites(data.get("sprites") or {}),
        "stats": [
            {"base_stat": int(s["base_stat"]), "stat": _parse_resource(s["stat"])}
            for s in data.get("stats") or []
        ],
        "abilities": [
            {
                "ability": _parse_resource(a["ability"]),
                "is_hidden": bool(a.get("is_hidden")),
            }
            for a in data.get("abilities") or []
        ],
        "types": [
            {"slot": int(t["slot"]), "type": _parse_resource(t["type"])}
            for t in data.get("types") or []
        ],
    }


def _parse_list(data: Dict[str, Any]) -> PokemonListResponse:
    return {
        "count": int(data["count"]),
        "next": data.get("next"),
        "previous": data.get("previous"),
        "results": [_parse_resource(r) for r in data["results"]],
    }


def _parse_species(data: Dict[str, Any]) -> PokemonSpeciesResponse:
    chain = data.get("evolution_chain")
    return {
        "id": int(data["id"]),
        "name": str(data["name"]),
        "generation": _parse_optional_resource(data.get("generation")),
        "is_legendary": bool(data.get("is_legendary")),
        "is_mythical": bool(data.get("is_mythical")),
        "evolves_from_species": _parse_optional_resource(
            data.get("evolves_from_species")
        ),
        "evolution_chain": {"url": str(chain["url"])} if chain and chain.get("url") else None,
        "flavor_text_entries": [
            {
                "flavor_text": str(entry["flavor_text"]),
                "language": _parse_resource(entry["language"]),
            }
            for entry in data.get("flavor_text_entries") or []
        ],
    }


def _parse_chain_link(node: Dict[str, Any]) -> EvolutionChainLink:
    return {
        "species": _parse_resource(node["species"]),
        "evolves_to": [_parse_chain_link(child) for child in node.get("evolves_to") or []],
    }


def _parse_evolution_chain(data: Dict[str, Any]) -> EvolutionChainResponse:
    return {"id": int(data.get("id") or 0), "chain": _parse_chain_link(data["chain"])}


def _parse_encounters(data: List[Dict[str, Any]]) -> List[PokemonEncounterResponse]:
    return [
        {
            "location_area": _parse_resource(entry["location_area"]),
            "version_details": [
                {
                    "version": _parse_resource(detail["version"]),
                    "max_chance": int(detail.get("max_chance") or 0),
                }
                for detail in entry.get("version_details") or []
            ],
        }
        for entry in data
    ]
