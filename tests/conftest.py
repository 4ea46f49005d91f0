import asyncio
import os
import sys
import time
from typing import Dict, List, Optional

import pytest

# Add project root to python path so we can import modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from pokedex.errors import NotFoundError, UpstreamUnavailableError  # noqa: E402

CHAIN_URL = "https://pokeapi.co/api/v2/evolution-chain/{}/"


def make_pokemon(pokemon_id, name, types=("normal",), species=None, sprites=None):
    return {
        "id": pokemon_id,
        "name": name,
        "height": 7,
        "weight": 69,
        "species": {
            "name": species or name,
            "url": f"https://pokeapi.co/api/v2/pokemon-species/{pokemon_id}/",
        },
        "sprites": sprites
        if sprites is not None
        else {
            "front_default": f"https://img.example/{pokemon_id}.png",
            "back_default": None,
            "front_shiny": None,
            "back_shiny": None,
            "other": {},
        },
        "stats": [{"base_stat": 45, "stat": {"name": "hp", "url": ""}}],
        "abilities": [{"ability": {"name": "overgrow", "url": ""}, "is_hidden": False}],
        "types": [
            {"slot": slot, "type": {"name": type_name, "url": ""}}
            for slot, type_name in enumerate(types, start=1)
        ],
    }


def make_species(
    name,
    generation="generation-i",
    legendary=False,
    mythical=False,
    evolves_from=None,
    chain_id=None,
    flavor_texts=None,
):
    return {
        "id": 1,
        "name": name,
        "generation": {"name": generation, "url": ""} if generation else None,
        "is_legendary": legendary,
        "is_mythical": mythical,
        "evolves_from_species": {"name": evolves_from, "url": ""}
        if evolves_from
        else None,
        "evolution_chain": {"url": CHAIN_URL.format(chain_id)} if chain_id else None,
        "flavor_text_entries": [
            {"flavor_text": text, "language": {"name": language, "url": ""}}
            for language, text in (flavor_texts or [])
        ],
    }


def chain_link(name, *children):
    return {"species": {"name": name, "url": ""}, "evolves_to": list(children)}


class FakePokeAPI:
    """In-memory stand-in for PokeAPIClient."""

    def __init__(self, delay: float = 0):
        self.delay = delay
        self.pokemon: Dict[str, dict] = {}
        self.species: Dict[str, dict] = {}
        self.chains: Dict[str, dict] = {}
        self.encounters: Dict[str, List[dict]] = {}
        self.names: List[str] = []
        self.unavailable: set = set()
        self.listing_unavailable = False
        self.calls: Dict[str, int] = {}
        self.in_flight = 0
        self.max_in_flight = 0

    def add(self, detail, species=None):
        self.pokemon[detail["name"]] = detail
        self.names.append(detail["name"])
        if species is not None:
            self.species[species["name"]] = species

    def add_chain(self, chain_id, root):
        self.chains[CHAIN_URL.format(chain_id).rstrip("/")] = {
            "id": chain_id,
            "chain": root,
        }

    async def _call(self, method: str, key: str):
        self.calls[method] = self.calls.get(method, 0) + 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        if key in self.unavailable:
            raise UpstreamUnavailableError(f"{method} failed for {key}", status=503)

    async def fetch_pokemon(self, name):
        await self._call("pokemon", name)
        if name not in self.pokemon:
            raise NotFoundError(f"/pokemon/{name}")
        return self.pokemon[name]

    async def fetch_pokemon_page(self, offset, limit):
        await self._call("page", "")
        if self.listing_unavailable:
            raise UpstreamUnavailableError("listing failed", status=503)
        results = [
            {
                "name": name,
                "url": f"https://pokeapi.co/api/v2/pokemon/{self.pokemon[name]['id']}/",
            }
            for name in self.names[offset : offset + limit]
        ]
        return {"count": len(self.names), "next": None, "previous": None, "results": results}

    async def fetch_all_pokemon_names(self, page_size, max_items):
        await self._call("names", "")
        if self.listing_unavailable:
            raise UpstreamUnavailableError("listing failed", status=503)
        return list(self.names[:max_items])

    async def fetch_species(self, name):
        await self._call("species", f"species:{name}")
        if name not in self.species:
            raise NotFoundError(f"/pokemon-species/{name}")
        return self.species[name]

    async def fetch_evolution_chain(self, url):
        await self._call("chain", url)
        key = url.rstrip("/")
        if key not in self.chains:
            raise NotFoundError(url)
        return self.chains[key]

    async def fetch_encounters(self, name):
        await self._call("encounters", f"encounters:{name}")
        return self.encounters.get(name, [])

    def get_stats(self):
        return {"requests": sum(self.calls.values()), "species_cached": 0}


class MemoryStore:
    """In-memory stand-in for StoreGateway."""

    def __init__(self, clock=time.time):
        self.records: Dict[str, dict] = {}
        self.clock = clock
        self.get_error: Optional[Exception] = None
        self.upsert_error: Optional[Exception] = None
        self.upserts: List[str] = []

    def put(self, key, payload, updated_at):
        self.records[key] = {"key": key, "payload": payload, "updated_at": updated_at}

    async def get(self, key):
        await asyncio.sleep(0)
        if self.get_error:
            raise self.get_error
        return self.records.get(key)

    async def upsert(self, key, payload):
        await asyncio.sleep(0)
        self.upserts.append(key)
        if self.upsert_error:
            raise self.upsert_error
        self.put(key, payload, self.clock())

    async def close(self):
        pass

    def get_stats(self):
        return {"available": True, "disabled": False, "retry_in_seconds": None}


class FlakyDatabase:
    """Database double whose calls raise a configurable error."""

    def __init__(self, error=None):
        self.error = error
        self.is_connected = True
        self.calls = 0
        self.records = {}

    async def connect(self):
        pass

    async def close(self):
        pass

    async def get_record(self, key):
        self.calls += 1
        if self.error:
            raise self.error
        return self.records.get(key)

    async def upsert_record(self, key, payload):
        self.calls += 1
        if self.error:
            raise self.error
        self.records[key] = {"key": key, "payload": payload, "updated_at": 0.0}


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def api():
    return FakePokeAPI()


@pytest.fixture
def memory_store(clock):
    return MemoryStore(clock=clock)


@pytest.fixture
def kanto_api():
    """Bulbasaur line plus a legendary and a regional form sharing a species."""
    api = FakePokeAPI()
    api.add_chain(1, chain_link("bulbasaur", chain_link("ivysaur", chain_link("venusaur"))))
    api.add(
        make_pokemon(1, "bulbasaur", ("grass", "poison")),
        make_species("bulbasaur", chain_id=1),
    )
    api.add(
        make_pokemon(2, "ivysaur", ("grass", "poison")),
        make_species("ivysaur", evolves_from="bulbasaur", chain_id=1),
    )
    api.add(
        make_pokemon(3, "venusaur", ("grass", "poison")),
        make_species("venusaur", evolves_from="ivysaur", chain_id=1),
    )
    api.add(
        make_pokemon(150, "mewtwo", ("psychic",)),
        make_species("mewtwo", legendary=True, flavor_texts=[("en", "It was\ncreated\fby a scientist.")]),
    )
    api.add(make_pokemon(10033, "venusaur-mega", ("grass", "poison"), species="venusaur"))
    return api
