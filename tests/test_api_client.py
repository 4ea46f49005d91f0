import asyncio

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from pokedex.api_client import PokeAPIClient
from pokedex.errors import NotFoundError, UpstreamUnavailableError

ALL_NAMES = ["bulbasaur", "ivysaur", "venusaur", "charmander", "charmeleon"]


def pokemon_payload(pokemon_id, name):
    return {
        "id": pokemon_id,
        "name": name,
        "height": 4,
        "weight": 60,
        "species": {"name": name, "url": f"/pokemon-species/{pokemon_id}/"},
        "sprites": {
            "front_default": "https://img/front.png",
            "other": {
                "official-artwork": {"front_default": "https://img/art.png"},
                "showdown": {"front_default": "https://img/sd.gif", "nested": {"x": 1}},
            },
        },
        "stats": [{"base_stat": 35, "stat": {"name": "hp", "url": ""}}],
        "abilities": [{"ability": {"name": "static", "url": ""}, "is_hidden": False}],
        "types": [{"slot": 1, "type": {"name": "electric", "url": ""}}],
        "moves": [{"move": {"name": "thunder-shock"}}],
    }


@pytest.fixture
def hits():
    return {"species": 0, "broken": 0}


@pytest_asyncio.fixture
async def server(hits):
    async def pokemon(request):
        name = request.match_info["name"]
        if name == "pikachu":
            return web.json_response(pokemon_payload(25, "pikachu"))
        if name == "glitch":
            return web.json_response({"name": "glitch"})
        if name == "broken":
            hits["broken"] += 1
            return web.json_response({"detail": "oops"}, status=503)
        if name == "forbidden":
            return web.json_response({}, status=403)
        return web.json_response({"detail": "Not found."}, status=404)

    async def listing(request):
        limit = int(request.query["limit"])
        offset = int(request.query["offset"])
        page = ALL_NAMES[offset : offset + limit]
        next_url = None
        if offset + limit < len(ALL_NAMES):
            next_url = str(request.url.with_query(limit=limit, offset=offset + limit))
        return web.json_response(
            {
                "count": len(ALL_NAMES),
                "next": next_url,
                "previous": None,
                "results": [
                    {"name": name, "url": f"https://pokeapi.co/api/v2/pokemon/{offset + i + 1}/"}
                    for i, name in enumerate(page)
                ],
            }
        )

    async def species(request):
        hits["species"] += 1
        await asyncio.sleep(0.05)
        return web.json_response(
            {
                "id": 25,
                "name": request.match_info["name"],
                "generation": {"name": "generation-i", "url": ""},
                "is_legendary": False,
                "is_mythical": False,
                "evolves_from_species": {"name": "pichu", "url": ""},
                "evolution_chain": {"url": "http://unused/evolution-chain/10/"},
                "flavor_text_entries": [
                    {"flavor_text": "Mouse.", "language": {"name": "en", "url": ""}}
                ],
            }
        )

    async def chain(request):
        return web.json_response(
            {
                "id": 10,
                "chain": {
                    "species": {"name": "pichu", "url": ""},
                    "evolves_to": [
                        {
                            "species": {"name": "pikachu", "url": ""},
                            "evolves_to": [
                                {"species": {"name": "raichu", "url": ""}, "evolves_to": []}
                            ],
                        }
                    ],
                },
            }
        )

    async def encounters(request):
        return web.json_response(
            [
                {
                    "location_area": {"name": "viridian-forest-area", "url": ""},
                    "version_details": [
                        {"version": {"name": "yellow", "url": ""}, "max_chance": 5}
                    ],
                }
            ]
        )

    app = web.Application()
    app.router.add_get("/api/v2/pokemon", listing)
    app.router.add_get("/api/v2/pokemon/{name}", pokemon)
    app.router.add_get("/api/v2/pokemon/{name}/encounters", encounters)
    app.router.add_get("/api/v2/pokemon-species/{name}", species)
    app.router.add_get("/api/v2/evolution-chain/{id}", chain)

    server = TestServer(app)
    await server.start_server()
    yield server
    await server.close()


@pytest.mark.asyncio
class TestPokeAPIClient:
    @pytest_asyncio.fixture
    async def client(self, server):
        client = PokeAPIClient(base_url=str(server.make_url("/api/v2")))
        yield client
        await client.close()

    async def test_fetch_pokemon_narrows_payload(self, client):
        pikachu = await client.fetch_pokemon(" Pikachu ")

        assert pikachu["id"] == 25
        assert pikachu["species"]["name"] == "pikachu"
        assert pikachu["types"][0]["type"]["name"] == "electric"
        assert pikachu["sprites"]["other"]["official-artwork"]["front_default"] == "https://img/art.png"
        # Only string sprite URLs survive validation
        assert "nested" not in pikachu["sprites"]["other"]["showdown"]
        assert "moves" not in pikachu

    async def test_not_found(self, client):
        with pytest.raises(NotFoundError) as exc_info:
            await client.fetch_pokemon("missingno")

        assert exc_info.value.status == 404

    async def test_malformed_payload(self, client):
        with pytest.raises(UpstreamUnavailableError):
            await client.fetch_pokemon("glitch")

    async def test_server_errors_are_retried(self, client, hits):
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await client.fetch_pokemon("broken")

        assert exc_info.value.status == 503
        assert hits["broken"] == 3

    async def test_client_errors_are_not_retried(self, client):
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await client.fetch_pokemon("forbidden")

        assert exc_info.value.status == 403

    async def test_follows_listing_cursor(self, client):
        names = await client.fetch_all_pokemon_names(page_size=2, max_items=100)

        assert names == ALL_NAMES

    async def test_listing_cap(self, client):
        names = await client.fetch_all_pokemon_names(page_size=2, max_items=3)

        assert names == ["bulbasaur", "ivysaur", "venusaur"]

    async def test_fetch_page(self, client):
        page = await client.fetch_pokemon_page(offset=2, limit=2)

        assert page["count"] == 5
        assert [r["name"] for r in page["results"]] == ["venusaur", "charmander"]

    async def test_species_requests_are_deduplicated_and_memoized(self, client, hits):
        results = await asyncio.gather(*(client.fetch_species("pikachu") for _ in range(5)))
        await client.fetch_species("pikachu")

        assert hits["species"] == 1
        assert all(result == results[0] for result in results)
        assert results[0]["evolves_from_species"]["name"] == "pichu"
        assert client.get_stats()["species_cached"] == 1

    async def test_evolution_chain(self, client, server):
        chain = await client.fetch_evolution_chain(str(server.make_url("/api/v2/evolution-chain/10/")))

        assert chain["chain"]["evolves_to"][0]["evolves_to"][0]["species"]["name"] == "raichu"

    async def test_encounters(self, client):
        encounters = await client.fetch_encounters("pikachu")

        assert encounters[0]["location_area"]["name"] == "viridian-forest-area"

    async def test_connectivity_check(self, client):
        # /pokemon/1 answers 404 on the test server
        assert await client.validate_api_connectivity() is False

    async def test_deduplication(self, client):
        """Concurrent requests for the same key share one fetch."""
        calls = 0

        async def slow_fetch():
            nonlocal calls
            calls += 1
            await asyncio.sleep(0.05)
            return {"some": "data"}

        results = await asyncio.gather(
            *(client._deduplicate_request("test_key", slow_fetch) for _ in range(5))
        )

        assert results == [{"some": "data"}] * 5
        assert calls == 1


@pytest.mark.asyncio
async def test_unreachable_host_raises_unavailable(unused_tcp_port):
    client = PokeAPIClient(base_url=f"http://127.0.0.1:{unused_tcp_port}/api/v2", timeout=2)
    try:
        with pytest.raises(UpstreamUnavailableError):
            await client.fetch_pokemon("pikachu")
    finally:
        await client.close()
