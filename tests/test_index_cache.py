import asyncio

import pytest
from conftest import FakeClock, FlakyDatabase, MemoryStore

from pokedex.constants import POKEMON_INDEX_CACHE_KEY
from pokedex.errors import UpstreamUnavailableError
from pokedex.index_cache import IndexCacheCoordinator, IndexState
from pokedex.store import StoreGateway

TTL_SECONDS = 6 * 3600


def entry(pokemon_id, name):
    return {"id": pokemon_id, "name": name}


class StubBuilder:
    def __init__(self, items=None, delay=0.01):
        self.items = items if items is not None else [entry(1, "bulbasaur"), entry(4, "charmander")]
        self.delay = delay
        self.calls = 0
        self.error = None

    async def build_index(self):
        self.calls += 1
        await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.items)


@pytest.fixture
def builder():
    return StubBuilder()


@pytest.fixture
def coordinator(builder, memory_store, clock):
    return IndexCacheCoordinator(builder, memory_store, ttl_hours=6, clock=clock)


@pytest.mark.asyncio
class TestIndexCacheCoordinator:
    async def test_concurrent_callers_share_one_build(self, coordinator, builder):
        results = await asyncio.gather(*(coordinator.get_index() for _ in range(10)))

        assert builder.calls == 1
        assert all(result is results[0] for result in results)
        assert [item["name"] for item in results[0]] == ["bulbasaur", "charmander"]
        assert coordinator.state == IndexState.FRESH

    async def test_fresh_snapshot_served_without_io(self, coordinator, builder, memory_store):
        first = await coordinator.get_index()
        memory_store.get_error = RuntimeError("store should not be read")

        assert await coordinator.get_index() is first
        assert builder.calls == 1

    async def test_build_persists_index(self, coordinator, memory_store, clock):
        await coordinator.get_index()

        record = memory_store.records[POKEMON_INDEX_CACHE_KEY]
        assert record["payload"] == [entry(1, "bulbasaur"), entry(4, "charmander")]
        assert record["updated_at"] == clock()

    async def test_hydrates_from_recent_store_record(self, coordinator, builder, memory_store, clock):
        stored = [entry(25, "pikachu")]
        memory_store.put(POKEMON_INDEX_CACHE_KEY, stored, clock() - (TTL_SECONDS - 1))

        index = await coordinator.get_index()

        assert list(index) == stored
        assert builder.calls == 0
        assert coordinator.state == IndexState.FRESH

    async def test_hydration_drops_invalid_entries_and_sorts(self, coordinator, builder, memory_store, clock):
        memory_store.put(
            POKEMON_INDEX_CACHE_KEY,
            [entry(25, "pikachu"), None, "junk", {"name": "no-id"}, entry(4, "charmander")],
            clock(),
        )

        index = await coordinator.get_index()

        assert list(index) == [entry(4, "charmander"), entry(25, "pikachu")]
        assert builder.calls == 0

    async def test_expired_store_record_triggers_build(self, coordinator, builder, memory_store, clock):
        memory_store.put(
            POKEMON_INDEX_CACHE_KEY, [entry(25, "pikachu")], clock() - (TTL_SECONDS + 1)
        )

        index = await coordinator.get_index()

        assert builder.calls == 1
        assert index[0]["name"] == "bulbasaur"

    async def test_expired_snapshot_rebuilds(self, coordinator, builder, clock):
        await coordinator.get_index()
        clock.advance(TTL_SECONDS + 1)
        assert coordinator.state == IndexState.STALE

        builder.items = [entry(7, "squirtle")]
        index = await coordinator.get_index()

        assert builder.calls == 2
        assert index[0]["name"] == "squirtle"

    async def test_failure_propagates_to_every_waiter(self, coordinator, builder):
        builder.error = UpstreamUnavailableError("PokeAPI down", status=503)

        results = await asyncio.gather(
            *(coordinator.get_index() for _ in range(3)), return_exceptions=True
        )

        assert builder.calls == 1
        assert all(isinstance(result, UpstreamUnavailableError) for result in results)
        assert coordinator.state == IndexState.EMPTY
        assert coordinator.get_stats()["builds_failed"] == 1

    async def test_failure_is_retried_on_next_request(self, coordinator, builder):
        builder.error = UpstreamUnavailableError("PokeAPI down", status=503)
        with pytest.raises(UpstreamUnavailableError):
            await coordinator.get_index()

        builder.error = None
        index = await coordinator.get_index()

        assert builder.calls == 2
        assert len(index) == 2

    async def test_failed_rebuild_serves_stale_snapshot(self, coordinator, builder, clock):
        first = await coordinator.get_index()
        clock.advance(TTL_SECONDS + 1)
        builder.error = UpstreamUnavailableError("PokeAPI down", status=503)

        index = await coordinator.get_index()

        assert index is first
        assert coordinator.state == IndexState.STALE

    async def test_failed_build_falls_back_to_expired_store_record(
        self, coordinator, builder, memory_store, clock
    ):
        stored = [entry(25, "pikachu")]
        memory_store.put(POKEMON_INDEX_CACHE_KEY, stored, clock() - (TTL_SECONDS + 1))
        builder.error = UpstreamUnavailableError("PokeAPI down", status=503)

        index = await coordinator.get_index()

        assert list(index) == stored

    async def test_persist_failure_is_not_fatal(self, coordinator, memory_store):
        memory_store.upsert_error = RuntimeError("disk full")

        index = await coordinator.get_index()

        assert len(index) == 2
        assert coordinator.state == IndexState.FRESH

    async def test_store_read_failure_is_a_miss(self, coordinator, builder, memory_store):
        memory_store.get_error = RuntimeError("no such table")

        index = await coordinator.get_index()

        assert builder.calls == 1
        assert len(index) == 2

    async def test_state_is_building_while_in_flight(self, coordinator):
        task = asyncio.create_task(coordinator.get_index())
        await asyncio.sleep(0.001)

        assert coordinator.state == IndexState.BUILDING

        await task
        assert coordinator.state == IndexState.FRESH

    async def test_rebuild_joins_in_flight_build(self, coordinator, builder):
        pending = asyncio.create_task(coordinator.get_index())
        await asyncio.sleep(0.001)

        rebuilt = await coordinator.rebuild()

        assert rebuilt is await pending
        assert builder.calls == 1

    async def test_rebuild_ignores_fresh_snapshot(self, coordinator, builder):
        await coordinator.get_index()

        await coordinator.rebuild()

        assert builder.calls == 2

    async def test_cancelled_caller_does_not_cancel_build(self, coordinator, builder):
        first = asyncio.create_task(coordinator.get_index())
        second = asyncio.create_task(coordinator.get_index())
        await asyncio.sleep(0.001)

        first.cancel()
        index = await second

        assert len(index) == 2
        assert builder.calls == 1

    async def test_stats(self, coordinator, clock):
        assert coordinator.get_stats()["state"] == "empty"

        await coordinator.get_index()
        clock.advance(60)
        stats = coordinator.get_stats()

        assert stats["size"] == 2
        assert stats["age_seconds"] == 60
        assert stats["builds_started"] == 1


@pytest.mark.asyncio
async def test_same_store_shared_across_restarts(clock):
    """A second coordinator (new process) adopts the index the first one built."""
    store = MemoryStore(clock=clock)
    first_builder, second_builder = StubBuilder(), StubBuilder()

    await IndexCacheCoordinator(first_builder, store, clock=clock).get_index()
    index = await IndexCacheCoordinator(second_builder, store, clock=clock).get_index()

    assert len(index) == 2
    assert second_builder.calls == 0


@pytest.mark.asyncio
async def test_store_outage_builds_once_without_raising(clock):
    db = FlakyDatabase(ConnectionRefusedError("connection refused"))
    gateway = StoreGateway(db, retry_backoff_ms=60_000, clock=FakeClock())
    builder = StubBuilder()
    coordinator = IndexCacheCoordinator(builder, gateway, clock=clock)

    results = await asyncio.gather(*(coordinator.get_index() for _ in range(5)))

    assert builder.calls == 1
    assert all(result is results[0] for result in results)
    assert len(results[0]) == 2
    # The failed hydration disabled the store; the persist was dropped
    assert db.calls == 1
    assert await coordinator.get_index() is results[0]
    assert db.calls == 1
