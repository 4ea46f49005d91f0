import asyncio

import pytest

from pokedex.batching import map_batches


@pytest.mark.asyncio
class TestMapBatches:
    async def test_preserves_order_when_completion_order_differs(self):
        async def slow_odds(n):
            await asyncio.sleep(0.02 if n % 2 else 0)
            return n * 10

        results = await map_batches([1, 2, 3, 4, 5], 2, slow_odds)

        assert results == [10, 20, 30, 40, 50]

    async def test_chunk_bounds_in_flight_calls(self):
        in_flight = 0
        peak = 0

        async def track(n):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return n

        await map_batches(list(range(10)), 3, track)

        assert peak == 3

    async def test_next_chunk_waits_for_whole_chunk(self):
        events = []

        async def record(n):
            events.append(("start", n))
            await asyncio.sleep(0.03 if n == 0 else 0)
            events.append(("end", n))
            return n

        await map_batches([0, 1, 2], 2, record)

        # Item 2 starts only after the slow item 0 of the first chunk ended
        assert events.index(("start", 2)) > events.index(("end", 0))

    async def test_empty_input(self):
        async def never(n):
            raise AssertionError("should not be called")

        assert await map_batches([], 5, never) == []

    async def test_errors_are_not_swallowed(self):
        async def boom(n):
            if n == 2:
                raise RuntimeError("boom")
            return n

        with pytest.raises(RuntimeError):
            await map_batches([1, 2, 3], 2, boom)

    async def test_rejects_zero_concurrency(self):
        async def identity(n):
            return n

        with pytest.raises(ValueError):
            await map_batches([1], 0, identity)
