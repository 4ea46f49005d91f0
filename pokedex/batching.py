"""
Concurrency-limited batch execution.

Used wherever many upstream calls are made for a list of names, so that
PokeAPI never sees more than `concurrency` requests in flight from one batch.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Sequence, TypeVar

logger = logging.getLogger("pokedex_bot.batching")

T = TypeVar("T")
R = TypeVar("R")


async def map_batches(
    items: Sequence[T],
    concurrency: int,
    fn: Callable[[T], Awaitable[R]],
) -> List[R]:
    """
    Map `fn` over `items` in consecutive chunks of `concurrency`.

    All items of a chunk run concurrently and the whole chunk must finish
    before the next one starts, so at most `concurrency` calls are in flight
    at any instant. Results keep the input order.

    Errors are not swallowed: the first exception raised by `fn` aborts the
    batch. Mappers that call upstream should catch their own failures and
    return a sentinel instead.

    Args:
        items: Inputs, in the order results should be returned.
        concurrency: Chunk size.
        fn: Async mapper.

    Returns:
        `[fn(item) for item in items]`, in order.

    Raises:
        ValueError: If concurrency is below 1.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be at least 1")

    results: List[R] = []
    for start in range(0, len(items), concurrency):
        chunk = items[start : start + concurrency]
        chunk_results = await asyncio.gather(*(fn(item) for item in chunk))
        results.extend(chunk_results)

        logger.debug(
            "Batch chunk completed",
            extra={"done": len(results), "total": len(items)},
        )

    return results
