"""
Decorators shared by the PokeAPI client and the Pokedex cog.

- `retry_on_error` retries transient PokeAPI failures with exponential backoff.
- `hybrid_defer` acknowledges a hybrid command before slow Pokedex work runs.
"""

import asyncio
import logging
from functools import wraps
from typing import Callable, Type, Union

import aiohttp
from discord.ext import commands

from config.settings import MAX_RETRY_ATTEMPTS, RETRY_BASE_DELAY, RETRY_MAX_DELAY

logger = logging.getLogger("pokedex_bot.decorators")


def retry_on_error(
    max_retries: int = MAX_RETRY_ATTEMPTS,
    exceptions: Union[Type[Exception], tuple] = (
        aiohttp.ClientError,
        asyncio.TimeoutError,
    ),
    base_delay: float = RETRY_BASE_DELAY,
    max_delay: float = RETRY_MAX_DELAY,
):
    """
    Retry a PokeAPI request on transient failures.

    `PokeAPIClient._request` raises `aiohttp.ClientResponseError` for 5xx and
    429 responses and lets network errors and timeouts through; those are
    retried. `NotFoundError` and other client errors are not.

    Waits `min(base_delay * 2**attempt, max_delay)` seconds between attempts.

    Args:
        max_retries: Total attempts, the first one included.
        exceptions: Exception type or tuple of exceptions worth retrying.
        base_delay: Delay before the second attempt, in seconds.
        max_delay: Upper bound for any single delay.

    Raises:
        Exception: The last retryable error once the attempts are spent.
    """

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    attempt += 1
                    if attempt >= max_retries:
                        logger.error(
                            f"{func.__name__} gave up: {e!r}",
                            extra={"attempts": attempt},
                        )
                        raise

                    delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
                    logger.warning(
                        f"{func.__name__} failed ({e!r}), retrying in {delay:.1f}s",
                        extra={"attempt": attempt, "max_retries": max_retries},
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator


def hybrid_defer(func: Callable):
    """
    Acknowledge a Pokedex command before running it.

    Listings may wait on an index build and profiles fan out to several
    PokeAPI calls, which can outlast Discord's three second interaction
    window. Slash invocations are deferred (unless already acknowledged);
    prefix invocations show the typing indicator while the command runs.
    """

    @wraps(func)
    async def wrapper(self, ctx: commands.Context, *args, **kwargs):
        if ctx.interaction is None:
            async with ctx.typing():
                return await func(self, ctx, *args, **kwargs)

        if not ctx.interaction.response.is_done():
            await ctx.defer()
        return await func(self, ctx, *args, **kwargs)

    return wrapper
