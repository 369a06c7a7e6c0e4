"""Bounded retry with exponential backoff for async operations."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from keeper.config.schema import RetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delays(options: RetryConfig) -> list[float]:
    """Return the sleep schedule between attempts (max_attempts - 1 entries)."""
    delays: list[float] = []
    delay = options.base_delay_seconds
    for _ in range(options.max_attempts - 1):
        delays.append(delay)
        delay = min(delay * options.backoff_multiplier, options.max_delay_seconds)
    return delays


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    options: RetryConfig | None = None,
    label: str = "",
) -> T:
    """Run `operation` up to `options.max_attempts` times.

    Sleeps between failed attempts, growing the delay by `backoff_multiplier`
    up to `max_delay_seconds`. The error from the final attempt is re-raised;
    there is no sleep after it. Cancellation is never retried.
    """
    opts = options or RetryConfig()
    context = f" ({label})" if label else ""
    delay = opts.base_delay_seconds
    attempt = 1

    while True:
        try:
            return await operation()
        except Exception as e:
            if attempt >= opts.max_attempts:
                logger.error(
                    "All %d attempts failed%s: %s", opts.max_attempts, context, e
                )
                raise

            logger.warning(
                "Attempt %d/%d failed%s, retrying in %.2fs: %s",
                attempt, opts.max_attempts, context, delay, e,
            )
            await _sleep(delay)
            delay = min(delay * opts.backoff_multiplier, opts.max_delay_seconds)
            attempt += 1
