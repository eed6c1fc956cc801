"""Shared concurrency primitives for the ingestion and query pipelines.

Two helpers are exposed:

1. **throttled_gather** -- A drop-in replacement for ``asyncio.gather`` that
   wraps each awaitable in a semaphore acquire/release.  The embedding batch
   manager uses it to run a group of batches with a bounded number in
   flight.

2. **retry_async** -- An iterative retry loop with exponential backoff.
   The attempt counter and the computed delay live in local variables, so
   large retry counts never grow the call stack.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog

from src.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
    return_exceptions: bool = True,
) -> list[_T | BaseException]:
    """Run awaitables concurrently while holding *semaphore* for each.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Semaphore bounding how many awaitables execute at once.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list[_T | BaseException]
        Results in the same order as the input coroutines, regardless of
        completion order.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


async def retry_async(
    func: Callable[[], Awaitable[_T]],
    max_retries: int,
    base_delay: float,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    logger: structlog.BoundLogger | None = None,
    operation: str = "operation",
) -> _T:
    """Call *func* until it succeeds or ``max_retries + 1`` attempts fail.

    The delay before retry ``n`` (0-based) is ``base_delay * 2 ** n``
    seconds.  The last exception is re-raised once attempts run out.
    """
    if logger is None:
        logger = _logger

    attempt = 0
    while True:
        try:
            return await func()
        except retry_on as exc:
            if attempt >= max_retries:
                logger.warning(
                    "retry_exhausted",
                    operation=operation,
                    attempts=attempt + 1,
                    error=str(exc),
                )
                raise
            delay = base_delay * (2**attempt)
            logger.debug(
                "retry_scheduled",
                operation=operation,
                attempt=attempt + 1,
                delay_seconds=delay,
                error=str(exc),
            )
            await asyncio.sleep(delay)
            attempt += 1
