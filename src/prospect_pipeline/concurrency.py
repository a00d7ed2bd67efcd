"""
Concurrency helpers shared by stages and the matching engine.

- bounded_gather: run coroutines with at most N in flight
- SoftBudget: wall-clock budget after which callers stop starting new work
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Iterable, TypeVar

T = TypeVar('T')


async def bounded_gather(
    factories: Iterable[Callable[[], Awaitable[T]]],
    limit: int,
    return_exceptions: bool = False,
) -> list[T | BaseException]:
    """
    Await coroutine factories with at most ``limit`` running at once.

    Factories (not coroutines) are taken so that work not yet started can be
    skipped entirely. Results keep input order. With return_exceptions the
    exception object takes the failed item's slot, as in asyncio.gather.
    """
    semaphore = asyncio.Semaphore(max(1, limit))

    async def run(factory: Callable[[], Awaitable[T]]) -> T:
        async with semaphore:
            return await factory()

    return await asyncio.gather(
        *(run(f) for f in factories), return_exceptions=return_exceptions
    )


class SoftBudget:
    """
    Best-effort wall-clock ceiling for a stage.

    Once exhausted, the stage stops issuing new provider calls and returns
    what it has. Work already in flight is not interrupted.
    """

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self.seconds = seconds
        self.clock = clock
        self.started_at = clock()

    @property
    def elapsed(self) -> float:
        return self.clock() - self.started_at

    @property
    def exhausted(self) -> bool:
        return self.elapsed >= self.seconds

    def summary(self) -> dict[str, Any]:
        return {'budget_seconds': self.seconds, 'elapsed_seconds': round(self.elapsed, 2)}
