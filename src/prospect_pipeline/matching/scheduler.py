"""
Deferred mapping retries.

When a mapping cycle finds entities whose profiles do not exist yet, it asks
a RetryScheduler to run the cycle again later with attempt + 1. Two
strategies:

- JobQueueRetryScheduler: enqueue a profile_mapping job with a visibility
  delay. Survives process exit; the dispatcher tick picks it up.
- InProcessRetryScheduler: sleep in a tracked asyncio task, then re-run.
  Only for long-lived processes (local runs, tests).
"""

import asyncio
from typing import Any, Awaitable, Callable, Protocol

from ..background import TaskTracker
from ..logging import get_logger
from ..models import JobType

logger = get_logger(__name__)

MapRunner = Callable[[str, int], Awaitable[Any]]


class JobEnqueuer(Protocol):
    async def enqueue(
        self,
        type: str,
        payload: dict[str, Any],
        delay_seconds: float = 0,
        max_attempts: int = 3,
    ) -> Any: ...


class RetryScheduler(Protocol):
    async def schedule(
        self, run_id: str, attempt: int, delay_seconds: float, runner: MapRunner
    ) -> None: ...


class JobQueueRetryScheduler:
    """Defers the next mapping cycle through the durable job queue."""

    def __init__(self, jobs: JobEnqueuer):
        self.jobs = jobs

    async def schedule(
        self, run_id: str, attempt: int, delay_seconds: float, runner: MapRunner
    ) -> None:
        await self.jobs.enqueue(
            JobType.PROFILE_MAPPING.value,
            {'run_id': run_id, 'attempt': attempt},
            delay_seconds=delay_seconds,
        )
        logger.info('mapping.retry_enqueued', run_id=run_id, attempt=attempt, delay_seconds=delay_seconds)


class InProcessRetryScheduler:
    """Defers the next mapping cycle with a tracked sleep in this process."""

    def __init__(self, tracker: TaskTracker, sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.tracker = tracker
        self.sleep = sleep

    async def schedule(
        self, run_id: str, attempt: int, delay_seconds: float, runner: MapRunner
    ) -> None:
        async def delayed() -> None:
            await self.sleep(delay_seconds)
            await runner(run_id, attempt)

        self.tracker.spawn(delayed(), name=f'mapping-retry-{run_id}-{attempt}')
        logger.info('mapping.retry_scheduled', run_id=run_id, attempt=attempt, delay_seconds=delay_seconds)
