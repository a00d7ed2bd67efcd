"""
Tracked background tasks.

Every fire-and-forget coroutine in the process (run orchestration started by
the HTTP trigger, in-process mapping retries, the market-analysis stage
running alongside discovery) is spawned through a TaskTracker so that:
- a strong reference is held until the task finishes
- failures are reported through a single log event (background_task.failed)
- shutdown can drain outstanding work
"""

import asyncio
from typing import Any, Coroutine

from .logging import get_logger

logger = get_logger(__name__)


class TaskTracker:
    """Owns the lifetime of background asyncio tasks."""

    def __init__(self):
        self._tasks: set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        """Schedule a coroutine and track it until completion."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug('background_task.cancelled', task_name=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                'background_task.failed',
                task_name=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """
        Wait for outstanding tasks.

        Tasks still running after ``timeout`` seconds are cancelled.
        """
        if not self._tasks:
            return
        tasks = list(self._tasks)
        logger.info('background_task.draining', count=len(tasks))
        done, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
