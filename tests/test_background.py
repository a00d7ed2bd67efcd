"""Tests for TaskTracker."""

import asyncio

import pytest

from prospect_pipeline.background import TaskTracker


class TestTaskTracker:
    @pytest.mark.asyncio
    async def test_spawned_task_tracked_until_done(self):
        tracker = TaskTracker()
        release = asyncio.Event()

        async def work():
            await release.wait()
            return 'done'

        task = tracker.spawn(work(), name='work')
        await asyncio.sleep(0)
        assert tracker.pending == 1

        release.set()
        assert await task == 'done'
        await asyncio.sleep(0)
        assert tracker.pending == 0

    @pytest.mark.asyncio
    async def test_failure_is_contained(self):
        tracker = TaskTracker()

        async def boom():
            raise RuntimeError('boom')

        task = tracker.spawn(boom(), name='boom')
        await tracker.drain(timeout=1)

        assert task.done()
        assert isinstance(task.exception(), RuntimeError)
        assert tracker.pending == 0

    @pytest.mark.asyncio
    async def test_drain_waits_for_outstanding(self):
        tracker = TaskTracker()
        finished = []

        async def work(i):
            await asyncio.sleep(0.01 * i)
            finished.append(i)

        for i in range(3):
            tracker.spawn(work(i))
        await tracker.drain(timeout=5)

        assert sorted(finished) == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_drain_cancels_after_timeout(self):
        tracker = TaskTracker()

        task = tracker.spawn(asyncio.sleep(60), name='slow')
        await tracker.drain(timeout=0.01)

        assert task.cancelled()
        assert tracker.pending == 0

    @pytest.mark.asyncio
    async def test_drain_with_nothing_pending(self):
        await TaskTracker().drain(timeout=0)
