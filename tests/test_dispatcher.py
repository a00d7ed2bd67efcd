"""
Tests for JobDispatcher with an in-memory job store.

Tests cover:
- Successful handler: job completed, counted as succeeded
- Failing handler: job failed with backoff, dead after max_attempts
- Unknown job type: completed as skipped
- Claim error: tick aborts early without raising
- Stale sweep: abandoned running jobs are requeued and rerun in the same tick
- max_claims bounds the number of claims per tick
- Worker id format and TickResult serialization

Run with: pytest tests/test_dispatcher.py -v

No API keys or database required.
"""

import re
from unittest.mock import AsyncMock

import pytest

from job_dispatcher import HandlerRegistry, JobDispatcher, TickResult, new_worker_id
from prospect_pipeline.errors import UnknownJobTypeError
from prospect_pipeline.models import JobStatus


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def handler():
    return AsyncMock(return_value={'ok': True})


@pytest.fixture
def registry(handler):
    registry = HandlerRegistry()
    registry.register('profile_mapping', handler)
    return registry


@pytest.fixture
def dispatcher(job_store, registry):
    return JobDispatcher(
        job_store,
        registry,
        max_claims=5,
        failure_backoff_seconds=60,
        worker_prefix='test-worker',
    )


# =============================================================================
# Tests
# =============================================================================


class TestTickOutcomes:
    """Per-job outcomes of one tick."""

    @pytest.mark.asyncio
    async def test_idle_tick(self, dispatcher):
        result = await dispatcher.tick()

        assert result.idle
        assert result.claimed == 0
        assert result.tick_time_ms is not None

    @pytest.mark.asyncio
    async def test_success_completes_job(self, dispatcher, job_store, handler):
        job = await job_store.enqueue('profile_mapping', {'run_id': 'r1'})

        result = await dispatcher.tick()

        assert result.claimed == 1
        assert result.succeeded == 1
        handler.assert_awaited_once_with({'run_id': 'r1'})
        assert (await job_store.get(job.id)).status == JobStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_failure_hides_job_with_backoff(self, dispatcher, job_store, handler, clock):
        handler.side_effect = RuntimeError('provider down')
        job = await job_store.enqueue('profile_mapping', {'run_id': 'r1'})

        result = await dispatcher.tick()

        assert result.failed == 1
        stored = await job_store.get(job.id)
        assert stored.status == JobStatus.PENDING
        assert stored.attempt == 1
        assert 'provider down' in stored.last_error
        assert (stored.next_visible_at - clock()).total_seconds() == 60

        # Not reclaimed within the same tick or before the backoff ends
        assert handler.await_count == 1
        assert (await dispatcher.tick()).claimed == 0

    @pytest.mark.asyncio
    async def test_job_is_dead_after_max_attempts(self, dispatcher, job_store, handler, clock):
        handler.side_effect = RuntimeError('still down')
        job = await job_store.enqueue('profile_mapping', {'run_id': 'r1'}, max_attempts=2)

        await dispatcher.tick()
        clock.advance(60)
        await dispatcher.tick()

        stored = await job_store.get(job.id)
        assert stored.status == JobStatus.FAILED
        assert stored.attempt == 2

        clock.advance(3600)
        assert (await dispatcher.tick()).claimed == 0

    @pytest.mark.asyncio
    async def test_registration_max_attempts_overrides_job(self, job_store, clock):
        registry = HandlerRegistry()
        registry.register('flaky', AsyncMock(side_effect=RuntimeError('no')), max_attempts=1)
        dispatcher = JobDispatcher(job_store, registry, max_claims=1, failure_backoff_seconds=5)
        job = await job_store.enqueue('flaky', {}, max_attempts=5)

        await dispatcher.tick()

        assert (await job_store.get(job.id)).status == JobStatus.FAILED

    @pytest.mark.asyncio
    async def test_unknown_type_is_skipped(self, dispatcher, job_store):
        job = await job_store.enqueue('no_such_type', {})

        result = await dispatcher.tick()

        assert result.claimed == 1
        assert result.skipped == 1
        assert result.succeeded == 0
        assert (await job_store.get(job.id)).status == JobStatus.SUCCEEDED


class TestTickBounds:
    """Claim limits and store failures."""

    @pytest.mark.asyncio
    async def test_max_claims_bounds_tick(self, job_store, registry, handler):
        for i in range(4):
            await job_store.enqueue('profile_mapping', {'run_id': f"r{i}"})
        dispatcher = JobDispatcher(job_store, registry, max_claims=3, failure_backoff_seconds=5)

        result = await dispatcher.tick()

        assert result.claimed == 3
        assert handler.await_count == 3
        assert (await dispatcher.tick()).claimed == 1

    @pytest.mark.asyncio
    async def test_claim_error_aborts_tick(self, registry):
        store = AsyncMock()
        store.requeue_stale.return_value = 0
        store.claim.side_effect = ConnectionError('database unreachable')
        dispatcher = JobDispatcher(store, registry, max_claims=5, failure_backoff_seconds=5)

        result = await dispatcher.tick()

        assert result.aborted
        assert not result.idle
        assert store.claim.await_count == 1
        assert 'database unreachable' in result.errors[0]

    @pytest.mark.asyncio
    async def test_complete_error_is_reported(self, job_store, registry):
        store = AsyncMock(wraps=job_store)
        store.complete.side_effect = RuntimeError('lost claim')
        dispatcher = JobDispatcher(store, registry, max_claims=1, failure_backoff_seconds=5)
        await job_store.enqueue('profile_mapping', {'run_id': 'r1'})

        result = await dispatcher.tick()

        assert result.succeeded == 0
        assert 'lost claim' in result.errors[0]

    @pytest.mark.asyncio
    async def test_wanted_types_restricts_claims(self, job_store, registry, handler):
        await job_store.enqueue('other', {})
        dispatcher = JobDispatcher(
            job_store, registry, max_claims=5, failure_backoff_seconds=5,
            wanted_types=['profile_mapping'],
        )

        assert (await dispatcher.tick()).claimed == 0


class TestStaleSweep:
    """Abandoned running jobs are recovered at the start of a tick."""

    @pytest.mark.asyncio
    async def test_tick_reruns_abandoned_job(self, job_store, registry, handler, clock):
        job = await job_store.enqueue('profile_mapping', {'run_id': 'r1'})
        await job_store.claim('worker-dead')
        clock.advance(1201)
        dispatcher = JobDispatcher(job_store, registry, max_claims=5, stale_after_seconds=1200)

        result = await dispatcher.tick()

        assert result.requeued == 1
        assert result.succeeded == 1
        assert result.to_dict()['requeued'] == 1
        handler.assert_awaited_once_with({'run_id': 'r1'})
        assert (await job_store.get(job.id)).status == JobStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_sweep_failure_does_not_abort_tick(self, job_store, registry, handler):
        store = AsyncMock(wraps=job_store)
        store.requeue_stale.side_effect = RuntimeError('timeout')
        await job_store.enqueue('profile_mapping', {'run_id': 'r1'})
        dispatcher = JobDispatcher(store, registry, max_claims=5)

        result = await dispatcher.tick()

        assert not result.aborted
        assert result.succeeded == 1
        assert 'requeue stale failed: timeout' in result.errors


class TestWorkerId:
    """Worker id format and result serialization."""

    def test_worker_id_format(self):
        worker_id = new_worker_id('tick')
        assert re.fullmatch(r'tick-[a-z0-9]{6}', worker_id)

    def test_worker_ids_differ(self):
        assert len({new_worker_id('tick') for _ in range(20)}) > 1

    def test_to_dict(self):
        result = TickResult(worker_id='tick-abc123', claimed=2, succeeded=1, failed=1)
        data = result.to_dict()

        assert data['worker_id'] == 'tick-abc123'
        assert data['claimed'] == 2
        assert data['failed'] == 1
        assert data['aborted'] is False


class TestRegistry:
    """Handler lookup."""

    def test_require_known_type(self, registry, handler):
        registry.register('compute_entity_embeddings', handler, max_attempts=2)

        assert registry.require('compute_entity_embeddings').max_attempts == 2
        assert 'compute_entity_embeddings' in registry

    def test_require_unknown_type(self, registry):
        with pytest.raises(UnknownJobTypeError) as exc_info:
            registry.require('retired_job_type')
        assert exc_info.value.context['job_type'] == 'retired_job_type'
