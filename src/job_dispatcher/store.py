"""
Durable job store.

Every state change is a single atomic operation in the store:
- claim: pick the oldest visible pending job and mark it running for a
  worker in one step (FOR UPDATE SKIP LOCKED in Postgres); callers never
  read-then-write
- complete / fail: conditional on the job still being running under the
  caller's worker id; a mismatch raises JobOwnershipError
- fail: bumps attempt, records the error and hides the job for at least
  MIN_BACKOFF_SECONDS, or marks it failed when the caller says it is dead
- requeue_stale: running jobs not touched for stale_after_seconds belong to a
  worker that died mid-handler; they go back to pending (or failed once out
  of attempts), the lost claim counting as an attempt

Two strategies, chosen by configuration:
- PostgresJobStore: SQL functions in sql/schema.sql via PostgresClient
- InMemoryJobStore: single process, guarded by an asyncio.Lock
"""

import asyncio
from datetime import timedelta
from typing import Any, Protocol, Sequence

import structlog

from prospect_pipeline.clients.postgres_client import PostgresClient
from prospect_pipeline.errors import JobOwnershipError
from prospect_pipeline.models import Job, JobStatus
from prospect_pipeline.utils import Clock, utc_now

logger = structlog.get_logger(__name__)

MIN_BACKOFF_SECONDS = 5


class JobStore(Protocol):
    async def claim(self, worker_id: str, wanted_types: Sequence[str] | None = None) -> Job | None: ...

    async def complete(self, job_id: str, worker_id: str) -> None: ...

    async def fail(
        self,
        job_id: str,
        worker_id: str,
        error_text: str,
        backoff_seconds: int,
        dead: bool = False,
    ) -> None: ...

    async def enqueue(
        self,
        type: str,
        payload: dict[str, Any],
        delay_seconds: float = 0,
        max_attempts: int = 3,
    ) -> Job: ...

    async def requeue_stale(self, stale_after_seconds: int) -> int: ...


# =============================================================================
# In-memory
# =============================================================================


class InMemoryJobStore:
    """Single-process JobStore for local runs and tests."""

    def __init__(self, clock: Clock = utc_now):
        self.clock = clock
        self.jobs: dict[str, Job] = {}
        self._lock = asyncio.Lock()

    async def claim(self, worker_id: str, wanted_types: Sequence[str] | None = None) -> Job | None:
        async with self._lock:
            now = self.clock()
            eligible = [
                job
                for job in self.jobs.values()
                if job.status == JobStatus.PENDING
                and job.next_visible_at <= now
                and (not wanted_types or job.type in wanted_types)
            ]
            if not eligible:
                return None
            job = min(eligible, key=lambda j: (j.next_visible_at, j.created_at))
            job.status = JobStatus.RUNNING
            job.worker_id = worker_id
            job.updated_at = now
            return job.model_copy(deep=True)

    async def complete(self, job_id: str, worker_id: str) -> None:
        async with self._lock:
            job = self._held(job_id, worker_id)
            job.status = JobStatus.SUCCEEDED
            job.updated_at = self.clock()

    async def fail(
        self,
        job_id: str,
        worker_id: str,
        error_text: str,
        backoff_seconds: int,
        dead: bool = False,
    ) -> None:
        async with self._lock:
            job = self._held(job_id, worker_id)
            now = self.clock()
            job.attempt += 1
            job.last_error = error_text
            job.next_visible_at = now + timedelta(seconds=max(backoff_seconds, MIN_BACKOFF_SECONDS))
            job.updated_at = now
            if dead:
                job.status = JobStatus.FAILED
            else:
                job.status = JobStatus.PENDING
                job.worker_id = None

    async def requeue_stale(self, stale_after_seconds: int) -> int:
        async with self._lock:
            now = self.clock()
            cutoff = now - timedelta(seconds=stale_after_seconds)
            stale = [
                job
                for job in self.jobs.values()
                if job.status == JobStatus.RUNNING and job.updated_at < cutoff
            ]
            for job in stale:
                job.last_error = f"stale claim requeued (worker {job.worker_id})"
                job.attempt += 1
                job.status = JobStatus.FAILED if job.attempt >= job.max_attempts else JobStatus.PENDING
                job.worker_id = None
                job.next_visible_at = now
                job.updated_at = now
        if stale:
            logger.warning('jobs.stale_requeued', count=len(stale), job_ids=[j.id for j in stale])
        return len(stale)

    async def enqueue(
        self,
        type: str,
        payload: dict[str, Any],
        delay_seconds: float = 0,
        max_attempts: int = 3,
    ) -> Job:
        now = self.clock()
        job = Job(
            type=type,
            payload=dict(payload),
            max_attempts=max_attempts,
            next_visible_at=now + timedelta(seconds=delay_seconds),
            created_at=now,
            updated_at=now,
        )
        async with self._lock:
            self.jobs[job.id] = job
        logger.info('jobs.enqueued', job_id=job.id, job_type=type, delay_seconds=delay_seconds)
        return job.model_copy(deep=True)

    async def get(self, job_id: str) -> Job | None:
        job = self.jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    def _held(self, job_id: str, worker_id: str) -> Job:
        job = self.jobs.get(job_id)
        if job is None or job.status != JobStatus.RUNNING or job.worker_id != worker_id:
            raise JobOwnershipError(
                'Job is not held by this worker',
                context={
                    'job_id': job_id,
                    'worker_id': worker_id,
                    'holder': job.worker_id if job else None,
                    'status': job.status.value if job else None,
                },
            )
        return job


# =============================================================================
# Postgres
# =============================================================================


class PostgresJobStore:
    """JobStore backed by the claim_job / complete_job / fail_job SQL functions."""

    def __init__(self, postgres: PostgresClient):
        self.postgres = postgres

    async def claim(self, worker_id: str, wanted_types: Sequence[str] | None = None) -> Job | None:
        return await self.postgres.claim_job(worker_id, wanted_types)

    async def complete(self, job_id: str, worker_id: str) -> None:
        if not await self.postgres.complete_job(job_id, worker_id):
            raise JobOwnershipError(
                'Job is not held by this worker',
                context={'job_id': job_id, 'worker_id': worker_id},
            )

    async def fail(
        self,
        job_id: str,
        worker_id: str,
        error_text: str,
        backoff_seconds: int,
        dead: bool = False,
    ) -> None:
        if not await self.postgres.fail_job(
            job_id, worker_id, error_text, max(backoff_seconds, MIN_BACKOFF_SECONDS), dead
        ):
            raise JobOwnershipError(
                'Job is not held by this worker',
                context={'job_id': job_id, 'worker_id': worker_id},
            )

    async def enqueue(
        self,
        type: str,
        payload: dict[str, Any],
        delay_seconds: float = 0,
        max_attempts: int = 3,
    ) -> Job:
        job = await self.postgres.enqueue_job(
            Job(type=type, payload=dict(payload), max_attempts=max_attempts),
            delay_seconds=delay_seconds,
        )
        logger.info('jobs.enqueued', job_id=job.id, job_type=type, delay_seconds=delay_seconds)
        return job

    async def requeue_stale(self, stale_after_seconds: int) -> int:
        requeued = await self.postgres.requeue_stale_jobs(stale_after_seconds)
        if requeued:
            logger.warning('jobs.stale_requeued', count=requeued)
        return requeued

    async def get(self, job_id: str) -> Job | None:
        return await self.postgres.get_job(job_id)
