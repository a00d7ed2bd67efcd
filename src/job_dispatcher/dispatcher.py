"""
Job dispatcher for serverless-style ticks.

One tick first returns jobs stranded in running by a dead worker to pending
(stale_after_seconds without an update), then claims up to max_claims jobs,
one at a time, and runs each through its registered handler:

- handler returns -> complete
- handler raises -> fail with a fixed backoff; dead once attempts run out
- unknown job type -> logged and completed as skipped
- claim error (store down) -> the tick stops early

Jobs are executed at least once: a job abandoned mid-handler is picked up
again after the stale sweep, and handlers are written to be idempotent.
"""

import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence

import structlog

from prospect_pipeline.config import config
from prospect_pipeline.errors import UnknownJobTypeError
from prospect_pipeline.logging import logging_context
from prospect_pipeline.models import Job
from prospect_pipeline.utils import utc_now

from .registry import HandlerRegistry
from .store import JobStore

logger = structlog.get_logger(__name__)

_WORKER_ID_ALPHABET = string.ascii_lowercase + string.digits


def new_worker_id(prefix: str) -> str:
    """'{prefix}-{6 random chars}'."""
    suffix = ''.join(secrets.choice(_WORKER_ID_ALPHABET) for _ in range(6))
    return f"{prefix}-{suffix}"


# =============================================================================
# Result Model
# =============================================================================


@dataclass
class TickResult:
    """Counts for one dispatcher tick."""

    worker_id: str
    claimed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    requeued: int = 0

    # True when a claim error ended the tick early
    aborted: bool = False

    started_at: datetime | None = None
    completed_at: datetime | None = None
    tick_time_ms: int | None = None

    errors: list[str] = field(default_factory=list)

    @property
    def idle(self) -> bool:
        """True when nothing was claimable."""
        return self.claimed == 0 and not self.aborted

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging / API responses."""
        return {
            'worker_id': self.worker_id,
            'claimed': self.claimed,
            'succeeded': self.succeeded,
            'failed': self.failed,
            'skipped': self.skipped,
            'requeued': self.requeued,
            'aborted': self.aborted,
            'tick_time_ms': self.tick_time_ms,
            'errors': self.errors,
        }


# =============================================================================
# JobDispatcher
# =============================================================================


class JobDispatcher:
    """
    Bounded claim loop over a JobStore.

    Args:
        store: Where jobs are claimed from and settled
        registry: Job type -> handler
        max_claims: Claims per tick (default DISPATCHER_MAX_CLAIMS_PER_TICK)
        failure_backoff_seconds: Visibility delay after a handler failure
        worker_prefix: Prefix of the per-tick worker id
        wanted_types: Restrict claims to these job types
        stale_after_seconds: Running jobs idle this long are requeued at tick start
    """

    def __init__(
        self,
        store: JobStore,
        registry: HandlerRegistry,
        max_claims: int | None = None,
        failure_backoff_seconds: int | None = None,
        worker_prefix: str | None = None,
        wanted_types: Sequence[str] | None = None,
        stale_after_seconds: int | None = None,
    ):
        self.store = store
        self.registry = registry
        self.max_claims = max_claims or config.DISPATCHER_MAX_CLAIMS_PER_TICK
        self.failure_backoff_seconds = (
            failure_backoff_seconds
            if failure_backoff_seconds is not None
            else config.DISPATCHER_FAILURE_BACKOFF_SECONDS
        )
        self.worker_prefix = worker_prefix or config.DISPATCHER_WORKER_PREFIX
        self.wanted_types = list(wanted_types) if wanted_types else None
        self.stale_after_seconds = (
            stale_after_seconds
            if stale_after_seconds is not None
            else config.DISPATCHER_STALE_AFTER_SECONDS
        )

    async def tick(self) -> TickResult:
        """
        Claim and run up to max_claims jobs.

        Never raises for job-level problems; everything is reported in the
        returned TickResult.
        """
        started = time.perf_counter()
        result = TickResult(worker_id=new_worker_id(self.worker_prefix), started_at=utc_now())

        with logging_context(worker_id=result.worker_id):
            logger.info('dispatcher.tick_started', max_claims=self.max_claims)

            try:
                result.requeued = await self.store.requeue_stale(self.stale_after_seconds)
            except Exception as e:
                result.errors.append(f"requeue stale failed: {e}")
                logger.error('dispatcher.requeue_stale_failed', error=str(e), error_type=type(e).__name__)

            for _ in range(self.max_claims):
                try:
                    job = await self.store.claim(result.worker_id, self.wanted_types)
                except Exception as e:
                    result.aborted = True
                    result.errors.append(f"claim failed: {e}")
                    logger.error('dispatcher.claim_failed', error=str(e), error_type=type(e).__name__)
                    break

                if job is None:
                    break
                result.claimed += 1
                await self._execute(job, result)

            result.completed_at = utc_now()
            result.tick_time_ms = int((time.perf_counter() - started) * 1000)
            logger.info('dispatcher.tick_finished', **result.to_dict())

        return result

    async def _execute(self, job: Job, result: TickResult) -> None:
        worker_id = result.worker_id
        run_id = job.payload.get('run_id') if isinstance(job.payload, dict) else None

        with logging_context(job_id=job.id, run_id=run_id):
            try:
                registration = self.registry.require(job.type)
            except UnknownJobTypeError as e:
                logger.warning('dispatcher.unknown_job_type', job_type=job.type, error=e.message)
                await self._complete(job, result, skipped=True)
                return

            logger.info('dispatcher.job_started', job_type=job.type, attempt=job.attempt)
            try:
                await registration.handler(job.payload)
            except Exception as e:
                max_attempts = registration.max_attempts or job.max_attempts
                dead = job.attempt + 1 >= max_attempts
                logger.warning(
                    'dispatcher.job_failed',
                    job_type=job.type,
                    attempt=job.attempt,
                    dead=dead,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                result.failed += 1
                try:
                    await self.store.fail(
                        job.id, worker_id, f"{type(e).__name__}: {e}",
                        self.failure_backoff_seconds, dead=dead,
                    )
                except Exception as fail_error:
                    result.errors.append(f"fail {job.id}: {fail_error}")
                    logger.error('dispatcher.fail_failed', error=str(fail_error))
                return

            await self._complete(job, result, skipped=False)

    async def _complete(self, job: Job, result: TickResult, skipped: bool) -> None:
        try:
            await self.store.complete(job.id, result.worker_id)
        except Exception as e:
            result.errors.append(f"complete {job.id}: {e}")
            logger.error('dispatcher.complete_failed', error=str(e), error_type=type(e).__name__)
            return
        if skipped:
            result.skipped += 1
        else:
            result.succeeded += 1
            logger.info('dispatcher.job_succeeded', job_type=job.type)
