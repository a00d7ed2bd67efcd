"""
Run orchestrator: drives a Run through its phases.

    starting -> personas -> discovery -> decision_makers -> market_insights -> completed

- Each stage runs under its StagePolicy (timeout, rate-limit retry, fallback)
  and records its outcome on the stage's Task row.
- market_insights only needs the search context, so it starts as a tracked
  task alongside discovery and is awaited in its own phase.
- start() resumes: Tasks already succeeded are skipped, and progress never
  moves backwards (the repository ignores lower values).
- Cancellation is polled at every phase boundary; a cancelled Run is left
  untouched and its in-flight market task is cancelled.
- A stage failure fails its Task and the Run. Earlier stages keep their
  results.
"""

import asyncio
from dataclasses import replace
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ..background import TaskTracker
from ..errors import StageError
from ..logging import PipelineTimer, get_logger, logging_context
from ..models import (
    PHASE_ORDER,
    PHASE_PROGRESS,
    STAGE_NAMES,
    Run,
    RunPhase,
    RunStatus,
    SearchContext,
    TaskStatus,
)
from ..repository import CANCELLED_ERROR, ProspectRepository
from .policy import Sleep, StagePolicy, default_policies, run_with_policy
from .stages import Stage

logger = get_logger(__name__)


class RunOrchestrator:
    """
    Finite-phase state machine per Run.

    Args:
        repository: Run, Task and result persistence
        stages: Stage implementations keyed by stage name
        tracker: Owner of the concurrently running market task
        policies: StagePolicy per stage name (defaults from configuration)
        sleep: Retry wait function, replaceable in tests
    """

    def __init__(
        self,
        repository: ProspectRepository,
        stages: dict[str, Stage],
        tracker: TaskTracker,
        policies: dict[str, StagePolicy] | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        missing = [name for name in STAGE_NAMES if name not in stages]
        if missing:
            raise ValueError(f"Missing stages: {missing}")
        self.repository = repository
        self.stages = stages
        self.tracker = tracker
        self.policies = {**default_policies(), **(policies or {})}
        self.sleep = sleep

    async def start(self, run_id: str) -> Run | None:
        """
        Drive a Run to a terminal status.

        Returns:
            The Run as stored after orchestration, or None if it does not exist
        """
        run = await self.repository.get_run(run_id)
        if run is None:
            logger.warning('run.not_found', run_id=run_id)
            return None
        if run.status.is_terminal:
            logger.info('run.already_terminal', run_id=run_id, status=run.status.value)
            return run

        with logging_context(run_id=run_id):
            try:
                context = SearchContext.model_validate(run.context)
            except PydanticValidationError as e:
                logger.warning('run.invalid_context', error=str(e))
                await self.repository.set_run_status(
                    run_id, RunStatus.FAILED, f"Invalid search context: {e}"
                )
                return await self.repository.get_run(run_id)

            try:
                await self._execute(run_id, context)
            except StageError as e:
                logger.error('run.failed', error=str(e), stage=e.context.get('stage'))
                await self.repository.set_run_status(run_id, RunStatus.FAILED, str(e))
            except Exception as e:
                logger.error('run.failed', error=str(e), error_type=type(e).__name__)
                await self.repository.set_run_status(run_id, RunStatus.FAILED, f"Internal error: {e}")
                raise

            return await self.repository.get_run(run_id)

    async def _execute(self, run_id: str, context: SearchContext) -> None:
        timer = PipelineTimer()
        tasks = await self.repository.ensure_tasks(run_id, STAGE_NAMES)
        done = {t.name for t in tasks if t.status == TaskStatus.SUCCEEDED}

        logger.info('run.started', resumed_stages=sorted(done))
        await self.repository.update_run_progress(
            run_id, RunPhase.STARTING, PHASE_PROGRESS[RunPhase.STARTING]
        )

        market_task: asyncio.Task | None = None
        try:
            for phase in (RunPhase.PERSONAS, RunPhase.DISCOVERY, RunPhase.DECISION_MAKERS):
                if await self._cancelled(run_id):
                    return
                await self._enter(run_id, phase)

                if phase == RunPhase.DISCOVERY and RunPhase.MARKET_INSIGHTS.value not in done:
                    market_task = self.tracker.spawn(
                        self._run_market(run_id, context, timer),
                        name=f"market-insights-{run_id}",
                    )

                await self._run_stage(run_id, context, phase.value, done, timer)
                await self._finish(run_id, phase)

            if await self._cancelled(run_id):
                return
            await self._enter(run_id, RunPhase.MARKET_INSIGHTS)
            if market_task is None:
                # succeeded on an earlier start
                await self._run_stage(run_id, context, RunPhase.MARKET_INSIGHTS.value, done, timer)
            else:
                error = await market_task
                if error is not None:
                    raise error
            await self._finish(run_id, RunPhase.MARKET_INSIGHTS)

            if await self._cancelled(run_id):
                return
            await self.repository.set_run_status(run_id, RunStatus.COMPLETED)
            logger.info('run.completed', **timer.summary())
        finally:
            if market_task is not None and not market_task.done():
                market_task.cancel()
                await asyncio.gather(market_task, return_exceptions=True)
                await self.repository.update_task(
                    run_id, RunPhase.MARKET_INSIGHTS.value, TaskStatus.FAILED, CANCELLED_ERROR
                )

    async def _run_market(
        self, run_id: str, context: SearchContext, timer: PipelineTimer
    ) -> StageError | None:
        # StageError is returned so the awaiting phase raises it
        try:
            await self._run_stage(
                run_id, context, RunPhase.MARKET_INSIGHTS.value, set(), timer
            )
        except StageError as e:
            return e
        return None

    async def _run_stage(
        self,
        run_id: str,
        context: SearchContext,
        name: str,
        done: set[str],
        timer: PipelineTimer,
    ) -> dict[str, Any] | None:
        if name in done:
            logger.info('stage.skipped', stage=name, reason='already_succeeded')
            return None

        stage = self.stages[name]
        policy = self.policies[name]
        if stage.has_fallback:
            policy = replace(policy, fallback=lambda: stage.fallback(run_id, context))

        await self.repository.update_task(run_id, name, TaskStatus.RUNNING)
        logger.info('stage.started', stage=name)

        with timer.stage(name):
            try:
                outcome = await run_with_policy(
                    name, lambda: stage.run(run_id, context), policy, sleep=self.sleep
                )
            except Exception as e:
                await self.repository.update_task(run_id, name, TaskStatus.FAILED, str(e))
                logger.error('stage.failed', stage=name, error=str(e), error_type=type(e).__name__)
                if isinstance(e, StageError):
                    raise
                raise StageError(f"Stage {name} failed: {e}", context={'stage': name}) from e

        await self.repository.update_task(run_id, name, TaskStatus.SUCCEEDED, outcome.degraded)
        logger.info(
            'stage.succeeded',
            stage=name,
            attempts=outcome.attempts,
            degraded=outcome.used_fallback,
            result=outcome.value,
        )
        return outcome.value

    async def _enter(self, run_id: str, phase: RunPhase) -> None:
        # Entering a phase keeps the progress the previous phase reached
        previous = PHASE_ORDER[phase.order - 1]
        await self.repository.update_run_progress(run_id, phase, PHASE_PROGRESS[previous])

    async def _finish(self, run_id: str, phase: RunPhase) -> None:
        await self.repository.update_run_progress(run_id, phase, PHASE_PROGRESS[phase])

    async def _cancelled(self, run_id: str) -> bool:
        run = await self.repository.get_run(run_id)
        if run is None or run.status == RunStatus.CANCELLED:
            logger.info('run.cancellation_observed')
            return True
        return run.status.is_terminal
