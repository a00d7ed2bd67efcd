"""
Run trigger: the synchronous edge of the pipeline.

accept() validates ownership and returns immediately; orchestration runs as
a tracked background task and reports through Run state only.
"""

from typing import Any

from ..background import TaskTracker
from ..errors import ValidationError
from ..logging import get_logger
from ..models import Run, RunTask, SearchContext
from ..repository import ProspectRepository
from .orchestrator import RunOrchestrator

logger = get_logger(__name__)


class RunTrigger:
    def __init__(
        self,
        repository: ProspectRepository,
        orchestrator: RunOrchestrator,
        tracker: TaskTracker,
    ):
        self.repository = repository
        self.orchestrator = orchestrator
        self.tracker = tracker

    async def create(self, owner_id: str, context: SearchContext) -> Run:
        """Persist a new Run in status starting."""
        run = Run(owner_id=owner_id, context=context.model_dump(mode='json'))
        await self.repository.create_run(run)
        logger.info('run.created', run_id=run.id, owner_id=owner_id)
        return run

    async def accept(self, run_id: str, owner_id: str) -> dict[str, Any]:
        """
        Start (or resume) orchestration of a Run in the background.

        Raises:
            ValidationError: Run does not exist or belongs to another owner
        """
        run = await self._owned_run(run_id, owner_id)
        self.tracker.spawn(self.orchestrator.start(run.id), name=f"run-{run.id}")
        logger.info('run.accepted', run_id=run.id)
        return {'status': 'accepted', 'run_id': run.id}

    async def cancel(self, run_id: str, owner_id: str | None = None) -> bool:
        """
        Cancel a Run and fail its unfinished Tasks.

        Returns:
            False if the Run was already terminal
        """
        if owner_id is not None:
            await self._owned_run(run_id, owner_id)
        cancelled = await self.repository.cancel_run(run_id)
        logger.info('run.cancel_requested', run_id=run_id, cancelled=cancelled)
        return cancelled

    async def status(self, run_id: str) -> tuple[Run, list[RunTask]]:
        run = await self.repository.get_run(run_id)
        if run is None:
            raise ValidationError('Run not found', context={'run_id': run_id})
        return run, await self.repository.list_tasks(run_id)

    async def _owned_run(self, run_id: str, owner_id: str) -> Run:
        run = await self.repository.get_run(run_id)
        if run is None or run.owner_id != owner_id:
            raise ValidationError('Run not found', context={'run_id': run_id})
        return run
