"""
Service wiring.

ServiceContainer builds every process-scoped object exactly once (lock
registry, task tracker, result cache, store strategy, retry scheduler
strategy) and injects them into the engine, orchestrator and dispatcher.

    container = await ServiceContainer.from_config()
    await container.trigger.accept(run_id, owner_id)
    ...
    await container.close()
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

from job_dispatcher import (
    DefaultHandlers,
    HandlerRegistry,
    InMemoryJobStore,
    JobDispatcher,
    JobStore,
    PostgresJobStore,
    register_default_handlers,
)

from .background import TaskTracker
from .cache import PostgresCacheBackend, ResultCache
from .clients.openai_client import OpenAIClient
from .clients.postgres_client import PostgresClient
from .clients.providers import (
    Embedder,
    MarketAnalyst,
    PeopleProvider,
    PlacesProvider,
    ProfileChooser,
    ProfileGenerator,
)
from .clients.serper_client import SerperClient
from .config import config
from .logging import get_logger
from .matching import (
    InProcessRetryScheduler,
    JobQueueRetryScheduler,
    MappingLockRegistry,
    MatchingEngine,
    OpenAIProfileChooser,
    RetryScheduler,
)
from .models import RunPhase
from .pipeline import (
    ContactEnricher,
    DecisionMakerStage,
    DiscoveryStage,
    MarketStage,
    OpenAIMarketAnalyst,
    OpenAIProfileGenerator,
    PersonaStage,
    RunOrchestrator,
    RunTrigger,
    StagePolicy,
)
from .pipeline.policy import Sleep
from .repository import InMemoryRepository, ProspectRepository

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    """Everything a process needs, built once."""

    repository: ProspectRepository
    jobs: JobStore
    cache: ResultCache
    tracker: TaskTracker
    locks: MappingLockRegistry
    matching: MatchingEngine
    orchestrator: RunOrchestrator
    trigger: RunTrigger
    registry: HandlerRegistry
    dispatcher: JobDispatcher

    # Clients owned by the container, closed by close()
    closeables: list[Any] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        repository: ProspectRepository,
        jobs: JobStore,
        embedder: Embedder | None,
        places: PlacesProvider,
        people: PeopleProvider,
        generator: ProfileGenerator,
        analyst: MarketAnalyst,
        chooser: ProfileChooser | None = None,
        cache: ResultCache | None = None,
        tracker: TaskTracker | None = None,
        locks: MappingLockRegistry | None = None,
        retry_strategy: str | None = None,
        policies: dict[str, StagePolicy] | None = None,
        sleep: Sleep = asyncio.sleep,
        closeables: list[Any] | None = None,
    ) -> ServiceContainer:
        """Wire the object graph from already-constructed collaborators."""
        cache = cache or ResultCache()
        tracker = tracker or TaskTracker()
        locks = locks or MappingLockRegistry(timeout_seconds=config.MAPPING_LOCK_TIMEOUT_SECONDS)

        strategy = (retry_strategy or config.MAPPING_RETRY_STRATEGY).lower()
        scheduler: RetryScheduler
        if strategy == 'in_process':
            scheduler = InProcessRetryScheduler(tracker, sleep=sleep)
        elif strategy == 'job':
            scheduler = JobQueueRetryScheduler(jobs)
        else:
            raise ValueError(f"Unknown MAPPING_RETRY_STRATEGY: {strategy}")

        matching = MatchingEngine(
            repository=repository,
            embedder=embedder,
            cache=cache,
            scheduler=scheduler,
            locks=locks,
            chooser=chooser,
            jobs=jobs,
        )
        enricher = ContactEnricher(repository, people, matching)
        stages = {
            RunPhase.PERSONAS.value: PersonaStage(repository, generator, jobs),
            RunPhase.DISCOVERY.value: DiscoveryStage(repository, places, matching),
            RunPhase.DECISION_MAKERS.value: DecisionMakerStage(repository, enricher, jobs),
            RunPhase.MARKET_INSIGHTS.value: MarketStage(repository, analyst),
        }
        orchestrator = RunOrchestrator(repository, stages, tracker, policies=policies, sleep=sleep)
        trigger = RunTrigger(repository, orchestrator, tracker)

        registry = register_default_handlers(
            HandlerRegistry(),
            DefaultHandlers(repository, enricher, embedder, matching),
        )
        dispatcher = JobDispatcher(jobs, registry)

        logger.info(
            'container.built',
            retry_strategy=strategy,
            repository=type(repository).__name__,
            job_store=type(jobs).__name__,
        )
        return cls(
            repository=repository,
            jobs=jobs,
            cache=cache,
            tracker=tracker,
            locks=locks,
            matching=matching,
            orchestrator=orchestrator,
            trigger=trigger,
            registry=registry,
            dispatcher=dispatcher,
            closeables=closeables or [],
        )

    @classmethod
    async def from_config(cls) -> ServiceContainer:
        """
        Create the container from environment configuration.

        STORE_BACKEND selects PostgresClient-backed stores (DATABASE_URL) or the
        in-memory ones. OPENAI_API_KEY and SERPER_API_KEY are required.
        """
        missing = config.validate()
        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")

        closeables: list[Any] = []
        if config.STORE_BACKEND == 'postgres':
            postgres = PostgresClient(config.DATABASE_URL)
            await postgres.connect()
            closeables.append(postgres)
            repository: ProspectRepository = postgres
            jobs: JobStore = PostgresJobStore(postgres)
            cache = ResultCache(backend=PostgresCacheBackend(postgres))
        elif config.STORE_BACKEND == 'memory':
            repository = InMemoryRepository()
            jobs = InMemoryJobStore()
            cache = ResultCache()
        else:
            raise ValueError(f"Unknown STORE_BACKEND: {config.STORE_BACKEND}")

        openai = OpenAIClient()
        serper = SerperClient(cache=cache)
        closeables.extend([openai, serper])

        return cls.build(
            repository=repository,
            jobs=jobs,
            embedder=openai,
            places=serper,
            people=serper,
            generator=OpenAIProfileGenerator(openai),
            analyst=OpenAIMarketAnalyst(openai),
            chooser=OpenAIProfileChooser(openai),
            cache=cache,
            closeables=closeables,
        )

    async def close(self, drain_timeout: float | None = 30.0) -> None:
        """Drain background work, then close owned clients."""
        await self.tracker.drain(timeout=drain_timeout)
        for client in reversed(self.closeables):
            try:
                await client.close()
            except Exception as e:
                logger.warning('container.close_failed', client=type(client).__name__, error=str(e))
