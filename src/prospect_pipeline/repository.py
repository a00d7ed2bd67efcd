"""
Repository for runs, tasks, segment profiles, entities and market insights.

ProspectRepository is the persistence boundary used by the orchestrator,
stages, matching engine and job handlers. Two implementations exist:

- PostgresClient (clients/postgres_client.py): durable, multi-instance
- InMemoryRepository (below): single process, for local runs and tests

Every mutation is a single conditional update keyed by id, so the same
invariants hold in both:
- Run progress and phase never decrease; a terminal Run is never rewritten
- Task status only moves forward (pending -> running -> succeeded|failed)
- An entity's profile assignment is written only while profile_id is unset
"""

from dataclasses import dataclass
from typing import Any, Protocol, Sequence

import numpy as np

from .models import (
    Entity,
    EntityKind,
    MarketInsights,
    MatchTier,
    Run,
    RunPhase,
    RunStatus,
    RunTask,
    SegmentProfile,
    TaskStatus,
)
from .models.run import TASK_STATUS_ORDER
from .utils import Clock, utc_now

CANCELLED_ERROR = 'cancelled'


@dataclass(frozen=True)
class ProfileMatch:
    """One similarity-search hit."""

    profile_id: str
    similarity: float


class ProspectRepository(Protocol):
    """Persistence operations required by the pipeline."""

    # Runs
    async def create_run(self, run: Run) -> Run: ...

    async def get_run(self, run_id: str) -> Run | None: ...

    async def update_run_progress(self, run_id: str, phase: RunPhase, progress_pct: int) -> bool: ...

    async def set_run_status(
        self, run_id: str, status: RunStatus, error: str | None = None
    ) -> bool: ...

    async def cancel_run(self, run_id: str) -> bool: ...

    # Tasks
    async def ensure_tasks(self, run_id: str, names: Sequence[str]) -> list[RunTask]: ...

    async def list_tasks(self, run_id: str) -> list[RunTask]: ...

    async def update_task(
        self, run_id: str, name: str, status: TaskStatus, error: str | None = None
    ) -> bool: ...

    # Profiles
    async def insert_profiles(self, profiles: Sequence[SegmentProfile]) -> list[SegmentProfile]: ...

    async def list_profiles(
        self, run_id: str, kind: EntityKind | None = None
    ) -> list[SegmentProfile]: ...

    async def set_profile_embedding(self, profile_id: str, embedding: list[float]) -> None: ...

    # Entities
    async def insert_entity(self, entity: Entity) -> Entity: ...

    async def get_entity(self, entity_id: str) -> Entity | None: ...

    async def update_entity(self, entity_id: str, attributes: dict[str, Any]) -> Entity | None: ...

    async def list_entities(
        self,
        run_id: str,
        kind: EntityKind | None = None,
        unmapped_only: bool = False,
        ids: Sequence[str] | None = None,
    ) -> list[Entity]: ...

    async def set_entity_embedding(self, entity_id: str, embedding: list[float]) -> None: ...

    async def assign_profile(
        self, entity_id: str, profile_id: str, score: int, tier: MatchTier
    ) -> bool: ...

    async def top_profiles(self, entity_id: str, limit: int = 2) -> list[ProfileMatch]: ...

    async def best_profile(self, entity_id: str) -> ProfileMatch | None: ...

    # Market insights
    async def upsert_market_insights(self, insights: MarketInsights) -> None: ...

    async def get_market_insights(self, run_id: str) -> MarketInsights | None: ...


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; 0.0 when either vector is all zeros."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


class InMemoryRepository:
    """
    Single-process ProspectRepository.

    Methods never await between reading and writing a row, so each one is
    atomic with respect to other coroutines on the same event loop.
    """

    def __init__(self, clock: Clock = utc_now):
        self.clock = clock
        self.runs: dict[str, Run] = {}
        self.tasks: dict[tuple[str, str], RunTask] = {}
        self.profiles: dict[str, SegmentProfile] = {}
        self.entities: dict[str, Entity] = {}
        self.market_insights: dict[str, MarketInsights] = {}

    # =========================================================================
    # Runs
    # =========================================================================

    async def create_run(self, run: Run) -> Run:
        self.runs[run.id] = run.model_copy(deep=True)
        return run

    async def get_run(self, run_id: str) -> Run | None:
        run = self.runs.get(run_id)
        return run.model_copy(deep=True) if run else None

    async def update_run_progress(self, run_id: str, phase: RunPhase, progress_pct: int) -> bool:
        run = self.runs.get(run_id)
        if run is None or run.status.is_terminal:
            return False
        if progress_pct < run.progress_pct or phase.order < run.phase.order:
            return False
        run.phase = phase
        run.progress_pct = progress_pct
        if run.status == RunStatus.STARTING and phase != RunPhase.STARTING:
            run.status = RunStatus.IN_PROGRESS
        run.updated_at = self.clock()
        return True

    async def set_run_status(
        self, run_id: str, status: RunStatus, error: str | None = None
    ) -> bool:
        run = self.runs.get(run_id)
        if run is None or run.status.is_terminal:
            return False
        run.status = status
        if error is not None:
            run.error = error
        if status == RunStatus.COMPLETED:
            run.phase = RunPhase.COMPLETED
            run.progress_pct = 100
        run.updated_at = self.clock()
        return True

    async def cancel_run(self, run_id: str) -> bool:
        cancelled = await self.set_run_status(run_id, RunStatus.CANCELLED, CANCELLED_ERROR)
        if not cancelled:
            return False
        for (task_run_id, name), task in self.tasks.items():
            if task_run_id == run_id and task.status in (TaskStatus.PENDING, TaskStatus.RUNNING):
                await self.update_task(run_id, name, TaskStatus.FAILED, CANCELLED_ERROR)
        return True

    # =========================================================================
    # Tasks
    # =========================================================================

    async def ensure_tasks(self, run_id: str, names: Sequence[str]) -> list[RunTask]:
        for name in names:
            if (run_id, name) not in self.tasks:
                self.tasks[(run_id, name)] = RunTask(run_id=run_id, name=name)
        return await self.list_tasks(run_id)

    async def list_tasks(self, run_id: str) -> list[RunTask]:
        return [t.model_copy() for (rid, _), t in self.tasks.items() if rid == run_id]

    async def update_task(
        self, run_id: str, name: str, status: TaskStatus, error: str | None = None
    ) -> bool:
        task = self.tasks.get((run_id, name))
        if task is None:
            return False
        current = TASK_STATUS_ORDER[task.status]
        target = TASK_STATUS_ORDER[status]
        # running -> running is a resumed attempt
        if target < current or (target == current and status != TaskStatus.RUNNING):
            return False

        now = self.clock()
        task.status = status
        if status == TaskStatus.RUNNING:
            task.attempt += 1
            task.started_at = task.started_at or now
        else:
            task.finished_at = now
        if error is not None:
            task.error = error
        return True

    # =========================================================================
    # Profiles
    # =========================================================================

    async def insert_profiles(self, profiles: Sequence[SegmentProfile]) -> list[SegmentProfile]:
        existing = {(p.run_id, p.kind, p.rank) for p in self.profiles.values()}
        inserted = []
        for profile in profiles:
            if (profile.run_id, profile.kind, profile.rank) in existing:
                continue
            self.profiles[profile.id] = profile.model_copy(deep=True)
            inserted.append(profile)
        return inserted

    async def list_profiles(
        self, run_id: str, kind: EntityKind | None = None
    ) -> list[SegmentProfile]:
        profiles = [
            p.model_copy(deep=True)
            for p in self.profiles.values()
            if p.run_id == run_id and (kind is None or p.kind == kind)
        ]
        return sorted(profiles, key=lambda p: (p.kind.value, p.rank))

    async def set_profile_embedding(self, profile_id: str, embedding: list[float]) -> None:
        profile = self.profiles.get(profile_id)
        if profile is not None:
            profile.embedding = list(embedding)

    # =========================================================================
    # Entities
    # =========================================================================

    async def insert_entity(self, entity: Entity) -> Entity:
        self.entities[entity.id] = entity.model_copy(deep=True)
        return entity

    async def get_entity(self, entity_id: str) -> Entity | None:
        entity = self.entities.get(entity_id)
        return entity.model_copy(deep=True) if entity else None

    async def update_entity(self, entity_id: str, attributes: dict[str, Any]) -> Entity | None:
        entity = self.entities.get(entity_id)
        if entity is None:
            return None
        entity.attributes.update(attributes)
        return entity.model_copy(deep=True)

    async def list_entities(
        self,
        run_id: str,
        kind: EntityKind | None = None,
        unmapped_only: bool = False,
        ids: Sequence[str] | None = None,
    ) -> list[Entity]:
        wanted = set(ids) if ids is not None else None
        return [
            e.model_copy(deep=True)
            for e in self.entities.values()
            if e.run_id == run_id
            and (kind is None or e.kind == kind)
            and (not unmapped_only or e.profile_id is None)
            and (wanted is None or e.id in wanted)
        ]

    async def set_entity_embedding(self, entity_id: str, embedding: list[float]) -> None:
        entity = self.entities.get(entity_id)
        if entity is not None:
            entity.embedding = list(embedding)

    async def assign_profile(
        self, entity_id: str, profile_id: str, score: int, tier: MatchTier
    ) -> bool:
        entity = self.entities.get(entity_id)
        if entity is None or entity.profile_id is not None:
            return False
        entity.profile_id = profile_id
        entity.match_score = score
        entity.match_tier = tier
        return True

    async def top_profiles(self, entity_id: str, limit: int = 2) -> list[ProfileMatch]:
        entity = self.entities.get(entity_id)
        if entity is None or entity.embedding is None:
            return []
        matches = [
            ProfileMatch(profile_id=p.id, similarity=cosine_similarity(entity.embedding, p.embedding))
            for p in self.profiles.values()
            if p.run_id == entity.run_id and p.kind == entity.kind and p.embedding is not None
        ]
        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches[:limit]

    async def best_profile(self, entity_id: str) -> ProfileMatch | None:
        matches = await self.top_profiles(entity_id, limit=1)
        return matches[0] if matches else None

    # =========================================================================
    # Market insights
    # =========================================================================

    async def upsert_market_insights(self, insights: MarketInsights) -> None:
        self.market_insights[insights.run_id] = insights.model_copy(deep=True)

    async def get_market_insights(self, run_id: str) -> MarketInsights | None:
        insights = self.market_insights.get(run_id)
        return insights.model_copy(deep=True) if insights else None
