"""
Entity-to-profile matching engine.

Assigns every unmapped entity of a run to one SegmentProfile of the same
kind using a fallback chain:

1. Similarity: embed the entity (through the result cache), take the top-2
   profiles by vector similarity. A single hit, or a top-2 gap larger than
   the tie threshold, is accepted.
2. Generative tie-break: on a near-tie (candidates = the tied profiles) or
   when similarity found nothing (candidates = every profile of the kind),
   ask the ProfileChooser. Accepted only if it returns a candidate id.
3. Heuristic: deterministic scoring. Always succeeds when a profile exists.

A failing collaborator in tier 1 or 2 is logged and the next tier runs.

Cycles are serialized per run by MappingLockRegistry; a call that finds the
lock held returns immediately with status "locked". A kind with entities but
no profiles yet defers the whole cycle to the RetryScheduler, up to
max_attempts cycles, after which the engine gives up.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..cache import ResultCache, make_cache_key
from ..clients.providers import Embedder, ProfileChooser
from ..concurrency import bounded_gather
from ..config import config
from ..errors import MatchingError
from ..logging import get_logger, logging_context
from ..models import Entity, EntityKind, JobType, MatchTier, SegmentProfile
from ..repository import ProspectRepository
from .locks import MappingLockRegistry
from .scheduler import JobEnqueuer, RetryScheduler
from .scoring import (
    best_heuristic_match,
    confidence_to_score,
    is_clear_winner,
    similarity_to_score,
)

logger = get_logger(__name__)


class MappingStatus(str, Enum):
    """How a mapping cycle ended."""

    MAPPED = 'mapped'
    LOCKED = 'locked'
    DEFERRED = 'deferred'
    GAVE_UP = 'gave_up'
    IDLE = 'idle'


@dataclass
class MappingOutcome:
    """Result of one mapping cycle."""

    run_id: str
    status: MappingStatus
    attempt: int = 0
    by_tier: dict[str, int] = field(
        default_factory=lambda: {tier.value: 0 for tier in MatchTier}
    )
    already_mapped: int = 0
    deferred_kinds: list[str] = field(default_factory=list)

    @property
    def mapped(self) -> int:
        return sum(self.by_tier.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            'run_id': self.run_id,
            'status': self.status.value,
            'attempt': self.attempt,
            'mapped': self.mapped,
            'by_tier': dict(self.by_tier),
            'already_mapped': self.already_mapped,
            'deferred_kinds': list(self.deferred_kinds),
        }


@dataclass
class Assignment:
    profile_id: str
    score: int
    tier: MatchTier


class MatchingEngine:
    """
    Three-tier matcher with per-run locking and bounded deferral.

    Args:
        repository: Persistence for entities and profiles
        embedder: Embedding provider (OpenAIClient)
        cache: Deduplicates embedding calls for identical descriptors
        chooser: Generative tie-breaker, or None to skip tier 2
        scheduler: Where deferred cycles go
        locks: Process-wide lock registry, shared by every engine instance
        jobs: Job queue for compute_profile_embeddings requests
    """

    def __init__(
        self,
        repository: ProspectRepository,
        embedder: Embedder | None,
        cache: ResultCache,
        scheduler: RetryScheduler,
        locks: MappingLockRegistry,
        chooser: ProfileChooser | None = None,
        jobs: JobEnqueuer | None = None,
        tie_threshold: float | None = None,
        max_attempts: int | None = None,
        retry_delay_seconds: float | None = None,
        concurrency: int | None = None,
    ):
        self.repository = repository
        self.embedder = embedder
        self.cache = cache
        self.scheduler = scheduler
        self.locks = locks
        self.chooser = chooser
        self.jobs = jobs
        self.tie_threshold = tie_threshold if tie_threshold is not None else config.MATCH_TIE_THRESHOLD
        self.max_attempts = max_attempts if max_attempts is not None else config.MAPPING_MAX_ATTEMPTS
        self.retry_delay_seconds = (
            retry_delay_seconds if retry_delay_seconds is not None else config.MAPPING_RETRY_DELAY_SECONDS
        )
        self.concurrency = concurrency or config.STAGE_MAX_CONCURRENCY

    async def on_entities_inserted(self, run_id: str) -> MappingOutcome:
        """Hook for stages after they persist new entities."""
        return await self.map_run(run_id)

    async def map_run(self, run_id: str, attempt: int = 0) -> MappingOutcome:
        """
        Run one mapping cycle for a run.

        Returns:
            MappingOutcome; status "locked" when another cycle holds the run
        """
        if not self.locks.try_acquire(run_id):
            logger.info('mapping.locked', run_id=run_id, attempt=attempt)
            return MappingOutcome(run_id=run_id, status=MappingStatus.LOCKED, attempt=attempt)

        try:
            with logging_context(run_id=run_id):
                return await self._map_cycle(run_id, attempt)
        finally:
            self.locks.release(run_id)

    async def _map_cycle(self, run_id: str, attempt: int) -> MappingOutcome:
        outcome = MappingOutcome(run_id=run_id, status=MappingStatus.MAPPED, attempt=attempt)

        entities = await self.repository.list_entities(run_id, unmapped_only=True)
        if not entities:
            outcome.status = MappingStatus.IDLE
            return outcome

        profiles = await self.repository.list_profiles(run_id)
        profiles_by_kind: dict[EntityKind, list[SegmentProfile]] = defaultdict(list)
        for profile in profiles:
            profiles_by_kind[profile.kind].append(profile)

        entities_by_kind: dict[EntityKind, list[Entity]] = defaultdict(list)
        for entity in entities:
            entities_by_kind[entity.kind].append(entity)

        logger.info(
            'mapping.started',
            attempt=attempt,
            entities=len(entities),
            profiles=len(profiles),
        )

        if any(p.embedding is None for p in profiles):
            await self._request_profile_embeddings(run_id)

        for kind, kind_entities in entities_by_kind.items():
            kind_profiles = profiles_by_kind.get(kind, [])
            if not kind_profiles:
                outcome.deferred_kinds.append(kind.value)
                continue

            results = await bounded_gather(
                [lambda e=e: self._match_entity(e, kind_profiles) for e in kind_entities],
                limit=self.concurrency,
            )
            for entity, assignment in zip(kind_entities, results):
                written = await self.repository.assign_profile(
                    entity.id, assignment.profile_id, assignment.score, assignment.tier
                )
                if written:
                    outcome.by_tier[assignment.tier.value] += 1
                else:
                    outcome.already_mapped += 1

        if outcome.deferred_kinds:
            if attempt + 1 >= self.max_attempts:
                outcome.status = MappingStatus.GAVE_UP
                logger.warning(
                    'mapping.gave_up',
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    kinds=outcome.deferred_kinds,
                )
            else:
                outcome.status = MappingStatus.DEFERRED
                await self.scheduler.schedule(
                    run_id, attempt + 1, self.retry_delay_seconds, self.map_run
                )

        logger.info('mapping.finished', **outcome.to_dict())
        return outcome

    async def _request_profile_embeddings(self, run_id: str) -> None:
        if self.jobs is None:
            return
        try:
            await self.jobs.enqueue(JobType.COMPUTE_PROFILE_EMBEDDINGS.value, {'run_id': run_id})
            logger.info('mapping.profile_embeddings_requested')
        except Exception as e:
            logger.warning('mapping.profile_embeddings_request_failed', error=str(e))

    async def _match_entity(self, entity: Entity, profiles: list[SegmentProfile]) -> Assignment:
        candidates = profiles
        by_id = {p.id: p for p in profiles}

        # Tier 1: similarity
        try:
            matches = await self._similar_profiles(entity, profiles)
            matches = [m for m in matches if m.profile_id in by_id]
            if len(matches) == 1 or (
                len(matches) >= 2
                and is_clear_winner(matches[0].similarity, matches[1].similarity, self.tie_threshold)
            ):
                return Assignment(
                    profile_id=matches[0].profile_id,
                    score=similarity_to_score(matches[0].similarity),
                    tier=MatchTier.SIMILARITY,
                )
            if len(matches) >= 2:
                candidates = [by_id[m.profile_id] for m in matches[:2]]
        except Exception as e:
            logger.warning(
                'mapping.similarity_failed',
                entity_id=entity.id,
                error=str(e),
                error_type=type(e).__name__,
            )

        # Tier 2: generative tie-break
        if self.chooser is not None:
            try:
                choice = await self.chooser.choose_best(candidates, entity.descriptor())
                if choice is not None and choice.profile_id in {c.id for c in candidates}:
                    return Assignment(
                        profile_id=choice.profile_id,
                        score=confidence_to_score(choice.confidence),
                        tier=MatchTier.TIE_BREAK,
                    )
                if choice is not None:
                    raise MatchingError(
                        'Tie-break chose a profile outside the candidates',
                        context={'profile_id': choice.profile_id},
                    )
            except Exception as e:
                logger.warning(
                    'mapping.tie_break_failed',
                    entity_id=entity.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        # Tier 3: heuristic
        match = best_heuristic_match(entity, profiles)
        return Assignment(profile_id=match.profile_id, score=match.score, tier=MatchTier.HEURISTIC)

    async def _similar_profiles(self, entity: Entity, profiles: list[SegmentProfile]) -> list:
        if self.embedder is None or not any(p.embedding is not None for p in profiles):
            return []
        if entity.embedding is None:
            embedding = await self._embed_cached(entity.descriptor())
            await self.repository.set_entity_embedding(entity.id, embedding)
        return await self.repository.top_profiles(entity.id, 2)

    async def _embed_cached(self, text: str) -> list[float]:
        key = make_cache_key('openai.embedding', {'text': text})

        async def produce() -> list[float]:
            vectors = await self.embedder.create_embeddings_batch([text])
            return vectors[0]

        return await self.cache.remember(key, produce)
