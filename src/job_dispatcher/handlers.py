"""
Default job handlers.

All handlers are idempotent: re-running one after a partial attempt (the
worker died, or complete() failed) converges on the same state.
"""

from typing import Any

import structlog

from prospect_pipeline.clients.providers import Embedder
from prospect_pipeline.errors import ValidationError
from prospect_pipeline.matching import MatchingEngine
from prospect_pipeline.models import EntityKind, JobType, RunStatus
from prospect_pipeline.pipeline.stages import ContactEnricher
from prospect_pipeline.repository import ProspectRepository

from .registry import HandlerRegistry

logger = structlog.get_logger(__name__)

DM_BATCH_CONCURRENCY = 2


def _run_id(payload: dict[str, Any]) -> str:
    run_id = payload.get('run_id')
    if not run_id:
        raise ValidationError('Job payload is missing run_id', context={'payload': payload})
    return str(run_id)


class DefaultHandlers:
    """Handlers for the built-in JobTypes."""

    def __init__(
        self,
        repository: ProspectRepository,
        enricher: ContactEnricher,
        embedder: Embedder,
        matching: MatchingEngine,
        dm_concurrency: int = DM_BATCH_CONCURRENCY,
    ):
        self.repository = repository
        self.enricher = enricher
        self.embedder = embedder
        self.matching = matching
        self.dm_concurrency = dm_concurrency

    async def dm_discovery_batch(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Contact discovery for {run_id, business_ids}."""
        run_id = _run_id(payload)
        run = await self.repository.get_run(run_id)
        if run is None or run.status == RunStatus.CANCELLED:
            logger.info('jobs.dm_batch_skipped', reason='run_missing_or_cancelled')
            return {'skipped': True}

        business_ids = [str(b) for b in payload.get('business_ids') or []]
        businesses = await self.repository.list_entities(
            run_id, kind=EntityKind.BUSINESS, ids=business_ids
        )
        contacts = await self.repository.list_entities(run_id, kind=EntityKind.CONTACT)
        done = {c.attr('business_id') for c in contacts}
        pending = [b for b in businesses if b.id not in done]

        result = await self.enricher.enrich(run_id, pending, self.dm_concurrency)
        if pending and len(result.errors) == len(pending):
            raise result.errors[0]

        logger.info('jobs.dm_batch_finished', **result.to_dict())
        return result.to_dict()

    async def compute_profile_embeddings(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Embed every profile of the run that has no embedding yet."""
        run_id = _run_id(payload)
        profiles = [p for p in await self.repository.list_profiles(run_id) if p.embedding is None]
        if not profiles:
            return {'embedded': 0}

        vectors = await self.embedder.create_embeddings_batch([p.descriptor() for p in profiles])
        for profile, vector in zip(profiles, vectors):
            await self.repository.set_profile_embedding(profile.id, vector)
        logger.info('jobs.profile_embeddings_stored', count=len(profiles))
        return {'embedded': len(profiles)}

    async def compute_entity_embeddings(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Embed the run's entities (optionally only entity_ids) lacking an embedding."""
        run_id = _run_id(payload)
        ids = payload.get('entity_ids')
        entities = await self.repository.list_entities(run_id, ids=ids)
        entities = [e for e in entities if e.embedding is None]
        if not entities:
            return {'embedded': 0}

        vectors = await self.embedder.create_embeddings_batch([e.descriptor() for e in entities])
        for entity, vector in zip(entities, vectors):
            await self.repository.set_entity_embedding(entity.id, vector)
        logger.info('jobs.entity_embeddings_stored', count=len(entities))
        return {'embedded': len(entities)}

    async def profile_mapping(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Deferred matching cycle for {run_id, attempt}."""
        run_id = _run_id(payload)
        outcome = await self.matching.map_run(run_id, attempt=int(payload.get('attempt', 0)))
        return outcome.to_dict()


def register_default_handlers(registry: HandlerRegistry, handlers: DefaultHandlers) -> HandlerRegistry:
    registry.register(JobType.DM_DISCOVERY_BATCH.value, handlers.dm_discovery_batch)
    registry.register(JobType.COMPUTE_PROFILE_EMBEDDINGS.value, handlers.compute_profile_embeddings)
    registry.register(JobType.COMPUTE_ENTITY_EMBEDDINGS.value, handlers.compute_entity_embeddings)
    registry.register(JobType.PROFILE_MAPPING.value, handlers.profile_mapping)
    return registry
