"""
Persona stage: generate the Run's business and contact segment profiles.

Three profiles per kind, ranks 1-3. A kind that already has its profiles
(from an earlier attempt) is not regenerated. New profiles have no
embeddings yet; a compute_profile_embeddings job is requested for them.
"""

import asyncio
from typing import Any

from ...clients.providers import ProfileGenerator
from ...logging import get_logger
from ...matching.scheduler import JobEnqueuer
from ...models import EntityKind, JobType, RunPhase, SearchContext, SegmentProfile
from ...repository import ProspectRepository
from ..fallbacks import build_fallback_profiles
from .base import Stage

logger = get_logger(__name__)

PROFILES_PER_KIND = 3


class PersonaStage(Stage):
    """Creates 3 business + 3 contact SegmentProfiles per Run."""

    name = RunPhase.PERSONAS.value
    has_fallback = True

    def __init__(
        self,
        repository: ProspectRepository,
        generator: ProfileGenerator,
        jobs: JobEnqueuer | None = None,
    ):
        self.repository = repository
        self.generator = generator
        self.jobs = jobs

    async def run(self, run_id: str, context: SearchContext) -> dict[str, Any]:
        missing = await self._missing_kinds(run_id)
        generated = await asyncio.gather(
            *(self.generator.generate_profiles(run_id, context, kind) for kind in missing)
        )
        profiles = [p for batch in generated for p in batch]
        return await self._store(run_id, profiles, fallback=False)

    async def fallback(self, run_id: str, context: SearchContext) -> dict[str, Any]:
        missing = await self._missing_kinds(run_id)
        profiles = [p for kind in missing for p in build_fallback_profiles(run_id, context, kind)]
        return await self._store(run_id, profiles, fallback=True)

    async def _missing_kinds(self, run_id: str) -> list[EntityKind]:
        existing = await self.repository.list_profiles(run_id)
        counts = {kind: 0 for kind in EntityKind}
        for profile in existing:
            counts[profile.kind] += 1
        return [kind for kind, count in counts.items() if count < PROFILES_PER_KIND]

    async def _store(
        self, run_id: str, profiles: list[SegmentProfile], fallback: bool
    ) -> dict[str, Any]:
        inserted = await self.repository.insert_profiles(profiles)
        if inserted and self.jobs is not None:
            await self.jobs.enqueue(JobType.COMPUTE_PROFILE_EMBEDDINGS.value, {'run_id': run_id})

        logger.info(
            'personas.stored',
            inserted=len(inserted),
            business=sum(1 for p in inserted if p.kind == EntityKind.BUSINESS),
            contact=sum(1 for p in inserted if p.kind == EntityKind.CONTACT),
            fallback=fallback,
        )
        return {'profiles_inserted': len(inserted), 'fallback': fallback}
