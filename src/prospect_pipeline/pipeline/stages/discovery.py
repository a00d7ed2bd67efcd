"""
Discovery stage: find businesses with a places search.

One query per (industry, country) pair, issued with bounded concurrency under
a soft budget. Results are deduplicated by (name, country) against what the
run already holds, persisted as business entities, and handed to the matching
engine.
"""

from typing import Any, NamedTuple

from pydantic import ValidationError as PydanticValidationError

from ...clients.providers import PlaceResult, PlacesProvider
from ...concurrency import SoftBudget, bounded_gather
from ...config import config
from ...errors import PartialSuccessResult, ValidationError
from ...logging import get_logger
from ...matching import MatchingEngine
from ...models import Entity, EntityKind, RunPhase, SearchContext, Segment
from ...repository import ProspectRepository
from .base import Stage

logger = get_logger(__name__)


class DiscoveryQuery(NamedTuple):
    text: str
    industry: str
    country: str


def build_discovery_queries(context: SearchContext) -> list[DiscoveryQuery]:
    """One places query per (industry, country) pair."""
    intent = 'need' if context.segment == Segment.CUSTOMERS else 'sell provide'
    return [
        DiscoveryQuery(f"{context.product_service} {intent} {industry} {country}", industry, country)
        for industry in context.industries
        for country in context.countries
    ]


def _dedupe_key(name: str, country: str) -> tuple[str, str]:
    return (' '.join(name.lower().split()), country.strip().lower())


class DiscoveryStage(Stage):
    """Places search -> business entities."""

    name = RunPhase.DISCOVERY.value

    def __init__(
        self,
        repository: ProspectRepository,
        places: PlacesProvider,
        matching: MatchingEngine | None = None,
        results_per_query: int | None = None,
        concurrency: int | None = None,
        budget_seconds: float | None = None,
    ):
        self.repository = repository
        self.places = places
        self.matching = matching
        self.results_per_query = results_per_query or config.DISCOVERY_RESULTS_PER_PROFILE
        self.concurrency = concurrency or config.STAGE_MAX_CONCURRENCY
        self.budget_seconds = (
            budget_seconds if budget_seconds is not None else config.STAGE_SOFT_BUDGET_SECONDS
        )

    async def run(self, run_id: str, context: SearchContext) -> dict[str, Any]:
        queries = build_discovery_queries(context)
        budget = SoftBudget(self.budget_seconds)
        skipped = 0

        async def search(query: str, country: str) -> list[PlaceResult] | None:
            nonlocal skipped
            if budget.exhausted:
                skipped += 1
                return None
            return await self.places.search_places(query, country, self.results_per_query)

        results = await bounded_gather(
            [lambda q=q: search(q.text, q.country) for q in queries],
            limit=self.concurrency,
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, BaseException)]
        attempted = len(queries) - skipped
        if attempted and len(errors) == attempted:
            # every attempted query failed
            raise errors[0]
        for error in errors:
            logger.warning('discovery.query_failed', error=str(error), error_type=type(error).__name__)

        existing = await self.repository.list_entities(run_id, kind=EntityKind.BUSINESS)
        seen = {_dedupe_key(e.name, e.attr('country')) for e in existing}

        batch = PartialSuccessResult()
        for query, places in zip(queries, results):
            if not places or isinstance(places, BaseException):
                continue
            for place in places:
                key = _dedupe_key(place.name, query.country)
                if key in seen:
                    continue
                seen.add(key)
                try:
                    entity = Entity(
                        run_id=run_id,
                        kind=EntityKind.BUSINESS,
                        name=place.name,
                        attributes={
                            'industry': query.industry,
                            'country': query.country,
                            'description': place.category,
                            'website': place.website,
                            'address': place.address,
                            'phone': place.phone,
                            'city': place.city,
                            'rating': place.rating,
                        },
                    )
                except PydanticValidationError as e:
                    batch.add_failure(ValidationError(f"Rejected business: {e}"), data={'name': place.name})
                    continue
                await self.repository.insert_entity(entity)
                batch.add_success(item_id=entity.id)

        if batch.success_count and self.matching is not None:
            await self.matching.on_entities_inserted(run_id)

        summary = {
            'businesses': batch.success_count,
            'rejected': batch.failure_count,
            'queries': len(queries),
            'failed_queries': len(errors),
            'skipped_queries': skipped,
            **budget.summary(),
        }
        logger.info('discovery.finished', **summary)
        return summary

