"""
Decision-maker stage: find contacts at discovered businesses.

ContactEnricher does the work for a set of businesses and is shared with the
dm_discovery_batch job handler. The stage enriches as many businesses as its
soft budget allows and hands the rest to the job queue in batches.
"""

import re
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from ...clients.providers import PeopleProvider, PersonResult
from ...concurrency import SoftBudget, bounded_gather
from ...config import config
from ...errors import PartialSuccessResult, ValidationError
from ...logging import get_logger
from ...matching import MatchingEngine
from ...matching.scheduler import JobEnqueuer
from ...models import Entity, EntityKind, JobType, RunPhase, SearchContext
from ...repository import ProspectRepository
from .base import Stage

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 5


# =============================================================================
# Title inference
# =============================================================================


_EXECUTIVE = re.compile(r'\b(chief|c[a-z]o|president|founder|vp|vice president)\b')
_DIRECTOR = re.compile(r'\b(director|head of)\b')
_MANAGER = re.compile(r'\b(manager|lead)\b')


def infer_level(title: str) -> str:
    t = title.lower()
    if _EXECUTIVE.search(t):
        return 'executive'
    if _DIRECTOR.search(t):
        return 'director'
    if _MANAGER.search(t):
        return 'manager'
    return 'individual'


def infer_influence(title: str) -> int:
    return {'executive': 95, 'director': 80, 'manager': 65}.get(infer_level(title), 45)


_DEPARTMENTS = (
    # Order matters: business development is sales, any other development is engineering
    (re.compile(r'\bbusiness development\b'), 'Sales & Marketing'),
    (re.compile(r'\b(tech\w*|engineer\w*|developers?|development|dev|devops|software|it)\b'), 'Technology'),
    (re.compile(r'\b(sales|market\w*|growth|revenue|account executive)\b'), 'Sales & Marketing'),
    (re.compile(r'\b(financ\w*|accounting|accountant|controller|treasur\w*)\b'), 'Finance'),
    (re.compile(r'\b(operations?|ops|supply chain|logistics)\b'), 'Operations'),
    (re.compile(r'\b(hr|human resources|people|talent|recruit\w*)\b'), 'Human Resources'),
)


def infer_department(title: str) -> str:
    t = title.lower()
    for pattern, department in _DEPARTMENTS:
        if pattern.search(t):
            return department
    return 'General Management'


def contact_from_person(run_id: str, business: Entity, person: PersonResult) -> Entity:
    """Build a contact entity; raises pydantic ValidationError on a blank name."""
    return Entity(
        run_id=run_id,
        kind=EntityKind.CONTACT,
        name=person.name,
        attributes={
            'title': person.title,
            'department': infer_department(person.title),
            'seniority': infer_level(person.title),
            'influence': infer_influence(person.title),
            'company': business.name,
            'business_id': business.id,
            'country': business.attr('country'),
            'linkedin': person.linkedin,
        },
    )


# =============================================================================
# Enrichment
# =============================================================================


@dataclass
class EnrichmentResult:
    """Outcome of enriching a set of businesses."""

    contacts: PartialSuccessResult = field(default_factory=PartialSuccessResult)
    processed: list[str] = field(default_factory=list)
    remaining: list[str] = field(default_factory=list)
    errors: list[BaseException] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            'contacts': self.contacts.success_count,
            'rejected': self.contacts.failure_count,
            'businesses_processed': len(self.processed),
            'businesses_remaining': len(self.remaining),
            'businesses_failed': len(self.errors),
        }


class ContactEnricher:
    """People search for businesses, persisted as contact entities."""

    def __init__(
        self,
        repository: ProspectRepository,
        people: PeopleProvider,
        matching: MatchingEngine | None = None,
        contacts_per_business: int | None = None,
    ):
        self.repository = repository
        self.people = people
        self.matching = matching
        self.contacts_per_business = contacts_per_business or config.CONTACTS_PER_BUSINESS

    async def enrich(
        self,
        run_id: str,
        businesses: list[Entity],
        concurrency: int,
        budget: SoftBudget | None = None,
    ) -> EnrichmentResult:
        """
        Enrich businesses with bounded concurrency.

        Businesses not started before the budget ran out are returned in
        ``remaining``. Per-business failures are collected, not raised.
        """
        result = EnrichmentResult()
        titles = [p.title for p in await self.repository.list_profiles(run_id, EntityKind.CONTACT)]
        existing = await self.repository.list_entities(run_id, kind=EntityKind.CONTACT)
        seen = {(e.attr('business_id'), e.name.lower()) for e in existing}

        async def enrich_one(business: Entity) -> None:
            if budget is not None and budget.exhausted:
                result.remaining.append(business.id)
                return
            people = await self.people.search_people(
                business.name,
                business.attr('country'),
                limit=self.contacts_per_business,
                titles=titles,
            )
            for person in people:
                key = (business.id, person.name.strip().lower())
                if key in seen:
                    continue
                seen.add(key)
                try:
                    contact = contact_from_person(run_id, business, person)
                except PydanticValidationError as e:
                    result.contacts.add_failure(
                        ValidationError(f"Rejected contact: {e}"),
                        data={'business_id': business.id},
                    )
                    continue
                await self.repository.insert_entity(contact)
                result.contacts.add_success(item_id=contact.id)
            result.processed.append(business.id)

        outcomes = await bounded_gather(
            [lambda b=b: enrich_one(b) for b in businesses],
            limit=concurrency,
            return_exceptions=True,
        )
        for business, outcome in zip(businesses, outcomes):
            if isinstance(outcome, BaseException):
                result.errors.append(outcome)
                logger.warning(
                    'contacts.business_failed',
                    business_id=business.id,
                    error=str(outcome),
                    error_type=type(outcome).__name__,
                )

        if result.contacts.success_count and self.matching is not None:
            await self.matching.on_entities_inserted(run_id)
        return result


class DecisionMakerStage(Stage):
    """Contact enrichment for every business in the run."""

    name = RunPhase.DECISION_MAKERS.value

    def __init__(
        self,
        repository: ProspectRepository,
        enricher: ContactEnricher,
        jobs: JobEnqueuer | None = None,
        concurrency: int | None = None,
        budget_seconds: float | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self.repository = repository
        self.enricher = enricher
        self.jobs = jobs
        self.concurrency = concurrency or config.STAGE_MAX_CONCURRENCY
        self.budget_seconds = (
            budget_seconds if budget_seconds is not None else config.STAGE_SOFT_BUDGET_SECONDS
        )
        self.batch_size = batch_size

    async def run(self, run_id: str, context: SearchContext) -> dict[str, Any]:
        businesses = await self.repository.list_entities(run_id, kind=EntityKind.BUSINESS)
        contacts = await self.repository.list_entities(run_id, kind=EntityKind.CONTACT)
        done = {c.attr('business_id') for c in contacts}
        pending = [b for b in businesses if b.id not in done]

        budget = SoftBudget(self.budget_seconds)
        result = await self.enricher.enrich(run_id, pending, self.concurrency, budget)

        started = len(pending) - len(result.remaining)
        if started and len(result.errors) == started:
            raise result.errors[0]

        batches = await self._offload(run_id, result.remaining)

        summary = {
            **result.to_dict(),
            'businesses_total': len(businesses),
            'batches_enqueued': batches,
            **budget.summary(),
        }
        logger.info('decision_makers.finished', **summary)
        return summary

    async def _offload(self, run_id: str, business_ids: list[str]) -> int:
        if not business_ids:
            return 0
        if self.jobs is None:
            logger.warning('decision_makers.remaining_dropped', count=len(business_ids))
            return 0
        batches = 0
        for i in range(0, len(business_ids), self.batch_size):
            await self.jobs.enqueue(
                JobType.DM_DISCOVERY_BATCH.value,
                {'run_id': run_id, 'business_ids': business_ids[i:i + self.batch_size]},
            )
            batches += 1
        return batches
