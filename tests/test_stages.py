"""
Tests for the pipeline stages with scripted providers.

Tests cover:
- PersonaStage: 3 profiles per kind, idempotent re-run, fallback content,
  profile embedding job requested
- DiscoveryStage: query construction, dedupe, rejected names, all-failed
  queries raise, partial failure tolerated, matching hook invoked
- ContactEnricher / DecisionMakerStage: title inference, dedupe, budget
  offload to dm_discovery_batch jobs
- MarketStage: analyst payload and fallback payload
"""

from unittest.mock import AsyncMock

import pytest

from conftest import FakePeople, FakePlaces
from prospect_pipeline.clients.providers import PlaceResult
from prospect_pipeline.errors import ProviderRateLimitError, ProviderUnavailableError
from prospect_pipeline.models import Entity, EntityKind, JobType, SearchContext
from prospect_pipeline.pipeline.fallbacks import build_fallback_profiles
from prospect_pipeline.pipeline.stages import (
    ContactEnricher,
    DecisionMakerStage,
    DiscoveryStage,
    MarketStage,
    PersonaStage,
    build_discovery_queries,
)
from prospect_pipeline.pipeline.stages.decision_makers import (
    infer_department,
    infer_influence,
    infer_level,
)


async def add_business(repository, run, name, country='Germany'):
    entity = Entity(
        run_id=run.id,
        kind=EntityKind.BUSINESS,
        name=name,
        attributes={'industry': 'Manufacturing', 'country': country},
    )
    return await repository.insert_entity(entity)


def queued(job_store, job_type):
    return [j for j in job_store.jobs.values() if j.type == job_type.value]


# =============================================================================
# Personas
# =============================================================================


class TestPersonaStage:
    """Segment profile generation."""

    @pytest.mark.asyncio
    async def test_creates_three_profiles_per_kind(
        self, repository, job_store, generator, run, search_context
    ):
        stage = PersonaStage(repository, generator, job_store)

        result = await stage.run(run.id, search_context)

        profiles = await repository.list_profiles(run.id)
        assert result == {'profiles_inserted': 6, 'fallback': False}
        assert sorted((p.kind.value, p.rank) for p in profiles) == [
            ('business', 1), ('business', 2), ('business', 3),
            ('contact', 1), ('contact', 2), ('contact', 3),
        ]
        assert len(queued(job_store, JobType.COMPUTE_PROFILE_EMBEDDINGS)) == 1

    @pytest.mark.asyncio
    async def test_rerun_does_not_duplicate(self, repository, job_store, generator, run, search_context):
        stage = PersonaStage(repository, generator, job_store)
        await stage.run(run.id, search_context)

        result = await stage.run(run.id, search_context)

        assert result['profiles_inserted'] == 0
        assert generator.calls == 2
        assert len(await repository.list_profiles(run.id)) == 6

    @pytest.mark.asyncio
    async def test_fallback_fills_only_missing_kind(self, repository, run, search_context):
        generator = AsyncMock()
        generator.generate_profiles.side_effect = lambda run_id, context, kind: (
            build_fallback_profiles(run_id, context, kind) if kind == EntityKind.BUSINESS else []
        )
        stage = PersonaStage(repository, generator)
        await stage.run(run.id, search_context)

        result = await stage.fallback(run.id, search_context)

        assert result == {'profiles_inserted': 3, 'fallback': True}
        assert len(await repository.list_profiles(run.id, EntityKind.CONTACT)) == 3

    @pytest.mark.asyncio
    async def test_fallback_profiles_reflect_context(self, repository, generator, run, search_context):
        stage = PersonaStage(repository, generator)

        await stage.fallback(run.id, search_context)

        business = await repository.list_profiles(run.id, EntityKind.BUSINESS)
        assert all('Manufacturing' in p.title for p in business)
        assert business[0].demographics['geography'] == 'Germany'


# =============================================================================
# Discovery
# =============================================================================


class TestDiscoveryQueries:
    """Query construction per segment."""

    def test_one_query_per_industry_country_pair(self):
        context = SearchContext(
            product_service='CNC machines',
            industries=['Automotive', 'Aerospace'],
            countries=['Germany', 'France'],
        )

        queries = build_discovery_queries(context)

        assert len(queries) == 4
        assert queries[0].text == 'CNC machines need Automotive Germany'
        assert {(q.industry, q.country) for q in queries} == {
            ('Automotive', 'Germany'), ('Automotive', 'France'),
            ('Aerospace', 'Germany'), ('Aerospace', 'France'),
        }

    def test_supplier_intent(self):
        context = SearchContext(
            product_service='CNC machines',
            industries=['Automotive'],
            countries=['Germany'],
            segment='suppliers',
        )

        assert build_discovery_queries(context)[0].text == 'CNC machines sell provide Automotive Germany'


class TestDiscoveryStage:
    """Places search to business entities."""

    @pytest.mark.asyncio
    async def test_inserts_businesses_with_attributes(self, repository, places, run, search_context):
        stage = DiscoveryStage(repository, places, results_per_query=5, concurrency=2)

        result = await stage.run(run.id, search_context)

        businesses = await repository.list_entities(run.id, kind=EntityKind.BUSINESS)
        assert result['businesses'] == 2
        assert {b.name for b in businesses} == {'Acme Fabrication GmbH', 'Borg Werke AG'}
        assert businesses[0].attr('industry') == 'Manufacturing'
        assert businesses[0].attr('country') == 'Germany'
        assert places.calls == [('Industrial IoT sensors need Manufacturing Germany', 'Germany', 5)]

    @pytest.mark.asyncio
    async def test_dedupes_within_and_across_runs_of_stage(self, repository, run, search_context):
        places = FakePlaces(names=['Acme GmbH', 'acme  gmbh', 'Borg AG'])
        stage = DiscoveryStage(repository, places)

        await stage.run(run.id, search_context)
        second = await stage.run(run.id, search_context)

        assert len(await repository.list_entities(run.id)) == 2
        assert second['businesses'] == 0

    @pytest.mark.asyncio
    async def test_blank_names_are_rejected(self, repository, run, search_context):
        stage = DiscoveryStage(repository, FakePlaces(names=['  ', 'Borg AG']))

        result = await stage.run(run.id, search_context)

        assert result['businesses'] == 1
        assert result['rejected'] == 1

    @pytest.mark.asyncio
    async def test_all_queries_failing_raises(self, repository, run, search_context):
        stage = DiscoveryStage(repository, FakePlaces(error=ProviderRateLimitError('429')))

        with pytest.raises(ProviderRateLimitError):
            await stage.run(run.id, search_context)

    @pytest.mark.asyncio
    async def test_partial_query_failure_is_tolerated(self, repository, run):
        context = SearchContext(
            product_service='Sensors', industries=['Manufacturing'], countries=['Germany', 'Austria']
        )
        places = AsyncMock()
        places.search_places.side_effect = lambda query, country, limit: (
            _raise(ProviderUnavailableError('down')) if country == 'Austria' else _places(['Acme'])
        )
        stage = DiscoveryStage(repository, places)

        result = await stage.run(run.id, context)

        assert result['businesses'] == 1
        assert result['failed_queries'] == 1

    @pytest.mark.asyncio
    async def test_exhausted_budget_skips_queries(self, repository, places, run, search_context):
        stage = DiscoveryStage(repository, places, budget_seconds=0)

        result = await stage.run(run.id, search_context)

        assert result['skipped_queries'] == 1
        assert places.calls == []

    @pytest.mark.asyncio
    async def test_matching_hook_called_after_insert(self, repository, places, run, search_context):
        matching = AsyncMock()
        stage = DiscoveryStage(repository, places, matching=matching)

        await stage.run(run.id, search_context)

        matching.on_entities_inserted.assert_awaited_once_with(run.id)


def _raise(error):
    raise error


def _places(names):
    return [PlaceResult(name=n) for n in names]


# =============================================================================
# Decision makers
# =============================================================================


class TestTitleInference:
    @pytest.mark.parametrize(
        'title,level,influence',
        [
            ('Chief Executive Officer (CEO)', 'executive', 95),
            ('VP Engineering', 'executive', 95),
            ('Head of Procurement', 'director', 80),
            ('Plant Manager', 'manager', 65),
            ('Analyst', 'individual', 45),
        ],
    )
    def test_level_and_influence(self, title, level, influence):
        assert infer_level(title) == level
        assert infer_influence(title) == influence

    @pytest.mark.parametrize(
        'title,department',
        [
            ('Chief Technology Officer', 'Technology'),
            ('Sales Director', 'Sales & Marketing'),
            ('Finance Manager', 'Finance'),
            ('Director of Operations', 'Operations'),
            ('HR Business Partner', 'Human Resources'),
            ('Managing Partner', 'General Management'),
            ('Business Development Manager', 'Sales & Marketing'),
            ('Software Development Lead', 'Technology'),
            ('Head of IT', 'Technology'),
            ('Developer Relations', 'Technology'),
            ('Device Procurement Specialist', 'General Management'),
            ('Shopsmith Owner', 'General Management'),
        ],
    )
    def test_department(self, title, department):
        assert infer_department(title) == department


class TestContactEnricher:
    """People search per business."""

    @pytest.mark.asyncio
    async def test_contacts_linked_to_business(self, repository, people, run):
        business = await add_business(repository, run, 'Acme Fabrication GmbH')
        enricher = ContactEnricher(repository, people, contacts_per_business=5)

        result = await enricher.enrich(run.id, [business], concurrency=2)

        contacts = await repository.list_entities(run.id, kind=EntityKind.CONTACT)
        assert result.contacts.success_count == 2
        assert result.processed == [business.id]
        assert {c.attr('business_id') for c in contacts} == {business.id}
        assert {c.attr('seniority') for c in contacts} == {'executive', 'manager'}
        assert all(c.attr('company') == 'Acme Fabrication GmbH' for c in contacts)

    @pytest.mark.asyncio
    async def test_profile_titles_passed_to_search(self, repository, run, search_context, generator):
        await PersonaStage(repository, generator).run(run.id, search_context)
        business = await add_business(repository, run, 'Acme')
        people = AsyncMock()
        people.search_people.return_value = []

        await ContactEnricher(repository, people).enrich(run.id, [business], concurrency=1)

        titles = people.search_people.await_args.kwargs['titles']
        assert 'Procurement Manager' in titles

    @pytest.mark.asyncio
    async def test_rerun_does_not_duplicate_contacts(self, repository, people, run):
        business = await add_business(repository, run, 'Acme')
        enricher = ContactEnricher(repository, people)

        await enricher.enrich(run.id, [business], concurrency=1)
        second = await enricher.enrich(run.id, [business], concurrency=1)

        assert second.contacts.success_count == 0
        assert len(await repository.list_entities(run.id, kind=EntityKind.CONTACT)) == 2

    @pytest.mark.asyncio
    async def test_business_failure_collected(self, repository, run):
        ok = await add_business(repository, run, 'Acme')
        bad = await add_business(repository, run, 'Borg')
        people = FakePeople()
        original = people.search_people

        async def flaky(company, country, limit=10, titles=None):
            if company == 'Borg':
                raise ProviderUnavailableError('down')
            return await original(company, country, limit, titles)

        people.search_people = flaky

        result = await ContactEnricher(repository, people).enrich(run.id, [ok, bad], concurrency=2)

        assert result.processed == [ok.id]
        assert len(result.errors) == 1


class TestDecisionMakerStage:
    """Stage-level behaviour over the enricher."""

    @pytest.mark.asyncio
    async def test_skips_businesses_with_contacts(self, repository, people, run, search_context):
        first = await add_business(repository, run, 'Acme')
        enricher = ContactEnricher(repository, people)
        await enricher.enrich(run.id, [first], concurrency=1)
        await add_business(repository, run, 'Borg')
        stage = DecisionMakerStage(repository, enricher)

        result = await stage.run(run.id, search_context)

        assert result['businesses_processed'] == 1
        assert people.calls == ['Acme', 'Borg']

    @pytest.mark.asyncio
    async def test_all_businesses_failing_raises(self, repository, run, search_context):
        await add_business(repository, run, 'Acme')
        people = AsyncMock()
        people.search_people.side_effect = ProviderRateLimitError('429')
        stage = DecisionMakerStage(repository, ContactEnricher(repository, people))

        with pytest.raises(ProviderRateLimitError):
            await stage.run(run.id, search_context)

    @pytest.mark.asyncio
    async def test_exhausted_budget_offloads_batches(
        self, repository, people, job_store, run, search_context
    ):
        businesses = [await add_business(repository, run, f"Biz {i}") for i in range(7)]
        stage = DecisionMakerStage(
            repository, ContactEnricher(repository, people), job_store,
            budget_seconds=0, batch_size=5,
        )

        result = await stage.run(run.id, search_context)

        batches = queued(job_store, JobType.DM_DISCOVERY_BATCH)
        assert result['batches_enqueued'] == 2
        assert people.calls == []
        assert [len(j.payload['business_ids']) for j in batches] == [5, 2]
        assert {i for j in batches for i in j.payload['business_ids']} == {b.id for b in businesses}


# =============================================================================
# Market insights
# =============================================================================


class TestMarketStage:
    @pytest.mark.asyncio
    async def test_stores_analyst_payload(self, repository, analyst, run, search_context):
        await MarketStage(repository, analyst).run(run.id, search_context)

        insights = await repository.get_market_insights(run.id)
        assert insights.payload['summary'] == 'Market for Industrial IoT sensors'
        assert insights.is_fallback is False

    @pytest.mark.asyncio
    async def test_fallback_payload(self, repository, analyst, run, search_context):
        await MarketStage(repository, analyst).fallback(run.id, search_context)

        insights = await repository.get_market_insights(run.id)
        assert insights.is_fallback is True
        assert 'Germany' in insights.payload['summary']
        assert {'tam', 'sam', 'som'} <= set(insights.payload)
