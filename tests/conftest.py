"""
Pytest configuration and shared fixtures.

Key fixtures:
- clock: FakeClock shared by the in-memory stores, cache and lock registry
- repository / job_store: in-memory ProspectRepository and JobStore
- search_context / run: a valid search and a persisted Run for it
- places / people / generator / analyst / embedder / chooser: scripted
  collaborators standing in for Serper and OpenAI

No API keys, database or network are needed; live clients are never built.
"""

import hashlib
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio

# Add src to path for imports
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

# Load environment variables
from dotenv import load_dotenv

env_file = Path(__file__).parent.parent / '.env'
if env_file.exists():
    load_dotenv(env_file)

from job_dispatcher import InMemoryJobStore
from prospect_pipeline.background import TaskTracker
from prospect_pipeline.cache import ResultCache
from prospect_pipeline.clients.providers import PersonResult, PlaceResult, TieBreakChoice
from prospect_pipeline.models import EntityKind, Run, SearchContext, SegmentProfile
from prospect_pipeline.pipeline.fallbacks import build_fallback_profiles
from prospect_pipeline.repository import InMemoryRepository


# =============================================================================
# Clock
# =============================================================================


class FakeClock:
    """Manually advanced clock. Call for a datetime, .monotonic() for seconds."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        self._origin = self.now

    def __call__(self) -> datetime:
        return self.now

    def monotonic(self) -> float:
        return (self.now - self._origin).total_seconds()

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# Stores
# =============================================================================


@pytest.fixture
def repository(clock) -> InMemoryRepository:
    return InMemoryRepository(clock=clock)


@pytest.fixture
def job_store(clock) -> InMemoryJobStore:
    return InMemoryJobStore(clock=clock)


@pytest.fixture
def cache(clock) -> ResultCache:
    return ResultCache(ttl_seconds=600, max_entries=100, clock=clock)


@pytest.fixture
def tracker() -> TaskTracker:
    return TaskTracker()


# =============================================================================
# Runs
# =============================================================================


@pytest.fixture
def search_context() -> SearchContext:
    return SearchContext(
        product_service='Industrial IoT sensors',
        industries=['Manufacturing'],
        countries=['Germany'],
        segment='customers',
    )


@pytest_asyncio.fixture
async def run(repository, search_context) -> Run:
    run = Run(owner_id='user-1', context=search_context.model_dump(mode='json'))
    await repository.create_run(run)
    return run


# =============================================================================
# Collaborators
# =============================================================================


def keyword_vector(text: str, dims: int = 16) -> list[float]:
    """Deterministic bag-of-words embedding; shared words -> higher cosine."""
    vector = [0.0] * dims
    for word in text.lower().replace('|', ' ').split():
        digest = hashlib.sha256(word.encode()).digest()
        vector[digest[0] % dims] += 1.0
    return vector


class FakeEmbedder:
    def __init__(self, vectors: dict[str, list[float]] | None = None):
        self.vectors = vectors or {}
        self.calls: list[list[str]] = []

    async def create_embeddings_batch(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        return [self.vectors.get(t) or keyword_vector(t) for t in texts]


class FakePlaces:
    def __init__(self, names: list[str] | None = None, error: Exception | None = None):
        self.names = names if names is not None else ['Acme Fabrication GmbH', 'Borg Werke AG']
        self.error = error
        self.calls: list[tuple[str, str, int]] = []

    async def search_places(self, query: str, country: str, limit: int = 10) -> list[PlaceResult]:
        self.calls.append((query, country, limit))
        if self.error is not None:
            raise self.error
        return [PlaceResult(name=n, category='Manufacturing plant') for n in self.names[:limit]]


class FakePeople:
    def __init__(self, titles: list[str] | None = None):
        self.titles = titles or ['Chief Technology Officer', 'Procurement Manager']
        self.calls: list[str] = []

    async def search_people(
        self,
        company: str,
        country: str,
        limit: int = 10,
        titles: list[str] | None = None,
    ) -> list[PersonResult]:
        self.calls.append(company)
        return [
            PersonResult(name=f"{title.split()[0]} Person {i}", title=title, company=company)
            for i, title in enumerate(self.titles[:limit])
        ]


class FakeGenerator:
    """Returns the deterministic profile set; optional scripted failures first."""

    def __init__(self, failures: list[Exception] | None = None):
        self.failures = list(failures or [])
        self.calls = 0

    async def generate_profiles(
        self, run_id: str, context: SearchContext, kind: EntityKind
    ) -> list[SegmentProfile]:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return build_fallback_profiles(run_id, context, kind)


class FakeAnalyst:
    def __init__(self, failures: list[Exception] | None = None):
        self.failures = list(failures or [])
        self.calls = 0

    async def analyze(self, context: SearchContext) -> dict[str, Any]:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return {'summary': f"Market for {context.product_service}", 'tam': '$1B'}


class FakeChooser:
    def __init__(self, pick: int = 0, confidence: float = 0.9, error: Exception | None = None):
        self.pick = pick
        self.confidence = confidence
        self.error = error
        self.calls: list[list[str]] = []

    async def choose_best(
        self, candidates: list[SegmentProfile], description: str
    ) -> TieBreakChoice | None:
        self.calls.append([c.id for c in candidates])
        if self.error is not None:
            raise self.error
        return TieBreakChoice(profile_id=candidates[self.pick].id, confidence=self.confidence)


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def places() -> FakePlaces:
    return FakePlaces()


@pytest.fixture
def people() -> FakePeople:
    return FakePeople()


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def analyst() -> FakeAnalyst:
    return FakeAnalyst()
