"""
Collaborator interfaces for outbound data and generative providers.

The pipeline only depends on these Protocols. Concrete implementations:
- SerperClient (places + people search)
- OpenAIProfileGenerator / OpenAIMarketAnalyst (pipeline/generators.py)
- OpenAIProfileChooser (matching/tie_break.py)
"""

from typing import Any, Protocol

from pydantic import BaseModel, Field

from ..models import EntityKind, SearchContext, SegmentProfile


class PlaceResult(BaseModel):
    """A business returned by a places search."""

    name: str
    address: str = ''
    phone: str = ''
    website: str = ''
    rating: float | None = None
    city: str = ''
    category: str = ''


class PersonResult(BaseModel):
    """A person returned by a people search."""

    name: str
    title: str
    company: str = ''
    linkedin: str = ''
    snippet: str = ''


class TieBreakChoice(BaseModel):
    """A generative chooser's pick among candidate profiles."""

    profile_id: str = Field(..., description='Chosen candidate profile id')
    confidence: float = Field(
        default=0.0, description='Confidence on a 0-1 or 0-100 scale'
    )
    reasoning: str = ''


class PlacesProvider(Protocol):
    async def search_places(self, query: str, country: str, limit: int = 10) -> list[PlaceResult]: ...


class PeopleProvider(Protocol):
    async def search_people(
        self,
        company: str,
        country: str,
        limit: int = 10,
        titles: list[str] | None = None,
    ) -> list[PersonResult]: ...


class ProfileGenerator(Protocol):
    async def generate_profiles(
        self, run_id: str, context: SearchContext, kind: EntityKind
    ) -> list[SegmentProfile]: ...


class MarketAnalyst(Protocol):
    async def analyze(self, context: SearchContext) -> dict[str, Any]: ...


class ProfileChooser(Protocol):
    async def choose_best(
        self, candidates: list[SegmentProfile], description: str
    ) -> TieBreakChoice | None: ...


class Embedder(Protocol):
    async def create_embeddings_batch(self, texts: list[str]) -> list[list[float]]: ...
