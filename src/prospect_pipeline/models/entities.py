"""
Entity models for the Prospect Pipeline.

- Entity: a discovered business or contact belonging to one Run
- SegmentProfile: a target-segment profile ("persona") entities are mapped to
- MarketInsights: one market analysis payload per Run

Entities and profiles come in two kinds (business, contact) and are only ever
matched within the same kind.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from ..utils import new_id, utc_now


class EntityKind(str, Enum):
    """Kind shared by entities and segment profiles."""

    BUSINESS = 'business'
    CONTACT = 'contact'


class MatchTier(str, Enum):
    """Which matching strategy produced an assignment."""

    SIMILARITY = 'similarity'
    TIE_BREAK = 'tie_break'
    HEURISTIC = 'heuristic'


class Entity(BaseModel):
    """
    A discovered business or contact.

    profile_id / match_score / match_tier are owned by the matching engine and
    written at most once per mapping cycle (conditional on profile_id being
    unset).
    """

    id: str = Field(default_factory=new_id)
    run_id: str
    kind: EntityKind
    name: str = Field(..., description='Business name or contact full name')

    # business: industry, size, description, country, website, address
    # contact: title, department, seniority, company, business_id, email, linkedin
    attributes: dict[str, Any] = Field(default_factory=dict)

    embedding: list[float] | None = Field(default=None, description='Descriptor embedding')
    profile_id: str | None = None
    match_score: int = Field(default=0, ge=0, le=100)
    match_tier: MatchTier | None = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator('name')
    @classmethod
    def _require_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError('entity name must not be blank')
        return value

    def attr(self, key: str, default: str = '') -> str:
        """String attribute lookup, tolerant of None and non-string values."""
        value = self.attributes.get(key)
        if value is None:
            return default
        return str(value)

    def descriptor(self) -> str:
        """Text used for embedding and for generative tie-breaking."""
        if self.kind == EntityKind.BUSINESS:
            parts = [
                self.name,
                self.attr('industry'),
                self.attr('size'),
                self.attr('country'),
                self.attr('description'),
            ]
        else:
            parts = [
                self.name,
                self.attr('title'),
                self.attr('department'),
                self.attr('seniority'),
                self.attr('company'),
            ]
        return ' | '.join(p for p in parts if p)


class SegmentProfile(BaseModel):
    """
    A target-segment profile ("persona").

    Three business and three contact profiles are created per Run by the
    persona stage; rank 1 is the primary segment.
    """

    id: str = Field(default_factory=new_id)
    run_id: str
    kind: EntityKind
    rank: int = Field(..., ge=1)
    title: str
    demographics: dict[str, Any] = Field(default_factory=dict)
    characteristics: dict[str, Any] = Field(default_factory=dict)
    behaviors: dict[str, Any] = Field(default_factory=dict)
    match_score: int = Field(default=0, ge=0, le=100, description='Estimated segment fit')
    embedding: list[float] | None = None
    created_at: datetime = Field(default_factory=utc_now)

    def descriptor(self) -> str:
        """Text used for embedding and for generative tie-breaking."""
        parts = [self.title]
        for section in (self.demographics, self.characteristics, self.behaviors):
            for key, value in section.items():
                if isinstance(value, list):
                    value = ', '.join(str(v) for v in value)
                if value:
                    parts.append(f"{key}: {value}")
        return ' | '.join(parts)


class MarketInsights(BaseModel):
    """Market analysis for a Run. One row per Run, upserted."""

    run_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    is_fallback: bool = False
    created_at: datetime = Field(default_factory=utc_now)
