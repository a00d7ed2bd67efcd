"""
Deterministic heuristic scoring (matching tier 3).

Pure functions over structured inputs; no I/O. Every score is
BASE_SCORE + bonuses, capped at MAX_SCORE, so a heuristic assignment always
lands in [60, 100]. Ties go to the lower-ranked (more primary) profile.
"""

import json
import re
from dataclasses import dataclass
from typing import Any

from ..models import Entity, EntityKind, SegmentProfile

BASE_SCORE = 60
MAX_SCORE = 100

INDUSTRY_BONUS = 30
COMPANY_SIZE_BONUS = 20
KEYWORD_BONUS = 2

# Sector words counted when present in both the business and the profile
SECTOR_WORDS = (
    'technology',
    'software',
    'service',
    'manufacturing',
    'retail',
    'healthcare',
    'finance',
)

# Role groups: a title and a profile both hitting a group is a strong match
ROLE_KEYWORDS: dict[str, tuple[str, ...]] = {
    'c-level': (
        'ceo', 'chief executive', 'cto', 'chief technology', 'cmo', 'chief marketing',
        'cfo', 'chief financial', 'chief', 'president',
    ),
    'vp': ('vice president', 'vp', 'senior vice'),
    'director': ('director', 'head of', 'senior director'),
    'manager': ('manager', 'senior manager', 'team lead'),
    'technical': ('engineer', 'developer', 'tech', 'technology', 'cto', 'architect', 'devops'),
    'marketing': ('marketing', 'cmo', 'brand', 'growth', 'digital'),
    'sales': ('sales', 'business development', 'account', 'revenue'),
    'finance': ('finance', 'cfo', 'accounting', 'controller'),
    'operations': ('operations', 'ops', 'supply chain', 'logistics'),
    'hr': ('human resources', 'hr', 'people', 'talent'),
}

ROLE_BOTH_BONUS = 10
ROLE_ONE_SIDED_BONUS = 5
C_LEVEL_BOOST = 15
EXECUTIVE_BOOST = 10
MANAGER_BOOST = 10


@dataclass(frozen=True)
class HeuristicMatch:
    """Result of heuristic scoring for one entity."""

    profile_id: str
    bonus: int
    score: int


def _contains(text: str, keyword: str) -> bool:
    return re.search(rf'\b{re.escape(keyword)}\b', text) is not None


def _profile_text(profile: SegmentProfile) -> str:
    return json.dumps(
        [profile.title, profile.demographics, profile.characteristics, profile.behaviors],
        default=str,
    ).lower()


def _lower(value: Any) -> str:
    return str(value).strip().lower() if value is not None else ''


def score_business(attributes: dict[str, Any], profile: SegmentProfile) -> int:
    """Bonus points for a business against a business profile."""
    bonus = 0
    industry = _lower(attributes.get('industry'))
    profile_industry = _lower(profile.demographics.get('industry'))
    if industry and profile_industry and (
        industry == profile_industry or industry in profile_industry or profile_industry in industry
    ):
        bonus += INDUSTRY_BONUS

    size = _lower(attributes.get('size'))
    company_size = _lower(profile.demographics.get('company_size'))
    if size and company_size:
        lower_bound = company_size.split('-')[0].rstrip('+').strip()
        if lower_bound and lower_bound in size:
            bonus += COMPANY_SIZE_BONUS

    description = ' '.join(
        _lower(attributes.get(k)) for k in ('description', 'industry', 'category')
    )
    profile_text = _profile_text(profile)
    for word in SECTOR_WORDS:
        if word in description and word in profile_text:
            bonus += KEYWORD_BONUS
    return bonus


def score_contact(title: str, profile: SegmentProfile) -> int:
    """Bonus points for a contact's job title against a contact profile."""
    title = _lower(title)
    profile_title = _lower(profile.title)
    bonus = 0

    for keywords in ROLE_KEYWORDS.values():
        title_hit = any(_contains(title, k) for k in keywords)
        profile_hit = any(_contains(profile_title, k) for k in keywords)
        if title_hit and profile_hit:
            bonus += ROLE_BOTH_BONUS
        elif title_hit or profile_hit:
            bonus += ROLE_ONE_SIDED_BONUS

    if 'c-level' in profile_title and any(_contains(title, k) for k in ROLE_KEYWORDS['c-level']):
        bonus += C_LEVEL_BOOST
    if 'executive' in profile_title and (_contains(title, 'vp') or _contains(title, 'director')):
        bonus += EXECUTIVE_BOOST
    if 'manager' in profile_title and _contains(title, 'manager'):
        bonus += MANAGER_BOOST
    return bonus


def heuristic_score(bonus: int) -> int:
    return min(MAX_SCORE, BASE_SCORE + max(0, bonus))


def best_heuristic_match(entity: Entity, profiles: list[SegmentProfile]) -> HeuristicMatch | None:
    """
    Pick the best profile of the entity's kind.

    Returns None only when no profile of that kind exists.
    """
    candidates = [p for p in profiles if p.kind == entity.kind]
    if not candidates:
        return None

    scored = []
    for profile in candidates:
        if entity.kind == EntityKind.BUSINESS:
            bonus = score_business(entity.attributes, profile)
        else:
            bonus = score_contact(entity.attr('title'), profile)
        scored.append((bonus, profile))

    bonus, best = min(scored, key=lambda item: (-item[0], item[1].rank))
    return HeuristicMatch(profile_id=best.id, bonus=bonus, score=heuristic_score(bonus))


def similarity_to_score(similarity: float) -> int:
    """Map a similarity in [0, 1] to a match score in [60, 100]."""
    return max(BASE_SCORE, min(MAX_SCORE, round(similarity * 100)))


def confidence_to_score(confidence: float) -> int:
    """
    Map a generative confidence to a match score in [60, 100].

    Accepts either a 0-1 fraction or a 0-100 percentage.
    """
    value = confidence * 100 if 0 <= confidence <= 1 else confidence
    return max(BASE_SCORE, min(MAX_SCORE, round(value)))


# Similarities carry float noise (0.93 - 0.90 > 0.03); gaps are compared at this precision.
GAP_PRECISION = 6


def is_clear_winner(top: float, runner_up: float, tie_threshold: float) -> bool:
    """True when the top similarity beats the runner-up by more than tie_threshold."""
    return round(top - runner_up, GAP_PRECISION) > tie_threshold
