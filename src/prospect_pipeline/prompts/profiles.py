"""
Segment-profile generation prompts and response models.

Generates three ranked business profiles or three ranked contact profiles for
a search context.
"""

from pydantic import BaseModel, Field


# =============================================================================
# Response Models for Structured Output
# =============================================================================


class GeneratedProfile(BaseModel):
    """One generated segment profile."""

    rank: int = Field(..., description='1 for the primary segment, then 2 and 3.')
    title: str = Field(
        ...,
        description='Specific, descriptive segment title. For contact profiles, a job role '
        '(e.g. "Chief Technology Officer" or "Head of Procurement").',
    )
    industry: str = Field(default='', description='Industry the segment belongs to.')
    company_size: str = Field(
        default='',
        description='Employee range as "min-max", e.g. "200-1000". Business profiles only.',
    )
    level: str = Field(
        default='',
        description='Seniority: "executive", "director" or "manager". Contact profiles only.',
    )
    department: str = Field(default='', description='Department. Contact profiles only.')
    pain_points: list[str] = Field(default_factory=list)
    motivations: list[str] = Field(default_factory=list)
    decision_factors: list[str] = Field(default_factory=list)
    buying_process: str = Field(default='')
    match_score: int = Field(default=80, description='Estimated fit 0-100.')


class GeneratedProfileSet(BaseModel):
    """Exactly three profiles ranked 1 to 3."""

    profiles: list[GeneratedProfile] = Field(..., description='Exactly three profiles.')


# =============================================================================
# Prompt Templates
# =============================================================================


PROFILE_SYSTEM_PROMPT = """You are a B2B go-to-market strategist.

Create exactly THREE distinct target-segment profiles for the search below,
ranked 1 (best fit) to 3.

Rules:
- Titles must be specific and non-overlapping; never reuse a title.
- Ground every profile in the given industries and countries.
- Business profiles describe COMPANIES (industry, company size, buying behavior).
- Contact profiles describe PEOPLE inside those companies (role, level, department)."""


PROFILE_USER_PROMPT_TEMPLATE = """<search>
Product/Service: {product_service}
Segment: {segment}
Industries: {industries}
Countries: {countries}
</search>

Profile kind: {kind}

Generate the three {kind} profiles."""


def build_profile_prompt(
    product_service: str,
    segment: str,
    industries: list[str],
    countries: list[str],
    kind: str,
) -> list[dict[str, str]]:
    """
    Build messages for profile generation.

    Returns:
        List of message dicts for OpenAI API
    """
    return [
        {'role': 'system', 'content': PROFILE_SYSTEM_PROMPT},
        {
            'role': 'user',
            'content': PROFILE_USER_PROMPT_TEMPLATE.format(
                product_service=product_service,
                segment=segment,
                industries=', '.join(industries),
                countries=', '.join(countries),
                kind=kind,
            ),
        },
    ]
