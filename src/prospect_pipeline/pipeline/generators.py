"""
OpenAI-backed generative collaborators: segment profiles and market analysis.
"""

from typing import Any

from ..clients.openai_client import OpenAIClient
from ..errors import OpenAIModelError
from ..logging import get_logger
from ..models import EntityKind, SearchContext, SegmentProfile
from ..prompts import GeneratedProfileSet, MarketAnalysis, build_market_prompt, build_profile_prompt

logger = get_logger(__name__)

PROFILES_PER_KIND = 3


class OpenAIProfileGenerator:
    """Generates three ranked SegmentProfiles per kind."""

    def __init__(self, openai_client: OpenAIClient):
        self.openai = openai_client

    async def generate_profiles(
        self, run_id: str, context: SearchContext, kind: EntityKind
    ) -> list[SegmentProfile]:
        messages = build_profile_prompt(
            product_service=context.product_service,
            segment=context.segment.value,
            industries=context.industries,
            countries=context.countries,
            kind=kind.value,
        )
        result = await self.openai.chat_completion_structured(
            messages=messages,
            response_model=GeneratedProfileSet,
            temperature=0.4,
        )

        generated = sorted(result.profiles, key=lambda p: p.rank)[:PROFILES_PER_KIND]
        titles = {p.title.strip().lower() for p in generated if p.title.strip()}
        if len(generated) != PROFILES_PER_KIND or len(titles) != PROFILES_PER_KIND:
            raise OpenAIModelError(
                'Profile generation returned an unusable profile set',
                context={'kind': kind.value, 'count': len(generated), 'unique_titles': len(titles)},
            )

        profiles = []
        for rank, g in enumerate(generated, start=1):
            if kind == EntityKind.BUSINESS:
                demographics = {
                    'industry': g.industry or context.industries[0],
                    'company_size': g.company_size,
                    'geography': ', '.join(context.countries),
                }
            else:
                demographics = {
                    'level': g.level,
                    'department': g.department,
                    'geography': ', '.join(context.countries),
                }
            profiles.append(
                SegmentProfile(
                    run_id=run_id,
                    kind=kind,
                    rank=rank,
                    title=g.title.strip(),
                    match_score=max(0, min(100, g.match_score)),
                    demographics=demographics,
                    characteristics={
                        'pain_points': g.pain_points,
                        'motivations': g.motivations,
                        'decision_factors': g.decision_factors,
                    },
                    behaviors={'buying_process': g.buying_process},
                )
            )
        logger.info('profiles.generated', run_id=run_id, kind=kind.value, count=len(profiles))
        return profiles


class OpenAIMarketAnalyst:
    """Produces a structured market analysis payload."""

    def __init__(self, openai_client: OpenAIClient):
        self.openai = openai_client

    async def analyze(self, context: SearchContext) -> dict[str, Any]:
        messages = build_market_prompt(
            product_service=context.product_service,
            segment=context.segment.value,
            industries=context.industries,
            countries=context.countries,
        )
        analysis = await self.openai.chat_completion_structured(
            messages=messages,
            response_model=MarketAnalysis,
            temperature=0.2,
        )
        return analysis.model_dump()
