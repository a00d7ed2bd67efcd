"""
Deterministic fallback content for generative stages.

When profile generation or market analysis cannot produce output (provider
down, retries exhausted, timeout), these builders synthesize placeholder
content from the search context so downstream stages keep running. Output
depends only on the inputs: the same context always yields the same content.
"""

from typing import Any

from ..models import EntityKind, SearchContext, Segment, SegmentProfile

_BUSINESS_TIERS = {
    1: {
        'adopter': 'Large Enterprise',
        'provider': 'Tier-1 Integrators',
        'company_size': '1000-5000+',
        'revenue': '$100M-$1B+',
        'budget': '$500k-$2M',
        'timeline': '3-6 months',
        'channels': ['Executive briefings', 'RFP/RFQ', 'Industry events'],
        'match_score': 92,
    },
    2: {
        'adopter': 'Mid-Market',
        'provider': 'Regional Specialists',
        'company_size': '200-1000',
        'revenue': '$20M-$100M',
        'budget': '$150k-$500k',
        'timeline': '2-4 months',
        'channels': ['Demos', 'Case studies', 'Email'],
        'match_score': 86,
    },
    3: {
        'adopter': 'SMB',
        'provider': 'Boutique Providers',
        'company_size': '10-200',
        'revenue': '$1M-$20M',
        'budget': '$25k-$150k',
        'timeline': '1-3 months',
        'channels': ['Webinars', 'Inbound content', 'Live chat'],
        'match_score': 80,
    },
}

_CONTACT_TIERS = {
    1: {
        'title': 'C-Level Executive (Chief Technology Officer)',
        'level': 'executive',
        'department': 'Technology',
        'experience': '15+ years',
        'influence': 95,
        'match_score': 92,
    },
    2: {
        'title': 'Director of Operations',
        'level': 'director',
        'department': 'Operations',
        'experience': '10+ years',
        'influence': 80,
        'match_score': 86,
    },
    3: {
        'title': 'Procurement Manager',
        'level': 'manager',
        'department': 'Procurement',
        'experience': '8+ years',
        'influence': 65,
        'match_score': 80,
    },
}


def _business_profile(run_id: str, context: SearchContext, rank: int) -> SegmentProfile:
    tier = _BUSINESS_TIERS[rank]
    industry = context.industries[0]
    geography = ', '.join(context.countries)
    customers = context.segment == Segment.CUSTOMERS

    if customers:
        title = f"{tier['adopter']} {industry} Adopters of {context.product_service}"
        characteristics = {
            'pain_points': ['Integration complexity', 'Legacy constraints', 'Cost of ownership'],
            'motivations': ['ROI', 'Efficiency', 'Scalability'],
            'challenges': ['Change management', 'Talent gaps', 'Security/compliance'],
            'decision_factors': ['Total cost', 'Integration ease', 'Security', 'Time-to-value'],
        }
        buying_process = 'Committee-based evaluation with pilot'
    else:
        title = f"{tier['provider']} for {context.product_service} in {industry}"
        characteristics = {
            'pain_points': ['Lead volume consistency', 'Pricing pressure', 'Competitive differentiation'],
            'motivations': ['Revenue growth', 'Win rate', 'Partnerships'],
            'challenges': ['Brand visibility', 'Solution fit', 'Delivery capacity'],
            'decision_factors': ['Case studies', 'Capabilities', 'Coverage', 'Pricing model'],
        }
        buying_process = 'Solution packaging and RFP participation'

    return SegmentProfile(
        run_id=run_id,
        kind=EntityKind.BUSINESS,
        rank=rank,
        title=title,
        match_score=tier['match_score'],
        demographics={
            'industry': industry,
            'company_size': tier['company_size'],
            'geography': geography,
            'revenue': tier['revenue'],
        },
        characteristics=characteristics,
        behaviors={
            'buying_process': buying_process,
            'decision_timeline': tier['timeline'],
            'budget_range': tier['budget'],
            'preferred_channels': list(tier['channels']),
        },
    )


def _contact_profile(run_id: str, context: SearchContext, rank: int) -> SegmentProfile:
    tier = _CONTACT_TIERS[rank]
    return SegmentProfile(
        run_id=run_id,
        kind=EntityKind.CONTACT,
        rank=rank,
        title=tier['title'],
        match_score=tier['match_score'],
        demographics={
            'level': tier['level'],
            'department': tier['department'],
            'experience': tier['experience'],
            'geography': ', '.join(context.countries),
        },
        characteristics={
            'responsibilities': [f"Evaluate {context.product_service} for {context.industries[0]}"],
            'influence': tier['influence'],
        },
        behaviors={
            'decision_making': 'Final approver' if rank == 1 else 'Evaluator and recommender',
        },
    )


def build_fallback_profiles(
    run_id: str, context: SearchContext, kind: EntityKind
) -> list[SegmentProfile]:
    """Three deterministic profiles of the given kind, ranks 1 to 3."""
    builder = _business_profile if kind == EntityKind.BUSINESS else _contact_profile
    return [builder(run_id, context, rank) for rank in (1, 2, 3)]


def build_fallback_market_insights(context: SearchContext) -> dict[str, Any]:
    """Deterministic market analysis payload."""
    countries = ', '.join(context.countries[:3])
    return {
        'tam': {'value': '$2,400M', 'growth': '+12%', 'description': 'Total Addressable Market'},
        'sam': {'value': '$850M', 'growth': '+18%', 'description': 'Serviceable Addressable Market'},
        'som': {'value': '$125M', 'growth': '+24%', 'description': 'Serviceable Obtainable Market'},
        'competitors': [
            {'name': 'Competitor A', 'market_share': 35, 'revenue': '$420M', 'growth': '+8%'},
            {'name': 'Competitor B', 'market_share': 28, 'revenue': '$336M', 'growth': '+12%'},
            {'name': 'Competitor C', 'market_share': 15, 'revenue': '$180M', 'growth': '+5%'},
            {'name': 'Others', 'market_share': 22, 'revenue': '$264M', 'growth': '+15%'},
        ],
        'trends': [
            {'trend': 'AI-Powered Solutions', 'impact': 'High', 'growth': '+45%'},
            {'trend': 'Remote Work Enablement', 'impact': 'Medium', 'growth': '+32%'},
            {'trend': 'Data Privacy Compliance', 'impact': 'High', 'growth': '+28%'},
        ],
        'opportunities': [
            {'title': 'Enterprise expansion', 'rationale': 'High budget buyers, faster ROI'},
            {'title': 'Mid-market automation', 'rationale': 'Strong growth in automation demand'},
        ],
        'summary': (
            f"{context.product_service} {context.segment.value} opportunity estimated at "
            f"TAM $2,400M with favorable growth across {countries}"
        ),
        'methodology': 'Deterministic placeholder; generative analysis unavailable',
    }
