"""
Market analysis prompt and response model.
"""

from pydantic import BaseModel, Field


class MarketSize(BaseModel):
    value: str = Field(..., description='Currency value with year context, e.g. "$2.4B (2024)".')
    growth: str = Field(default='', description='Annual growth, e.g. "+12%".')
    description: str = ''


class Competitor(BaseModel):
    name: str
    market_share: float = Field(default=0, description='Percent share, 0-100.')
    revenue: str = ''
    growth: str = ''


class Trend(BaseModel):
    trend: str
    impact: str = Field(default='Medium', description='"High", "Medium" or "Low".')
    growth: str = ''


class Opportunity(BaseModel):
    title: str
    rationale: str


class MarketAnalysis(BaseModel):
    """Structured market analysis for a search."""

    tam: MarketSize
    sam: MarketSize
    som: MarketSize
    competitors: list[Competitor] = Field(default_factory=list)
    trends: list[Trend] = Field(default_factory=list)
    opportunities: list[Opportunity] = Field(default_factory=list)
    summary: str
    methodology: str = ''


MARKET_SYSTEM_PROMPT = (
    'You are an equity-research grade market analyst. '
    'Return rigorous analysis with numeric values carrying currency and year context.'
)

MARKET_USER_PROMPT_TEMPLATE = """Segment: {segment}
Industries: {industries}
Countries: {countries}
Product/Service: {product_service}

Estimate TAM, SAM and SOM, name the main competitors, list current trends and
the best opportunities for this product in these markets."""


def build_market_prompt(
    product_service: str,
    segment: str,
    industries: list[str],
    countries: list[str],
) -> list[dict[str, str]]:
    return [
        {'role': 'system', 'content': MARKET_SYSTEM_PROMPT},
        {
            'role': 'user',
            'content': MARKET_USER_PROMPT_TEMPLATE.format(
                segment=segment,
                industries=', '.join(industries),
                countries=', '.join(countries),
                product_service=product_service,
            ),
        },
    ]
