"""
Market insights stage: one market analysis payload per Run.
"""

from typing import Any

from ...clients.providers import MarketAnalyst
from ...logging import get_logger
from ...models import MarketInsights, RunPhase, SearchContext
from ...repository import ProspectRepository
from ..fallbacks import build_fallback_market_insights
from .base import Stage

logger = get_logger(__name__)


class MarketStage(Stage):
    name = RunPhase.MARKET_INSIGHTS.value
    has_fallback = True

    def __init__(self, repository: ProspectRepository, analyst: MarketAnalyst):
        self.repository = repository
        self.analyst = analyst

    async def run(self, run_id: str, context: SearchContext) -> dict[str, Any]:
        payload = await self.analyst.analyze(context)
        return await self._store(run_id, payload, is_fallback=False)

    async def fallback(self, run_id: str, context: SearchContext) -> dict[str, Any]:
        return await self._store(run_id, build_fallback_market_insights(context), is_fallback=True)

    async def _store(self, run_id: str, payload: dict[str, Any], is_fallback: bool) -> dict[str, Any]:
        await self.repository.upsert_market_insights(
            MarketInsights(run_id=run_id, payload=payload, is_fallback=is_fallback)
        )
        logger.info('market_insights.stored', is_fallback=is_fallback)
        return {'is_fallback': is_fallback}
