"""
Pipeline orchestration: stages, stage policy, orchestrator and trigger.
"""

from .fallbacks import build_fallback_market_insights, build_fallback_profiles
from .generators import OpenAIMarketAnalyst, OpenAIProfileGenerator
from .orchestrator import RunOrchestrator
from .policy import StageOutcome, StagePolicy, default_policies, run_with_policy
from .stages import (
    ContactEnricher,
    DecisionMakerStage,
    DiscoveryStage,
    MarketStage,
    PersonaStage,
    Stage,
)
from .trigger import RunTrigger

__all__ = [
    'build_fallback_market_insights',
    'build_fallback_profiles',
    'OpenAIMarketAnalyst',
    'OpenAIProfileGenerator',
    'RunOrchestrator',
    'StageOutcome',
    'StagePolicy',
    'default_policies',
    'run_with_policy',
    'ContactEnricher',
    'DecisionMakerStage',
    'DiscoveryStage',
    'MarketStage',
    'PersonaStage',
    'Stage',
    'RunTrigger',
]
