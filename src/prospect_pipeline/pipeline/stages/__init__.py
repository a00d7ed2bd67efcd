"""
Pipeline stages, one per Run phase.
"""

from .base import Stage
from .decision_makers import ContactEnricher, DecisionMakerStage, EnrichmentResult
from .discovery import DiscoveryStage, build_discovery_queries
from .market import MarketStage
from .personas import PersonaStage

__all__ = [
    'Stage',
    'ContactEnricher',
    'DecisionMakerStage',
    'EnrichmentResult',
    'DiscoveryStage',
    'build_discovery_queries',
    'MarketStage',
    'PersonaStage',
]
