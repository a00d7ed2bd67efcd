"""
Prospect Pipeline

Lead discovery runs that generate segment profiles, discover and enrich
businesses and contacts, and map every entity to its best-fit profile, with
background work driven by the durable job dispatcher.
"""

__version__ = '0.1.0'

# Re-export key classes for convenience
from .cache import ResultCache, make_cache_key
from .matching import MappingOutcome, MatchingEngine
from .pipeline import RunOrchestrator, RunTrigger, StagePolicy
from .repository import InMemoryRepository, ProspectRepository
from .logging import (
    configure_logging,
    get_logger,
    logging_context,
    PipelineTimer,
)
from .errors import (
    ProspectPipelineError,
    PipelineError,
    ValidationError,
    StageError,
    StageTimeoutError,
    RateLimitError,
    JobOwnershipError,
    PartialSuccessResult,
)

__all__ = [
    # Version
    '__version__',
    # Pipeline
    'RunOrchestrator',
    'RunTrigger',
    'StagePolicy',
    # Matching
    'MappingOutcome',
    'MatchingEngine',
    # Cache
    'ResultCache',
    'make_cache_key',
    # Repository
    'InMemoryRepository',
    'ProspectRepository',
    # Logging
    'configure_logging',
    'get_logger',
    'logging_context',
    'PipelineTimer',
    # Errors
    'ProspectPipelineError',
    'PipelineError',
    'ValidationError',
    'StageError',
    'StageTimeoutError',
    'RateLimitError',
    'JobOwnershipError',
    'PartialSuccessResult',
]
