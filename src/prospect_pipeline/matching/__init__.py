"""
Entity-to-profile matching: similarity, generative tie-break, heuristics.
"""

from .engine import MappingOutcome, MappingStatus, MatchingEngine
from .locks import MappingLockRegistry
from .scheduler import InProcessRetryScheduler, JobQueueRetryScheduler, RetryScheduler
from .tie_break import OpenAIProfileChooser

__all__ = [
    'MappingOutcome',
    'MappingStatus',
    'MatchingEngine',
    'MappingLockRegistry',
    'InProcessRetryScheduler',
    'JobQueueRetryScheduler',
    'RetryScheduler',
    'OpenAIProfileChooser',
]
