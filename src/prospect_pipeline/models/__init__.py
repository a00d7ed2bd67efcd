"""
Data models for the Prospect Pipeline.

All identifiers are UUIDv7 strings.
"""

from .job import Job, JobStatus, JobType
from .run import (
    PHASE_ORDER,
    PHASE_PROGRESS,
    STAGE_NAMES,
    Run,
    RunPhase,
    RunStatus,
    RunTask,
    SearchContext,
    Segment,
    TaskStatus,
)
from .entities import Entity, EntityKind, MarketInsights, MatchTier, SegmentProfile
from .cache import CacheEntry

__all__ = [
    'Job',
    'JobStatus',
    'JobType',
    'PHASE_ORDER',
    'PHASE_PROGRESS',
    'STAGE_NAMES',
    'Run',
    'RunPhase',
    'RunStatus',
    'RunTask',
    'SearchContext',
    'Segment',
    'TaskStatus',
    'Entity',
    'EntityKind',
    'MarketInsights',
    'MatchTier',
    'SegmentProfile',
    'CacheEntry',
]
