"""
Run and RunTask models.

A Run is one pipeline execution for one logical search. It moves through a
fixed sequence of phases; its status ends in one of completed, failed or
cancelled. Each stage of the Run has exactly one RunTask row, created when
the Run starts and never deleted.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from ..utils import new_id, utc_now


class RunStatus(str, Enum):
    """Status lifecycle for runs."""

    STARTING = 'starting'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_RUN_STATUSES


TERMINAL_RUN_STATUSES = frozenset({RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED})


class RunPhase(str, Enum):
    """Phases in canonical order. A Run's phase never moves backwards."""

    STARTING = 'starting'
    PERSONAS = 'personas'
    DISCOVERY = 'discovery'
    DECISION_MAKERS = 'decision_makers'
    MARKET_INSIGHTS = 'market_insights'
    COMPLETED = 'completed'

    @property
    def order(self) -> int:
        return PHASE_ORDER.index(self)


PHASE_ORDER: list[RunPhase] = list(RunPhase)

# Progress reached once a phase has finished
PHASE_PROGRESS: dict[RunPhase, int] = {
    RunPhase.STARTING: 5,
    RunPhase.PERSONAS: 25,
    RunPhase.DISCOVERY: 65,
    RunPhase.DECISION_MAKERS: 85,
    RunPhase.MARKET_INSIGHTS: 100,
    RunPhase.COMPLETED: 100,
}

# Stage names; one RunTask per name
STAGE_NAMES: tuple[str, ...] = (
    RunPhase.PERSONAS.value,
    RunPhase.DISCOVERY.value,
    RunPhase.DECISION_MAKERS.value,
    RunPhase.MARKET_INSIGHTS.value,
)


class Segment(str, Enum):
    """Which side of the market the search targets."""

    CUSTOMERS = 'customers'
    SUPPLIERS = 'suppliers'


class SearchContext(BaseModel):
    """
    The search a Run executes.

    Validated before any stage runs; an invalid context fails the Run
    immediately and is never retried or replaced by a fallback.
    """

    product_service: str = Field(..., min_length=1, description='What the searcher sells or buys')
    industries: list[str] = Field(..., min_length=1)
    countries: list[str] = Field(..., min_length=1)
    segment: Segment = Field(default=Segment.CUSTOMERS)

    @field_validator('product_service')
    @classmethod
    def _strip_product(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError('product_service must not be blank')
        return value

    @field_validator('industries', 'countries')
    @classmethod
    def _strip_items(cls, values: list[str]) -> list[str]:
        cleaned = [v.strip() for v in values if v and v.strip()]
        if not cleaned:
            raise ValueError('at least one non-blank value is required')
        return cleaned


class Run(BaseModel):
    """One pipeline execution."""

    id: str = Field(default_factory=new_id)
    owner_id: str = Field(..., description='User that owns the search')
    phase: RunPhase = Field(default=RunPhase.STARTING)
    status: RunStatus = Field(default=RunStatus.STARTING)
    progress_pct: int = Field(default=0, ge=0, le=100)
    error: str | None = None
    context: dict[str, Any] = Field(
        default_factory=dict, description='Raw search context, validated as SearchContext'
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class TaskStatus(str, Enum):
    """Status lifecycle for run tasks. Transitions only move forward."""

    PENDING = 'pending'
    RUNNING = 'running'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'


TASK_STATUS_ORDER: dict[TaskStatus, int] = {
    TaskStatus.PENDING: 0,
    TaskStatus.RUNNING: 1,
    TaskStatus.SUCCEEDED: 2,
    TaskStatus.FAILED: 2,
}


class RunTask(BaseModel):
    """Per-stage bookkeeping row for a Run."""

    id: str = Field(default_factory=new_id)
    run_id: str
    name: str
    status: TaskStatus = Field(default=TaskStatus.PENDING)
    attempt: int = Field(default=0, ge=0)
    started_at: datetime | None = None
    finished_at: datetime | None = None
    error: str | None = None
