"""
Job model for the durable work queue.

A Job is a unit of background work claimed by at most one worker at a time.
Lifecycle:
    pending -> running -> succeeded
    pending -> running -> pending (failed attempt, invisible until next_visible_at)
    pending -> running -> failed (dead, no further attempts)
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from ..utils import new_id, utc_now


class JobStatus(str, Enum):
    """Status lifecycle for jobs."""

    PENDING = 'pending'
    RUNNING = 'running'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'


class JobType(str, Enum):
    """Job types with a default handler."""

    DM_DISCOVERY_BATCH = 'dm_discovery_batch'
    COMPUTE_PROFILE_EMBEDDINGS = 'compute_profile_embeddings'
    COMPUTE_ENTITY_EMBEDDINGS = 'compute_entity_embeddings'
    PROFILE_MAPPING = 'profile_mapping'


class Job(BaseModel):
    """A durable unit of background work."""

    id: str = Field(default_factory=new_id, description='UUIDv7 job identifier')
    type: str = Field(..., description='Handler key, usually a JobType value')
    payload: dict[str, Any] = Field(default_factory=dict)
    status: JobStatus = Field(default=JobStatus.PENDING)
    attempt: int = Field(default=0, ge=0, description='Failed attempts so far')
    max_attempts: int = Field(default=3, ge=1)
    worker_id: str | None = Field(default=None, description='Current claim holder')
    next_visible_at: datetime = Field(default_factory=utc_now)
    last_error: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.SUCCEEDED, JobStatus.FAILED)
