"""CacheEntry model for the result cache."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from ..utils import utc_now


class CacheEntry(BaseModel):
    """A cached provider response keyed by a content hash."""

    key: str = Field(..., description='sha256 of provider + normalised query')
    payload: Any
    ttl_at: datetime = Field(..., description='Entry is a miss at or after this instant')
    created_at: datetime = Field(default_factory=utc_now)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.ttl_at
