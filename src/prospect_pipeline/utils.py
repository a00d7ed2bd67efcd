"""
Utility helpers for the Prospect Pipeline.

uuid7() wraps fastuuid.uuid7() to return a stdlib uuid.UUID instance.
fastuuid.UUID is a Rust-backed type that is NOT isinstance-compatible with
uuid.UUID, so we roundtrip through the string representation.
"""

from datetime import datetime, timezone
from typing import Callable
from uuid import UUID

import fastuuid

Clock = Callable[[], datetime]


def uuid7() -> UUID:
    """Generate a UUIDv7 (time-sortable) as a stdlib uuid.UUID."""
    return UUID(str(fastuuid.uuid7()))


def new_id() -> str:
    """Generate a UUIDv7 identifier in its canonical string form."""
    return str(uuid7())


def utc_now() -> datetime:
    """Timezone-aware current time. Default clock for stores and caches."""
    return datetime.now(timezone.utc)
