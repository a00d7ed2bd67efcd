"""
Per-run mapping lock.

Prevents two mapping cycles for the same run from interleaving inside one
process. A second caller while the lock is held is rejected, not queued: the
running cycle already covers every unmapped entity it will see.

Locks expire after timeout_seconds so a cycle that died without releasing
does not block the run forever.

This registry is process-scoped. Across instances the same guarantee needs
a durable lease row (run_id, holder, expires_at) claimed with a conditional
upsert; assignment itself stays safe regardless because assign_profile only
writes while profile_id is NULL.
"""

import time
from typing import Callable

from ..logging import get_logger

logger = get_logger(__name__)


class MappingLockRegistry:
    """Expiring try-locks keyed by run id."""

    def __init__(self, timeout_seconds: float = 120.0, clock: Callable[[], float] = time.monotonic):
        self.timeout_seconds = timeout_seconds
        self.clock = clock
        self._held: dict[str, float] = {}

    def try_acquire(self, key: str) -> bool:
        """Take the lock unless it is held and not yet expired."""
        now = self.clock()
        acquired_at = self._held.get(key)
        if acquired_at is not None and now - acquired_at < self.timeout_seconds:
            return False
        if acquired_at is not None:
            logger.warning('mapping_lock.expired', run_id=key, held_seconds=round(now - acquired_at, 1))
        self._held[key] = now
        return True

    def release(self, key: str) -> None:
        self._held.pop(key, None)

    def is_held(self, key: str) -> bool:
        acquired_at = self._held.get(key)
        return acquired_at is not None and self.clock() - acquired_at < self.timeout_seconds
