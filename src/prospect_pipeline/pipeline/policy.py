"""
Per-stage execution policy: timeout, rate-limit retry, fallback.

run_with_policy() wraps one stage invocation:
- each attempt races the stage against timeout_seconds (asyncio.wait_for);
  a timed-out attempt is cancelled and counts as StageTimeoutError
- only RateLimitError is retried, up to max_attempts total attempts, with a
  random wait between retry_wait_min and retry_wait_max seconds
- when attempts are exhausted or a non-retryable error occurs, the fallback
  (if the stage has one) produces degraded output instead
- ValidationError is never retried and never replaced by a fallback
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_random

from ..config import config
from ..errors import RateLimitError, StageError, StageTimeoutError, ValidationError
from ..logging import get_logger
from ..models import RunPhase

logger = get_logger(__name__)

T = TypeVar('T')

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class StagePolicy:
    """How one stage is timed, retried and degraded."""

    timeout_seconds: float
    max_attempts: int = 3
    retry_wait_min: float = 0.3
    retry_wait_max: float = 0.8
    fallback: Callable[[], Awaitable[Any]] | None = None


@dataclass
class StageOutcome(Generic[T]):
    """Value produced by a stage plus how it was obtained."""

    value: T
    attempts: int
    degraded: str | None = None

    @property
    def used_fallback(self) -> bool:
        return self.degraded is not None


def default_policies() -> dict[str, StagePolicy]:
    """Policies from configuration, keyed by stage name."""
    attempts = config.STAGE_MAX_ATTEMPTS
    return {
        RunPhase.PERSONAS.value: StagePolicy(config.PERSONAS_TIMEOUT_SECONDS, attempts),
        RunPhase.DISCOVERY.value: StagePolicy(config.DISCOVERY_TIMEOUT_SECONDS, attempts),
        RunPhase.DECISION_MAKERS.value: StagePolicy(config.DECISION_MAKERS_TIMEOUT_SECONDS, attempts),
        RunPhase.MARKET_INSIGHTS.value: StagePolicy(config.MARKET_INSIGHTS_TIMEOUT_SECONDS, attempts),
    }


async def run_with_policy(
    name: str,
    operation: Callable[[], Awaitable[T]],
    policy: StagePolicy,
    sleep: Sleep = asyncio.sleep,
) -> StageOutcome[T]:
    """
    Execute a stage operation under its policy.

    Raises:
        ValidationError: Input was invalid; never retried
        StageError: Attempts exhausted and no fallback, or the fallback failed
    """
    attempts = 0

    async def attempt_once() -> T:
        nonlocal attempts
        attempts += 1
        try:
            return await asyncio.wait_for(operation(), timeout=policy.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise StageTimeoutError(
                f"Stage {name} timed out after {policy.timeout_seconds}s",
                context={'stage': name, 'attempt': attempts},
            ) from e

    try:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, policy.max_attempts)),
            wait=wait_random(policy.retry_wait_min, policy.retry_wait_max),
            retry=retry_if_exception_type(RateLimitError),
            sleep=sleep,
            reraise=True,
            before_sleep=lambda state: logger.warning(
                'stage.rate_limited',
                stage=name,
                attempt=state.attempt_number,
                error=str(state.outcome.exception()) if state.outcome else None,
            ),
        )
        value = await retrying(attempt_once)
        return StageOutcome(value=value, attempts=attempts)
    except ValidationError:
        raise
    except Exception as e:
        if policy.fallback is None:
            if isinstance(e, StageError):
                raise
            raise StageError(
                f"Stage {name} failed: {e}",
                context={'stage': name, 'attempts': attempts, 'error_type': type(e).__name__},
            ) from e

        logger.warning(
            'stage.fallback',
            stage=name,
            attempts=attempts,
            error=str(e),
            error_type=type(e).__name__,
        )
        try:
            value = await policy.fallback()
        except Exception as fallback_error:
            raise StageError(
                f"Stage {name} fallback failed: {fallback_error}",
                context={'stage': name, 'original_error': str(e)},
            ) from fallback_error
        return StageOutcome(
            value=value,
            attempts=attempts,
            degraded=f"fallback used after {type(e).__name__}: {e}",
        )
