"""
Custom exceptions and error handling for the Prospect Pipeline.

Provides:
- Typed exception hierarchy for different failure modes
- Error context preservation for debugging
- A RateLimitError marker so retry policies can match on one type
- Partial success handling for batch operations
"""

from dataclasses import dataclass, field
from typing import Any

import httpx


class ProspectPipelineError(Exception):
    """Base exception for all prospect pipeline errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


class RateLimitError(ProspectPipelineError):
    """Transient rate-limit signal (HTTP 429 or provider equivalent)."""

    pass


# =============================================================================
# Client Errors
# =============================================================================


class ClientError(ProspectPipelineError):
    """Base class for client-related errors."""

    pass


class OpenAIError(ClientError):
    """Error from OpenAI API calls."""

    pass


class OpenAIRateLimitError(OpenAIError, RateLimitError):
    """Rate limit exceeded on OpenAI API."""

    pass


class OpenAIModelError(OpenAIError):
    """Model refused request or returned invalid response."""

    pass


class ProviderError(ClientError):
    """Error from a data provider (places search, people search)."""

    pass


class ProviderRateLimitError(ProviderError, RateLimitError):
    """Provider answered with a rate-limit signal."""

    pass


class ProviderUnavailableError(ProviderError):
    """Provider is down, misconfigured or unreachable."""

    pass


class StoreError(ClientError):
    """Error from the durable store."""

    pass


class StoreConnectionError(StoreError):
    """Failed to connect to the durable store."""

    pass


class StoreQueryError(StoreError):
    """Error executing a store query."""

    pass


# =============================================================================
# Pipeline Errors
# =============================================================================


class PipelineError(ProspectPipelineError):
    """Base class for pipeline-related errors."""

    pass


class ValidationError(PipelineError):
    """Input validation failed. Never retried."""

    pass


class StageError(PipelineError):
    """A pipeline stage failed after its retry and fallback budget."""

    pass


class StageTimeoutError(StageError):
    """A pipeline stage exceeded its timeout."""

    pass


class MatchingError(PipelineError):
    """Error during profile matching."""

    pass


# =============================================================================
# Job Errors
# =============================================================================


class JobError(ProspectPipelineError):
    """Base class for job store and dispatcher errors."""

    pass


class JobOwnershipError(JobError):
    """The job is not currently held by the calling worker."""

    pass


class UnknownJobTypeError(JobError):
    """No handler is registered for the job type."""

    pass


# =============================================================================
# Partial Success Handling
# =============================================================================


@dataclass
class ItemResult:
    """Result for a single item in a batch operation."""

    item_id: str | None
    success: bool
    error: ProspectPipelineError | None = None
    data: dict[str, Any] = field(default_factory=dict)


@dataclass
class PartialSuccessResult:
    """
    Result of a batch operation that may partially succeed.

    Allows processing to continue even when some items fail,
    while preserving error context for debugging.
    """

    succeeded: list[ItemResult] = field(default_factory=list)
    failed: list[ItemResult] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return len(self.succeeded)

    @property
    def failure_count(self) -> int:
        return len(self.failed)

    @property
    def total_count(self) -> int:
        return self.success_count + self.failure_count

    @property
    def all_succeeded(self) -> bool:
        return self.failure_count == 0

    @property
    def all_failed(self) -> bool:
        return self.success_count == 0

    @property
    def partial_success(self) -> bool:
        return self.success_count > 0 and self.failure_count > 0

    def add_success(
        self,
        item_id: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Record a successful item."""
        self.succeeded.append(
            ItemResult(item_id=item_id, success=True, data=data or {})
        )

    def add_failure(
        self,
        error: ProspectPipelineError,
        item_id: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Record a failed item."""
        self.failed.append(
            ItemResult(item_id=item_id, success=False, error=error, data=data or {})
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            'success_count': self.success_count,
            'failure_count': self.failure_count,
            'total_count': self.total_count,
            'all_succeeded': self.all_succeeded,
            'succeeded_ids': [r.item_id for r in self.succeeded if r.item_id],
            'failed_ids': [r.item_id for r in self.failed if r.item_id],
            'errors': [
                {'item_id': r.item_id, 'error': str(r.error)}
                for r in self.failed
                if r.error
            ],
        }


# =============================================================================
# Error Handling Utilities
# =============================================================================


def wrap_openai_error(exc: Exception, context: dict[str, Any] | None = None) -> OpenAIError:
    """
    Wrap an OpenAI exception in our typed error hierarchy.

    Args:
        exc: The original exception
        context: Additional context for debugging

    Returns:
        Typed OpenAIError subclass
    """
    error_str = str(exc).lower()
    ctx = context or {}
    ctx['original_error'] = str(exc)
    ctx['error_type'] = type(exc).__name__

    status = getattr(exc, 'status_code', None)
    if status == 429 or 'rate limit' in error_str or 'rate_limit' in error_str:
        return OpenAIRateLimitError(
            f"OpenAI rate limit exceeded: {exc}",
            context=ctx,
        )
    elif 'content policy' in error_str or 'refused' in error_str:
        return OpenAIModelError(
            f"OpenAI model refused request: {exc}",
            context=ctx,
        )
    else:
        return OpenAIError(
            f"OpenAI API error: {exc}",
            context=ctx,
        )


def wrap_http_error(
    exc: Exception,
    provider: str,
    context: dict[str, Any] | None = None,
) -> ProviderError:
    """
    Wrap an httpx exception raised by a data provider.

    429 becomes ProviderRateLimitError, 5xx and transport failures become
    ProviderUnavailableError, anything else a plain ProviderError.
    """
    ctx = context or {}
    ctx['provider'] = provider
    ctx['original_error'] = str(exc)
    ctx['error_type'] = type(exc).__name__

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        ctx['status_code'] = status
        if status == 429:
            return ProviderRateLimitError(f"{provider} rate limited", context=ctx)
        if status >= 500 or status in (401, 403):
            return ProviderUnavailableError(f"{provider} unavailable: HTTP {status}", context=ctx)
        return ProviderError(f"{provider} request failed: HTTP {status}", context=ctx)

    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return ProviderUnavailableError(f"{provider} unreachable: {exc}", context=ctx)

    return ProviderError(f"{provider} error: {exc}", context=ctx)


def wrap_store_error(exc: Exception, context: dict[str, Any] | None = None) -> StoreError:
    """
    Wrap a database exception in our typed error hierarchy.

    Args:
        exc: The original exception
        context: Additional context for debugging

    Returns:
        Typed StoreError subclass
    """
    error_str = str(exc).lower()
    ctx = context or {}
    ctx['original_error'] = str(exc)
    ctx['error_type'] = type(exc).__name__

    if 'connection' in error_str or 'connect' in error_str:
        return StoreConnectionError(
            f"Store connection failed: {exc}",
            context=ctx,
        )
    return StoreQueryError(
        f"Store query error: {exc}",
        context=ctx,
    )
