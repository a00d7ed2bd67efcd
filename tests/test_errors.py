"""
Tests for the errors module.
"""

import httpx
import pytest

from prospect_pipeline.errors import (
    JobError,
    JobOwnershipError,
    MatchingError,
    OpenAIError,
    OpenAIModelError,
    OpenAIRateLimitError,
    PartialSuccessResult,
    PipelineError,
    ProspectPipelineError,
    ProviderError,
    ProviderRateLimitError,
    ProviderUnavailableError,
    RateLimitError,
    StageError,
    StageTimeoutError,
    StoreConnectionError,
    StoreQueryError,
    UnknownJobTypeError,
    ValidationError,
    wrap_http_error,
    wrap_openai_error,
    wrap_store_error,
)


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://google.serper.dev/places")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class TestErrorHierarchy:
    """Test error class hierarchy."""

    def test_base_error_with_context(self):
        """Test that base error captures context."""
        error = ProspectPipelineError(
            "Something went wrong",
            context={"key": "value", "count": 42},
        )

        assert error.message == "Something went wrong"
        assert error.context == {"key": "value", "count": 42}
        assert "key" in str(error)

    def test_base_error_without_context(self):
        """Test error without context."""
        error = ProspectPipelineError("Simple error")

        assert error.context == {}
        assert str(error) == "Simple error"

    def test_pipeline_error_inheritance(self):
        """Stage timeouts are stage errors; validation is a pipeline error."""
        assert isinstance(StageTimeoutError("slow"), StageError)
        assert isinstance(StageError("failed"), PipelineError)
        assert isinstance(ValidationError("bad"), PipelineError)
        assert not isinstance(ValidationError("bad"), StageError)

    def test_rate_limit_marker(self):
        """Both provider and OpenAI rate limits share the retry marker."""
        assert isinstance(OpenAIRateLimitError("429"), RateLimitError)
        assert isinstance(ProviderRateLimitError("429"), RateLimitError)
        assert not isinstance(ProviderUnavailableError("down"), RateLimitError)

    def test_job_errors(self):
        assert isinstance(JobOwnershipError("not yours"), JobError)
        assert isinstance(JobOwnershipError("not yours"), ProspectPipelineError)
        assert isinstance(UnknownJobTypeError("retired"), JobError)
        assert isinstance(MatchingError("bad choice"), PipelineError)


class TestErrorWrapping:
    """Test error wrapping utilities."""

    def test_wrap_openai_rate_limit(self):
        """Test wrapping rate limit errors."""
        wrapped = wrap_openai_error(Exception("Rate limit exceeded"))

        assert isinstance(wrapped, OpenAIRateLimitError)
        assert isinstance(wrapped, RateLimitError)

    def test_wrap_openai_content_policy(self):
        """Test wrapping content policy errors."""
        wrapped = wrap_openai_error(Exception("Content policy violation: refused to process"))

        assert isinstance(wrapped, OpenAIModelError)
        assert wrapped.context.get("error_type") == "Exception"

    def test_wrap_openai_generic(self):
        """Test wrapping generic OpenAI errors."""
        wrapped = wrap_openai_error(Exception("Unknown API error"), context={"attempt": 3})

        assert type(wrapped) is OpenAIError
        assert wrapped.context["attempt"] == 3

    def test_wrap_http_429(self):
        wrapped = wrap_http_error(_status_error(429), "serper.places")

        assert isinstance(wrapped, ProviderRateLimitError)
        assert wrapped.context["status_code"] == 429
        assert wrapped.context["provider"] == "serper.places"

    @pytest.mark.parametrize("status", [500, 503, 401, 403])
    def test_wrap_http_unavailable(self, status):
        assert isinstance(wrap_http_error(_status_error(status), "serper"), ProviderUnavailableError)

    def test_wrap_http_client_error(self):
        wrapped = wrap_http_error(_status_error(400), "serper")

        assert type(wrapped) is ProviderError

    def test_wrap_transport_error(self):
        wrapped = wrap_http_error(httpx.ConnectError("refused"), "serper")

        assert isinstance(wrapped, ProviderUnavailableError)

    def test_wrap_store_connection(self):
        """Test wrapping connection errors."""
        wrapped = wrap_store_error(Exception("Unable to connect to database"))

        assert isinstance(wrapped, StoreConnectionError)

    def test_wrap_store_generic(self):
        """Test wrapping generic store errors."""
        wrapped = wrap_store_error(Exception("syntax error at or near SELECT"))

        assert isinstance(wrapped, StoreQueryError)


class TestPartialSuccessResult:
    """Test partial success handling."""

    def test_empty_result(self):
        """Test empty partial success result."""
        result = PartialSuccessResult()

        assert result.total_count == 0
        assert result.all_succeeded is True  # Vacuously true
        assert result.all_failed is True  # Vacuously true
        assert result.partial_success is False

    def test_partial_success(self):
        """Test partial success scenario."""
        result = PartialSuccessResult()
        result.add_success(item_id="biz-1")
        result.add_failure(ValidationError("blank name"), item_id="biz-2")
        result.add_success(item_id="biz-3")

        assert result.success_count == 2
        assert result.failure_count == 1
        assert result.partial_success is True

    def test_to_dict(self):
        """Test dictionary serialization."""
        result = PartialSuccessResult()
        result.add_success(item_id="biz-1")
        result.add_failure(ValidationError("Bad input"), item_id="biz-2")

        data = result.to_dict()

        assert data["success_count"] == 1
        assert data["failure_count"] == 1
        assert data["all_succeeded"] is False
        assert data["succeeded_ids"] == ["biz-1"]
        assert data["failed_ids"] == ["biz-2"]
        assert data["errors"][0]["error"] == "Bad input"
