"""Tests for the scheduled-tick Lambda entry point."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from job_dispatcher.dispatcher import TickResult
from prospect_pipeline.lambda_tick.handler import lambda_handler


def _context() -> MagicMock:
    context = MagicMock()
    context.function_name = "test"
    context.memory_limit_in_mb = 256
    context.invoked_function_arn = "arn:aws:lambda:us-east-1:123:function:test"
    context.aws_request_id = "req-1"
    return context


def _container(result: TickResult) -> MagicMock:
    container = MagicMock()
    container.dispatcher.tick = AsyncMock(return_value=result)
    container.close = AsyncMock()
    return container


FROM_CONFIG = "prospect_pipeline.lambda_tick.handler.ServiceContainer.from_config"


class TestLambdaTick:
    def test_tick_result_returned(self):
        container = _container(TickResult(worker_id="tick-abc123", claimed=2, succeeded=2))

        with patch(FROM_CONFIG, AsyncMock(return_value=container)):
            result = lambda_handler({"source": "aws.events"}, _context())

        assert result["worker_id"] == "tick-abc123"
        assert result["claimed"] == 2
        assert result["succeeded"] == 2
        container.close.assert_awaited_once()

    def test_aborted_tick_still_returns(self):
        container = _container(
            TickResult(worker_id="tick-abc123", aborted=True, errors=["claim failed"])
        )

        with patch(FROM_CONFIG, AsyncMock(return_value=container)):
            result = lambda_handler({}, _context())

        assert result["aborted"] is True
        assert result["errors"] == ["claim failed"]

    def test_container_closed_when_tick_raises(self):
        container = MagicMock()
        container.dispatcher.tick = AsyncMock(side_effect=RuntimeError("boom"))
        container.close = AsyncMock()

        with patch(FROM_CONFIG, AsyncMock(return_value=container)):
            with pytest.raises(RuntimeError):
                lambda_handler({}, _context())

        container.close.assert_awaited_once()
