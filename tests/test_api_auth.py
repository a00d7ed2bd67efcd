"""Tests for the API bearer token check."""

import pytest
from unittest.mock import patch, MagicMock
from fastapi import HTTPException

from prospect_pipeline.api.auth import verify_worker_token


@pytest.fixture
def settings():
    mock_settings = MagicMock()
    mock_settings.WORKER_API_KEY = "pipeline-secret"
    with patch("prospect_pipeline.api.auth.get_settings", return_value=mock_settings):
        yield mock_settings


class TestBearerAuth:
    @pytest.mark.asyncio
    async def test_valid_token_passes(self, settings):
        assert await verify_worker_token(authorization="Bearer pipeline-secret") is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "header",
        ["Bearer wrong", "pipeline-secret", "bearer pipeline-secret", "Bearer pipeline-secret "],
    )
    async def test_rejected_tokens_raise_401(self, settings, header):
        with pytest.raises(HTTPException) as exc_info:
            await verify_worker_token(authorization=header)
        assert exc_info.value.status_code == 401
