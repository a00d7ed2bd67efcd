"""
Tests for the OpenAI client wrapper.

The SDK client is replaced with mocks; no API key or network is used.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import BaseModel

from prospect_pipeline.clients.openai_client import OpenAIClient
from prospect_pipeline.config import config
from prospect_pipeline.errors import OpenAIError, OpenAIModelError, OpenAIRateLimitError


class Answer(BaseModel):
    value: str


@pytest.fixture
def client():
    c = OpenAIClient(api_key='sk-test', embedding_dimensions=3)
    c._client = MagicMock()
    c._client.embeddings.create = AsyncMock()
    c._client.beta.chat.completions.parse = AsyncMock()
    c._client.close = AsyncMock()
    return c


def _completion(parsed=None, refusal=None):
    message = SimpleNamespace(parsed=parsed, refusal=refusal)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class TestEmbeddings:
    @pytest.mark.asyncio
    async def test_batch_preserves_input_order(self, client):
        client._client.embeddings.create.return_value = SimpleNamespace(
            data=[
                SimpleNamespace(index=1, embedding=[0.0, 1.0, 0.0]),
                SimpleNamespace(index=0, embedding=[1.0, 0.0, 0.0]),
            ]
        )

        vectors = await client.create_embeddings_batch(['first', 'second'])

        assert vectors == [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]
        kwargs = client._client.embeddings.create.await_args.kwargs
        assert kwargs['dimensions'] == 3

    @pytest.mark.asyncio
    async def test_whitespace_collapsed_and_blank_replaced(self, client):
        client._client.embeddings.create.return_value = SimpleNamespace(
            data=[SimpleNamespace(index=i, embedding=[0.0]) for i in range(2)]
        )

        await client.create_embeddings_batch(['  Acme \n GmbH ', '   '])

        assert client._client.embeddings.create.await_args.kwargs['input'] == ['Acme GmbH', '-']

    @pytest.mark.asyncio
    async def test_empty_batch_skips_call(self, client):
        assert await client.create_embeddings_batch([]) == []
        client._client.embeddings.create.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rate_limit_not_retried_here(self, client):
        error = Exception('Error code: 429 - rate limit reached')
        error.status_code = 429
        client._client.embeddings.create.side_effect = error

        with pytest.raises(OpenAIRateLimitError):
            await client.create_embeddings_batch(['text'])
        assert client._client.embeddings.create.await_count == 1


class TestStructuredCompletion:
    @pytest.mark.asyncio
    async def test_parsed_model_returned(self, client):
        client._client.beta.chat.completions.parse.return_value = _completion(Answer(value='ok'))

        result = await client.chat_completion_structured([{'role': 'user', 'content': 'hi'}], Answer)

        assert result == Answer(value='ok')
        assert client._client.beta.chat.completions.parse.await_args.kwargs['response_format'] is Answer

    @pytest.mark.asyncio
    async def test_refusal_is_model_error(self, client):
        client._client.beta.chat.completions.parse.return_value = _completion(refusal='no')

        with pytest.raises(OpenAIModelError, match='refused'):
            await client.chat_completion_structured([], Answer)

    @pytest.mark.asyncio
    async def test_unparsed_is_model_error(self, client):
        client._client.beta.chat.completions.parse.return_value = _completion()

        with pytest.raises(OpenAIModelError, match='parse'):
            await client.chat_completion_structured([], Answer)

    @pytest.mark.asyncio
    async def test_other_errors_wrapped(self, client):
        client._client.beta.chat.completions.parse.side_effect = ValueError('bad request')

        with pytest.raises(OpenAIError) as exc_info:
            await client.chat_completion_structured([], Answer)
        assert exc_info.value.context['operation'] == 'chat_completion_structured'


class TestLifecycle:
    def test_api_key_required(self, monkeypatch):
        monkeypatch.setattr(config, 'OPENAI_API_KEY', '')
        with pytest.raises(ValueError, match='OPENAI_API_KEY'):
            OpenAIClient()

    @pytest.mark.asyncio
    async def test_health_check_reports_failure(self, client):
        client._client.embeddings.create.side_effect = RuntimeError('unreachable')

        result = await client.health_check()

        assert result == {'healthy': False, 'error': 'unreachable'}

    @pytest.mark.asyncio
    async def test_close(self, client):
        await client.close()
        client._client.close.assert_awaited_once()
