"""
OpenAI client wrapper for the Prospect Pipeline.

Handles:
- Chat completions with structured output (Pydantic model parsing)
- Embeddings generation (single and batch)
- Retry on transient transport errors with exponential backoff
- Translation of SDK errors into the pipeline error hierarchy

Rate-limit responses are NOT retried here. They surface as
OpenAIRateLimitError so the calling stage's retry policy owns the budget.
"""

from typing import TypeVar

from openai import APIConnectionError, APITimeoutError, AsyncOpenAI
from pydantic import BaseModel
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config import config
from ..errors import OpenAIError, OpenAIModelError, wrap_openai_error
from ..logging import get_logger

logger = get_logger(__name__)

# Type variable for structured output parsing
T = TypeVar('T', bound=BaseModel)

_transient_retry = retry(
    retry=retry_if_exception_type((APIConnectionError, APITimeoutError)),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    reraise=True,
)


class OpenAIClient:
    """
    Async OpenAI client with structured output and embedding support.

    Configuration via environment variables (see Config):
    - OPENAI_API_KEY: Required API key
    - OPENAI_CHAT_MODEL: Chat model (default: gpt-4.1-mini)
    - OPENAI_EMBEDDING_MODEL: Embedding model (default: text-embedding-3-small)
    - OPENAI_EMBEDDING_DIMENSIONS: Embedding dimensions (default: 1536)
    """

    def __init__(
        self,
        api_key: str | None = None,
        chat_model: str | None = None,
        embedding_model: str | None = None,
        embedding_dimensions: int | None = None,
    ):
        self.api_key = api_key or config.OPENAI_API_KEY
        if not self.api_key:
            raise ValueError('OPENAI_API_KEY environment variable is required')

        self.chat_model = chat_model or config.OPENAI_CHAT_MODEL
        self.embedding_model = embedding_model or config.OPENAI_EMBEDDING_MODEL
        self.embedding_dimensions = embedding_dimensions or config.OPENAI_EMBEDDING_DIMENSIONS

        self._client = AsyncOpenAI(api_key=self.api_key)

    async def chat_completion_structured(
        self,
        messages: list[dict[str, str]],
        response_model: type[T],
        model: str | None = None,
        temperature: float = 0.0,
    ) -> T:
        """
        Get a chat completion with structured output (Pydantic model).

        Args:
            messages: List of message dicts with 'role' and 'content'
            response_model: Pydantic model class for the response
            model: Override the default chat model
            temperature: Sampling temperature

        Returns:
            Parsed Pydantic model instance

        Raises:
            OpenAIRateLimitError: On HTTP 429
            OpenAIModelError: When the model refuses or the output does not parse
            OpenAIError: Any other API failure
        """
        try:
            response = await self._parse(messages, response_model, model, temperature)
        except OpenAIError:
            raise
        except Exception as e:
            raise wrap_openai_error(e, {'operation': 'chat_completion_structured'}) from e

        message = response.choices[0].message
        if getattr(message, 'refusal', None):
            raise OpenAIModelError(
                f"Model refused request: {message.refusal}",
                context={'response_model': response_model.__name__},
            )
        if message.parsed is None:
            raise OpenAIModelError(
                'Failed to parse structured response',
                context={'response_model': response_model.__name__},
            )
        return message.parsed

    @_transient_retry
    async def _parse(self, messages, response_model, model, temperature):
        return await self._client.beta.chat.completions.parse(
            model=model or self.chat_model,
            messages=messages,  # type: ignore
            response_format=response_model,
            temperature=temperature,
        )

    async def create_embeddings_batch(self, texts: list[str]) -> list[list[float]]:
        """
        Create embeddings for multiple texts in a single API call.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors (same order as input)
        """
        if not texts:
            return []

        cleaned_texts = [' '.join(t.split()) or '-' for t in texts]
        try:
            response = await self._embed(cleaned_texts)
        except Exception as e:
            raise wrap_openai_error(
                e, {'operation': 'create_embeddings_batch', 'count': len(texts)}
            ) from e

        # Sort by index to ensure order matches input
        sorted_embeddings = sorted(response.data, key=lambda x: x.index)
        return [e.embedding for e in sorted_embeddings]

    @_transient_retry
    async def _embed(self, texts: list[str]):
        return await self._client.embeddings.create(
            model=self.embedding_model,
            input=texts,
            dimensions=self.embedding_dimensions,
        )

    async def health_check(self) -> dict[str, bool | str]:
        """
        Verify API connectivity with a minimal request.

        Returns:
            Dict with 'healthy' bool and optional 'error' message
        """
        try:
            await self._embed(['health check'])
            return {
                'healthy': True,
                'chat_model': self.chat_model,
                'embedding_model': self.embedding_model,
            }
        except Exception as e:
            logger.warning('openai.health_check_failed', error=str(e))
            return {'healthy': False, 'error': str(e)}

    async def close(self):
        """Close the client connection."""
        await self._client.close()
