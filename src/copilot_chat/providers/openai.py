"""
OpenAI Completion Provider.

Implements the completion and embedding ports for OpenAI's chat models.
The rendered prompt is sent as a single user message.
"""

from __future__ import annotations

import logging
from typing import Any

from ..domain.entities import CompletionResult, CompletionSettings
from .base import BaseCompletionProvider, ErrorType, LLMProviderConfig, LLMProviderError

logger = logging.getLogger(__name__)

# Lazy import to avoid requiring openai if not used
try:
    import openai
    from openai import AsyncOpenAI

    OPENAI_AVAILABLE = True
except ImportError:
    OPENAI_AVAILABLE = False
    openai = None
    AsyncOpenAI = None


def _error_detail(error: Exception) -> str:
    """Structured detail from an API error body, if any."""
    body = getattr(error, "body", None)
    if isinstance(body, dict):
        detail = body.get("message") or body.get("error")
        if detail:
            return str(detail)
    return str(error)


class OpenAIProvider(BaseCompletionProvider):
    """OpenAI provider implementation.

    Usage:
        config = LLMProviderConfig(
            api_key="sk-...",
            model="gpt-4o",
            embedding_model="text-embedding-3-large",
        )
        provider = OpenAIProvider(config)

        result = await provider.complete(prompt, CompletionSettings(max_tokens=512))
        if not result.succeeded:
            print(result.error_description)
    """

    # Default models
    DEFAULT_MODEL = "gpt-4o-mini"
    DEFAULT_EMBEDDING_MODEL = "text-embedding-3-large"

    def __init__(self, config: LLMProviderConfig):
        """Initialize the OpenAI provider.

        Args:
            config: Provider configuration

        Raises:
            ImportError: If openai package is not installed
        """
        if not OPENAI_AVAILABLE:
            raise ImportError(
                "openai package is required for OpenAIProvider. "
                "Install with: pip install openai"
            )

        super().__init__(config)

        self.embedding_model = config.embedding_model or self.DEFAULT_EMBEDDING_MODEL

        self.client = AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )

    def _request_kwargs(self, prompt: str, settings: CompletionSettings) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": settings.max_tokens,
            "temperature": settings.temperature,
            "top_p": settings.top_p,
            "frequency_penalty": settings.frequency_penalty,
            "presence_penalty": settings.presence_penalty,
        }
        if settings.stop_sequences:
            # The API accepts at most four stop sequences
            kwargs["stop"] = settings.stop_sequences[:4]
        return kwargs

    async def complete(
        self, prompt: str, settings: CompletionSettings
    ) -> CompletionResult:
        """Complete a prompt with a chat model.

        Returns:
            CompletionResult with text, or error and detail on failure
        """
        try:
            response = await self.client.chat.completions.create(
                **self._request_kwargs(prompt, settings)
            )
        except openai.RateLimitError as e:
            logger.warning(f"Rate limited by OpenAI: {e}")
            return self._error_result("Rate limited by OpenAI", _error_detail(e))
        except openai.APITimeoutError as e:
            logger.error(f"OpenAI API timeout: {e}")
            return self._error_result("OpenAI request timed out", _error_detail(e))
        except openai.APIError as e:
            logger.error(f"OpenAI API error: {e}")
            return self._error_result("OpenAI API error", _error_detail(e))

        choice = response.choices[0] if response.choices else None
        if choice is None:
            return self._error_result("OpenAI returned no choices")

        return CompletionResult(text=choice.message.content or "")

    async def embed(self, text: str) -> tuple[list[float], str, int]:
        """Generate an embedding for text.

        Returns:
            Tuple of (embedding_vector, model_name, dimension)

        Raises:
            LLMProviderError: On API errors
        """
        try:
            response = await self.client.embeddings.create(
                model=self.embedding_model,
                input=text,
            )
        except openai.RateLimitError as e:
            logger.warning(f"Rate limited during embedding: {e}")
            raise LLMProviderError(
                f"Rate limited: {e}",
                error_type=ErrorType.RATE_LIMIT,
                original_error=e,
            )
        except openai.APIError as e:
            logger.error(f"OpenAI embedding error: {e}")
            raise LLMProviderError(
                f"Embedding failed: {e}",
                error_type=ErrorType.RECOVERABLE,
                original_error=e,
            )

        embedding = response.data[0].embedding
        return embedding, self.embedding_model, len(embedding)

    async def close(self) -> None:
        await self.client.close()
