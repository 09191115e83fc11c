"""
Ollama Completion Provider.

Implements the completion and embedding ports for Ollama's local API,
using the non-streaming ``/api/generate`` endpoint.
"""

from __future__ import annotations

import logging
from typing import Any

from ..domain.entities import CompletionResult, CompletionSettings
from .base import BaseCompletionProvider, ErrorType, LLMProviderConfig, LLMProviderError

logger = logging.getLogger(__name__)

# Lazy import to avoid requiring httpx if not used
try:
    import httpx

    OLLAMA_AVAILABLE = True
except ImportError:
    OLLAMA_AVAILABLE = False
    httpx = None


class OllamaProvider(BaseCompletionProvider):
    """Ollama local model provider implementation.

    Usage:
        config = LLMProviderConfig(
            api_key="not-needed",  # Ollama doesn't require auth
            model="qwen3:4b",
            base_url="http://localhost:11434",
        )
        async with OllamaProvider(config) as provider:
            result = await provider.complete(prompt, settings)
    """

    # Default configuration
    DEFAULT_MODEL = "qwen3:4b"
    DEFAULT_BASE_URL = "http://localhost:11434"
    DEFAULT_EMBEDDING_MODEL = "nomic-embed-text"

    def __init__(self, config: LLMProviderConfig):
        """Initialize the Ollama provider.

        Args:
            config: Provider configuration

        Raises:
            ImportError: If httpx package is not installed
        """
        if not OLLAMA_AVAILABLE:
            raise ImportError(
                "httpx package is required for OllamaProvider. "
                "Install with: pip install httpx"
            )

        super().__init__(config)

        self.base_url = config.base_url or self.DEFAULT_BASE_URL
        self.embedding_model = config.embedding_model or self.DEFAULT_EMBEDDING_MODEL

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=config.timeout,
        )

    def _build_payload(self, prompt: str, settings: CompletionSettings) -> dict[str, Any]:
        options: dict[str, Any] = {
            "temperature": settings.temperature,
            "top_p": settings.top_p,
            "frequency_penalty": settings.frequency_penalty,
            "presence_penalty": settings.presence_penalty,
            "num_predict": settings.max_tokens,
        }
        if settings.stop_sequences:
            options["stop"] = list(settings.stop_sequences)

        return {
            "model": self.config.model,
            "prompt": prompt,
            "stream": False,
            "options": options,
        }

    async def complete(
        self, prompt: str, settings: CompletionSettings
    ) -> CompletionResult:
        """Complete a prompt with the configured local model.

        Returns:
            CompletionResult with text, or error and detail on failure
        """
        try:
            response = await self.client.post(
                "/api/generate",
                json=self._build_payload(prompt, settings),
            )
            response.raise_for_status()
            data = response.json()

        except httpx.HTTPStatusError as e:
            logger.error(f"Ollama API error: {e.response.status_code} - {e.response.text}")
            return self._error_result(
                f"Ollama API error: {e.response.status_code}", e.response.text
            )

        except httpx.TimeoutException as e:
            logger.error(f"Ollama request timeout: {e}")
            return self._error_result("Ollama request timeout", str(e))

        except httpx.RequestError as e:
            logger.error(f"Ollama connection error: {e}")
            return self._error_result("Ollama connection error", str(e))

        except ValueError as e:
            logger.error(f"Failed to parse Ollama response: {e}")
            return self._error_result("Invalid response from Ollama", str(e))

        if data.get("error"):
            return self._error_result("Ollama generation failed", str(data["error"]))

        return CompletionResult(text=data.get("response", ""))

    async def embed(self, text: str) -> tuple[list[float], str, int]:
        """Generate an embedding using Ollama.

        Returns:
            Tuple of (embedding_vector, model_name, dimension)

        Raises:
            LLMProviderError: If embedding generation fails
        """
        try:
            response = await self.client.post(
                "/api/embeddings",
                json={
                    "model": self.embedding_model,
                    "prompt": text,
                },
            )
            response.raise_for_status()
            embedding = response.json().get("embedding", [])

        except httpx.HTTPStatusError as e:
            raise LLMProviderError(
                f"Ollama embedding API error: {e.response.status_code} - {e.response.text}",
                error_type=ErrorType.RECOVERABLE,
                original_error=e,
            )

        except httpx.TimeoutException as e:
            raise LLMProviderError(
                f"Ollama embedding timeout: {e}",
                error_type=ErrorType.TIMEOUT,
                original_error=e,
            )

        except httpx.RequestError as e:
            raise LLMProviderError(
                f"Ollama connection error: {e}",
                error_type=ErrorType.FATAL,
                original_error=e,
            )

        if not embedding:
            raise LLMProviderError(
                "No embedding returned from Ollama",
                error_type=ErrorType.RECOVERABLE,
            )

        return embedding, self.embedding_model, len(embedding)

    async def close(self) -> None:
        await self.client.aclose()
