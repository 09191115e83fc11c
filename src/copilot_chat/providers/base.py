"""
Base Completion Provider Implementation.

Provides common functionality for all completion and embedding providers.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..domain.entities import CompletionResult, CompletionSettings
from ..domain.ports import ICompletionBackend, IEmbeddingProvider
from ..exceptions import ChatError

logger = logging.getLogger(__name__)


class ErrorType(str, Enum):
    """Classification of provider errors."""

    RECOVERABLE = "recoverable"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    FATAL = "fatal"


class LLMProviderError(ChatError):
    """Raised by provider calls that cannot report failures in a result.

    ``complete()`` never raises this; embedding calls do.
    """

    def __init__(
        self,
        message: str,
        error_type: ErrorType = ErrorType.RECOVERABLE,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            code="LLM_PROVIDER_ERROR",
            details={"error_type": error_type.value},
            cause=original_error,
            recoverable=error_type != ErrorType.FATAL,
        )
        self.error_type = error_type
        self.original_error = original_error


@dataclass
class LLMProviderConfig:
    """Configuration for completion providers.

    Attributes:
        api_key: API key for the provider
        model: Model name to use
        embedding_model: Model for embeddings (if different)
        base_url: Optional custom base URL
        timeout: Request timeout in seconds
        max_retries: Maximum retry attempts
    """

    api_key: str
    model: str
    embedding_model: Optional[str] = None
    base_url: Optional[str] = None
    timeout: float = 60.0
    max_retries: int = 3
    extra: dict[str, Any] = field(default_factory=dict)


class BaseCompletionProvider(ICompletionBackend, IEmbeddingProvider, ABC):
    """Base class for provider implementations.

    Subclasses implement ``complete`` and ``embed`` for a specific API.
    Failures of ``complete`` are returned with ``_error_result``.
    """

    def __init__(self, config: LLMProviderConfig):
        """Initialize the provider.

        Args:
            config: Provider configuration
        """
        self.config = config

    @property
    def model_name(self) -> str:
        """Return the model name."""
        return self.config.model

    def _error_result(self, message: str, detail: Optional[str] = None) -> CompletionResult:
        """Build a failed result, keeping the backend's detail verbatim."""
        return CompletionResult(text="", error=message, detail=detail)

    @abstractmethod
    async def complete(
        self, prompt: str, settings: CompletionSettings
    ) -> CompletionResult:
        """Complete a prompt. Must be implemented by subclasses."""
        pass

    @abstractmethod
    async def embed(self, text: str) -> tuple[list[float], str, int]:
        """Generate an embedding. Must be implemented by subclasses."""
        pass

    async def close(self) -> None:
        """Release client resources."""
        pass

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
