"""Completion and embedding provider implementations."""

from .base import BaseCompletionProvider, ErrorType, LLMProviderConfig, LLMProviderError
from .factory import create_completion_backend, create_completion_backend_from_env
from .ollama import OllamaProvider
from .openai import OpenAIProvider

__all__ = [
    "BaseCompletionProvider",
    "ErrorType",
    "LLMProviderError",
    "LLMProviderConfig",
    "OpenAIProvider",
    "OllamaProvider",
    "create_completion_backend",
    "create_completion_backend_from_env",
]
