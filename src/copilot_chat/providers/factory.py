"""
Provider factory.

Selects and configures a completion provider from explicit arguments or
from the environment.

Environment variables:
    LLM_PROVIDER: "openai" (default) or "ollama"
    OPENAI_API_KEY, OPENAI_MODEL, OPENAI_EMBEDDING_MODEL, OPENAI_BASE_URL
    OLLAMA_BASE_URL, OLLAMA_MODEL, OLLAMA_EMBEDDING_MODEL
    LLM_TIMEOUT: Request timeout in seconds
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from dotenv import load_dotenv

from ..exceptions import ConfigurationError
from .base import BaseCompletionProvider, LLMProviderConfig
from .ollama import OllamaProvider
from .openai import OpenAIProvider

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("openai", "ollama")


def create_completion_backend(
    provider: str,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    embedding_model: Optional[str] = None,
    timeout: float = 60.0,
) -> BaseCompletionProvider:
    """Create a completion provider by name.

    Raises:
        ConfigurationError: If the provider is unknown or misconfigured
    """
    name = provider.lower().strip()

    if name == "openai":
        if not api_key:
            raise ConfigurationError(
                "OPENAI_API_KEY is required for the openai provider",
                key="OPENAI_API_KEY",
            )
        config = LLMProviderConfig(
            api_key=api_key,
            model=model or OpenAIProvider.DEFAULT_MODEL,
            embedding_model=embedding_model,
            base_url=base_url,
            timeout=timeout,
        )
        backend: BaseCompletionProvider = OpenAIProvider(config)

    elif name == "ollama":
        config = LLMProviderConfig(
            api_key=api_key or "not-needed",
            model=model or OllamaProvider.DEFAULT_MODEL,
            embedding_model=embedding_model,
            base_url=base_url,
            timeout=timeout,
        )
        backend = OllamaProvider(config)

    else:
        raise ConfigurationError(
            f"Unknown LLM provider '{provider}' (expected one of {', '.join(SUPPORTED_PROVIDERS)})",
            key="LLM_PROVIDER",
        )

    logger.info(f"Using {name} completion provider with model {backend.model_name}")
    return backend


def create_completion_backend_from_env(load_dotenv_file: bool = True) -> BaseCompletionProvider:
    """Create the provider named by ``LLM_PROVIDER``.

    Raises:
        ConfigurationError: If the environment is incomplete
    """
    if load_dotenv_file:
        load_dotenv()

    provider = os.getenv("LLM_PROVIDER", "openai").lower()
    try:
        timeout = float(os.getenv("LLM_TIMEOUT", "60"))
    except ValueError as e:
        raise ConfigurationError("LLM_TIMEOUT must be a number", key="LLM_TIMEOUT", cause=e)

    if provider == "ollama":
        return create_completion_backend(
            "ollama",
            model=os.getenv("OLLAMA_MODEL"),
            base_url=os.getenv("OLLAMA_BASE_URL"),
            embedding_model=os.getenv("OLLAMA_EMBEDDING_MODEL"),
            timeout=timeout,
        )

    return create_completion_backend(
        provider,
        model=os.getenv("OPENAI_MODEL"),
        api_key=os.getenv("OPENAI_API_KEY"),
        base_url=os.getenv("OPENAI_BASE_URL"),
        embedding_model=os.getenv("OPENAI_EMBEDDING_MODEL"),
        timeout=timeout,
    )
