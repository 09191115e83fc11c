"""
Unit tests for provider selection from arguments and environment.
"""

from unittest.mock import MagicMock, patch

import pytest

from copilot_chat.exceptions import ConfigurationError
from copilot_chat.providers import factory
from copilot_chat.providers.factory import (
    create_completion_backend,
    create_completion_backend_from_env,
)
from copilot_chat.providers.ollama import OllamaProvider
from copilot_chat.providers.openai import OPENAI_AVAILABLE, OpenAIProvider


ENV_KEYS = (
    "LLM_PROVIDER",
    "LLM_TIMEOUT",
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_BASE_URL",
    "OPENAI_EMBEDDING_MODEL",
    "OLLAMA_MODEL",
    "OLLAMA_BASE_URL",
    "OLLAMA_EMBEDDING_MODEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestCreateCompletionBackend:
    def test_unknown_provider(self):
        with pytest.raises(ConfigurationError) as exc_info:
            create_completion_backend("bard")

        assert exc_info.value.details["key"] == "LLM_PROVIDER"

    def test_openai_requires_key(self):
        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            create_completion_backend("openai")

    @pytest.mark.skipif(not OPENAI_AVAILABLE, reason="openai package not installed")
    def test_openai_defaults(self):
        with patch("copilot_chat.providers.openai.AsyncOpenAI", return_value=MagicMock()):
            backend = create_completion_backend("OpenAI", api_key="sk-test")

        assert isinstance(backend, OpenAIProvider)
        assert backend.model_name == OpenAIProvider.DEFAULT_MODEL

    def test_ollama_needs_no_key(self):
        with patch("copilot_chat.providers.ollama.httpx.AsyncClient", return_value=MagicMock()):
            backend = create_completion_backend("ollama", model="llama3")

        assert isinstance(backend, OllamaProvider)
        assert backend.model_name == "llama3"
        assert backend.base_url == OllamaProvider.DEFAULT_BASE_URL


class TestCreateCompletionBackendFromEnv:
    def test_reads_ollama_settings(self, monkeypatch):
        monkeypatch.setenv("LLM_PROVIDER", "ollama")
        monkeypatch.setenv("OLLAMA_MODEL", "qwen3:8b")
        monkeypatch.setenv("OLLAMA_BASE_URL", "http://gpu-box:11434")
        monkeypatch.setenv("LLM_TIMEOUT", "15")

        with patch("copilot_chat.providers.ollama.httpx.AsyncClient", return_value=MagicMock()) as client_cls:
            backend = create_completion_backend_from_env(load_dotenv_file=False)

        assert backend.model_name == "qwen3:8b"
        assert backend.base_url == "http://gpu-box:11434"
        assert backend.config.timeout == 15.0
        client_cls.assert_called_once_with(base_url="http://gpu-box:11434", timeout=15.0)

    def test_defaults_to_openai(self):
        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            create_completion_backend_from_env(load_dotenv_file=False)

    def test_invalid_timeout(self, monkeypatch):
        monkeypatch.setenv("LLM_TIMEOUT", "soon")

        with pytest.raises(ConfigurationError) as exc_info:
            create_completion_backend_from_env(load_dotenv_file=False)

        assert exc_info.value.details["key"] == "LLM_TIMEOUT"

    def test_loads_dotenv_when_asked(self, monkeypatch):
        monkeypatch.setenv("LLM_PROVIDER", "ollama")
        load = MagicMock()
        monkeypatch.setattr(factory, "load_dotenv", load)

        with patch("copilot_chat.providers.ollama.httpx.AsyncClient", return_value=MagicMock()):
            create_completion_backend_from_env()

        load.assert_called_once_with()
