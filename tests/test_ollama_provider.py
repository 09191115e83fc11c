"""
Unit tests for Ollama provider.

Tests that Ollama completion and embedding functionality work correctly.
"""

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from copilot_chat.domain.entities import CompletionSettings
from copilot_chat.providers.base import ErrorType, LLMProviderConfig, LLMProviderError
from copilot_chat.providers.ollama import OLLAMA_AVAILABLE, OllamaProvider


# Skip if httpx not installed
pytestmark = pytest.mark.skipif(
    not OLLAMA_AVAILABLE,
    reason="httpx package not installed"
)


REQUEST = httpx.Request("POST", "http://localhost:11434/api/generate")


@pytest.fixture
def ollama_config():
    """Test Ollama config."""
    return LLMProviderConfig(
        api_key="not-needed",  # Ollama doesn't require auth
        model="qwen3:4b",
        base_url="http://localhost:11434",
        embedding_model="nomic-embed-text",
    )


def json_response(data):
    response = MagicMock()
    response.raise_for_status = MagicMock()
    response.json.return_value = data
    return response


@pytest.fixture
def mock_httpx_client():
    """Mock httpx async client."""
    client = MagicMock()
    client.post = AsyncMock(return_value=json_response({"response": "Hi there"}))
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def provider(ollama_config, mock_httpx_client):
    with patch("copilot_chat.providers.ollama.httpx.AsyncClient", return_value=mock_httpx_client):
        yield OllamaProvider(ollama_config)


class TestOllamaCompletion:
    """Tests for Ollama completions."""

    @pytest.mark.asyncio
    async def test_complete_posts_generate_request(self, provider, mock_httpx_client):
        settings = CompletionSettings(max_tokens=64, temperature=0.3, stop_sequences=["] bot:"])

        result = await provider.complete("prompt text", settings)

        assert result.text == "Hi there"
        path = mock_httpx_client.post.call_args.args[0]
        payload = mock_httpx_client.post.call_args.kwargs["json"]
        assert path == "/api/generate"
        assert payload["model"] == "qwen3:4b"
        assert payload["stream"] is False
        assert payload["options"]["num_predict"] == 64
        assert payload["options"]["stop"] == ["] bot:"]

    @pytest.mark.asyncio
    async def test_http_error_keeps_body_as_detail(self, provider, mock_httpx_client):
        error_response = httpx.Response(404, text='{"error":"model not found"}', request=REQUEST)
        response = json_response({})
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "not found", request=REQUEST, response=error_response
        )
        mock_httpx_client.post.return_value = response

        result = await provider.complete("prompt", CompletionSettings())

        assert result.error == "Ollama API error: 404"
        assert result.detail == '{"error":"model not found"}'

    @pytest.mark.asyncio
    async def test_timeout_reported(self, provider, mock_httpx_client):
        mock_httpx_client.post.side_effect = httpx.ReadTimeout("timed out", request=REQUEST)

        result = await provider.complete("prompt", CompletionSettings())

        assert result.error == "Ollama request timeout"

    @pytest.mark.asyncio
    async def test_connection_error_reported(self, provider, mock_httpx_client):
        mock_httpx_client.post.side_effect = httpx.ConnectError("refused", request=REQUEST)

        result = await provider.complete("prompt", CompletionSettings())

        assert result.error == "Ollama connection error"
        assert result.detail == "refused"

    @pytest.mark.asyncio
    async def test_error_field_reported(self, provider, mock_httpx_client):
        mock_httpx_client.post.return_value = json_response({"error": "out of memory"})

        result = await provider.complete("prompt", CompletionSettings())

        assert result.error_description == "Ollama generation failed - Detail: out of memory"


class TestOllamaEmbedding:
    """Tests for Ollama embeddings."""

    @pytest.mark.asyncio
    async def test_embed(self, provider, mock_httpx_client):
        mock_httpx_client.post.return_value = json_response({"embedding": [0.1] * 768})

        embedding, model, dimension = await provider.embed("tea")

        assert model == "nomic-embed-text"
        assert dimension == 768
        assert mock_httpx_client.post.call_args.args[0] == "/api/embeddings"

    @pytest.mark.asyncio
    async def test_empty_embedding_raises(self, provider, mock_httpx_client):
        mock_httpx_client.post.return_value = json_response({})

        with pytest.raises(LLMProviderError, match="No embedding returned"):
            await provider.embed("tea")

    @pytest.mark.asyncio
    async def test_connection_error_is_fatal(self, provider, mock_httpx_client):
        mock_httpx_client.post.side_effect = httpx.ConnectError("refused", request=REQUEST)

        with pytest.raises(LLMProviderError) as exc_info:
            await provider.embed("tea")

        assert exc_info.value.error_type == ErrorType.FATAL
        assert not exc_info.value.recoverable

    @pytest.mark.asyncio
    async def test_close(self, provider, mock_httpx_client):
        await provider.close()

        mock_httpx_client.aclose.assert_awaited_once()
