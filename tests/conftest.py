"""
Shared fakes for the chat engine tests.

Token counting uses whitespace-separated words so that budgets in tests
are easy to reason about and never need a tiktoken download.
"""

from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from copilot_chat.config import PromptOptions
from copilot_chat.domain.entities import (
    ChatMessage,
    ChatSession,
    CompletionResult,
    CompletionSettings,
)
from copilot_chat.domain.ports import ICompletionBackend, IEmbeddingProvider
from copilot_chat.storage.volatile import VolatileMessageStore, VolatileSessionStore


def count_words(text: str) -> int:
    return len(text.split())


class ScriptedCompletion(ICompletionBackend):
    """Completion backend that answers from a list of canned results.

    Strings are returned as successful completions; CompletionResult
    instances are returned as is. Every call is recorded.
    """

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls: list[tuple[str, CompletionSettings]] = []

    @property
    def model_name(self) -> str:
        return "scripted"

    @property
    def prompts(self) -> list[str]:
        return [prompt for prompt, _ in self.calls]

    async def complete(self, prompt: str, settings: CompletionSettings) -> CompletionResult:
        self.calls.append((prompt, settings))
        if not self.responses:
            return CompletionResult(text="")
        response = self.responses.pop(0)
        if isinstance(response, CompletionResult):
            return response
        return CompletionResult(text=response)


class KeywordEmbedding(IEmbeddingProvider):
    """Embeds text as keyword counts over a fixed vocabulary."""

    VOCABULARY = ("tea", "coffee", "revenue", "github", "weather", "ada")

    def __init__(self, model: str = "keywords"):
        self.model = model
        self.calls: list[str] = []

    async def embed(self, text: str) -> tuple[list[float], str, int]:
        self.calls.append(text)
        lowered = text.lower()
        vector = [float(lowered.count(word)) for word in self.VOCABULARY]
        return vector, self.model, len(vector)


@pytest.fixture
def options():
    """Prompt options with short fragments and a roomy budget."""
    return PromptOptions(
        completion_token_limit=2000,
        response_token_limit=200,
        system_description="You are Copilot.",
        system_response="Respond to the last message.",
        system_intent="Rewrite the intent.",
        system_intent_continuation="INTENT:",
        system_audience="List participants.",
        system_audience_continuation="Participants:",
        system_chat_continuation="bot:",
    )


@pytest.fixture
def message_store():
    return VolatileMessageStore()


@pytest.fixture
def session_store():
    return VolatileSessionStore()


@pytest_asyncio.fixture
async def chat_session(session_store):
    return await session_store.create(ChatSession(user_id="u1", title="Test chat"))


def make_message(chat_id: str, content: str, minutes: int, user_name: str = "Ada") -> ChatMessage:
    """A user message timestamped ``minutes`` after a fixed origin."""
    return ChatMessage(
        user_id="u1",
        user_name=user_name,
        chat_id=chat_id,
        content=content,
        timestamp=datetime(2024, 1, 1, 10, 0, 0) + timedelta(minutes=minutes),
    )
