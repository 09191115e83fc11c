"""
Port Interfaces for the chat orchestration engine.

These abstract interfaces define the boundaries between the orchestration
core and its collaborators. Implementations live in the storage, memory,
planner and providers packages.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from ..exceptions import NotFoundError
from .entities import (
    ChatMessage,
    ChatSession,
    CompletionResult,
    CompletionSettings,
    MemoryQueryResult,
    Plan,
    PlanType,
)


class ICompletionBackend(ABC):
    """Interface for language-completion backends.

    Implementations must not raise for backend-side failures; they return
    a CompletionResult carrying ``error`` and, when available, ``detail``.
    """

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the model name being used."""
        pass

    @abstractmethod
    async def complete(
        self, prompt: str, settings: CompletionSettings
    ) -> CompletionResult:
        """Complete a rendered prompt.

        Args:
            prompt: Fully rendered prompt text
            settings: Sampling parameters

        Returns:
            CompletionResult with text or error
        """
        pass


class IEmbeddingProvider(ABC):
    """Interface for embedding providers."""

    @abstractmethod
    async def embed(self, text: str) -> tuple[list[float], str, int]:
        """Generate an embedding for text.

        Returns:
            Tuple of (embedding_vector, model_name, dimension)
        """
        pass


class IMessageStore(ABC):
    """Interface for chat message persistence."""

    @abstractmethod
    async def create(self, message: ChatMessage) -> ChatMessage:
        """Persist a new message."""
        pass

    @abstractmethod
    async def find_by_id(self, message_id: str) -> ChatMessage:
        """Get a message by id.

        Raises:
            NotFoundError: If no message has this id
        """
        pass

    @abstractmethod
    async def find_by_chat_id(self, chat_id: str) -> list[ChatMessage]:
        """Get all messages of a chat, in no guaranteed order."""
        pass

    @abstractmethod
    async def upsert(self, message: ChatMessage) -> ChatMessage:
        """Insert or replace a message (last write wins)."""
        pass

    @abstractmethod
    async def delete(self, message_id: str) -> None:
        """Delete a message.

        Raises:
            NotFoundError: If no message has this id
        """
        pass

    async def find_last_by_chat_id(self, chat_id: str) -> ChatMessage:
        """Get the most recent message of a chat.

        Raises:
            NotFoundError: If the chat has no messages
        """
        messages = await self.find_by_chat_id(chat_id)
        if not messages:
            raise NotFoundError("ChatMessage", f"last of chat {chat_id}")
        return max(messages, key=lambda m: m.timestamp)


class ISessionStore(ABC):
    """Interface for chat session persistence."""

    @abstractmethod
    async def create(self, session: ChatSession) -> ChatSession:
        """Persist a new session."""
        pass

    @abstractmethod
    async def find_by_id(self, session_id: str) -> ChatSession:
        """Get a session by id.

        Raises:
            NotFoundError: If no session has this id
        """
        pass

    @abstractmethod
    async def try_find_by_id(self, session_id: str) -> Optional[ChatSession]:
        """Get a session by id, or None if missing."""
        pass

    @abstractmethod
    async def find_by_user_id(self, user_id: str) -> list[ChatSession]:
        """Get all sessions owned by a user."""
        pass

    @abstractmethod
    async def upsert(self, session: ChatSession) -> ChatSession:
        """Insert or replace a session (last write wins)."""
        pass


class IMemoryStore(ABC):
    """Interface for semantic and document memory collections.

    The orchestration core only searches; the memory extractor also saves.
    """

    @abstractmethod
    async def search(
        self,
        collection: str,
        query: str,
        limit: int,
        min_relevance: float,
    ) -> list[MemoryQueryResult]:
        """Search a collection.

        Returns:
            Results ranked by descending relevance

        Raises:
            MemoryStoreError: If the search fails
        """
        pass

    @abstractmethod
    async def save_information(
        self,
        collection: str,
        text: str,
        id: str,
        description: str = "",
    ) -> str:
        """Store a snippet and return its id.

        Raises:
            MemoryStoreError: If the write fails
        """
        pass


class IPlanner(ABC):
    """Interface for action planners."""

    @property
    @abstractmethod
    def plan_type(self) -> PlanType:
        """Strategy of the plans this planner creates."""
        pass

    @property
    @abstractmethod
    def has_functions(self) -> bool:
        """Whether any function is registered."""
        pass

    @abstractmethod
    def can_resolve(self, skill: str, function: str) -> bool:
        """Whether the registry knows ``skill.function``."""
        pass

    @abstractmethod
    async def create_plan(self, goal: str) -> Plan:
        """Create a plan for a goal (empty if no functions are registered).

        Raises:
            PlannerError: If the plan cannot be created
        """
        pass

    @abstractmethod
    async def execute(self, plan: Plan) -> str:
        """Execute a plan in a fresh context bound to the planner's registry.

        Returns:
            Result of the final step

        Raises:
            PlannerError: If a step cannot be resolved, validated or run
        """
        pass
