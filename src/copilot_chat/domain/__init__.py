"""Domain layer: entities, typed chat context and port interfaces."""

from .context import ChatContext
from .entities import (
    AuthorRole,
    ChatMessage,
    ChatMessageType,
    ChatResult,
    ChatSession,
    CompletionResult,
    CompletionSettings,
    MemoryQueryResult,
    Plan,
    PlanState,
    PlanStep,
    PlanType,
    ProposedPlan,
)
from .ports import (
    ICompletionBackend,
    IEmbeddingProvider,
    IMemoryStore,
    IMessageStore,
    IPlanner,
    ISessionStore,
)

__all__ = [
    # Entities
    "AuthorRole",
    "ChatMessage",
    "ChatMessageType",
    "ChatResult",
    "ChatSession",
    "CompletionResult",
    "CompletionSettings",
    "MemoryQueryResult",
    "Plan",
    "PlanState",
    "PlanStep",
    "PlanType",
    "ProposedPlan",
    # Context
    "ChatContext",
    # Ports
    "ICompletionBackend",
    "IEmbeddingProvider",
    "IMemoryStore",
    "IMessageStore",
    "IPlanner",
    "ISessionStore",
]
