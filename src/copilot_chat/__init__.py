"""
Copilot Chat Orchestration Engine.

Produces a context-aware bot response for each incoming chat message by
assembling a token-budgeted prompt from several sources of context.

Architecture:
- Domain: Entities, typed chat context and port interfaces
- Orchestrator: Pipeline stages and the main ChatOrchestrator
- Memory: Semantic/document retrieval, distillation and vector stores
- Planner: Skill registry, result shapes, planner and HTTP skill
- Providers: Completion and embedding providers (OpenAI, Ollama)
- Storage: In-memory and PostgreSQL chat stores

Key Features:
- Token budgets split between external information, memories and documents
- Plan proposal and human approval before any skill runs
- Fail-fast pipeline surfacing the first error with backend detail
- Background memory distillation that never delays the response
"""

# Domain entities
from .domain import (
    AuthorRole,
    ChatContext,
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

# Configuration and errors
from .config import PlannerOptions, PromptOptions
from .exceptions import (
    ChatError,
    ChatSessionNotFoundError,
    CompletionBackendError,
    MemoryStoreError,
    PlannerError,
    ValidationError,
)
from .token_budget import TokenBudget, TokenBudgetAllocator, TokenCounter

# Orchestrator
from .orchestrator import ChatOrchestrator, ChatSessionService

# Memory
from .memory import (
    DocumentMemoryRetriever,
    MemoryExtractor,
    PgVectorMemoryStore,
    SemanticMemoryRetriever,
    VolatileMemoryStore,
)

# Planner
from .planner import ChatPlanner, HttpSkill, HttpSkillConfig, SkillRegistry

# Providers
from .providers import (
    LLMProviderConfig,
    OllamaProvider,
    OpenAIProvider,
    create_completion_backend_from_env,
)

# Storage
from .storage import (
    PostgresMessageStore,
    PostgresSessionStore,
    VolatileMessageStore,
    VolatileSessionStore,
)

from .background_worker import (
    BackgroundWorker,
    init_background_worker,
    shutdown_background_worker,
)
from .engine import ChatEngine, create_chat_engine

__all__ = [
    # Domain
    "AuthorRole",
    "ChatContext",
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
    # Configuration and errors
    "PromptOptions",
    "PlannerOptions",
    "ChatError",
    "ChatSessionNotFoundError",
    "CompletionBackendError",
    "MemoryStoreError",
    "PlannerError",
    "ValidationError",
    "TokenBudget",
    "TokenBudgetAllocator",
    "TokenCounter",
    # Orchestrator
    "ChatOrchestrator",
    "ChatSessionService",
    # Memory
    "SemanticMemoryRetriever",
    "DocumentMemoryRetriever",
    "MemoryExtractor",
    "PgVectorMemoryStore",
    "VolatileMemoryStore",
    # Planner
    "ChatPlanner",
    "HttpSkill",
    "HttpSkillConfig",
    "SkillRegistry",
    # Providers
    "LLMProviderConfig",
    "OpenAIProvider",
    "OllamaProvider",
    "create_completion_backend_from_env",
    # Storage
    "PostgresMessageStore",
    "PostgresSessionStore",
    "VolatileMessageStore",
    "VolatileSessionStore",
    # Wiring
    "BackgroundWorker",
    "init_background_worker",
    "shutdown_background_worker",
    "ChatEngine",
    "create_chat_engine",
]
