"""
Chat engine wiring.

Builds a ChatOrchestrator and ChatSessionService that share the same
stores, prompt configuration and token counter. Missing collaborators
default to the in-memory implementations, and an engine without a given
background worker owns one that it stops on ``close()``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

from .background_worker import BackgroundWorker
from .config import PromptOptions
from .domain.ports import IMemoryStore, IMessageStore, IPlanner, ISessionStore
from .memory.extractor import MemoryExtractor
from .memory.volatile import VolatileMemoryStore
from .orchestrator import ChatHistoryAssembler, ChatOrchestrator, ChatSessionService, PromptBuilder
from .planner.result_shapes import ResultShapeRegistry
from .providers.base import BaseCompletionProvider
from .storage.volatile import VolatileMessageStore, VolatileSessionStore
from .token_budget import CountTokens, get_token_counter

logger = logging.getLogger(__name__)


@dataclass
class ChatEngine:
    """The orchestrator and the session service of one deployment."""

    orchestrator: ChatOrchestrator
    sessions: ChatSessionService
    memory_store: IMemoryStore
    background_worker: BackgroundWorker
    owns_background_worker: bool = field(default=False, repr=False)

    async def close(self, timeout: float = 30.0) -> None:
        """Drain and stop the background worker if this engine created it."""
        if self.owns_background_worker:
            await self.background_worker.stop(timeout=timeout)


def create_chat_engine(
    provider: BaseCompletionProvider,
    message_store: Optional[IMessageStore] = None,
    session_store: Optional[ISessionStore] = None,
    memory_store: Optional[IMemoryStore] = None,
    planner: Optional[IPlanner] = None,
    options: Optional[PromptOptions] = None,
    result_shapes: Optional[ResultShapeRegistry] = None,
    background_worker: Optional[BackgroundWorker] = None,
    count_tokens: Optional[CountTokens] = None,
    extract_memories: bool = True,
) -> ChatEngine:
    """Wire a chat engine.

    Args:
        provider: Completion and embedding provider
        message_store: Message persistence (in-memory if None)
        session_store: Session persistence (in-memory if None)
        memory_store: Memory collections (in-memory, embedded by ``provider``, if None)
        planner: Planner for external information (disabled if None)
        options: Prompt configuration
        result_shapes: Skill-name to result-shape mapping
        background_worker: Queue for memory distillation (engine-owned if None)
        count_tokens: Token counter (defaults to tiktoken cl100k_base)
        extract_memories: Whether responses are distilled into semantic memory

    Returns:
        ChatEngine sharing one set of collaborators
    """
    options = options or PromptOptions()
    count_tokens = count_tokens or get_token_counter()
    if message_store is None:
        message_store = VolatileMessageStore()
    if session_store is None:
        session_store = VolatileSessionStore()
    if memory_store is None:
        memory_store = VolatileMemoryStore(provider)
    owns_background_worker = background_worker is None
    if background_worker is None:
        background_worker = BackgroundWorker()

    prompt_builder = PromptBuilder(options)
    memory_extractor = None
    if extract_memories:
        memory_extractor = MemoryExtractor(
            provider,
            memory_store,
            ChatHistoryAssembler(message_store, count_tokens),
            prompt_builder,
        )

    orchestrator = ChatOrchestrator(
        completion=provider,
        message_store=message_store,
        session_store=session_store,
        memory_store=memory_store,
        planner=planner,
        options=options,
        result_shapes=result_shapes,
        memory_extractor=memory_extractor,
        background_worker=background_worker,
        count_tokens=count_tokens,
        prompt_builder=prompt_builder,
    )
    sessions = ChatSessionService(session_store, message_store, options)

    logger.info(
        f"Chat engine ready (model={provider.model_name}, "
        f"planner={'on' if planner else 'off'}, memories={'on' if extract_memories else 'off'})"
    )
    return ChatEngine(
        orchestrator=orchestrator,
        sessions=sessions,
        memory_store=memory_store,
        background_worker=background_worker,
        owns_background_worker=owns_background_worker,
    )
