"""
Semantic memory extraction.

After a response is saved, the recent exchange is distilled into short
memories, one pass per memory type in the memory map. Each pass asks the
completion backend for ``{"items": [{"label": ..., "details": ...}]}`` and
stores every item that is not already remembered.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from ..config import PromptOptions
from ..domain.context import ChatContext
from ..domain.ports import ICompletionBackend, IMemoryStore
from ..exceptions import ChatError, CompletionBackendError, MemoryStoreError
from ..orchestrator.history import ChatHistoryAssembler
from ..orchestrator.prompt_builder import PromptBuilder
from ..token_budget import TokenBudgetAllocator
from .retrieval import memory_collection_name

logger = logging.getLogger(__name__)


@dataclass
class MemoryItem:
    """A single distilled memory.

    Attributes:
        label: Short topic of the memory
        details: What is remembered about it
    """

    label: str
    details: str

    def to_formatted_string(self) -> str:
        return f"{self.label}: {self.details}"


@dataclass
class SemanticChatMemory:
    """Items distilled for one memory type."""

    items: list[MemoryItem] = field(default_factory=list)

    @classmethod
    def from_json(cls, text: str) -> "SemanticChatMemory":
        """Parse a backend response.

        Markdown code fences and prose around the JSON object are
        tolerated.

        Raises:
            ValueError: If no memory object can be parsed
        """
        text = text.strip()

        # Handle markdown code blocks
        if text.startswith("```"):
            lines = text.split("\n")
            if lines[-1].strip() == "```":
                lines = lines[1:-1]
            else:
                lines = lines[1:]
            text = "\n".join(lines)

        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end == -1:
            raise ValueError("Failed to deserialize chat memory to json.")

        data: Any = json.loads(text[start : end + 1])
        if not isinstance(data, dict) or not isinstance(data.get("items", []), list):
            raise ValueError("Failed to deserialize chat memory to json.")

        items = []
        for item in data.get("items") or []:
            if not isinstance(item, dict):
                continue
            label = str(item.get("label") or "").strip()
            details = str(item.get("details") or "").strip()
            if label and details:
                items.append(MemoryItem(label=label, details=details))
        return cls(items=items)


class MemoryExtractor:
    """Distills chat history into semantic memories.

    Failures are logged per memory type and never reach the user; the
    extractor is meant to run in the background after a response.

    Usage:
        extractor = MemoryExtractor(completion, memory_store, history, prompt_builder)
        saved = await extractor.extract_semantic_memory(context)

        # Or, from the orchestrator
        await worker.submit(extractor.extract_semantic_memory, context)
    """

    def __init__(
        self,
        completion: ICompletionBackend,
        memory_store: IMemoryStore,
        history: ChatHistoryAssembler,
        prompt_builder: PromptBuilder,
        allocator: Optional[TokenBudgetAllocator] = None,
    ):
        """Initialize the memory extractor.

        Args:
            completion: Backend used to distill memories
            memory_store: Store the memories are written to
            history: Assembles the history the memories are drawn from
            prompt_builder: Renders the memory-extraction prompts
            allocator: Token budget allocator (shares the history's counter by default)
        """
        self.completion = completion
        self.memory_store = memory_store
        self.history = history
        self.prompt_builder = prompt_builder
        self.allocator = allocator or TokenBudgetAllocator(
            prompt_builder.options, history.count_tokens
        )

    @property
    def options(self) -> PromptOptions:
        return self.prompt_builder.options

    async def extract_semantic_memory(self, context: ChatContext) -> int:
        """Run one extraction pass per memory type.

        Returns:
            Number of memories saved
        """
        saved = 0
        for memory_name in self.options.memory_map:
            try:
                memory = await self.extract_cognitive_memory(context, memory_name)
                for item in memory.items:
                    if await self.create_memory(item, context.chat_id, memory_name):
                        saved += 1
            except (ChatError, ValueError) as e:
                logger.warning(
                    f"Failed to extract {memory_name} for chat {context.chat_id}: {e}"
                )

        logger.info(f"Saved {saved} memories for chat {context.chat_id}")
        return saved

    async def extract_cognitive_memory(
        self, context: ChatContext, memory_name: str
    ) -> SemanticChatMemory:
        """Ask the backend for the memories of one type.

        Raises:
            CompletionBackendError: If the backend fails
            ValueError: If the response cannot be parsed
        """
        token_limit = self.allocator.remaining(
            *self.prompt_builder.memory_overhead(context, memory_name)
        )
        history = await self.history.extract_chat_history(context.chat_id, token_limit)
        prompt = self.prompt_builder.memory_prompt(context, memory_name, history)

        result = await self.completion.complete(prompt, self.prompt_builder.memory_settings())
        if not result.succeeded:
            raise CompletionBackendError(result.error or "", detail=result.detail)

        return SemanticChatMemory.from_json(result.text)

    async def create_memory(self, item: MemoryItem, chat_id: str, memory_name: str) -> bool:
        """Save an item unless a close enough memory already exists.

        Returns:
            True if the item was saved

        Raises:
            MemoryStoreError: If the store cannot be searched or written
        """
        collection = memory_collection_name(chat_id, memory_name)
        text = item.to_formatted_string()

        existing = await self.memory_store.search(
            collection,
            text,
            limit=1,
            min_relevance=self.options.semantic_memory_min_relevance,
        )
        if existing:
            logger.debug(f"Skipping duplicate memory in {collection}: {item.label}")
            return False

        try:
            await self.memory_store.save_information(
                collection,
                text,
                id=str(uuid.uuid4()),
                description=memory_name,
            )
        except MemoryStoreError:
            raise
        except Exception as e:
            raise MemoryStoreError(
                f"Failed to save memory: {e}", collection=collection, cause=e
            )
        return True
