"""
Semantic and document memory retrieval.

Both retrievers search their collections, merge the hits, rank them by
relevance and keep the best snippets that fit the token budget. A search
that yields nothing is "no relevant memory", not an error.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import PromptOptions
from ..domain.entities import MemoryQueryResult
from ..domain.ports import IMemoryStore
from ..exceptions import MemoryStoreError
from ..token_budget import CountTokens, TokenBudget, get_token_counter

logger = logging.getLogger(__name__)

MEMORIES_LABEL = "Past memories (format: [memory type] <label>: <details>):"
DOCUMENTS_LABEL = "User has also shared some document snippets:"


def memory_collection_name(chat_id: str, memory_name: str) -> str:
    """Collection holding one memory type of one chat."""
    return f"{chat_id}-{memory_name}"


class _MemoryRetriever:
    """Search, rank and greedily fill a budget."""

    def __init__(
        self,
        memory_store: IMemoryStore,
        options: PromptOptions,
        count_tokens: Optional[CountTokens] = None,
    ):
        self.memory_store = memory_store
        self.options = options
        self.count_tokens = count_tokens or get_token_counter()

    async def _search_all(
        self, collections: list[str], query: str, min_relevance: float
    ) -> list[MemoryQueryResult]:
        """Search every collection and merge the hits, best first.

        The sort is stable, so equal relevances keep retrieval order.
        """
        results: list[MemoryQueryResult] = []
        for collection in collections:
            try:
                hits = await self.memory_store.search(
                    collection,
                    query,
                    limit=self.options.memory_search_limit,
                    min_relevance=min_relevance,
                )
            except MemoryStoreError:
                raise
            except Exception as e:
                raise MemoryStoreError(
                    f"Memory search failed: {e}", collection=collection, cause=e
                )
            results.extend(hits)

        return sorted(results, key=lambda r: r.relevance, reverse=True)

    def _fill(self, results: list[MemoryQueryResult], token_limit: int) -> list[MemoryQueryResult]:
        """Keep leading results while they fit; stop at the first that doesn't."""
        budget = TokenBudget(token_limit)
        kept = []
        for result in results:
            if not budget.try_consume(self.count_tokens(result.text)):
                break
            kept.append(result)
        return kept


class SemanticMemoryRetriever(_MemoryRetriever):
    """Retrieves distilled chat memories relevant to a query.

    Searches one collection per configured memory type
    (``"{chat_id}-{memory_name}"``).

    Usage:
        retriever = SemanticMemoryRetriever(memory_store, options)
        block = await retriever.query_memories(user_intent, chat_id, token_limit=300)
    """

    async def query_memories(self, query: str, chat_id: str, token_limit: int) -> str:
        """Build the semantic-memory block.

        Args:
            query: Text to match (usually the extracted user intent)
            chat_id: Chat whose memories are searched
            token_limit: Token budget for the snippets

        Returns:
            Labelled block, or ``""`` if nothing relevant fits

        Raises:
            MemoryStoreError: If a search fails
        """
        collections = [
            memory_collection_name(chat_id, memory_name)
            for memory_name in self.options.memory_map
        ]
        results = await self._search_all(
            collections, query, self.options.semantic_memory_min_relevance
        )
        kept = self._fill(results, token_limit)

        logger.debug(
            f"Selected {len(kept)}/{len(results)} memories for chat {chat_id}"
        )
        if not kept:
            return ""

        memory_text = "".join(f"\n[{r.description}] {r.text}" for r in kept)
        return f"{MEMORIES_LABEL}\n{memory_text.strip()}"


class DocumentMemoryRetriever(_MemoryRetriever):
    """Retrieves snippets of documents shared in a chat or globally.

    Exactly two collections are searched: the one scoped to the caller's
    chat and the global one.
    """

    def collections_for(self, chat_id: str) -> list[str]:
        return [
            self.options.chat_document_collection(chat_id),
            self.options.global_document_collection_name,
        ]

    async def query_documents(self, query: str, chat_id: str, token_limit: int) -> str:
        """Build the document-snippet block.

        Returns:
            Labelled block, or ``""`` if nothing relevant fits

        Raises:
            MemoryStoreError: If a search fails
        """
        results = await self._search_all(
            self.collections_for(chat_id),
            query,
            self.options.document_memory_min_relevance,
        )
        kept = self._fill(results, token_limit)

        logger.debug(
            f"Selected {len(kept)}/{len(results)} document snippets for chat {chat_id}"
        )
        if not kept:
            return ""

        documents_text = "".join(
            f"\n\nSnippet from {r.description}: {r.text}" for r in kept
        )
        return f"{DOCUMENTS_LABEL}\n{documents_text.strip()}"
