"""
Unit tests for semantic memory and document snippet retrieval.
"""

import pytest

from conftest import count_words
from copilot_chat.config import PromptOptions
from copilot_chat.domain.entities import MemoryQueryResult
from copilot_chat.domain.ports import IMemoryStore
from copilot_chat.exceptions import MemoryStoreError
from copilot_chat.memory.retrieval import (
    DOCUMENTS_LABEL,
    MEMORIES_LABEL,
    DocumentMemoryRetriever,
    SemanticMemoryRetriever,
    memory_collection_name,
)


class FixedMemoryStore(IMemoryStore):
    """Returns canned results per collection and records searches."""

    def __init__(self, results=None, error=None):
        self.results = results or {}
        self.error = error
        self.searches = []

    async def search(self, collection, query, limit, min_relevance):
        self.searches.append((collection, query, limit, min_relevance))
        if self.error:
            raise self.error
        return [r for r in self.results.get(collection, []) if r.relevance >= min_relevance]

    async def save_information(self, collection, text, id, description=""):
        return id


def snippet(text: str, relevance: float, description: str = "LongTermMemory") -> MemoryQueryResult:
    return MemoryQueryResult(text=text, description=description, relevance=relevance)


@pytest.fixture
def single_memory_options():
    return PromptOptions(
        memory_map={"LongTermMemory": "long term"},
        semantic_memory_min_relevance=0.0,
        document_memory_min_relevance=0.5,
    )


# ============================================
# Semantic memories
# ============================================


class TestSemanticMemoryRetriever:
    """Tests for relevance-ranked, budgeted memory selection."""

    @pytest.mark.asyncio
    async def test_keeps_top_snippets_that_fit_in_relevance_order(self, single_memory_options):
        """Ten snippets, budget for three: the three most relevant, best first."""
        relevances = [0.7, 0.9, 0.3, 0.85, 0.1, 0.5, 0.6, 0.2, 0.4, 0.05]
        results = [
            snippet(f"memory{i} detail", relevance)
            for i, relevance in enumerate(relevances)
        ]
        store = FixedMemoryStore({"chat-1-LongTermMemory": results})
        retriever = SemanticMemoryRetriever(store, single_memory_options, count_words)

        block = await retriever.query_memories("intent", "chat-1", token_limit=6)

        lines = block.split("\n")
        assert lines[0] == MEMORIES_LABEL
        assert lines[1:] == [
            "[LongTermMemory] memory1 detail",
            "[LongTermMemory] memory3 detail",
            "[LongTermMemory] memory0 detail",
        ]

    @pytest.mark.asyncio
    async def test_searches_one_collection_per_memory_type(self):
        options = PromptOptions(semantic_memory_min_relevance=0.8)
        store = FixedMemoryStore()
        retriever = SemanticMemoryRetriever(store, options, count_words)

        await retriever.query_memories("intent", "chat-1", token_limit=100)

        assert [s[0] for s in store.searches] == [
            memory_collection_name("chat-1", name) for name in options.memory_map
        ]
        assert all(s[3] == 0.8 for s in store.searches)
        assert all(s[2] == options.memory_search_limit for s in store.searches)

    @pytest.mark.asyncio
    async def test_merges_collections(self):
        options = PromptOptions(semantic_memory_min_relevance=0.0)
        store = FixedMemoryStore(
            {
                "chat-1-LongTermMemory": [snippet("likes tea", 0.6)],
                "chat-1-WorkingMemory": [snippet("asked about prs", 0.95, "WorkingMemory")],
            }
        )
        retriever = SemanticMemoryRetriever(store, options, count_words)

        block = await retriever.query_memories("intent", "chat-1", token_limit=100)

        assert block.split("\n")[1:] == [
            "[WorkingMemory] asked about prs",
            "[LongTermMemory] likes tea",
        ]

    @pytest.mark.asyncio
    async def test_empty_when_nothing_relevant(self, single_memory_options):
        retriever = SemanticMemoryRetriever(FixedMemoryStore(), single_memory_options, count_words)

        assert await retriever.query_memories("intent", "chat-1", token_limit=100) == ""

    @pytest.mark.asyncio
    async def test_empty_when_first_snippet_does_not_fit(self, single_memory_options):
        store = FixedMemoryStore({"chat-1-LongTermMemory": [snippet("far too many words here", 0.9)]})
        retriever = SemanticMemoryRetriever(store, single_memory_options, count_words)

        assert await retriever.query_memories("intent", "chat-1", token_limit=2) == ""

    @pytest.mark.asyncio
    async def test_store_failure_is_wrapped(self, single_memory_options):
        store = FixedMemoryStore(error=RuntimeError("connection reset"))
        retriever = SemanticMemoryRetriever(store, single_memory_options, count_words)

        with pytest.raises(MemoryStoreError) as exc_info:
            await retriever.query_memories("intent", "chat-1", token_limit=100)

        assert exc_info.value.details["collection"] == "chat-1-LongTermMemory"


# ============================================
# Document snippets
# ============================================


class TestDocumentMemoryRetriever:
    """Tests for chat-scoped and global document retrieval."""

    def test_searches_chat_and_global_collections(self, single_memory_options):
        retriever = DocumentMemoryRetriever(FixedMemoryStore(), single_memory_options, count_words)

        assert retriever.collections_for("chat-1") == [
            "chat-documents-chat-1",
            "global-documents",
        ]

    @pytest.mark.asyncio
    async def test_formats_snippets_with_source(self, single_memory_options):
        store = FixedMemoryStore(
            {
                "chat-documents-chat-1": [snippet("Q3 revenue grew", 0.7, "report.pdf")],
                "global-documents": [snippet("Handbook intro", 0.9, "handbook.docx")],
            }
        )
        retriever = DocumentMemoryRetriever(store, single_memory_options, count_words)

        block = await retriever.query_documents("revenue", "chat-1", token_limit=100)

        assert block == (
            f"{DOCUMENTS_LABEL}\n"
            "Snippet from handbook.docx: Handbook intro\n\n"
            "Snippet from report.pdf: Q3 revenue grew"
        )

    @pytest.mark.asyncio
    async def test_uses_document_min_relevance(self, single_memory_options):
        store = FixedMemoryStore({"global-documents": [snippet("weak match", 0.4, "a.txt")]})
        retriever = DocumentMemoryRetriever(store, single_memory_options, count_words)

        assert await retriever.query_documents("q", "chat-1", token_limit=100) == ""
        assert all(s[3] == 0.5 for s in store.searches)
