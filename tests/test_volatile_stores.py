"""
Unit tests for the in-memory chat and memory stores.
"""

import pytest

from conftest import KeywordEmbedding, make_message
from copilot_chat.domain.entities import ChatSession
from copilot_chat.exceptions import MemoryStoreError, NotFoundError, ValidationError
from copilot_chat.memory.volatile import VolatileMemoryStore, cosine_similarity
from copilot_chat.storage.volatile import VolatileMessageStore, VolatileSessionStore


# ============================================
# Chat stores
# ============================================


class TestVolatileSessionStore:
    """Tests for the in-memory session store."""

    @pytest.mark.asyncio
    async def test_create_and_find(self):
        store = VolatileSessionStore()
        session = await store.create(ChatSession(user_id="u1", title="Ideas"))

        assert await store.find_by_id(session.id) is session
        assert await store.try_find_by_id("missing") is None
        assert await store.find_by_user_id("u1") == [session]

    @pytest.mark.asyncio
    async def test_duplicate_create_rejected(self):
        store = VolatileSessionStore()
        session = await store.create(ChatSession(user_id="u1", title="Ideas"))

        with pytest.raises(ValidationError):
            await store.create(session)

    @pytest.mark.asyncio
    async def test_missing_session_raises(self):
        with pytest.raises(NotFoundError):
            await VolatileSessionStore().find_by_id("missing")


class TestVolatileMessageStore:
    """Tests for the in-memory message store."""

    @pytest.mark.asyncio
    async def test_last_message_by_timestamp(self):
        store = VolatileMessageStore()
        for minutes in (3, 1, 2):
            await store.create(make_message("chat-1", f"m{minutes}", minutes=minutes))

        last = await store.find_last_by_chat_id("chat-1")

        assert last.content == "m3"

    @pytest.mark.asyncio
    async def test_last_message_of_empty_chat_raises(self):
        with pytest.raises(NotFoundError):
            await VolatileMessageStore().find_last_by_chat_id("chat-1")

    @pytest.mark.asyncio
    async def test_upsert_replaces_content(self):
        store = VolatileMessageStore()
        message = await store.create(make_message("chat-1", "draft", minutes=0))

        message.content = "final"
        await store.upsert(message)

        assert (await store.find_by_id(message.id)).content == "final"

    @pytest.mark.asyncio
    async def test_delete(self):
        store = VolatileMessageStore()
        message = await store.create(make_message("chat-1", "bye", minutes=0))

        await store.delete(message.id)

        assert await store.find_by_chat_id("chat-1") == []
        with pytest.raises(NotFoundError):
            await store.delete(message.id)


# ============================================
# Memory store
# ============================================


class TestCosineSimilarity:
    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0

    def test_degenerate_vectors(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0
        assert cosine_similarity([1.0], [1.0, 1.0]) == 0.0
        assert cosine_similarity([], []) == 0.0


class TestVolatileMemoryStore:
    """Tests for in-memory vector search."""

    @pytest.mark.asyncio
    async def test_search_ranks_by_relevance(self):
        store = VolatileMemoryStore(KeywordEmbedding())
        await store.save_information("docs", "tea tea tea", id="1", description="a")
        await store.save_information("docs", "tea and coffee", id="2", description="b")
        await store.save_information("docs", "weather report", id="3", description="c")

        hits = await store.search("docs", "tea", limit=10, min_relevance=0.5)

        assert [h.id for h in hits] == ["1", "2"]
        assert hits[0].relevance == pytest.approx(1.0)
        assert hits[1].relevance == pytest.approx(0.7071, abs=1e-4)

    @pytest.mark.asyncio
    async def test_search_respects_limit(self):
        store = VolatileMemoryStore(KeywordEmbedding())
        for i in range(5):
            await store.save_information("docs", "tea", id=str(i))

        assert len(await store.search("docs", "tea", limit=2, min_relevance=0.0)) == 2
        assert await store.search("docs", "tea", limit=0, min_relevance=0.0) == []

    @pytest.mark.asyncio
    async def test_unknown_collection_is_empty(self):
        embedding = KeywordEmbedding()
        store = VolatileMemoryStore(embedding)

        assert await store.search("missing", "tea", limit=5, min_relevance=0.0) == []
        assert embedding.calls == []

    @pytest.mark.asyncio
    async def test_other_embedding_models_are_ignored(self):
        store = VolatileMemoryStore(KeywordEmbedding(model="old"))
        await store.save_information("docs", "tea", id="1")
        store.embedding_provider = KeywordEmbedding(model="new")

        assert await store.search("docs", "tea", limit=5, min_relevance=0.0) == []

    @pytest.mark.asyncio
    async def test_save_overwrites_same_id(self):
        store = VolatileMemoryStore(KeywordEmbedding())
        await store.save_information("docs", "tea", id="1")
        await store.save_information("docs", "coffee", id="1")

        hits = await store.search("docs", "coffee", limit=5, min_relevance=0.5)

        assert [h.text for h in hits] == ["coffee"]

    @pytest.mark.asyncio
    async def test_embedding_failure_is_wrapped(self):
        class FailingEmbedding(KeywordEmbedding):
            async def embed(self, text):
                raise RuntimeError("quota exceeded")

        store = VolatileMemoryStore(FailingEmbedding())

        with pytest.raises(MemoryStoreError, match="quota exceeded"):
            await store.save_information("docs", "tea", id="1")
