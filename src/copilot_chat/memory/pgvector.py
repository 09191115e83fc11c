"""
pgvector memory store.

Stores semantic memories and document snippets in PostgreSQL with
pgvector embeddings, grouped into named collections. Relevance is cosine
similarity, ``1 - (embedding <=> query)``.
"""

from __future__ import annotations

import logging
from typing import Any

import asyncpg

from ..domain.entities import MemoryQueryResult
from ..domain.ports import IEmbeddingProvider, IMemoryStore
from ..exceptions import MemoryStoreError
from ..storage.postgres import IAsyncDBPool

logger = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE EXTENSION IF NOT EXISTS vector;

CREATE TABLE IF NOT EXISTS chat_memories (
    collection TEXT NOT NULL,
    id TEXT NOT NULL,
    text TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    embedding vector NOT NULL,
    embedding_model TEXT NOT NULL,
    embedding_dimension INTEGER NOT NULL,
    created_at TIMESTAMP NOT NULL DEFAULT NOW(),
    PRIMARY KEY (collection, id)
);
"""


def _to_vector_literal(embedding: list[float]) -> str:
    """Render an embedding in pgvector's text input format."""
    return "[" + ",".join(str(float(x)) for x in embedding) + "]"


class PgVectorMemoryStore(IMemoryStore):
    """Collection-scoped vector store backed by pgvector.

    Usage:
        store = PgVectorMemoryStore(db_pool, embedding_provider)
        await store.ensure_schema()

        await store.save_information("chat-1-LongTermMemory", "likes tea", id="m1")
        hits = await store.search("chat-1-LongTermMemory", "drinks", limit=5, min_relevance=0.8)
    """

    def __init__(self, db_pool: IAsyncDBPool, embedding_provider: IEmbeddingProvider):
        self.db = db_pool
        self.embedding_provider = embedding_provider

    async def ensure_schema(self) -> None:
        async with self.db.acquire() as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("Memory schema ensured")

    async def _embed(self, text: str, collection: str) -> tuple[list[float], str, int]:
        try:
            return await self.embedding_provider.embed(text)
        except Exception as e:
            raise MemoryStoreError(
                f"Failed to generate embedding: {e}", collection=collection, cause=e
            )

    async def search(
        self,
        collection: str,
        query: str,
        limit: int,
        min_relevance: float,
    ) -> list[MemoryQueryResult]:
        if limit <= 0 or not query:
            return []

        query_embedding, embedding_model, _ = await self._embed(query, collection)

        try:
            rows: list[Any] = await self.db.fetch(
                """
                SELECT id, text, description,
                       1 - (embedding <=> $1::vector) AS relevance
                FROM chat_memories
                WHERE collection = $2
                  AND embedding_model = $3
                  AND 1 - (embedding <=> $1::vector) >= $4
                ORDER BY relevance DESC
                LIMIT $5
                """,
                _to_vector_literal(query_embedding),
                collection,
                embedding_model,
                min_relevance,
                limit,
            )
        except asyncpg.PostgresError as e:
            raise MemoryStoreError(
                f"Memory search failed: {e}", collection=collection, cause=e
            )

        return [
            MemoryQueryResult(
                id=row["id"],
                text=row["text"],
                description=row["description"],
                relevance=max(0.0, min(1.0, float(row["relevance"]))),
            )
            for row in rows
        ]

    async def save_information(
        self,
        collection: str,
        text: str,
        id: str,
        description: str = "",
    ) -> str:
        embedding, embedding_model, dimension = await self._embed(text, collection)

        try:
            await self.db.execute(
                """
                INSERT INTO chat_memories (
                    collection, id, text, description,
                    embedding, embedding_model, embedding_dimension
                ) VALUES ($1, $2, $3, $4, $5::vector, $6, $7)
                ON CONFLICT (collection, id) DO UPDATE
                SET text = EXCLUDED.text,
                    description = EXCLUDED.description,
                    embedding = EXCLUDED.embedding,
                    embedding_model = EXCLUDED.embedding_model,
                    embedding_dimension = EXCLUDED.embedding_dimension
                """,
                collection,
                id,
                text,
                description,
                _to_vector_literal(embedding),
                embedding_model,
                dimension,
            )
        except asyncpg.PostgresError as e:
            raise MemoryStoreError(
                f"Failed to save memory: {e}", collection=collection, cause=e
            )

        logger.debug(f"Saved memory {id} to {collection}")
        return id
