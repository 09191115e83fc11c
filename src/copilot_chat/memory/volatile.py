"""
In-memory vector store.

Non-persistent counterpart of the pgvector store, for development and
single-process deployments. Relevance is cosine similarity between the
query embedding and each stored embedding, clamped to [0, 1].
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from ..domain.entities import MemoryQueryResult
from ..domain.ports import IEmbeddingProvider, IMemoryStore
from ..exceptions import MemoryStoreError

logger = logging.getLogger(__name__)


@dataclass
class _MemoryRecord:
    id: str
    text: str
    description: str
    embedding: list[float]
    embedding_model: str


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity of two vectors (0.0 if either is zero or sizes differ)."""
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if norm == 0:
        return 0.0
    return dot / norm


class VolatileMemoryStore(IMemoryStore):
    """Collection-scoped vector store kept in process memory.

    Usage:
        store = VolatileMemoryStore(embedding_provider)
        await store.save_information("global-documents", "Q3 revenue grew 4%", id="d1")
        hits = await store.search("global-documents", "revenue", limit=10, min_relevance=0.6)
    """

    def __init__(self, embedding_provider: IEmbeddingProvider):
        self.embedding_provider = embedding_provider
        self._collections: dict[str, dict[str, _MemoryRecord]] = {}

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
        records = self._collections.get(collection)
        if not records or limit <= 0:
            return []

        query_embedding, embedding_model, _ = await self._embed(query, collection)

        scored = []
        for record in records.values():
            if record.embedding_model != embedding_model:
                continue
            relevance = max(0.0, min(1.0, cosine_similarity(query_embedding, record.embedding)))
            if relevance >= min_relevance:
                scored.append((relevance, record))

        scored.sort(key=lambda item: item[0], reverse=True)
        return [
            MemoryQueryResult(
                id=record.id,
                text=record.text,
                description=record.description,
                relevance=relevance,
                embedding=record.embedding,
            )
            for relevance, record in scored[:limit]
        ]

    async def save_information(
        self,
        collection: str,
        text: str,
        id: str,
        description: str = "",
    ) -> str:
        embedding, embedding_model, _ = await self._embed(text, collection)
        self._collections.setdefault(collection, {})[id] = _MemoryRecord(
            id=id,
            text=text,
            description=description,
            embedding=list(embedding),
            embedding_model=embedding_model,
        )
        logger.debug(f"Saved memory {id} to {collection}")
        return id

    def collection_names(self) -> list[str]:
        return list(self._collections)
