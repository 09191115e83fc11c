"""Semantic memory: retrieval, distillation and vector stores."""

from .extractor import MemoryExtractor, MemoryItem, SemanticChatMemory
from .pgvector import PgVectorMemoryStore
from .retrieval import (
    DocumentMemoryRetriever,
    SemanticMemoryRetriever,
    memory_collection_name,
)
from .volatile import VolatileMemoryStore, cosine_similarity

__all__ = [
    "SemanticMemoryRetriever",
    "DocumentMemoryRetriever",
    "memory_collection_name",
    "MemoryExtractor",
    "MemoryItem",
    "SemanticChatMemory",
    "PgVectorMemoryStore",
    "VolatileMemoryStore",
    "cosine_similarity",
]
