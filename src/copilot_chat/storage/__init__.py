"""Chat session and message stores (in-memory and PostgreSQL)."""

from .postgres import (
    PostgresMessageStore,
    PostgresSessionStore,
    create_pool,
    ensure_schema,
)
from .volatile import VolatileContext, VolatileMessageStore, VolatileSessionStore

__all__ = [
    "VolatileContext",
    "VolatileMessageStore",
    "VolatileSessionStore",
    "PostgresMessageStore",
    "PostgresSessionStore",
    "create_pool",
    "ensure_schema",
]
