"""
PostgreSQL chat stores.

Persist chat sessions and messages with asyncpg. Upserts use
``INSERT ... ON CONFLICT DO UPDATE`` so concurrent writers to the same
id resolve as last-write-wins.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import asyncpg

from ..domain.entities import (
    AuthorRole,
    ChatMessage,
    ChatMessageType,
    ChatSession,
)
from ..domain.ports import IMessageStore, ISessionStore
from ..exceptions import ConfigurationError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS chat_sessions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    created_on TIMESTAMP NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_chat_sessions_user_id ON chat_sessions (user_id);

CREATE TABLE IF NOT EXISTS chat_messages (
    id TEXT PRIMARY KEY,
    chat_id TEXT NOT NULL REFERENCES chat_sessions (id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    user_name TEXT NOT NULL,
    content TEXT NOT NULL,
    prompt TEXT NOT NULL DEFAULT '',
    author_role TEXT NOT NULL,
    type TEXT NOT NULL,
    timestamp TIMESTAMP NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_chat_messages_chat_id ON chat_messages (chat_id, timestamp);
"""


class IAsyncDBPool(Protocol):
    """Protocol for async database pool."""

    def acquire(self): ...
    async def execute(self, query: str, *args) -> str: ...
    async def fetch(self, query: str, *args) -> list[Any]: ...
    async def fetchrow(self, query: str, *args) -> Optional[Any]: ...


async def create_pool(
    database_url: str,
    min_size: int = 2,
    max_size: int = 10,
    command_timeout: float = 60.0,
    **kwargs,
) -> asyncpg.Pool:
    """Create a connection pool.

    Raises:
        ConfigurationError: If the pool cannot be created
    """
    try:
        pool = await asyncpg.create_pool(
            database_url,
            min_size=min_size,
            max_size=max_size,
            command_timeout=command_timeout,
            **kwargs,
        )
    except (OSError, asyncpg.PostgresError) as e:
        raise ConfigurationError(
            f"Failed to create database pool: {e}", key="database_url", cause=e
        )
    logger.info(f"Database pool created (min={min_size}, max={max_size})")
    return pool


async def ensure_schema(db_pool: IAsyncDBPool) -> None:
    """Create the chat tables if they do not exist."""
    async with db_pool.acquire() as conn:
        await conn.execute(SCHEMA_SQL)
    logger.info("Chat schema ensured")


class PostgresSessionStore(ISessionStore):
    """PostgreSQL-based chat session store.

    Usage:
        store = PostgresSessionStore(db_pool)
        session = await store.create(ChatSession(user_id="u1", title="Ideas"))
        sessions = await store.find_by_user_id("u1")
    """

    _COLUMNS = "id, user_id, title, created_on"

    def __init__(self, db_pool: IAsyncDBPool):
        self.db = db_pool

    @staticmethod
    def _row_to_session(row: Any) -> ChatSession:
        return ChatSession(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            created_on=row["created_on"],
        )

    async def create(self, session: ChatSession) -> ChatSession:
        try:
            await self.db.execute(
                f"INSERT INTO chat_sessions ({self._COLUMNS}) VALUES ($1, $2, $3, $4)",
                session.id,
                session.user_id,
                session.title,
                session.created_on,
            )
        except asyncpg.UniqueViolationError as e:
            raise ValidationError(f"ChatSession '{session.id}' already exists", cause=e)

        logger.info(f"Created chat session {session.id} for user {session.user_id}")
        return session

    async def find_by_id(self, session_id: str) -> ChatSession:
        session = await self.try_find_by_id(session_id)
        if session is None:
            raise NotFoundError("ChatSession", session_id)
        return session

    async def try_find_by_id(self, session_id: str) -> Optional[ChatSession]:
        row = await self.db.fetchrow(
            f"SELECT {self._COLUMNS} FROM chat_sessions WHERE id = $1",
            session_id,
        )
        return self._row_to_session(row) if row else None

    async def find_by_user_id(self, user_id: str) -> list[ChatSession]:
        rows = await self.db.fetch(
            f"SELECT {self._COLUMNS} FROM chat_sessions "
            "WHERE user_id = $1 ORDER BY created_on DESC",
            user_id,
        )
        return [self._row_to_session(row) for row in rows]

    async def upsert(self, session: ChatSession) -> ChatSession:
        await self.db.execute(
            f"""
            INSERT INTO chat_sessions ({self._COLUMNS}) VALUES ($1, $2, $3, $4)
            ON CONFLICT (id) DO UPDATE
            SET user_id = EXCLUDED.user_id, title = EXCLUDED.title
            """,
            session.id,
            session.user_id,
            session.title,
            session.created_on,
        )
        return session


class PostgresMessageStore(IMessageStore):
    """PostgreSQL-based chat message store."""

    _COLUMNS = (
        "id, chat_id, user_id, user_name, content, prompt, author_role, type, timestamp"
    )

    def __init__(self, db_pool: IAsyncDBPool):
        self.db = db_pool

    @staticmethod
    def _row_to_message(row: Any) -> ChatMessage:
        return ChatMessage(
            id=row["id"],
            chat_id=row["chat_id"],
            user_id=row["user_id"],
            user_name=row["user_name"],
            content=row["content"],
            prompt=row["prompt"],
            author_role=AuthorRole(row["author_role"]),
            type=ChatMessageType.parse(row["type"]),
            timestamp=row["timestamp"],
        )

    @staticmethod
    def _message_args(message: ChatMessage) -> tuple:
        return (
            message.id,
            message.chat_id,
            message.user_id,
            message.user_name,
            message.content,
            message.prompt,
            message.author_role.value,
            message.type.value,
            message.timestamp,
        )

    async def create(self, message: ChatMessage) -> ChatMessage:
        try:
            await self.db.execute(
                f"INSERT INTO chat_messages ({self._COLUMNS}) "
                "VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)",
                *self._message_args(message),
            )
        except asyncpg.UniqueViolationError as e:
            raise ValidationError(f"ChatMessage '{message.id}' already exists", cause=e)
        except asyncpg.ForeignKeyViolationError as e:
            raise NotFoundError("ChatSession", message.chat_id, cause=e)

        logger.debug(f"Created message {message.id} in chat {message.chat_id}")
        return message

    async def find_by_id(self, message_id: str) -> ChatMessage:
        row = await self.db.fetchrow(
            f"SELECT {self._COLUMNS} FROM chat_messages WHERE id = $1",
            message_id,
        )
        if not row:
            raise NotFoundError("ChatMessage", message_id)
        return self._row_to_message(row)

    async def find_by_chat_id(self, chat_id: str) -> list[ChatMessage]:
        rows = await self.db.fetch(
            f"SELECT {self._COLUMNS} FROM chat_messages "
            "WHERE chat_id = $1 ORDER BY timestamp DESC",
            chat_id,
        )
        return [self._row_to_message(row) for row in rows]

    async def find_last_by_chat_id(self, chat_id: str) -> ChatMessage:
        row = await self.db.fetchrow(
            f"SELECT {self._COLUMNS} FROM chat_messages "
            "WHERE chat_id = $1 ORDER BY timestamp DESC LIMIT 1",
            chat_id,
        )
        if not row:
            raise NotFoundError("ChatMessage", f"last of chat {chat_id}")
        return self._row_to_message(row)

    async def upsert(self, message: ChatMessage) -> ChatMessage:
        await self.db.execute(
            f"""
            INSERT INTO chat_messages ({self._COLUMNS})
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            ON CONFLICT (id) DO UPDATE
            SET content = EXCLUDED.content, prompt = EXCLUDED.prompt,
                type = EXCLUDED.type
            """,
            *self._message_args(message),
        )
        return message

    async def delete(self, message_id: str) -> None:
        status = await self.db.execute(
            "DELETE FROM chat_messages WHERE id = $1",
            message_id,
        )
        # asyncpg returns the command tag, e.g. "DELETE 1"
        if status.endswith(" 0"):
            raise NotFoundError("ChatMessage", message_id)
