"""
In-memory stores.

Backed by plain dicts. Every operation completes without awaiting, so on
a single event loop each one is atomic; concurrent requests see
last-write-wins semantics per key.
"""

from __future__ import annotations

import logging
from typing import Callable, Generic, Optional, TypeVar

from ..domain.entities import ChatMessage, ChatSession
from ..domain.ports import IMessageStore, ISessionStore
from ..exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class VolatileContext(Generic[T]):
    """Keyed in-memory storage for one entity type.

    Usage:
        context = VolatileContext[ChatSession]("ChatSession")
        context.create(session.id, session)
        session = context.read(session.id)
    """

    def __init__(self, entity_name: str):
        self.entity_name = entity_name
        self._entities: dict[str, T] = {}

    def create(self, entity_id: str, entity: T) -> None:
        if not entity_id:
            raise ValidationError(f"{self.entity_name} id cannot be empty")
        if entity_id in self._entities:
            raise ValidationError(f"{self.entity_name} '{entity_id}' already exists")
        self._entities[entity_id] = entity

    def read(self, entity_id: str) -> T:
        try:
            return self._entities[entity_id]
        except KeyError:
            raise NotFoundError(self.entity_name, entity_id)

    def try_read(self, entity_id: str) -> Optional[T]:
        return self._entities.get(entity_id)

    def upsert(self, entity_id: str, entity: T) -> None:
        if not entity_id:
            raise ValidationError(f"{self.entity_name} id cannot be empty")
        self._entities[entity_id] = entity

    def delete(self, entity_id: str) -> None:
        if self._entities.pop(entity_id, None) is None:
            raise NotFoundError(self.entity_name, entity_id)

    def query(self, predicate: Callable[[T], bool]) -> list[T]:
        return [entity for entity in self._entities.values() if predicate(entity)]

    def __len__(self) -> int:
        return len(self._entities)


class VolatileMessageStore(IMessageStore):
    """In-memory chat message store."""

    def __init__(self):
        self._context: VolatileContext[ChatMessage] = VolatileContext("ChatMessage")

    async def create(self, message: ChatMessage) -> ChatMessage:
        self._context.create(message.id, message)
        logger.debug(f"Created message {message.id} in chat {message.chat_id}")
        return message

    async def find_by_id(self, message_id: str) -> ChatMessage:
        return self._context.read(message_id)

    async def find_by_chat_id(self, chat_id: str) -> list[ChatMessage]:
        return self._context.query(lambda m: m.chat_id == chat_id)

    async def upsert(self, message: ChatMessage) -> ChatMessage:
        self._context.upsert(message.id, message)
        return message

    async def delete(self, message_id: str) -> None:
        self._context.delete(message_id)


class VolatileSessionStore(ISessionStore):
    """In-memory chat session store."""

    def __init__(self):
        self._context: VolatileContext[ChatSession] = VolatileContext("ChatSession")

    async def create(self, session: ChatSession) -> ChatSession:
        self._context.create(session.id, session)
        logger.info(f"Created chat session {session.id} for user {session.user_id}")
        return session

    async def find_by_id(self, session_id: str) -> ChatSession:
        return self._context.read(session_id)

    async def try_find_by_id(self, session_id: str) -> Optional[ChatSession]:
        return self._context.try_read(session_id)

    async def find_by_user_id(self, user_id: str) -> list[ChatSession]:
        return self._context.query(lambda s: s.user_id == user_id)

    async def upsert(self, session: ChatSession) -> ChatSession:
        self._context.upsert(session.id, session)
        return session
