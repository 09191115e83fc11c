"""
Chat Session Service.

Handles chat session lifecycle: creation (with the initial bot greeting),
lookup, listing, renaming, and paged access to a session's messages.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..config import PromptOptions
from ..domain.entities import ChatMessage, ChatSession
from ..domain.ports import IMessageStore, ISessionStore
from ..exceptions import ValidationError

logger = logging.getLogger(__name__)


class ChatSessionService:
    """Manages chat session operations.

    Usage:
        service = ChatSessionService(session_store, message_store, options)

        session = await service.create_session(user_id="u1", title="Ideas")
        sessions = await service.list_sessions("u1")
        recent = await service.get_messages(session.id, start=0, count=20)
    """

    def __init__(
        self,
        session_store: ISessionStore,
        message_store: IMessageStore,
        options: Optional[PromptOptions] = None,
    ):
        self.sessions = session_store
        self.messages = message_store
        self.options = options or PromptOptions()

    async def create_session(self, user_id: str, title: str) -> ChatSession:
        """Create a session and greet the user with the initial bot message.

        Raises:
            ValidationError: If user id or title is empty
        """
        if not user_id or not title:
            raise ValidationError("A chat session needs a user id and a title")

        session = await self.sessions.create(ChatSession(user_id=user_id, title=title))

        # The initial bot message doesn't need a prompt
        greeting = ChatMessage.create_bot_response(
            session.id, self.options.initial_bot_message, prompt=""
        )
        await self.messages.create(greeting)

        logger.debug(f"Created chat session {session.id} for user {user_id}")
        return session

    async def get_session(self, chat_id: str) -> ChatSession:
        """Get a session by id.

        Raises:
            NotFoundError: If the session does not exist
        """
        return await self.sessions.find_by_id(chat_id)

    async def list_sessions(self, user_id: str) -> list[ChatSession]:
        """All sessions owned by a user, newest first (empty if none)."""
        sessions = await self.sessions.find_by_user_id(user_id)
        return sorted(sessions, key=lambda s: s.created_on, reverse=True)

    async def rename_session(self, chat_id: str, title: str) -> ChatSession:
        """Change a session's title.

        Raises:
            NotFoundError: If the session does not exist
            ValidationError: If the title is empty
        """
        if not title:
            raise ValidationError("Chat session title cannot be empty")

        session = await self.sessions.find_by_id(chat_id)
        session.title = title
        return await self.sessions.upsert(session)

    async def get_messages(
        self, chat_id: str, start: int = 0, count: int = -1
    ) -> list[ChatMessage]:
        """Messages of a session, most recent first.

        Args:
            chat_id: Session to read
            start: Number of most recent messages to skip
            count: Maximum messages to return; negative means all
        """
        messages = await self.messages.find_by_chat_id(chat_id)
        messages = sorted(messages, key=lambda m: m.timestamp, reverse=True)[max(start, 0):]
        if count >= 0:
            messages = messages[:count]
        return messages
