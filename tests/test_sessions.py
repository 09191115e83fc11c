"""
Unit tests for the chat session service.
"""

from datetime import datetime

import pytest

from conftest import make_message
from copilot_chat.config import PromptOptions
from copilot_chat.domain.entities import AuthorRole, ChatSession
from copilot_chat.exceptions import NotFoundError, ValidationError
from copilot_chat.orchestrator import ChatSessionService


@pytest.fixture
def service(session_store, message_store):
    return ChatSessionService(
        session_store,
        message_store,
        PromptOptions(initial_bot_message="Hi, I'm Copilot."),
    )


class TestCreateSession:
    """Tests for session creation."""

    @pytest.mark.asyncio
    async def test_creates_session_with_greeting(self, service, message_store):
        session = await service.create_session("u1", "Ideas")

        messages = await message_store.find_by_chat_id(session.id)
        assert len(messages) == 1
        greeting = messages[0]
        assert greeting.content == "Hi, I'm Copilot."
        assert greeting.author_role == AuthorRole.BOT
        assert greeting.prompt == ""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("user_id,title", [("", "Ideas"), ("u1", "")])
    async def test_requires_user_and_title(self, service, user_id, title):
        with pytest.raises(ValidationError):
            await service.create_session(user_id, title)


class TestQuerySessions:
    """Tests for lookups and listing."""

    @pytest.mark.asyncio
    async def test_get_missing_session(self, service):
        with pytest.raises(NotFoundError):
            await service.get_session("missing")

    @pytest.mark.asyncio
    async def test_list_newest_first(self, service, session_store):
        older = await session_store.create(
            ChatSession(user_id="u1", title="Old", created_on=datetime(2024, 1, 1))
        )
        newer = await session_store.create(
            ChatSession(user_id="u1", title="New", created_on=datetime(2024, 2, 1))
        )
        await session_store.create(ChatSession(user_id="u2", title="Other"))

        sessions = await service.list_sessions("u1")

        assert [s.id for s in sessions] == [newer.id, older.id]

    @pytest.mark.asyncio
    async def test_list_for_unknown_user_is_empty(self, service):
        assert await service.list_sessions("nobody") == []


class TestRenameSession:
    @pytest.mark.asyncio
    async def test_rename(self, service):
        session = await service.create_session("u1", "Ideas")

        await service.rename_session(session.id, "Plans")

        assert (await service.get_session(session.id)).title == "Plans"

    @pytest.mark.asyncio
    async def test_rename_rejects_empty_title(self, service):
        session = await service.create_session("u1", "Ideas")

        with pytest.raises(ValidationError):
            await service.rename_session(session.id, "")


class TestGetMessages:
    """Tests for paged message access."""

    @pytest.mark.asyncio
    async def test_most_recent_first_with_paging(self, service, message_store):
        for minutes in range(5):
            await message_store.create(make_message("chat-1", f"m{minutes}", minutes=minutes))

        everything = await service.get_messages("chat-1")
        page = await service.get_messages("chat-1", start=1, count=2)

        assert [m.content for m in everything] == ["m4", "m3", "m2", "m1", "m0"]
        assert [m.content for m in page] == ["m3", "m2"]

    @pytest.mark.asyncio
    async def test_start_past_end_is_empty(self, service, message_store):
        await message_store.create(make_message("chat-1", "only", minutes=0))

        assert await service.get_messages("chat-1", start=5) == []
