"""
Chat History Assembler.

Fills a token budget with the most recent turns of a chat. Messages are
visited newest first and prepended, so the output reads oldest to newest.
A message that does not fit ends the assembly; messages are never split.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Optional

from ..domain.entities import ChatMessage, ProposedPlan
from ..domain.ports import IMessageStore
from ..token_budget import CountTokens, TokenBudget, get_token_counter

logger = logging.getLogger(__name__)

HISTORY_LABEL = "Chat history:"
PROPOSED_PLAN_FALLBACK = "Bot proposed plan"

# [timestamp] ... User Intent:User intent: <intent>" (up to the closing quote)
_PROPOSED_PLAN_PATTERN = re.compile(
    r'(\[.*?\]).*User Intent:User intent: (.*?)(?<!\\)"', re.DOTALL
)


def compact_proposed_plan(formatted_message: str) -> str:
    """Shorten a history line that embeds a serialized proposed plan.

    Returns:
        ``"<timestamp> Bot proposed plan to fulfill user intent: <intent>"``
        or ``"Bot proposed plan"`` if the intent cannot be extracted
    """
    match = _PROPOSED_PLAN_PATTERN.search(formatted_message)
    if not match:
        return PROPOSED_PLAN_FALLBACK

    timestamp, raw_intent = match.group(1), match.group(2)
    try:
        intent = json.loads(f'"{raw_intent}"')
    except json.JSONDecodeError:
        intent = raw_intent
    return f"{timestamp} Bot proposed plan to fulfill user intent: {intent}"


class ChatHistoryAssembler:
    """Builds the chat-history block of a prompt.

    Usage:
        assembler = ChatHistoryAssembler(message_store)
        history = await assembler.extract_chat_history(chat_id, token_limit=500)
    """

    def __init__(
        self,
        message_store: IMessageStore,
        count_tokens: Optional[CountTokens] = None,
    ):
        """Initialize the assembler.

        Args:
            message_store: Source of chat messages
            count_tokens: Token counter (defaults to tiktoken cl100k_base)
        """
        self.message_store = message_store
        self.count_tokens = count_tokens or get_token_counter()

    def format_message(self, message: ChatMessage) -> str:
        formatted = message.to_formatted_string()
        if ProposedPlan.is_proposed_plan(formatted):
            return compact_proposed_plan(formatted)
        return formatted

    async def extract_chat_history(self, chat_id: str, token_limit: int) -> str:
        """Assemble the most recent messages that fit in ``token_limit``.

        Args:
            chat_id: Chat to read
            token_limit: Token budget for the message lines

        Returns:
            ``"Chat history:\\n..."`` with lines in ascending time order
        """
        messages = await self.message_store.find_by_chat_id(chat_id)
        messages = sorted(messages, key=lambda m: m.timestamp, reverse=True)

        budget = TokenBudget(token_limit)
        lines: list[str] = []
        for message in messages:
            line = self.format_message(message)
            if not budget.try_consume(self.count_tokens(line)):
                break
            lines.insert(0, line)

        logger.debug(
            f"Assembled {len(lines)}/{len(messages)} messages of chat {chat_id} "
            f"using {budget.consumed}/{token_limit} tokens"
        )
        history_text = "\n".join(lines)
        return f"{HISTORY_LABEL}\n{history_text.strip()}"
