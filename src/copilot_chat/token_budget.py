"""
Token counting and budget allocation.

Every content block that goes into a prompt is paid for out of a token
budget. The allocator computes what is left after fixed overhead and
splits it between external information, semantic memories and document
snippets; whatever those blocks do not consume funds chat history.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import tiktoken

from .config import PromptOptions
from .exceptions import BudgetMisconfigurationError

logger = logging.getLogger(__name__)

CountTokens = Callable[[str], int]


class TokenCounter:
    """Counts tokens with a tiktoken encoding.

    The encoding is loaded on first use.
    """

    DEFAULT_ENCODING = "cl100k_base"

    def __init__(self, encoding_name: str = DEFAULT_ENCODING):
        self.encoding_name = encoding_name
        self._encoding: Optional[tiktoken.Encoding] = None

    @property
    def encoding(self) -> tiktoken.Encoding:
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self.encoding_name)
        return self._encoding

    def count(self, text: str) -> int:
        """Count tokens in text (0 for empty text)."""
        if not text:
            return 0
        return len(self.encoding.encode(text))

    def __call__(self, text: str) -> int:
        return self.count(text)


_default_counter: Optional[TokenCounter] = None


def get_token_counter() -> TokenCounter:
    """Get the shared default token counter."""
    global _default_counter
    if _default_counter is None:
        _default_counter = TokenCounter()
    return _default_counter


class TokenBudget:
    """Integer budget that never goes negative.

    Consumers ask before spending: an item whose cost would take the
    budget below zero is rejected and the budget is left unchanged.
    A budget created from a negative limit accepts nothing.
    """

    def __init__(self, limit: int):
        self.limit = limit
        self.remaining = limit

    def try_consume(self, tokens: int) -> bool:
        """Spend tokens if they fit."""
        if self.remaining - tokens < 0:
            return False
        self.remaining -= tokens
        return True

    @property
    def consumed(self) -> int:
        return self.limit - self.remaining

    def __repr__(self) -> str:
        return f"TokenBudget(limit={self.limit}, remaining={self.remaining})"


@dataclass(frozen=True)
class BudgetSplit:
    """Per-block budgets carved out of the remaining context budget."""

    remaining: int
    external_information: int
    memories: int
    documents: int


class TokenBudgetAllocator:
    """Computes remaining token budgets from fixed prompt overhead.

    Usage:
        allocator = TokenBudgetAllocator(options, count_tokens)
        remaining = allocator.remaining(description, intent_template)
        split = allocator.split(remaining)
    """

    def __init__(
        self,
        options: PromptOptions,
        count_tokens: Optional[CountTokens] = None,
    ):
        self.options = options
        self.count_tokens = count_tokens or get_token_counter()

    def remaining(self, *overhead: str) -> int:
        """Tokens left after the response reserve and fixed overhead.

        Overhead fragments are joined by newlines before counting, as they
        appear in the rendered prompt. A negative result means the
        configuration leaves no room; it is returned as is so that greedy
        fillers treat it as zero capacity.
        """
        total = self.options.completion_token_limit
        reserved = self.options.response_token_limit
        overhead_tokens = self.count_tokens("\n".join(overhead))
        remaining = total - reserved - overhead_tokens

        if remaining < 0:
            error = BudgetMisconfigurationError(total, reserved, overhead_tokens)
            logger.warning(f"{error.message}; no context blocks will fit")

        return remaining

    def split(self, remaining: int) -> BudgetSplit:
        """Split the remaining budget by the configured weights."""
        return BudgetSplit(
            remaining=remaining,
            external_information=int(
                remaining * self.options.external_information_context_weight
            ),
            memories=int(remaining * self.options.memories_response_context_weight),
            documents=int(remaining * self.options.document_context_weight),
        )

    def history_budget(self, remaining: int, chat_context: str) -> int:
        """Residual budget for chat history after the context blocks."""
        return remaining - self.count_tokens(chat_context)
