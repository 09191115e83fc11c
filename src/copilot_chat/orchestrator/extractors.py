"""
Intent and audience extraction.

Both stages render a prompt around the recent chat history, ask the
completion backend for a short answer, and label it. A backend failure
marks the context as failed and yields an empty string; the orchestrator
stops the pipeline on the next check.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

from ..domain.context import ChatContext
from ..domain.entities import CompletionSettings
from ..domain.ports import ICompletionBackend
from ..exceptions import CompletionBackendError
from ..token_budget import TokenBudgetAllocator
from .history import ChatHistoryAssembler
from .prompt_builder import PromptBuilder

logger = logging.getLogger(__name__)

USER_INTENT_LABEL = "User intent"
AUDIENCE_LABEL = "List of participants"


class _HistoryCompletionStage(ABC):
    """Shared flow: budget history, render, complete, label."""

    label = ""
    stage_name = ""

    def __init__(
        self,
        completion: ICompletionBackend,
        history: ChatHistoryAssembler,
        prompt_builder: PromptBuilder,
        allocator: TokenBudgetAllocator,
    ):
        self.completion = completion
        self.history = history
        self.prompt_builder = prompt_builder
        self.allocator = allocator

    @abstractmethod
    def _overhead(self, context: ChatContext) -> list[str]:
        pass

    @abstractmethod
    def _prompt(self, context: ChatContext, history: str) -> str:
        pass

    @abstractmethod
    def _settings(self) -> CompletionSettings:
        pass

    async def extract(self, context: ChatContext) -> str:
        """Run the stage against the context.

        Returns:
            ``"<label>: <completion>"``, or ``""`` if the backend failed
        """
        token_limit = self.allocator.remaining(*self._overhead(context))
        context.token_limit = token_limit
        if not context.knowledge_cutoff:
            context.knowledge_cutoff = self.prompt_builder.options.knowledge_cutoff

        history = await self.history.extract_chat_history(context.chat_id, token_limit)
        prompt = self._prompt(context, history)

        result = await self.completion.complete(prompt, self._settings())
        if not result.succeeded:
            error = CompletionBackendError(result.error or "", detail=result.detail)
            logger.error(
                f"{self.stage_name} extraction failed for chat {context.chat_id}: "
                f"{error.description}"
            )
            context.fail(error.description, error)
            return ""

        return f"{self.label}: {result.text.strip()}"


class IntentExtractor(_HistoryCompletionStage):
    """Rewrites the last message into a self-contained user intent.

    Usage:
        extractor = IntentExtractor(completion, history, prompt_builder, allocator)
        intent = await extractor.extract(context)
        if context.error_occurred:
            ...
    """

    label = USER_INTENT_LABEL
    stage_name = "Intent"

    def _overhead(self, context: ChatContext) -> list[str]:
        return self.prompt_builder.intent_overhead(context)

    def _prompt(self, context: ChatContext, history: str) -> str:
        return self.prompt_builder.intent_prompt(context, history)

    def _settings(self) -> CompletionSettings:
        return self.prompt_builder.intent_settings()

    async def extract(self, context: ChatContext) -> str:
        # A caller-supplied plan intent replaces extraction
        if context.plan_user_intent:
            return context.plan_user_intent
        return await super().extract(context)


class AudienceExtractor(_HistoryCompletionStage):
    """Lists the participants who have spoken in the chat."""

    label = AUDIENCE_LABEL
    stage_name = "Audience"

    def _overhead(self, context: ChatContext) -> list[str]:
        return self.prompt_builder.audience_overhead(context)

    def _prompt(self, context: ChatContext, history: str) -> str:
        return self.prompt_builder.audience_prompt(context, history)

    def _settings(self) -> CompletionSettings:
        return self.prompt_builder.audience_settings()


def build_extractors(
    completion: ICompletionBackend,
    history: ChatHistoryAssembler,
    prompt_builder: PromptBuilder,
    allocator: Optional[TokenBudgetAllocator] = None,
) -> tuple[IntentExtractor, AudienceExtractor]:
    """Create both extractors sharing the same collaborators."""
    allocator = allocator or TokenBudgetAllocator(
        prompt_builder.options, history.count_tokens
    )
    return (
        IntentExtractor(completion, history, prompt_builder, allocator),
        AudienceExtractor(completion, history, prompt_builder, allocator),
    )
