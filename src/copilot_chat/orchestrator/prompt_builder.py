"""
Prompt Builder for the chat orchestrator.

Encapsulates prompt construction:
- Rendering the configured prompt fragments with runtime values
- Assembling the intent, audience, chat and memory-extraction prompts
- Building the sampling settings that go with each prompt

Fragments are joined with newlines in a fixed order; the same fragments
are what the token budget counts as fixed overhead.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from ..config import PromptOptions
from ..domain.context import ChatContext
from ..domain.entities import CompletionSettings

logger = logging.getLogger(__name__)

INTENT_STOP_SEQUENCE = "] bot:"


class _SafeFormatDict(dict):
    """Leaves unknown ``{placeholders}`` untouched when formatting."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


class PromptBuilder:
    """Builds prompts and completion settings from PromptOptions.

    Usage:
        prompt_builder = PromptBuilder(options)

        prompt = prompt_builder.chat_prompt(context, chat_context_text)
        settings = prompt_builder.response_settings()
    """

    def __init__(
        self,
        options: PromptOptions,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the prompt builder.

        Args:
            options: Prompt configuration
            clock: Source of the current time (defaults to datetime.now)
        """
        self.options = options
        self.clock = clock or datetime.now

    def render(self, template: str, context: Optional[ChatContext] = None, **values: str) -> str:
        """Fill ``{now}``, ``{knowledge_cutoff}`` and ``{user_name}`` placeholders."""
        now = self.clock()
        data = _SafeFormatDict(
            now=f"{now.strftime('%A, %B %d, %Y')} {now.strftime('%I:%M:%S %p')}",
            knowledge_cutoff=(
                (context.knowledge_cutoff if context else "")
                or self.options.knowledge_cutoff
            ),
            user_name=context.user_name if context and context.user_name else "user",
        )
        data.update(values)
        return template.format_map(data)

    # ------------------------------------------
    # Fixed overhead
    # ------------------------------------------

    def intent_overhead(self, context: ChatContext) -> list[str]:
        """Fragments surrounding the history in the intent prompt."""
        return [
            self.render(self.options.system_description, context),
            self.options.system_intent,
            self.render(self.options.system_intent_continuation, context),
        ]

    def audience_overhead(self, context: ChatContext) -> list[str]:
        """Fragments surrounding the history in the audience prompt."""
        return [
            self.options.system_audience,
            self.options.system_audience_continuation,
        ]

    def chat_overhead(self, context: ChatContext) -> list[str]:
        """Fixed fragments of the final chat prompt."""
        return [
            self.render(self.options.system_description, context),
            self.options.system_response,
            self.render(self.options.system_chat_continuation, context),
        ]

    def memory_overhead(self, context: ChatContext, memory_name: str) -> list[str]:
        """Fixed fragments of a memory-extraction prompt."""
        return [
            self.render(self.options.system_description, context),
            self.render(
                self.options.system_cognitive,
                context,
                memory_name=memory_name,
                memory_format=self.options.memory_format,
            ),
            self.options.memory_map.get(memory_name, ""),
            self.options.memory_anti_hallucination,
            self.options.memory_continuation,
        ]

    # ------------------------------------------
    # Prompts
    # ------------------------------------------

    def intent_prompt(self, context: ChatContext, history: str) -> str:
        description, intent, continuation = self.intent_overhead(context)
        return "\n".join([description, intent, history, continuation])

    def audience_prompt(self, context: ChatContext, history: str) -> str:
        audience, continuation = self.audience_overhead(context)
        return "\n".join([audience, history, continuation])

    def chat_prompt(self, context: ChatContext, chat_context: str) -> str:
        """Render the final prompt.

        Audience and intent come before the context blocks, which are
        followed by the continuation that cues the bot's reply.
        """
        description, response, continuation = self.chat_overhead(context)
        return "\n".join(
            [
                description,
                response,
                context.audience,
                context.user_intent,
                chat_context,
                continuation,
            ]
        )

    def memory_prompt(self, context: ChatContext, memory_name: str, history: str) -> str:
        description, cognitive, instructions, anti_hallucination, continuation = (
            self.memory_overhead(context, memory_name)
        )
        return "\n".join(
            [
                description,
                cognitive,
                instructions,
                anti_hallucination,
                f"Chat Description:\n{context.audience}" if context.audience else "",
                history,
                continuation,
            ]
        )

    # ------------------------------------------
    # Completion settings
    # ------------------------------------------

    def intent_settings(self) -> CompletionSettings:
        """Low-variance settings for intent and audience extraction."""
        return CompletionSettings(
            max_tokens=self.options.response_token_limit,
            temperature=self.options.intent_temperature,
            top_p=self.options.intent_top_p,
            frequency_penalty=self.options.intent_frequency_penalty,
            presence_penalty=self.options.intent_presence_penalty,
            stop_sequences=[INTENT_STOP_SEQUENCE],
        )

    def audience_settings(self) -> CompletionSettings:
        settings = self.intent_settings()
        settings.stop_sequences = []
        return settings

    def memory_settings(self) -> CompletionSettings:
        return self.audience_settings()

    def response_settings(self) -> CompletionSettings:
        return CompletionSettings(
            max_tokens=self.options.response_token_limit,
            temperature=self.options.response_temperature,
            top_p=self.options.response_top_p,
            frequency_penalty=self.options.response_frequency_penalty,
            presence_penalty=self.options.response_presence_penalty,
        )
