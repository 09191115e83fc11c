"""
Unit tests for prompt building and the intent/audience extraction stages.
"""

from datetime import datetime

import pytest

from conftest import ScriptedCompletion, count_words, make_message
from copilot_chat.domain.context import ChatContext
from copilot_chat.domain.entities import CompletionResult
from copilot_chat.orchestrator.extractors import (
    AudienceExtractor,
    IntentExtractor,
    _HistoryCompletionStage,
    build_extractors,
)
from copilot_chat.orchestrator.history import ChatHistoryAssembler
from copilot_chat.orchestrator.prompt_builder import INTENT_STOP_SEQUENCE, PromptBuilder


def fixed_clock():
    return datetime(2024, 3, 5, 14, 30, 0)


# ============================================
# PromptBuilder
# ============================================


class TestPromptBuilder:
    """Tests for prompt rendering."""

    def test_render_fills_known_placeholders(self, options):
        builder = PromptBuilder(options, clock=fixed_clock)
        context = ChatContext(chat_id="c", user_name="Ada", knowledge_cutoff="2023")

        rendered = builder.render("{user_name} @ {now} / {knowledge_cutoff}", context)

        assert rendered == "Ada @ Tuesday, March 05, 2024 02:30:00 PM / 2023"

    def test_render_leaves_unknown_placeholders(self, options):
        builder = PromptBuilder(options, clock=fixed_clock)

        assert builder.render("keep {this}") == "keep {this}"

    def test_render_defaults(self, options):
        builder = PromptBuilder(options, clock=fixed_clock)

        rendered = builder.render("{user_name} {knowledge_cutoff}", ChatContext(chat_id="c"))

        assert rendered == f"user {options.knowledge_cutoff}"

    def test_chat_prompt_order(self, options):
        builder = PromptBuilder(options, clock=fixed_clock)
        context = ChatContext(
            chat_id="c",
            audience="List of participants: Ada",
            user_intent="User intent: say hi",
        )

        prompt = builder.chat_prompt(context, "CONTEXT BLOCKS")

        assert prompt.split("\n") == [
            "You are Copilot.",
            "Respond to the last message.",
            "List of participants: Ada",
            "User intent: say hi",
            "CONTEXT BLOCKS",
            "bot:",
        ]

    def test_memory_prompt_includes_chat_description_when_audience_known(self, options):
        builder = PromptBuilder(options, clock=fixed_clock)
        context = ChatContext(chat_id="c", audience="List of participants: Ada")

        prompt = builder.memory_prompt(context, "LongTermMemory", "Chat history:\nhi")

        assert "Chat Description:\nList of participants: Ada" in prompt
        assert options.memory_map["LongTermMemory"] in prompt
        assert "just focus on the items needed for LongTermMemory" in prompt

    def test_intent_settings_stop_before_bot_turn(self, options):
        builder = PromptBuilder(options)

        assert builder.intent_settings().stop_sequences == [INTENT_STOP_SEQUENCE]
        assert builder.audience_settings().stop_sequences == []
        assert builder.response_settings().max_tokens == options.response_token_limit


# ============================================
# Extraction stages
# ============================================


def make_extractors(completion, history, options):
    builder = PromptBuilder(options, clock=fixed_clock)
    return build_extractors(completion, history, builder)


class TestIntentExtractor:
    """Tests for user intent extraction."""

    @pytest.mark.asyncio
    async def test_labels_completion(self, message_store, options):
        history = ChatHistoryAssembler(message_store, count_words)
        await message_store.create(make_message("chat-1", "any open prs?", minutes=0))
        completion = ScriptedCompletion("  list the open pull requests  ")
        intent, _ = make_extractors(completion, history, options)
        context = ChatContext(chat_id="chat-1", user_name="Ada")

        result = await intent.extract(context)

        assert result == "User intent: list the open pull requests"
        prompt, settings = completion.calls[0]
        assert "any open prs?" in prompt
        assert prompt.endswith("INTENT:")
        assert settings.stop_sequences == [INTENT_STOP_SEQUENCE]

    @pytest.mark.asyncio
    async def test_sets_token_limit_and_cutoff(self, message_store, options):
        history = ChatHistoryAssembler(message_store, count_words)
        intent, _ = make_extractors(ScriptedCompletion("x"), history, options)
        context = ChatContext(chat_id="chat-1")

        await intent.extract(context)

        overhead = count_words("\n".join(intent.prompt_builder.intent_overhead(context)))
        assert context.token_limit == 2000 - 200 - overhead
        assert context.knowledge_cutoff == options.knowledge_cutoff

    @pytest.mark.asyncio
    async def test_plan_user_intent_skips_completion(self, message_store, options):
        history = ChatHistoryAssembler(message_store, count_words)
        completion = ScriptedCompletion("unused")
        intent, _ = make_extractors(completion, history, options)
        context = ChatContext(chat_id="chat-1", plan_user_intent="User intent: approved goal")

        assert await intent.extract(context) == "User intent: approved goal"
        assert completion.calls == []

    @pytest.mark.asyncio
    async def test_backend_failure_marks_context(self, message_store, options):
        history = ChatHistoryAssembler(message_store, count_words)
        completion = ScriptedCompletion(
            CompletionResult(error="Bad request", detail="context_length_exceeded")
        )
        intent, _ = make_extractors(completion, history, options)
        context = ChatContext(chat_id="chat-1")

        assert await intent.extract(context) == ""
        assert context.error_occurred
        assert context.last_error_description == "Bad request - Detail: context_length_exceeded"


class TestAudienceExtractor:
    """Tests for participant extraction."""

    @pytest.mark.asyncio
    async def test_lists_participants(self, message_store, options):
        history = ChatHistoryAssembler(message_store, count_words)
        await message_store.create(make_message("chat-1", "hi bot", minutes=0))
        await message_store.create(make_message("chat-1", "hello", minutes=1, user_name="Bob"))
        completion = ScriptedCompletion("Ada, Bob")
        _, audience = make_extractors(completion, history, options)

        result = await audience.extract(ChatContext(chat_id="chat-1"))

        assert result == "List of participants: Ada, Bob"
        prompt, settings = completion.calls[0]
        assert prompt.startswith("List participants.")
        assert "Bob: hello" in prompt
        assert settings.stop_sequences == []

    def test_build_extractors_share_collaborators(self, message_store, options):
        history = ChatHistoryAssembler(message_store, count_words)
        intent, audience = make_extractors(ScriptedCompletion(), history, options)

        assert isinstance(intent, IntentExtractor)
        assert isinstance(audience, AudienceExtractor)
        assert intent.allocator is audience.allocator
        assert intent.history is audience.history

    def test_stage_requires_prompt_hooks(self, message_store, options):
        class NoSettingsStage(_HistoryCompletionStage):
            def _overhead(self, context):
                return []

            def _prompt(self, context, history):
                return history

        intent, _ = make_extractors(
            ScriptedCompletion(), ChatHistoryAssembler(message_store, count_words), options
        )
        collaborators = (intent.completion, intent.history, intent.prompt_builder, intent.allocator)

        with pytest.raises(TypeError):
            _HistoryCompletionStage(*collaborators)
        with pytest.raises(TypeError):
            NoSettingsStage(*collaborators)
