"""
Chat Orchestrator.

Main orchestration logic for one chat turn:
- Persist the incoming message
- Resolve a resubmitted (approved or rejected) proposed plan
- Extract audience and user intent
- Acquire external information, semantic memories and document snippets
- Fill the remaining budget with chat history
- Render the prompt, complete it and persist the response
- Queue memory distillation in the background

Stages run strictly in order because each budget depends on what earlier
stages consumed. Every stage failure is recorded on the ChatContext and
the pipeline stops at the first one.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Awaitable, Optional, Union

from ..background_worker import BackgroundWorker, get_background_worker
from ..config import PromptOptions
from ..domain.context import ChatContext
from ..domain.entities import (
    AuthorRole,
    ChatMessage,
    ChatMessageType,
    ChatResult,
    PlanState,
    ProposedPlan,
)
from ..domain.ports import (
    ICompletionBackend,
    IMemoryStore,
    IMessageStore,
    IPlanner,
    ISessionStore,
)
from ..exceptions import ChatError, ChatSessionNotFoundError, CompletionBackendError, InvalidPlanError
from ..memory.retrieval import DocumentMemoryRetriever, SemanticMemoryRetriever
from ..planner.result_shapes import ResultShapeRegistry
from ..token_budget import CountTokens, TokenBudgetAllocator, get_token_counter
from .external_information import ExternalInformationProvider
from .extractors import AudienceExtractor, IntentExtractor
from .history import ChatHistoryAssembler
from .prompt_builder import PromptBuilder

if TYPE_CHECKING:
    from ..memory.extractor import MemoryExtractor

logger = logging.getLogger(__name__)

USER_CANCELLED_PLAN_RESPONSE = "I am sorry the plan did not meet your goals."


class ChatOrchestrator:
    """Produces a bot response for each incoming chat message.

    Usage:
        orchestrator = ChatOrchestrator(
            completion=provider,
            message_store=messages,
            session_store=sessions,
            memory_store=memories,
            planner=planner,
        )

        result = await orchestrator.respond(
            message="What PRs are open?",
            user_id="u1",
            user_name="Ada",
            chat_id=session.id,
        )
        if result.succeeded:
            print(result.response, result.message_id)
        else:
            print(result.error)
    """

    def __init__(
        self,
        completion: ICompletionBackend,
        message_store: IMessageStore,
        session_store: ISessionStore,
        memory_store: IMemoryStore,
        planner: Optional[IPlanner] = None,
        options: Optional[PromptOptions] = None,
        result_shapes: Optional[ResultShapeRegistry] = None,
        memory_extractor: Optional["MemoryExtractor"] = None,
        background_worker: Optional[BackgroundWorker] = None,
        count_tokens: Optional[CountTokens] = None,
        prompt_builder: Optional[PromptBuilder] = None,
    ):
        """Initialize the chat orchestrator.

        Args:
            completion: Backend for extraction stages and the final response
            message_store: Chat message persistence
            session_store: Chat session persistence
            memory_store: Semantic and document memory collections
            planner: Planner for external information (disabled if None)
            options: Prompt configuration
            result_shapes: Skill-name to result-shape mapping for plan results
            memory_extractor: Background distillation (disabled if None)
            background_worker: Queue for distillation (defaults to the global worker)
            count_tokens: Token counter (defaults to tiktoken cl100k_base)
            prompt_builder: Prompt builder (built from options if None)
        """
        self.options = options or (prompt_builder.options if prompt_builder else PromptOptions())
        self.count_tokens = count_tokens or get_token_counter()

        self.completion = completion
        self.messages = message_store
        self.sessions = session_store
        self.prompt_builder = prompt_builder or PromptBuilder(self.options)
        self.allocator = TokenBudgetAllocator(self.options, self.count_tokens)

        self.history = ChatHistoryAssembler(message_store, self.count_tokens)
        self.intent_extractor = IntentExtractor(
            completion, self.history, self.prompt_builder, self.allocator
        )
        self.audience_extractor = AudienceExtractor(
            completion, self.history, self.prompt_builder, self.allocator
        )
        self.external_information = (
            ExternalInformationProvider(planner, result_shapes, self.count_tokens)
            if planner is not None
            else None
        )
        self.semantic_memory = SemanticMemoryRetriever(
            memory_store, self.options, self.count_tokens
        )
        self.document_memory = DocumentMemoryRetriever(
            memory_store, self.options, self.count_tokens
        )

        self.memory_extractor = memory_extractor
        self._background_worker = background_worker

    @property
    def background_worker(self) -> BackgroundWorker:
        return self._background_worker or get_background_worker()

    # ------------------------------------------
    # Entry point
    # ------------------------------------------

    async def respond(
        self,
        message: str,
        user_id: str,
        user_name: str,
        chat_id: str,
        message_type: Union[str, ChatMessageType] = ChatMessageType.MESSAGE,
        proposed_plan_json: Optional[str] = None,
        message_id: Optional[str] = None,
        variables: Optional[dict[str, str]] = None,
    ) -> ChatResult:
        """Respond to a new message.

        Args:
            message: The new message
            user_id: Author of the message
            user_name: Display name of the author
            chat_id: Chat session the message belongs to
            message_type: Type of the incoming message
            proposed_plan_json: Previously proposed plan, resubmitted as
                Approved or Rejected
            message_id: Id of the bot message that carried the plan
            variables: Caller values offered to plan parameters

        Returns:
            ChatResult with the response and persisted bot message, or the
            first failure description

        Raises:
            ChatSessionNotFoundError: If the chat session does not exist
            InvalidPlanError: If the resubmitted plan cannot be parsed
        """
        context = self._build_context(
            message, user_id, user_name, chat_id, proposed_plan_json, message_id, variables
        )

        await self.save_new_message(message, user_id, user_name, chat_id, message_type)

        # A resubmitted plan means the user approved or cancelled it
        if context.proposed_plan is not None:
            if context.message_id:
                await self.update_response(context.proposed_plan.to_json(), context.message_id)
            if context.proposed_plan.state == PlanState.REJECTED:
                context.user_cancelled_plan = True

        if context.user_cancelled_plan:
            response = USER_CANCELLED_PLAN_RESPONSE
        else:
            response = await self._get_chat_response(context)

        if context.error_occurred:
            logger.warning(
                f"Chat {chat_id} failed: {context.last_error_description}"
            )
            return ChatResult(prompt=context.prompt, error=context.last_error_description)

        bot_message = await self.save_new_response(response, context.prompt, chat_id)
        context.message_id = bot_message.id
        context.message_type = bot_message.type

        await self._schedule_memory_extraction(context)

        return ChatResult(response=response, prompt=context.prompt, bot_message=bot_message)

    def _build_context(
        self,
        message: str,
        user_id: str,
        user_name: str,
        chat_id: str,
        proposed_plan_json: Optional[str],
        message_id: Optional[str],
        variables: Optional[dict[str, str]],
    ) -> ChatContext:
        try:
            context = ChatContext.from_variables(chat_id, variables)
            if proposed_plan_json:
                context.proposed_plan = ProposedPlan.from_json(proposed_plan_json)
        except ValueError as e:
            raise InvalidPlanError(str(e), cause=e)

        context.user_id = user_id
        context.user_name = user_name
        context.message = message
        if message_id:
            context.message_id = message_id
        context.knowledge_cutoff = context.knowledge_cutoff or self.options.knowledge_cutoff
        return context

    # ------------------------------------------
    # Pipeline
    # ------------------------------------------

    async def _run_stage(self, context: ChatContext, stage: str, call: Awaitable[str]) -> str:
        """Await a stage, recording chat errors on the context."""
        try:
            return await call
        except ChatError as e:
            logger.error(f"{stage} failed for chat {context.chat_id}: {e}")
            context.fail(e.description, e)
            return ""

    async def _get_chat_response(self, context: ChatContext) -> str:
        """Run the retrieval pipeline and complete the final prompt.

        Returns:
            Response text, the serialized plan if one was proposed, or
            ``""`` if a stage failed
        """
        chat_id = context.chat_id

        # 0. Audience
        context.audience = await self._run_stage(
            context, "Audience extraction", self.audience_extractor.extract(context)
        )
        if context.error_occurred:
            return ""

        # 1. User intent
        context.user_intent = await self._run_stage(
            context, "Intent extraction", self.intent_extractor.extract(context)
        )
        if context.error_occurred:
            return ""

        # 2. Remaining budget
        remaining = self.allocator.remaining(
            *self.prompt_builder.chat_overhead(context),
            context.audience,
            context.user_intent,
        )
        split = self.allocator.split(remaining)

        # 3. External information
        plan_result = ""
        if self.external_information is not None:
            context.token_limit = split.external_information
            plan_result = await self._run_stage(
                context,
                "External information",
                self.external_information.acquire_external_information(
                    context, split.external_information
                ),
            )
            if context.error_occurred:
                return ""

            # A new proposal goes back to the user for approval first
            proposed = context.proposed_plan
            if proposed is not None and proposed.state == PlanState.NO_OP:
                return proposed.to_json()

            if plan_result and proposed is not None and context.message_id:
                await self.update_response(plan_result, context.message_id)

        # 4. Semantic memories
        memories = await self._run_stage(
            context,
            "Memory retrieval",
            self.semantic_memory.query_memories(context.user_intent, chat_id, split.memories),
        )
        if context.error_occurred:
            return ""

        # 5. Document snippets
        documents = await self._run_stage(
            context,
            "Document retrieval",
            self.document_memory.query_documents(context.user_intent, chat_id, split.documents),
        )
        if context.error_occurred:
            return ""

        # 6. Chat history with whatever budget is left
        chat_context_text = "\n\n".join(
            block for block in (documents, memories, plan_result) if block
        )
        history_budget = self.allocator.history_budget(remaining, chat_context_text)
        if history_budget > 0:
            history = await self._run_stage(
                context,
                "History extraction",
                self.history.extract_chat_history(chat_id, history_budget),
            )
            if context.error_occurred:
                return ""
            chat_context_text = f"{chat_context_text}\n{history}"

        # 7. Complete
        context.prompt = self.prompt_builder.chat_prompt(context, chat_context_text)
        result = await self.completion.complete(
            context.prompt, self.prompt_builder.response_settings()
        )
        if not result.succeeded:
            error = CompletionBackendError(result.error or "", detail=result.detail)
            logger.error(f"Response completion failed for chat {chat_id}: {error.description}")
            context.fail(error.description, error)
            return ""

        return result.text

    async def _schedule_memory_extraction(self, context: ChatContext) -> None:
        """Queue distillation of the new exchange; never fails the response."""
        if self.memory_extractor is None:
            return

        task_id = await self.background_worker.submit(
            self.memory_extractor.extract_semantic_memory,
            context,
            name=f"memory-extraction:{context.chat_id}",
            key=f"memory-extraction:{context.chat_id}",
        )
        if task_id is None:
            logger.warning(f"Memory extraction for chat {context.chat_id} was not queued")

    # ------------------------------------------
    # Persistence
    # ------------------------------------------

    async def save_new_message(
        self,
        message: str,
        user_id: str,
        user_name: str,
        chat_id: str,
        message_type: Union[str, ChatMessageType] = ChatMessageType.MESSAGE,
    ) -> ChatMessage:
        """Persist an incoming user message.

        Raises:
            ChatSessionNotFoundError: If the chat session does not exist
        """
        if await self.sessions.try_find_by_id(chat_id) is None:
            raise ChatSessionNotFoundError(chat_id)

        chat_message = ChatMessage(
            user_id=user_id,
            user_name=user_name,
            chat_id=chat_id,
            content=message,
            prompt="",
            author_role=AuthorRole.USER,
            # Unrecognized types are stored as plain messages
            type=ChatMessageType.parse(message_type),
        )
        return await self.messages.create(chat_message)

    async def save_new_response(self, response: str, prompt: str, chat_id: str) -> ChatMessage:
        """Persist a bot response.

        Raises:
            ChatSessionNotFoundError: If the chat session does not exist
        """
        if await self.sessions.try_find_by_id(chat_id) is None:
            raise ChatSessionNotFoundError(chat_id)

        bot_message = ChatMessage.create_bot_response(chat_id, response, prompt)
        return await self.messages.create(bot_message)

    async def update_response(self, content: str, message_id: str) -> ChatMessage:
        """Rewrite the content of a stored bot message.

        Raises:
            NotFoundError: If no message has this id
        """
        chat_message = await self.messages.find_by_id(message_id)
        chat_message.content = content
        logger.debug(f"Rewriting message {message_id} of chat {chat_message.chat_id}")
        return await self.messages.upsert(chat_message)

    # ------------------------------------------
    # Read-only helpers
    # ------------------------------------------

    async def extract_chat_history(self, chat_id: str, token_limit: int) -> str:
        return await self.history.extract_chat_history(chat_id, token_limit)

    async def query_memories(self, query: str, chat_id: str, token_limit: int) -> str:
        return await self.semantic_memory.query_memories(query, chat_id, token_limit)

    async def query_documents(self, query: str, chat_id: str, token_limit: int) -> str:
        return await self.document_memory.query_documents(query, chat_id, token_limit)
