"""
Typed chat context threaded through every orchestration stage.

Each stage reads only the fields it declares and writes its own outputs
back, so the context after a stage is always a superset of the context
before it. A stage that fails records the failure here; the orchestrator
checks ``error_occurred`` after every stage and stops at the first one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .entities import ChatMessageType, ProposedPlan

# Serialized names of the context fields, as seen by planners and clients
CHAT_ID = "chatId"
USER_INTENT = "userIntent"
PLAN_USER_INTENT = "planUserIntent"
AUDIENCE = "audience"
USER_NAME = "userName"
TOKEN_LIMIT = "tokenLimit"
KNOWLEDGE_CUTOFF = "knowledgeCutoff"
PROPOSED_PLAN = "proposedPlan"
PROMPT = "prompt"
MESSAGE_ID = "messageId"
MESSAGE_TYPE = "messageType"
USER_CANCELLED_PLAN = "userCancelledPlan"


@dataclass
class ChatContext:
    """State of one ``respond`` call.

    Attributes:
        chat_id: Chat session the request belongs to
        user_id: Author of the incoming message
        user_name: Display name of the author
        message: Incoming message text
        user_intent: Output of intent extraction (``"User intent: ..."``)
        plan_user_intent: Caller-supplied intent that replaces extraction
        audience: Output of audience extraction
        token_limit: Budget handed to the current history extraction
        knowledge_cutoff: Rendered into the system description
        proposed_plan: Plan proposed by, or resubmitted to, the engine
        prompt: Final rendered prompt
        message_id: Id of the bot message for plan round-trips
        message_type: Type of the bot message for plan round-trips
        user_cancelled_plan: Short-circuit to the apology response
        variables: Caller-supplied values offered to plan parameters
    """

    chat_id: str
    user_id: str = ""
    user_name: str = ""
    message: str = ""
    user_intent: str = ""
    plan_user_intent: Optional[str] = None
    audience: str = ""
    token_limit: Optional[int] = None
    knowledge_cutoff: str = ""
    proposed_plan: Optional[ProposedPlan] = None
    prompt: str = ""
    message_id: Optional[str] = None
    message_type: ChatMessageType = ChatMessageType.MESSAGE
    user_cancelled_plan: bool = False
    variables: dict[str, str] = field(default_factory=dict)

    # Execution state
    error_occurred: bool = False
    last_error_description: str = ""
    last_exception: Optional[Exception] = None

    @classmethod
    def from_variables(
        cls, chat_id: str, variables: Optional[dict[str, str]] = None
    ) -> "ChatContext":
        """Build a context from a client-supplied variable mapping.

        Known keys populate typed fields; anything else is kept as a
        caller variable for plan parameters.

        Raises:
            ValueError: If a known key carries a malformed value
        """
        context = cls(chat_id=chat_id)
        for key, value in (variables or {}).items():
            if key == CHAT_ID:
                continue
            elif key == USER_NAME:
                context.user_name = value
            elif key == PLAN_USER_INTENT:
                context.plan_user_intent = value
            elif key == KNOWLEDGE_CUTOFF:
                context.knowledge_cutoff = value
            elif key == MESSAGE_ID:
                context.message_id = value or None
            elif key == MESSAGE_TYPE:
                context.message_type = ChatMessageType.parse(value)
            elif key == USER_CANCELLED_PLAN:
                context.user_cancelled_plan = str(value).lower() not in ("", "false", "0")
            elif key == PROPOSED_PLAN:
                context.proposed_plan = ProposedPlan.from_json(value)
            elif key in (USER_INTENT, AUDIENCE, TOKEN_LIMIT, PROMPT):
                # Produced by the pipeline, never accepted from callers
                continue
            else:
                context.variables[key] = str(value)
        return context

    def fail(self, description: str, error: Optional[Exception] = None) -> None:
        """Mark the context as failed.

        Only the first failure is kept so the caller sees the root cause.
        """
        if self.error_occurred:
            return
        self.error_occurred = True
        self.last_error_description = description
        self.last_exception = error

    def to_variables(self) -> dict[str, str]:
        """Ordered string view of the populated fields plus caller variables.

        Caller variables come first so that declared fields win on clashes.
        """
        result: dict[str, str] = dict(self.variables)
        declared = {
            CHAT_ID: self.chat_id,
            USER_NAME: self.user_name,
            AUDIENCE: self.audience,
            USER_INTENT: self.user_intent,
            KNOWLEDGE_CUTOFF: self.knowledge_cutoff,
            TOKEN_LIMIT: "" if self.token_limit is None else str(self.token_limit),
        }
        for key, value in declared.items():
            if value:
                result[key] = value
        return result
