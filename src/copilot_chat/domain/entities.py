"""
Domain Entities for the chat orchestration engine.

These are pure data classes with no external dependencies.
They represent the core business concepts of chat sessions, messages,
memory snippets, completion settings and action plans.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, matching the TIMESTAMP columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ============================================
# Chat Entities
# ============================================


class AuthorRole(str, Enum):
    """Who authored a chat message."""

    USER = "User"
    BOT = "Bot"
    PARTICIPANT = "Participant"


class ChatMessageType(str, Enum):
    """Kind of content carried by a chat message."""

    MESSAGE = "Message"
    PLAN = "Plan"
    DOCUMENT = "Document"

    @classmethod
    def parse(cls, value: Any) -> "ChatMessageType":
        """Parse a message type, defaulting to MESSAGE for unknown values."""
        if isinstance(value, cls):
            return value
        for member in cls:
            if str(value).lower() == member.value.lower():
                return member
        return cls.MESSAGE


BOT_USER_ID = "bot"
BOT_USER_NAME = "bot"


@dataclass
class ChatSession:
    """A persistent conversation container owned by one user."""

    user_id: str
    title: str
    id: str = field(default_factory=lambda: str(uuid4()))
    created_on: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if not self.id:
            raise ValueError("Chat session id cannot be empty")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "createdOn": self.created_on.isoformat(),
        }


@dataclass
class ChatMessage:
    """One turn within a chat session.

    Only ``content`` may change after creation: it is rewritten when a
    proposed plan is resolved.
    """

    user_id: str
    user_name: str
    chat_id: str
    content: str
    prompt: str = ""
    author_role: AuthorRole = AuthorRole.USER
    type: ChatMessageType = ChatMessageType.MESSAGE
    id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if not self.id:
            raise ValueError("Chat message id cannot be empty")
        if not self.chat_id:
            raise ValueError("Chat message must belong to a chat session")

    @classmethod
    def create_bot_response(
        cls,
        chat_id: str,
        content: str,
        prompt: str,
        message_type: Optional[ChatMessageType] = None,
    ) -> "ChatMessage":
        """Create a message authored by the bot.

        Messages carrying a serialized proposed plan are typed PLAN.
        """
        if message_type is None:
            message_type = (
                ChatMessageType.PLAN
                if ProposedPlan.is_proposed_plan(content)
                else ChatMessageType.MESSAGE
            )
        return cls(
            user_id=BOT_USER_ID,
            user_name=BOT_USER_NAME,
            chat_id=chat_id,
            content=content,
            prompt=prompt,
            author_role=AuthorRole.BOT,
            type=message_type,
        )

    def to_formatted_string(self) -> str:
        """Render the message as a single chat-history line."""
        return f"[{self.timestamp.strftime('%m/%d/%Y %I:%M:%S %p')}] {self.user_name}: {self.content}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "chatId": self.chat_id,
            "userId": self.user_id,
            "userName": self.user_name,
            "content": self.content,
            "prompt": self.prompt,
            "authorRole": self.author_role.value,
            "type": self.type.value,
            "timestamp": self.timestamp.isoformat(),
        }


# ============================================
# Memory Entities
# ============================================


@dataclass
class MemoryQueryResult:
    """A snippet returned by a memory search.

    Ephemeral: produced by retrieval, never persisted by the engine.
    """

    text: str
    description: str
    relevance: float
    id: Optional[str] = None
    embedding: Optional[list[float]] = None

    def __post_init__(self):
        if not 0.0 <= self.relevance <= 1.0:
            raise ValueError(f"Relevance must be within [0, 1], got {self.relevance}")


# ============================================
# Completion Entities
# ============================================


@dataclass
class CompletionSettings:
    """Sampling parameters for one completion request."""

    max_tokens: int = 1024
    temperature: float = 0.7
    top_p: float = 1.0
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0
    stop_sequences: list[str] = field(default_factory=list)


@dataclass
class CompletionResult:
    """Outcome of a completion request.

    Backends report failures here instead of raising.
    """

    text: str = ""
    error: Optional[str] = None
    detail: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def error_description(self) -> str:
        """Failure message with the backend detail appended when present."""
        if self.error is None:
            return ""
        if self.detail:
            return f"{self.error} - Detail: {self.detail}"
        return self.error


# ============================================
# Plan Entities
# ============================================


class PlanType(str, Enum):
    """Planner strategy."""

    ACTION = "Action"
    SEQUENTIAL = "Sequential"


class PlanState(str, Enum):
    """Approval state of a proposed plan."""

    NO_OP = "NoOp"
    APPROVED = "Approved"
    REJECTED = "Rejected"


INPUT_PARAMETER = "INPUT"


@dataclass
class PlanStep:
    """One skill invocation inside a plan.

    Attributes:
        skill: Skill (plugin) name
        function: Function name within the skill
        parameters: Declared parameter values; ``$name`` refers to a plan
            variable
        output: Optional variable name that receives the step's result
    """

    skill: str
    function: str
    parameters: dict[str, str] = field(default_factory=dict)
    output: Optional[str] = None

    @property
    def qualified_name(self) -> str:
        return f"{self.skill}.{self.function}"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "skill": self.skill,
            "function": self.function,
            "parameters": dict(self.parameters),
        }
        if self.output:
            data["output"] = self.output
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlanStep":
        return cls(
            skill=str(data["skill"]),
            function=str(data["function"]),
            parameters={k: str(v) for k, v in (data.get("parameters") or {}).items()},
            output=data.get("output") or None,
        )


@dataclass
class Plan:
    """An ordered sequence of skill invocations for a goal."""

    description: str
    steps: list[PlanStep] = field(default_factory=list)
    parameters: dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.steps

    @property
    def last_skill(self) -> str:
        """Skill of the final step, which shapes the plan's result."""
        return self.steps[-1].skill if self.steps else ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "description": self.description,
            "parameters": dict(self.parameters),
            "steps": [step.to_dict() for step in self.steps],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Plan":
        return cls(
            description=str(data.get("description", "")),
            steps=[PlanStep.from_dict(step) for step in data.get("steps") or []],
            parameters={k: str(v) for k, v in (data.get("parameters") or {}).items()},
        )


@dataclass
class ProposedPlan:
    """A plan awaiting (or resolved by) human approval.

    The serialized form round-trips through the client:
    ``{"proposedPlan": {...}, "type": "Action", "state": "NoOp"}``.
    """

    plan: Plan
    type: PlanType = PlanType.ACTION
    state: PlanState = PlanState.NO_OP

    # Marker used to recognise serialized plans inside message content
    JSON_MARKER = 'proposedPlan":'

    def to_dict(self) -> dict[str, Any]:
        return {
            "proposedPlan": self.plan.to_dict(),
            "type": self.type.value,
            "state": self.state.value,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProposedPlan":
        return cls(
            plan=Plan.from_dict(data["proposedPlan"]),
            type=PlanType(data.get("type", PlanType.ACTION.value)),
            state=PlanState(data.get("state", PlanState.NO_OP.value)),
        )

    @classmethod
    def from_json(cls, payload: str) -> "ProposedPlan":
        """Parse a serialized plan.

        Raises:
            ValueError: If the payload is not a valid proposed plan
        """
        try:
            data = json.loads(payload)
            return cls.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid proposed plan payload: {e}") from e

    @classmethod
    def is_proposed_plan(cls, content: str) -> bool:
        """Whether text embeds a serialized proposed plan."""
        return cls.JSON_MARKER.lower() in content.lower()


# ============================================
# Orchestrator Results
# ============================================


@dataclass
class ChatResult:
    """Outcome of one ``respond`` call.

    Attributes:
        response: Text returned to the user (empty on failure)
        prompt: Rendered prompt sent to the completion backend
        bot_message: Persisted bot message, None on failure
        error: First failure description, None on success
    """

    response: str = ""
    prompt: str = ""
    bot_message: Optional[ChatMessage] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def message_id(self) -> Optional[str]:
        return self.bot_message.id if self.bot_message else None

    @property
    def message_type(self) -> Optional[ChatMessageType]:
        return self.bot_message.type if self.bot_message else None
