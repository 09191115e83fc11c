"""Exception Hierarchy for the chat orchestration engine.

Design Principles:
    - All exceptions inherit from ChatError base class
    - Exceptions preserve context (original error, timestamps, details)
    - Exceptions are categorized by recoverability
    - Pipeline stages record failures on the ChatContext instead of
      raising past the orchestrator

Exception Hierarchy:
    ChatError (base)
    ├── ConfigurationError (unrecoverable - fix config)
    ├── ValidationError (caller supplied bad input)
    │   ├── ChatSessionNotFoundError
    │   └── InvalidPlanError
    ├── NotFoundError (store lookup on a missing id)
    ├── CompletionBackendError (backend reported a failure)
    ├── PlannerError (plan creation/execution failure)
    │   ├── SkillNotFoundError
    │   ├── SkillParameterError
    │   └── PlanExecutionError
    ├── MemoryStoreError (retrieval or save failure)
    └── BudgetMisconfigurationError (non-fatal - zero capacity)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

# ============================================
# Base Exception
# ============================================


class ChatError(Exception):
    """Base exception for all chat engine errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "CHAT_SESSION_NOT_FOUND")
        details: Additional context as a dictionary
        timestamp: When the error occurred
        cause: The original exception that caused this error
        recoverable: Whether this error might be recoverable with retry
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__.upper()
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        self.cause = cause
        self.recoverable = recoverable

        if cause:
            self.__cause__ = cause

    @property
    def description(self) -> str:
        """User-facing description of the failure."""
        return self.message

    def __str__(self) -> str:
        parts = [self.message]
        if self.code:
            parts.insert(0, f"[{self.code}]")
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            parts.append(f"({detail_str})")
        return " ".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"details={self.details!r}, "
            f"recoverable={self.recoverable})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "cause": str(self.cause) if self.cause else None,
        }


# ============================================
# Configuration Errors
# ============================================


class ConfigurationError(ChatError):
    """Raised when configuration is missing or out of range."""

    def __init__(self, message: str, key: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if key:
            details["key"] = key
        super().__init__(
            message,
            code="CONFIGURATION_ERROR",
            details=details,
            recoverable=False,
            **kwargs,
        )


# ============================================
# Validation Errors
# ============================================


class ValidationError(ChatError):
    """Raised when a caller supplies input that cannot be processed."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("code", "VALIDATION_ERROR")
        super().__init__(message, recoverable=False, **kwargs)


class ChatSessionNotFoundError(ValidationError):
    """Raised when a message references a chat session that does not exist."""

    def __init__(self, chat_id: str, **kwargs):
        self.chat_id = chat_id
        super().__init__(
            "Chat session does not exist.",
            code="CHAT_SESSION_NOT_FOUND",
            details={"chat_id": chat_id},
            **kwargs,
        )


class InvalidPlanError(ValidationError):
    """Raised when a resubmitted proposed plan cannot be parsed."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code="INVALID_PLAN", **kwargs)


# ============================================
# Storage Errors
# ============================================


class NotFoundError(ChatError):
    """Raised when a store lookup references a missing entity."""

    def __init__(self, entity: str, entity_id: str, **kwargs):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} with id '{entity_id}' not found",
            code="NOT_FOUND",
            details={"entity": entity, "id": entity_id},
            recoverable=False,
            **kwargs,
        )


class MemoryStoreError(ChatError):
    """Raised when semantic or document memory cannot be searched or written."""

    def __init__(self, message: str, collection: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", {})
        if collection:
            details["collection"] = collection
        super().__init__(
            message,
            code="MEMORY_STORE_ERROR",
            details=details,
            recoverable=True,
            **kwargs,
        )


# ============================================
# Completion Errors
# ============================================


class CompletionBackendError(ChatError):
    """Raised when the completion backend reports a failure.

    The backend's own structured detail is kept so that the caller sees
    it verbatim, which is useful when debugging prompts.
    """

    def __init__(self, message: str, detail: Optional[str] = None, **kwargs):
        self.detail = detail
        details = kwargs.pop("details", {})
        if detail:
            details["detail"] = detail
        kwargs.setdefault("recoverable", True)
        super().__init__(
            message,
            code="COMPLETION_BACKEND_ERROR",
            details=details,
            **kwargs,
        )

    @property
    def description(self) -> str:
        if self.detail:
            return f"{self.message} - Detail: {self.detail}"
        return self.message


# ============================================
# Planner Errors
# ============================================


class PlannerError(ChatError):
    """Raised when a plan cannot be created or executed."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("code", "PLANNER_ERROR")
        super().__init__(message, recoverable=False, **kwargs)


class SkillNotFoundError(PlannerError):
    """Raised when a plan step names a function missing from the registry."""

    def __init__(self, skill: str, function: str, **kwargs):
        self.skill = skill
        self.function = function
        super().__init__(
            f"Function {skill}.{function} is not registered",
            code="SKILL_NOT_FOUND",
            details={"skill": skill, "function": function},
            **kwargs,
        )


class SkillParameterError(PlannerError):
    """Raised when a plan step's parameters fail schema validation."""

    def __init__(self, skill: str, function: str, reason: str, **kwargs):
        super().__init__(
            f"Invalid parameters for {skill}.{function}: {reason}",
            code="SKILL_PARAMETER_ERROR",
            details={"skill": skill, "function": function},
            **kwargs,
        )


class PlanExecutionError(PlannerError):
    """Raised when a plan step fails while running."""

    def __init__(self, message: str, step_index: Optional[int] = None, **kwargs):
        details = kwargs.pop("details", {})
        if step_index is not None:
            details["step"] = step_index
        super().__init__(
            message,
            code="PLAN_EXECUTION_ERROR",
            details=details,
            **kwargs,
        )


# ============================================
# Budget Errors
# ============================================


class BudgetMisconfigurationError(ChatError):
    """Fixed overhead exceeds the completion token limit.

    Never raised by the pipeline: the allocator logs it and downstream
    stages treat the negative budget as zero capacity.
    """

    def __init__(self, total: int, reserved: int, overhead: int, **kwargs):
        super().__init__(
            f"Token budget misconfigured: overhead {overhead} and response "
            f"reserve {reserved} exceed completion limit {total}",
            code="BUDGET_MISCONFIGURATION",
            details={"total": total, "reserved": reserved, "overhead": overhead},
            recoverable=True,
            **kwargs,
        )


__all__ = [
    "ChatError",
    "ConfigurationError",
    "ValidationError",
    "ChatSessionNotFoundError",
    "InvalidPlanError",
    "NotFoundError",
    "MemoryStoreError",
    "CompletionBackendError",
    "PlannerError",
    "SkillNotFoundError",
    "SkillParameterError",
    "PlanExecutionError",
    "BudgetMisconfigurationError",
]
