"""Chat Orchestrator.

Coordinates one chat turn end to end:
- Prompt building and token budgeting
- Audience and user-intent extraction
- External information through proposed and approved plans
- Chat history assembly
- Response persistence and background memory distillation

Also provides chat session management.
"""

# Order matters: memory.extractor imports history and prompt_builder
from .prompt_builder import PromptBuilder
from .history import ChatHistoryAssembler, compact_proposed_plan
from .extractors import AudienceExtractor, IntentExtractor, build_extractors
from .external_information import ExternalInformationProvider
from .chat import USER_CANCELLED_PLAN_RESPONSE, ChatOrchestrator
from .sessions import ChatSessionService

__all__ = [
    # Main orchestrator
    "ChatOrchestrator",
    "USER_CANCELLED_PLAN_RESPONSE",
    "ChatSessionService",
    # Stages
    "PromptBuilder",
    "ChatHistoryAssembler",
    "compact_proposed_plan",
    "IntentExtractor",
    "AudienceExtractor",
    "build_extractors",
    "ExternalInformationProvider",
]
