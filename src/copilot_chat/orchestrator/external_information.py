"""
External Information Provider.

Two-phase protocol for information that requires running skills:

1. Propose: when no approved plan is present, ask the planner for a plan,
   offer the caller's variables to its parameters, drop steps the
   registry can no longer resolve, and hand the plan back to the caller
   as ``ProposedPlan{state=NoOp}``. Nothing is executed.
2. Resolve: when the caller resubmits the plan with ``state=Approved``
   (together with the id of the bot message that carried it), execute it
   in a fresh context owned by the planner, narrow and truncate the
   result to the token budget, and frame it for the prompt.

The message id is the idempotency key. The provider does not remember
executions; callers must clear the approval state after the first
successful run.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from ..domain.context import USER_INTENT, ChatContext
from ..domain.entities import INPUT_PARAMETER, Plan, PlanState, ProposedPlan
from ..domain.ports import IPlanner
from ..exceptions import PlannerError
from ..planner.result_shapes import ResultShapeRegistry, default_result_shapes
from ..token_budget import CountTokens, TokenBudget, get_token_counter

logger = logging.getLogger(__name__)

PROMPT_PREAMBLE = "[RELATED START]"
PROMPT_POSTAMBLE = "[RELATED END]"

GOAL_TEMPLATE = (
    "Given the following context, accomplish the user intent.\n"
    "Context:\n{context}\n"
    "User Intent:{user_intent}"
)


class ExternalInformationProvider:
    """Proposes plans for approval and executes approved ones.

    Usage:
        provider = ExternalInformationProvider(planner)

        # First pass: proposes a plan (context.proposed_plan, state NoOp)
        text = await provider.acquire_external_information(context, token_limit)

        # Resubmission with state Approved: executes and returns the
        # framed result
        text = await provider.acquire_external_information(context, token_limit)
    """

    def __init__(
        self,
        planner: IPlanner,
        result_shapes: Optional[ResultShapeRegistry] = None,
        count_tokens: Optional[CountTokens] = None,
    ):
        """Initialize the provider.

        Args:
            planner: Planner owning the function registry
            result_shapes: Skill-name to result-shape mapping
            count_tokens: Token counter (defaults to tiktoken cl100k_base)
        """
        self.planner = planner
        self.result_shapes = result_shapes or default_result_shapes()
        self.count_tokens = count_tokens or get_token_counter()

    async def acquire_external_information(
        self, context: ChatContext, token_limit: int
    ) -> str:
        """Run whichever phase the context calls for.

        Planner failures mark the context as failed.

        Returns:
            Framed execution result, or ``""`` when nothing was executed
        """
        if not self.planner.has_functions:
            return ""

        proposed = context.proposed_plan
        try:
            if proposed is not None and proposed.state == PlanState.APPROVED:
                return await self.resolve(proposed, token_limit)

            context.proposed_plan = await self.propose(context)
            return ""

        except PlannerError as e:
            logger.error(f"External information failed for chat {context.chat_id}: {e}")
            context.fail(e.message, e)
            return ""

    # ------------------------------------------
    # Phase 1: propose
    # ------------------------------------------

    def build_goal(self, context: ChatContext) -> str:
        variables = context.to_variables()
        context_lines = "\n".join(
            f"{key}: {value}" for key, value in variables.items() if key != USER_INTENT
        )
        return GOAL_TEMPLATE.format(context=context_lines, user_intent=context.user_intent)

    async def propose(self, context: ChatContext) -> Optional[ProposedPlan]:
        """Create a plan for the user intent without executing it.

        Returns:
            ProposedPlan in state NoOp, or None if no step applies
        """
        plan = await self.planner.create_plan(self.build_goal(context))
        if plan.is_empty:
            return None

        self._merge_variables(plan, context.to_variables())
        self._drop_unresolvable_steps(plan)
        if plan.is_empty:
            logger.info(f"No resolvable steps left in plan for chat {context.chat_id}")
            return None

        logger.info(
            f"Proposed {len(plan.steps)}-step plan for chat {context.chat_id}"
        )
        return ProposedPlan(plan=plan, type=self.planner.plan_type, state=PlanState.NO_OP)

    @staticmethod
    def _merge_variables(plan: Plan, variables: dict[str, str]) -> None:
        """Overwrite declared plan and step parameters with caller values.

        Only keys the plan already declares are touched; ``INPUT`` carries
        step results and is never overwritten.
        """
        for key, value in variables.items():
            if key == INPUT_PARAMETER:
                continue
            if key in plan.parameters:
                plan.parameters[key] = value
            for step in plan.steps:
                if key in step.parameters:
                    step.parameters[key] = value

    def _drop_unresolvable_steps(self, plan: Plan) -> None:
        kept = []
        for step in plan.steps:
            if self.planner.can_resolve(step.skill, step.function):
                kept.append(step)
            else:
                logger.warning(f"Dropping unresolvable plan step {step.qualified_name}")
        plan.steps = kept

    # ------------------------------------------
    # Phase 2: resolve
    # ------------------------------------------

    async def resolve(self, proposed: ProposedPlan, token_limit: int) -> str:
        """Execute an approved plan and frame its result.

        Plans in any other state are not executed.

        Raises:
            PlannerError: If execution fails
        """
        if proposed.state != PlanState.APPROVED:
            return ""

        # Re-deserialize so execution never shares state with the caller
        plan = Plan.from_dict(proposed.plan.to_dict())
        raw_result = await self.planner.execute(plan)

        token_limit -= self.count_tokens(PROMPT_PREAMBLE) + self.count_tokens(PROMPT_POSTAMBLE)

        json_content = self.try_extract_json(raw_result)
        if json_content is not None:
            result = self.optimize_json(json_content, token_limit, plan.last_skill)
        else:
            result = raw_result

        return f"{PROMPT_PREAMBLE}\n{result.strip()}\n{PROMPT_POSTAMBLE}\n"

    @staticmethod
    def try_extract_json(result: str) -> Optional[str]:
        """Return the JSON body of a ``{"contentType", "content"}`` envelope.

        Returns:
            The content if the envelope declares a JSON content type and
            carries a body, otherwise None
        """
        try:
            envelope = json.loads(result)
        except (TypeError, ValueError):
            return None

        if not isinstance(envelope, dict):
            return None

        content_type = str(envelope.get("contentType") or "")
        content = envelope.get("content")
        if not content_type.lower().startswith("application/json") or not content:
            return None
        return content if isinstance(content, str) else json.dumps(content)

    def optimize_json(self, json_content: str, token_limit: int, last_skill: str) -> str:
        """Narrow and truncate a JSON result to fit the budget.

        The payload is narrowed to the last skill's result shape, if one is
        registered. If it still does not fit, object properties or array
        items are kept greedily until the budget runs out. A single-keyed
        wrapper object is unwrapped and its key kept as a descriptor.
        """
        json_content = json_content.replace("\r", "").replace("\n", "")
        try:
            document: Any = json.loads(json_content)
        except ValueError:
            logger.warning(f"Result from {last_skill} declared JSON but did not parse")
            return json_content

        document = self.result_shapes.downcast(last_skill, document)
        json_content = json.dumps(document)
        if self.count_tokens(json_content) < token_limit:
            return json_content

        descriptor = ""
        if isinstance(document, dict) and len(document) == 1:
            key, document = next(iter(document.items()))
            token_limit -= self.count_tokens(key)
            descriptor = f"{key}: "

        budget = TokenBudget(token_limit)
        items: Any = None
        if isinstance(document, dict):
            items = {}
            for key, value in document.items():
                if not budget.try_consume(self.count_tokens(json.dumps({key: value}))):
                    break
                items[key] = value
        elif isinstance(document, list):
            items = []
            for item in document:
                if not budget.try_consume(self.count_tokens(json.dumps(item))):
                    break
                items.append(item)

        if items:
            logger.debug(
                f"Truncated {last_skill} result to {len(items)} entries "
                f"({budget.consumed}/{token_limit} tokens)"
            )
            return descriptor + json.dumps(items)

        return f"JSON response for {last_skill} is too large to be consumed at this time."
