"""
Chat Planner.

Creates plans by asking the completion backend to compose the registered
skill functions, and executes plans step by step against the registry.
Execution always starts from a fresh variable set built from the plan's
own parameters, never from the caller's context.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from ..config import PlannerOptions
from ..domain.entities import (
    INPUT_PARAMETER,
    CompletionSettings,
    Plan,
    PlanStep,
    PlanType,
)
from ..domain.ports import ICompletionBackend, IPlanner
from ..exceptions import PlanExecutionError, PlannerError
from .registry import SkillRegistry

logger = logging.getLogger(__name__)

_VARIABLE_REFERENCE = re.compile(r"^\$(\w+)$")


class ChatPlanner(IPlanner):
    """Plans and executes skill invocations.

    Usage:
        planner = ChatPlanner(completion, registry, PlannerOptions())

        plan = await planner.create_plan("Given the following context, ...")
        if not plan.is_empty:
            result = await planner.execute(plan)
    """

    PLAN_PROMPT = """You are a planner that composes functions to accomplish a goal.

Available functions (name, description, parameters):
{functions}

{strategy}
Only use the functions listed above. Parameter values are strings; write
$name to pass the output of an earlier step that declared "output": "name".

Respond with JSON only, in this exact format:
{{"steps": [{{"skill": "SkillName", "function": "FunctionName", "parameters": {{"name": "value"}}, "output": "optional_variable"}}]}}

If none of the functions helps with the goal, respond with {{"steps": []}}.

Goal:
{goal}
"""

    ACTION_STRATEGY = "Choose the single function that best accomplishes the goal."
    SEQUENTIAL_STRATEGY = (
        "Choose the sequence of functions that accomplishes the goal, in the "
        "order they must run."
    )

    def __init__(
        self,
        completion: ICompletionBackend,
        registry: Optional[SkillRegistry] = None,
        options: Optional[PlannerOptions] = None,
    ):
        """Initialize the planner.

        Args:
            completion: Backend used to generate plans
            registry: Functions available to plans
            options: Planner configuration
        """
        self.completion = completion
        self.registry = registry if registry is not None else SkillRegistry()
        self.options = options or PlannerOptions()

    @property
    def plan_type(self) -> PlanType:
        return self.options.type

    @property
    def has_functions(self) -> bool:
        return not self.registry.is_empty

    def can_resolve(self, skill: str, function: str) -> bool:
        return self.registry.contains(skill, function)

    # ------------------------------------------
    # Plan creation
    # ------------------------------------------

    def _function_manual(self) -> str:
        return "\n".join(
            json.dumps(function.describe())
            for function in self.registry.list_functions()
        )

    async def create_plan(self, goal: str) -> Plan:
        """Create a plan for a goal.

        Returns:
            Plan whose description is the goal; empty if no functions are
            registered or none applies

        Raises:
            PlannerError: If the backend fails or returns an unusable plan
        """
        if not self.has_functions:
            return Plan(description=goal)

        strategy = (
            self.ACTION_STRATEGY
            if self.plan_type == PlanType.ACTION
            else self.SEQUENTIAL_STRATEGY
        )
        prompt = self.PLAN_PROMPT.format(
            functions=self._function_manual(),
            strategy=strategy,
            goal=goal,
        )
        settings = CompletionSettings(
            max_tokens=self.options.max_tokens,
            temperature=self.options.temperature,
        )

        result = await self.completion.complete(prompt, settings)
        if not result.succeeded:
            raise PlannerError(f"Plan creation failed: {result.error_description}")

        steps, parameters = self._parse_plan(result.text)
        limit = 1 if self.plan_type == PlanType.ACTION else self.options.max_steps
        if len(steps) > limit:
            logger.info(f"Planner proposed {len(steps)} steps, keeping {limit}")
            steps = steps[:limit]

        logger.info(f"Created {self.plan_type.value} plan with {len(steps)} steps")
        return Plan(description=goal, steps=steps, parameters=parameters)

    def _parse_plan(self, response: str) -> tuple[list[PlanStep], dict[str, str]]:
        """Parse the planner response into steps and plan-level parameters.

        Raises:
            PlannerError: If the response is not a valid plan
        """
        text = response.strip()

        # Handle markdown code blocks
        if text.startswith("```"):
            lines = text.split("\n")
            text = "\n".join(lines[1:-1] if lines[-1].startswith("```") else lines[1:])

        # Tolerate prose around the JSON object
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end == -1:
            raise PlannerError("Planner response did not contain a JSON plan")

        try:
            data: Any = json.loads(text[start : end + 1])
            steps = [PlanStep.from_dict(step) for step in data.get("steps") or []]
            parameters = {k: str(v) for k, v in (data.get("parameters") or {}).items()}
            return steps, parameters
        except (json.JSONDecodeError, AttributeError, KeyError, TypeError) as e:
            raise PlannerError(f"Planner returned an invalid plan: {e}", cause=e)

    # ------------------------------------------
    # Plan execution
    # ------------------------------------------

    @staticmethod
    def _resolve(value: str, variables: dict[str, str]) -> str:
        match = _VARIABLE_REFERENCE.match(value)
        if match:
            return variables.get(match.group(1), "")
        return value

    async def execute(self, plan: Plan) -> str:
        """Run every step in order.

        Each step receives the plan variables, the previous result as
        ``INPUT``, and its own declared parameters (``$name`` resolved
        against the variables).

        Returns:
            Result of the final step

        Raises:
            PlannerError: If a step cannot be resolved, validated or run
        """
        variables: dict[str, str] = dict(plan.parameters)
        current_input = variables.get(INPUT_PARAMETER, "")

        for index, step in enumerate(plan.steps):
            function = self.registry.get(step.skill, step.function)

            arguments = dict(variables)
            arguments[INPUT_PARAMETER] = current_input
            for name, value in step.parameters.items():
                arguments[name] = self._resolve(value, variables)

            logger.debug(f"Executing step {index} ({step.qualified_name})")
            try:
                current_input = await function.invoke(arguments)
            except PlannerError:
                raise
            except Exception as e:
                raise PlanExecutionError(
                    f"Step {index} ({step.qualified_name}) failed: {e}",
                    step_index=index,
                    cause=e,
                )

            variables[INPUT_PARAMETER] = current_input
            if step.output:
                variables[step.output] = current_input

        logger.info(f"Executed plan with {len(plan.steps)} steps")
        return current_input
