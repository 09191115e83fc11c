"""
Unit tests for the skill registry, result shapes and the chat planner.
"""

import json

import pytest
from pydantic import Field

from conftest import ScriptedCompletion
from copilot_chat.config import PlannerOptions
from copilot_chat.domain.entities import CompletionResult, Plan, PlanStep, PlanType
from copilot_chat.exceptions import (
    PlanExecutionError,
    PlannerError,
    SkillNotFoundError,
    SkillParameterError,
)
from copilot_chat.planner import (
    ChatPlanner,
    PullRequest,
    ResultShapeRegistry,
    SkillParameters,
    SkillRegistry,
    default_result_shapes,
)


class ForecastParameters(SkillParameters):
    city: str = Field(description="City to forecast")
    days: int = 1


@pytest.fixture
def registry():
    registry = SkillRegistry()

    @registry.function("WeatherSkill", "GetForecast", "Get the forecast", ForecastParameters)
    async def get_forecast(params):
        return f"{params.city}: sunny for {params.days} day(s)"

    @registry.function("TextSkill", "Shout", "Uppercase the input")
    async def shout(params):
        return params.input.upper()

    @registry.function("DataSkill", "Stats", "Return statistics")
    async def stats(params):
        return {"count": 3}

    @registry.function("BrokenSkill", "Fail", "Always fails")
    async def fail(params):
        raise RuntimeError("upstream unavailable")

    return registry


# ============================================
# SkillRegistry
# ============================================


class TestSkillRegistry:
    """Tests for registration and lookup."""

    def test_lookup_is_case_insensitive(self, registry):
        assert registry.contains("weatherskill", "getforecast")
        assert registry.get("WEATHERSKILL", "GetForecast").qualified_name == "WeatherSkill.GetForecast"

    def test_missing_function_raises(self, registry):
        with pytest.raises(SkillNotFoundError):
            registry.get("WeatherSkill", "GetRadar")

    def test_unregister_skill(self, registry):
        assert registry.unregister_skill("WeatherSkill") == 1
        assert not registry.contains("WeatherSkill", "GetForecast")
        assert len(registry) == 3

    def test_describe_hides_input(self, registry):
        description = registry.get("WeatherSkill", "GetForecast").describe()

        assert description["name"] == "WeatherSkill.GetForecast"
        assert description["parameters"]["city"] == "City to forecast"
        assert "INPUT" not in description["parameters"]
        assert description["required"] == ["city"]

    @pytest.mark.asyncio
    async def test_invoke_validates_arguments(self, registry):
        function = registry.get("WeatherSkill", "GetForecast")

        with pytest.raises(SkillParameterError):
            await function.invoke({"days": "2"})

    @pytest.mark.asyncio
    async def test_invoke_serializes_non_string_results(self, registry):
        result = await registry.get("DataSkill", "Stats").invoke({})

        assert json.loads(result) == {"count": 3}


# ============================================
# Result shapes
# ============================================


class TestResultShapes:
    """Tests for narrowing skill results."""

    def test_narrows_array_items(self):
        shapes = default_result_shapes()
        payload = [{"number": 1, "title": "Fix", "state": "open", "node_id": "x", "user": {"login": "ada", "id": 7}}]

        narrowed = shapes.downcast("githubskill", payload)

        assert narrowed == [
            {"number": 1, "title": "Fix", "state": "open", "user": {"login": "ada"}, "labels": []}
        ]

    def test_unregistered_skill_is_untouched(self):
        payload = {"anything": 1}

        assert ResultShapeRegistry().downcast("OtherSkill", payload) is payload

    def test_mismatched_payload_is_kept_whole(self):
        shapes = ResultShapeRegistry()
        shapes.register("GitHubSkill", PullRequest)
        payload = {"message": "Not Found"}

        assert shapes.downcast("GitHubSkill", payload) == payload


# ============================================
# Plan creation
# ============================================


class TestCreatePlan:
    """Tests for asking the backend for a plan."""

    @pytest.mark.asyncio
    async def test_no_functions_returns_empty_plan(self):
        completion = ScriptedCompletion()
        planner = ChatPlanner(completion, SkillRegistry())

        plan = await planner.create_plan("goal")

        assert plan.is_empty
        assert plan.description == "goal"
        assert completion.calls == []

    @pytest.mark.asyncio
    async def test_prompt_lists_functions_and_goal(self, registry):
        completion = ScriptedCompletion('{"steps": []}')
        planner = ChatPlanner(completion, registry)

        await planner.create_plan("What is the weather in Oslo?")

        prompt = completion.prompts[0]
        assert '"name": "WeatherSkill.GetForecast"' in prompt
        assert prompt.rstrip().endswith("What is the weather in Oslo?")
        assert ChatPlanner.ACTION_STRATEGY in prompt

    @pytest.mark.asyncio
    async def test_action_plans_keep_one_step(self, registry):
        response = json.dumps(
            {
                "steps": [
                    {"skill": "WeatherSkill", "function": "GetForecast", "parameters": {"city": "Oslo"}},
                    {"skill": "TextSkill", "function": "Shout"},
                ]
            }
        )
        planner = ChatPlanner(ScriptedCompletion(response), registry)

        plan = await planner.create_plan("goal")

        assert [s.qualified_name for s in plan.steps] == ["WeatherSkill.GetForecast"]

    @pytest.mark.asyncio
    async def test_sequential_plans_respect_max_steps(self, registry):
        steps = [{"skill": "TextSkill", "function": "Shout"}] * 5
        planner = ChatPlanner(
            ScriptedCompletion(json.dumps({"steps": steps})),
            registry,
            PlannerOptions(type=PlanType.SEQUENTIAL, max_steps=3),
        )

        plan = await planner.create_plan("goal")

        assert len(plan.steps) == 3

    @pytest.mark.asyncio
    async def test_parses_fenced_response(self, registry):
        response = '```json\n{"steps": [{"skill": "TextSkill", "function": "Shout"}]}\n```'
        planner = ChatPlanner(ScriptedCompletion(response), registry)

        plan = await planner.create_plan("goal")

        assert plan.steps == [PlanStep(skill="TextSkill", function="Shout")]

    @pytest.mark.asyncio
    async def test_parses_plan_level_parameters(self, registry):
        response = json.dumps(
            {
                "parameters": {"city": "Oslo", "days": 3},
                "steps": [{"skill": "WeatherSkill", "function": "GetForecast"}],
            }
        )
        planner = ChatPlanner(ScriptedCompletion(response), registry)

        plan = await planner.create_plan("goal")

        assert plan.parameters == {"city": "Oslo", "days": "3"}

    @pytest.mark.asyncio
    async def test_invalid_response_raises(self, registry):
        planner = ChatPlanner(ScriptedCompletion("I cannot help with that"), registry)

        with pytest.raises(PlannerError):
            await planner.create_plan("goal")

    @pytest.mark.asyncio
    async def test_backend_failure_raises(self, registry):
        planner = ChatPlanner(
            ScriptedCompletion(CompletionResult(error="Timeout", detail="30s")), registry
        )

        with pytest.raises(PlannerError, match="Timeout - Detail: 30s"):
            await planner.create_plan("goal")


# ============================================
# Plan execution
# ============================================


class TestExecute:
    """Tests for running plans against the registry."""

    @pytest.mark.asyncio
    async def test_chains_input_between_steps(self, registry):
        planner = ChatPlanner(ScriptedCompletion(), registry)
        plan = Plan(
            description="goal",
            steps=[
                PlanStep(skill="WeatherSkill", function="GetForecast", parameters={"city": "Oslo"}),
                PlanStep(skill="TextSkill", function="Shout"),
            ],
        )

        assert await planner.execute(plan) == "OSLO: SUNNY FOR 1 DAY(S)"

    @pytest.mark.asyncio
    async def test_resolves_variable_references(self, registry):
        planner = ChatPlanner(ScriptedCompletion(), registry)
        plan = Plan(
            description="goal",
            parameters={"home": "Bergen"},
            steps=[
                PlanStep(skill="WeatherSkill", function="GetForecast", parameters={"city": "$home"}),
            ],
        )

        assert await planner.execute(plan) == "Bergen: sunny for 1 day(s)"

    @pytest.mark.asyncio
    async def test_plan_parameters_fill_step_arguments(self, registry):
        planner = ChatPlanner(ScriptedCompletion(), registry)
        plan = Plan(
            description="goal",
            parameters={"city": "Tromso", "days": "3"},
            steps=[PlanStep(skill="WeatherSkill", function="GetForecast")],
        )

        assert await planner.execute(plan) == "Tromso: sunny for 3 day(s)"

    @pytest.mark.asyncio
    async def test_unknown_step_raises(self, registry):
        planner = ChatPlanner(ScriptedCompletion(), registry)
        plan = Plan(description="goal", steps=[PlanStep(skill="Nope", function="Nothing")])

        with pytest.raises(SkillNotFoundError):
            await planner.execute(plan)

    @pytest.mark.asyncio
    async def test_handler_failure_is_wrapped(self, registry):
        planner = ChatPlanner(ScriptedCompletion(), registry)
        plan = Plan(description="goal", steps=[PlanStep(skill="BrokenSkill", function="Fail")])

        with pytest.raises(PlanExecutionError) as exc_info:
            await planner.execute(plan)

        assert exc_info.value.details["step"] == 0
        assert "upstream unavailable" in exc_info.value.message
