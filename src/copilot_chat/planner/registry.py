"""
Skill Registry.

Explicit mapping of ``skill.function`` to a typed async callable and its
declared parameter schema. Plan steps are resolved here by lookup and
their arguments validated against the schema before the call.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..domain.entities import INPUT_PARAMETER
from ..exceptions import SkillNotFoundError, SkillParameterError

logger = logging.getLogger(__name__)


class SkillParameters(BaseModel):
    """Base schema for skill function parameters.

    Every function receives the implicit ``INPUT`` parameter (the previous
    step's result). Unknown keys are ignored so that plan-level variables
    can be offered to every step.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    input: str = Field(default="", alias=INPUT_PARAMETER)


SkillHandler = Callable[[Any], Awaitable[Any]]


@dataclass
class SkillFunction:
    """A registered function.

    Attributes:
        skill: Skill (plugin) name
        name: Function name
        description: What the function does, shown to the planner
        parameters: Pydantic model declaring the accepted parameters
        handler: Async callable taking a validated parameters instance
    """

    skill: str
    name: str
    description: str
    parameters: type[SkillParameters]
    handler: SkillHandler

    @property
    def qualified_name(self) -> str:
        return f"{self.skill}.{self.name}"

    def validate(self, arguments: dict[str, str]) -> SkillParameters:
        """Validate raw step arguments against the declared schema.

        Raises:
            SkillParameterError: If required parameters are missing or invalid
        """
        try:
            return self.parameters.model_validate(arguments)
        except PydanticValidationError as e:
            raise SkillParameterError(self.skill, self.name, str(e), cause=e)

    async def invoke(self, arguments: dict[str, str]) -> str:
        """Validate arguments and run the handler.

        Non-string results are serialized as JSON.
        """
        params = self.validate(arguments)
        result = await self.handler(params)
        if isinstance(result, str):
            return result
        return json.dumps(result)

    def describe(self) -> dict[str, Any]:
        """Planner-facing description of the function."""
        schema = self.parameters.model_json_schema(by_alias=True)
        properties = {
            name: prop.get("description", prop.get("type", "string"))
            for name, prop in schema.get("properties", {}).items()
            if name != INPUT_PARAMETER
        }
        return {
            "name": self.qualified_name,
            "description": self.description,
            "parameters": properties,
            "required": [r for r in schema.get("required", []) if r != INPUT_PARAMETER],
        }


class SkillRegistry:
    """Registry of skill functions available to the planner.

    Usage:
        registry = SkillRegistry()

        @registry.function("WeatherSkill", "GetForecast", "Get the forecast")
        async def get_forecast(params: ForecastParameters) -> str:
            ...

        fn = registry.get("WeatherSkill", "GetForecast")
        result = await fn.invoke({"city": "Seattle"})
    """

    def __init__(self):
        self._functions: dict[tuple[str, str], SkillFunction] = {}

    def register(self, function: SkillFunction) -> SkillFunction:
        """Register (or replace) a function."""
        key = (function.skill.lower(), function.name.lower())
        if key in self._functions:
            logger.info(f"Replacing registered function {function.qualified_name}")
        self._functions[key] = function
        logger.debug(f"Registered function {function.qualified_name}")
        return function

    def function(
        self,
        skill: str,
        name: str,
        description: str,
        parameters: type[SkillParameters] = SkillParameters,
    ) -> Callable[[SkillHandler], SkillHandler]:
        """Decorator registering an async handler."""

        def decorator(handler: SkillHandler) -> SkillHandler:
            self.register(
                SkillFunction(
                    skill=skill,
                    name=name,
                    description=description,
                    parameters=parameters,
                    handler=handler,
                )
            )
            return handler

        return decorator

    def unregister_skill(self, skill: str) -> int:
        """Remove every function of a skill; returns how many were removed."""
        keys = [k for k in self._functions if k[0] == skill.lower()]
        for key in keys:
            del self._functions[key]
        return len(keys)

    def contains(self, skill: str, name: str) -> bool:
        return (skill.lower(), name.lower()) in self._functions

    def get(self, skill: str, name: str) -> SkillFunction:
        """Resolve a function.

        Raises:
            SkillNotFoundError: If the function is not registered
        """
        function = self._functions.get((skill.lower(), name.lower()))
        if function is None:
            raise SkillNotFoundError(skill, name)
        return function

    def list_functions(self) -> list[SkillFunction]:
        return list(self._functions.values())

    @property
    def is_empty(self) -> bool:
        return not self._functions

    def __len__(self) -> int:
        return len(self._functions)
