"""
Result shapes for structured skill responses.

Some skills return far more JSON than a prompt can afford. A result shape
is a pydantic model naming the fields worth keeping; the registry maps a
skill name to its shape, and payloads from that skill are narrowed to it
before token-based truncation.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)


# ============================================
# GitHub Shapes
# ============================================


class GitHubUser(BaseModel):
    """Author of a pull request."""

    model_config = ConfigDict(extra="ignore")

    login: str
    html_url: Optional[str] = None


class GitHubLabel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str


class PullRequest(BaseModel):
    """Fields of a GitHub pull request useful in a chat answer."""

    model_config = ConfigDict(extra="ignore")

    number: int
    title: str
    state: str
    html_url: Optional[str] = None
    user: Optional[GitHubUser] = None
    labels: list[GitHubLabel] = []
    body: Optional[str] = None
    draft: Optional[bool] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    closed_at: Optional[str] = None
    merged_at: Optional[str] = None


# ============================================
# Registry
# ============================================


class ResultShapeRegistry:
    """Maps skill names to the model their JSON results are narrowed to.

    Objects are narrowed to the model; arrays are narrowed item by item.
    Payloads that do not match the shape are returned unchanged.

    Usage:
        shapes = ResultShapeRegistry()
        shapes.register("GitHubSkill", PullRequest)
        narrowed = shapes.downcast("GitHubSkill", payload)
    """

    def __init__(self):
        self._shapes: dict[str, type[BaseModel]] = {}

    def register(self, skill: str, shape: type[BaseModel]) -> None:
        self._shapes[skill.lower()] = shape

    def get(self, skill: str) -> Optional[type[BaseModel]]:
        return self._shapes.get(skill.lower())

    def downcast(self, skill: str, document: Any) -> Any:
        """Narrow a decoded JSON payload to the skill's registered shape."""
        shape = self.get(skill)
        if shape is None:
            return document

        try:
            if isinstance(document, list):
                return [self._narrow(shape, item) for item in document]
            if isinstance(document, dict):
                return self._narrow(shape, document)
        except PydanticValidationError as e:
            logger.warning(
                f"Result from {skill} does not match {shape.__name__}, keeping it whole: {e}"
            )
        return document

    @staticmethod
    def _narrow(shape: type[BaseModel], item: Any) -> Any:
        return shape.model_validate(item).model_dump(mode="json", exclude_none=True)


def default_result_shapes() -> ResultShapeRegistry:
    """Registry with the built-in shapes."""
    shapes = ResultShapeRegistry()
    shapes.register("GitHubSkill", PullRequest)
    return shapes
