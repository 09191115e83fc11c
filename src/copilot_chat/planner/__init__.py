"""Action planning: skill registry, result shapes, planner and HTTP skill."""

from .http_skill import HttpGetParameters, HttpSkill, HttpSkillConfig
from .planner import ChatPlanner
from .registry import SkillFunction, SkillParameters, SkillRegistry
from .result_shapes import (
    GitHubUser,
    PullRequest,
    ResultShapeRegistry,
    default_result_shapes,
)

__all__ = [
    # Registry
    "SkillFunction",
    "SkillParameters",
    "SkillRegistry",
    # Result shapes
    "GitHubUser",
    "PullRequest",
    "ResultShapeRegistry",
    "default_result_shapes",
    # Planner
    "ChatPlanner",
    # Skills
    "HttpGetParameters",
    "HttpSkill",
    "HttpSkillConfig",
]
