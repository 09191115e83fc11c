"""
HTTP skill.

Exposes HTTP GET against a configured API as a planner function. The
result is a ``{"contentType": ..., "content": ...}`` envelope so that
JSON responses can be recognised, narrowed and truncated downstream.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Optional

import aiohttp
from pydantic import Field

from ..exceptions import PlanExecutionError
from .registry import SkillFunction, SkillParameters, SkillRegistry

logger = logging.getLogger(__name__)


@dataclass
class HttpSkillConfig:
    """Configuration for an HTTP skill.

    Attributes:
        skill_name: Name the skill is registered under (e.g. "GitHubSkill")
        base_url: API root that relative paths are joined to
        auth_token: Optional bearer token
        timeout: Request timeout in seconds
        headers: Extra headers sent with every request
    """

    skill_name: str
    base_url: str
    auth_token: Optional[str] = None
    timeout: float = 30.0
    headers: dict[str, str] = field(default_factory=dict)


class HttpGetParameters(SkillParameters):
    """Parameters of the GET function."""

    path: str = Field(description="Path relative to the API root, e.g. /repos/{owner}/{repo}/pulls")
    query: str = Field(default="", description="Optional query string without the leading '?'")


class HttpSkill:
    """Planner skill issuing HTTP GET requests.

    Usage:
        skill = HttpSkill(HttpSkillConfig(
            skill_name="GitHubSkill",
            base_url="https://api.github.com",
            auth_token=token,
        ))
        skill.register(registry)

        # On shutdown
        await skill.close()
    """

    FUNCTION_NAME = "Get"

    def __init__(self, config: HttpSkillConfig):
        self.config = config
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    def _get_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", **self.config.headers}
        if self.config.auth_token:
            headers["Authorization"] = f"Bearer {self.config.auth_token}"
        return headers

    def _build_url(self, params: HttpGetParameters) -> str:
        url = f"{self.config.base_url.rstrip('/')}/{params.path.lstrip('/')}"
        if params.query:
            url = f"{url}?{params.query.lstrip('?')}"
        return url

    async def get(self, params: HttpGetParameters) -> str:
        """Issue a GET request.

        Returns:
            JSON envelope with the response content type and body

        Raises:
            PlanExecutionError: On transport errors or non-2xx responses
        """
        session = await self._get_session()
        url = self._build_url(params)

        try:
            async with session.get(url, headers=self._get_headers()) as response:
                text = await response.text()
                if response.status >= 400:
                    raise PlanExecutionError(
                        f"{self.config.skill_name} request failed: "
                        f"{response.status} - {text[:200]}",
                        details={"url": url, "status": response.status},
                    )
                content_type = response.headers.get("Content-Type", "text/plain")

        except aiohttp.ClientError as e:
            raise PlanExecutionError(
                f"{self.config.skill_name} request failed: {e}",
                details={"url": url},
                cause=e,
            )

        logger.debug(f"{self.config.skill_name} GET {url} -> {content_type}")
        return json.dumps({"contentType": content_type, "content": text})

    def register(self, registry: SkillRegistry) -> SkillFunction:
        """Register the GET function under the configured skill name."""
        return registry.register(
            SkillFunction(
                skill=self.config.skill_name,
                name=self.FUNCTION_NAME,
                description=f"Fetch a resource from {self.config.base_url}",
                parameters=HttpGetParameters,
                handler=self.get,
            )
        )
