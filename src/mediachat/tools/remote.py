"""
HTTP tool plugins.

A plugin server lists its tools at ``GET {base_url}/tools`` as
``[{"name", "description", "input_schema", "needs_approval"?}]`` and runs one
with ``POST {base_url}/tools/{name}`` (JSON body = tool input, JSON response =
tool output).
"""

from __future__ import annotations

from typing import Any

import httpx

from ..errors import ToolExecutionError
from ..logging import get_logger
from .registry import ToolDefinition

logger = get_logger(__name__)


class HttpToolSource:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.name = self.base_url
        self.timeout = timeout
        self._client = client

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.base_url}{path}"
        if self._client is not None:
            return await self._client.request(method, url, timeout=self.timeout, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(method, url, **kwargs)

    async def list_tools(self) -> list[ToolDefinition]:
        response = await self._request("GET", "/tools")
        response.raise_for_status()
        tools = []
        for entry in response.json():
            name = entry.get("name")
            if not name:
                continue
            tools.append(self._definition(entry))
        logger.info("tool_source_loaded", source=self.name, count=len(tools))
        return tools

    def _definition(self, entry: dict[str, Any]) -> ToolDefinition:
        name = entry["name"]

        async def execute(args: dict[str, Any]) -> Any:
            try:
                response = await self._request("POST", f"/tools/{name}", json=args)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                raise ToolExecutionError(f"{name} failed: {exc}") from exc
            return response.json()

        needs_approval = None
        if entry.get("needs_approval"):

            def needs_approval(_: Any) -> bool:
                return True

        return ToolDefinition(
            name=name,
            description=entry.get("description", ""),
            json_schema=entry.get("input_schema") or {"type": "object", "properties": {}},
            needs_approval=needs_approval,
            execute=execute,
        )
