"""
Tool definitions and the per-turn registry.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from pydantic import BaseModel

from ..errors import UnknownToolError
from ..logging import get_logger
from ..ports import ToolSpec

logger = get_logger(__name__)

ApprovalPredicate = Callable[[Any], bool | Awaitable[bool]]
ToolFunction = Callable[[Any], Any | Awaitable[Any]]
ToolKind = Literal["auto", "client", "approval"]


@dataclass
class ToolDefinition:
    name: str
    description: str
    input_model: type[BaseModel] | None = None
    needs_approval: ApprovalPredicate | None = None
    execute: ToolFunction | None = None
    # Used when the schema comes from somewhere other than a pydantic model.
    json_schema: dict[str, Any] | None = None

    @property
    def kind(self) -> ToolKind:
        if self.needs_approval is not None:
            return "approval"
        if self.execute is None:
            return "client"
        return "auto"

    def input_schema(self) -> dict[str, Any]:
        if self.input_model is not None:
            return self.input_model.model_json_schema()
        return self.json_schema or {"type": "object", "properties": {}}

    def parse_input(self, raw: Any) -> Any:
        """Validate raw model-produced input; raises pydantic.ValidationError."""
        if self.input_model is None:
            return raw or {}
        return self.input_model.model_validate(raw or {})

    def spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description=self.description,
            input_schema=self.input_schema(),
        )


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class ToolSource(Protocol):
    """Anything that can contribute tools at the start of a turn."""

    name: str

    async def list_tools(self) -> list[ToolDefinition]: ...


class ToolRegistry:
    def __init__(self, tools: Iterable[ToolDefinition] = ()) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools:
            self.register(tool)

    def register(self, tool: ToolDefinition) -> None:
        self._tools[tool.name] = tool

    def resolve(self, tool_name: str) -> ToolDefinition:
        tool = self._tools.get(tool_name)
        if tool is None:
            raise UnknownToolError(f"Unknown tool: {tool_name}")
        return tool

    def __contains__(self, tool_name: object) -> bool:
        return tool_name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def definitions(self) -> list[ToolDefinition]:
        return list(self._tools.values())

    def specs(self) -> list[ToolSpec]:
        return [tool.spec() for tool in self._tools.values()]

    async def merged_with(self, sources: Sequence[ToolSource]) -> ToolRegistry:
        """Return a new registry with remote tools added; local names win."""
        merged = ToolRegistry(self.definitions())
        for source in sources:
            try:
                remote_tools = await source.list_tools()
            except Exception as exc:
                logger.warning("tool_source_unavailable", source=source.name, error=str(exc))
                continue
            for tool in remote_tools:
                if tool.name in merged:
                    logger.info("tool_source_shadowed", source=source.name, tool=tool.name)
                    continue
                merged.register(tool)
        return merged
