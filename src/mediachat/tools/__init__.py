from __future__ import annotations

from ..settings import Settings
from .calculate import build_calculate_tool
from .client import build_timezone_tool
from .executor import ToolExecutor
from .registry import ToolDefinition, ToolRegistry, ToolSource
from .remote import HttpToolSource
from .schedule import TaskScheduler, build_schedule_tools
from .weather import build_weather_tool


def build_tools(conversation_id: str, scheduler: TaskScheduler) -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(build_weather_tool())
    registry.register(build_timezone_tool())
    registry.register(build_calculate_tool())
    for tool in build_schedule_tools(scheduler, conversation_id):
        registry.register(tool)
    return registry


def build_tool_sources(settings: Settings) -> list[ToolSource]:
    return [HttpToolSource(url) for url in settings.tool_sources]


__all__ = [
    "HttpToolSource",
    "TaskScheduler",
    "ToolDefinition",
    "ToolExecutor",
    "ToolRegistry",
    "ToolSource",
    "build_tool_sources",
    "build_tools",
]
