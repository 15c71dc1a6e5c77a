"""Tools that run in the browser; the server only announces them."""

from __future__ import annotations

from pydantic import BaseModel

from .registry import ToolDefinition


class NoInput(BaseModel):
    pass


def build_timezone_tool() -> ToolDefinition:
    return ToolDefinition(
        name="getUserTimezone",
        description=(
            "Get the user's timezone from their browser. "
            "Use this when you need to know the user's local time."
        ),
        input_model=NoInput,
    )
