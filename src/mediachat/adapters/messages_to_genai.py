"""Conversation message conversion to google-genai content."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from google.genai import types

from ..domain.models import (
    FilePart,
    Message,
    TextPart,
    ToolCallPart,
    ToolCallState,
)

DENIED_RESPONSE = {"error": "The user denied this tool call."}


def _function_response(call: ToolCallPart) -> types.FunctionResponse:
    response: dict[str, Any]
    if call.state == ToolCallState.OUTPUT_DENIED:
        response = DENIED_RESPONSE
    else:
        response = {"output": call.output}
    return types.FunctionResponse(id=call.tool_call_id, name=call.tool_name, response=response)


def _user_parts(message: Message) -> list[types.Part]:
    parts: list[types.Part] = []
    for part in message.parts:
        if isinstance(part, TextPart) and part.text:
            parts.append(types.Part(text=part.text))
        elif isinstance(part, FilePart):
            # Media has already been turned into text; anything left is a plain attachment.
            name = part.filename or part.url
            parts.append(types.Part(text=f"[Attached file: {name} ({part.media_type})]"))
    return parts


def system_text(messages: Sequence[Message]) -> str:
    return "\n\n".join(m.text() for m in messages if m.role == "system" and m.text())


def to_genai_contents(messages: Sequence[Message]) -> list[types.Content]:
    contents: list[types.Content] = []
    for message in messages:
        if message.role == "system":
            continue
        if message.role == "user":
            parts = _user_parts(message)
            if parts:
                contents.append(types.Content(role="user", parts=parts))
            continue

        model_parts: list[types.Part] = []
        responses: list[types.Part] = []
        for part in message.parts:
            if isinstance(part, TextPart) and part.text:
                model_parts.append(types.Part(text=part.text))
            elif isinstance(part, ToolCallPart) and part.is_terminal:
                model_parts.append(
                    types.Part(
                        function_call=types.FunctionCall(
                            id=part.tool_call_id, name=part.tool_name, args=part.input or {}
                        )
                    )
                )
                responses.append(types.Part(function_response=_function_response(part)))
        if model_parts:
            contents.append(types.Content(role="model", parts=model_parts))
        if responses:
            contents.append(types.Content(role="user", parts=responses))
    return contents
