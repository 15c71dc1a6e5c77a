"""
TanStack AI StreamChunk models and SSE helpers for the chat stream.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel

StreamChunkType = Literal[
    "content",
    "thinking",
    "tool_call",
    "tool_result",
    "tool-input-available",
    "approval-requested",
    "tool-output-denied",
    "error",
    "done",
]

FinishReason = Literal["stop", "length", "tool_calls", "content_filter"]


class BaseStreamChunk(BaseModel):
    id: str
    model: str
    timestamp: int
    type: StreamChunkType


class ContentStreamChunk(BaseStreamChunk):
    type: Literal["content"] = "content"
    content: str
    delta: str
    role: Literal["assistant"] | None = None


class ThinkingStreamChunk(BaseStreamChunk):
    type: Literal["thinking"] = "thinking"
    content: str
    delta: str


class ToolCallFunction(BaseModel):
    name: str
    arguments: str


class ToolCall(BaseModel):
    id: str
    type: Literal["function"] = "function"
    function: ToolCallFunction


class ToolCallStreamChunk(BaseStreamChunk):
    type: Literal["tool_call"] = "tool_call"
    index: int
    toolCall: ToolCall


class ToolResultStreamChunk(BaseStreamChunk):
    type: Literal["tool_result"] = "tool_result"
    toolCallId: str
    content: str


class ToolInputAvailableStreamChunk(BaseStreamChunk):
    type: Literal["tool-input-available"] = "tool-input-available"
    toolCallId: str
    toolName: str
    input: Any


class ApprovalObj(BaseModel):
    id: str
    needsApproval: Literal[True] = True


class ApprovalRequestedStreamChunk(BaseStreamChunk):
    type: Literal["approval-requested"] = "approval-requested"
    toolCallId: str
    toolName: str
    input: Any
    approval: ApprovalObj


class ToolOutputDeniedStreamChunk(BaseStreamChunk):
    type: Literal["tool-output-denied"] = "tool-output-denied"
    toolCallId: str
    toolName: str


class ErrorObj(BaseModel):
    message: str
    code: str | None = None


class ErrorStreamChunk(BaseStreamChunk):
    type: Literal["error"] = "error"
    error: ErrorObj


class DoneStreamChunk(BaseStreamChunk):
    type: Literal["done"] = "done"
    finishReason: FinishReason


StreamChunk = (
    ContentStreamChunk
    | ThinkingStreamChunk
    | ToolCallStreamChunk
    | ToolResultStreamChunk
    | ToolInputAvailableStreamChunk
    | ApprovalRequestedStreamChunk
    | ToolOutputDeniedStreamChunk
    | ErrorStreamChunk
    | DoneStreamChunk
)


def now_ms() -> int:
    return int(time.time() * 1000)


def tool_output_text(output: Any) -> str:
    if isinstance(output, str):
        return output
    return json.dumps(output, ensure_ascii=False)


@dataclass
class ChunkFactory:
    """Stamps the turn id, model name and time onto every chunk of one turn."""

    turn_id: str
    model: str

    def _base(self) -> dict[str, Any]:
        return {"id": self.turn_id, "model": self.model, "timestamp": now_ms()}

    def content(self, content: str, delta: str) -> ContentStreamChunk:
        return ContentStreamChunk(**self._base(), content=content, delta=delta, role="assistant")

    def thinking(self, content: str, delta: str) -> ThinkingStreamChunk:
        return ThinkingStreamChunk(**self._base(), content=content, delta=delta)

    def tool_call(self, index: int, tool_call_id: str, name: str, args: Any) -> ToolCallStreamChunk:
        return ToolCallStreamChunk(
            **self._base(),
            index=index,
            toolCall=ToolCall(
                id=tool_call_id,
                function=ToolCallFunction(
                    name=name, arguments=json.dumps(args or {}, ensure_ascii=False)
                ),
            ),
        )

    def tool_result(self, tool_call_id: str, output: Any) -> ToolResultStreamChunk:
        return ToolResultStreamChunk(
            **self._base(), toolCallId=tool_call_id, content=tool_output_text(output)
        )

    def tool_input_available(
        self, tool_call_id: str, name: str, args: Any
    ) -> ToolInputAvailableStreamChunk:
        return ToolInputAvailableStreamChunk(
            **self._base(), toolCallId=tool_call_id, toolName=name, input=args
        )

    def approval_requested(
        self, tool_call_id: str, name: str, args: Any, approval_id: str
    ) -> ApprovalRequestedStreamChunk:
        return ApprovalRequestedStreamChunk(
            **self._base(),
            toolCallId=tool_call_id,
            toolName=name,
            input=args,
            approval=ApprovalObj(id=approval_id),
        )

    def denied(self, tool_call_id: str, name: str) -> ToolOutputDeniedStreamChunk:
        return ToolOutputDeniedStreamChunk(**self._base(), toolCallId=tool_call_id, toolName=name)

    def error(self, message: str, code: str | None = None) -> ErrorStreamChunk:
        return ErrorStreamChunk(**self._base(), error=ErrorObj(message=message, code=code))

    def done(self, finish_reason: FinishReason = "stop") -> DoneStreamChunk:
        return DoneStreamChunk(**self._base(), finishReason=finish_reason)


def encode_chunk(chunk: StreamChunk) -> str:
    payload = json.dumps(chunk.model_dump(mode="json", by_alias=True), ensure_ascii=False)
    return f"data: {payload}\n\n"


def encode_done() -> str:
    return "data: [DONE]\n\n"
