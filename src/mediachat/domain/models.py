"""Domain models for conversation messages, parts and stored objects."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..errors import InvalidTransitionError


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ToolCallState(str, Enum):
    INPUT_STREAMING = "input-streaming"
    INPUT_AVAILABLE = "input-available"
    APPROVAL_REQUESTED = "approval-requested"
    OUTPUT_AVAILABLE = "output-available"
    OUTPUT_DENIED = "output-denied"


TOOL_CALL_TRANSITIONS: dict[ToolCallState, frozenset[ToolCallState]] = {
    ToolCallState.INPUT_STREAMING: frozenset({ToolCallState.INPUT_AVAILABLE}),
    ToolCallState.INPUT_AVAILABLE: frozenset(
        {ToolCallState.OUTPUT_AVAILABLE, ToolCallState.APPROVAL_REQUESTED}
    ),
    ToolCallState.APPROVAL_REQUESTED: frozenset(
        {ToolCallState.OUTPUT_AVAILABLE, ToolCallState.OUTPUT_DENIED}
    ),
    ToolCallState.OUTPUT_AVAILABLE: frozenset(),
    ToolCallState.OUTPUT_DENIED: frozenset(),
}

TERMINAL_STATES = frozenset(
    {ToolCallState.OUTPUT_AVAILABLE, ToolCallState.OUTPUT_DENIED}
)


class TextPart(_WireModel):
    type: Literal["text"] = "text"
    text: str


class FilePart(_WireModel):
    type: Literal["file"] = "file"
    media_type: str
    url: str
    filename: str | None = None


class ReasoningPart(_WireModel):
    type: Literal["reasoning"] = "reasoning"
    text: str
    state: Literal["streaming", "done"] = "done"


class ToolApproval(_WireModel):
    id: str
    approved: bool | None = None
    reason: str | None = None


class ToolCallPart(_WireModel):
    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str
    input: Any = None
    state: ToolCallState = ToolCallState.INPUT_STREAMING
    output: Any = None
    approval: ToolApproval | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(self, new_state: ToolCallState) -> None:
        """Move to ``new_state``, rejecting anything the state table does not allow."""
        if new_state not in TOOL_CALL_TRANSITIONS[self.state]:
            raise InvalidTransitionError(
                f"{self.tool_call_id}: {self.state.value} -> {new_state.value}"
            )
        self.state = new_state


Part = Annotated[
    TextPart | FilePart | ToolCallPart | ReasoningPart,
    Field(discriminator="type"),
]


class Message(_WireModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: Literal["user", "assistant", "system"]
    parts: list[Part] = Field(default_factory=list)

    def text(self) -> str:
        return " ".join(part.text for part in self.parts if isinstance(part, TextPart))

    def tool_calls(self) -> list[ToolCallPart]:
        return [part for part in self.parts if isinstance(part, ToolCallPart)]


@dataclass
class StoredObject:
    key: str
    body: bytes
    content_type: str = "application/octet-stream"
    custom_metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class ObjectHead:
    key: str
    size: int
    content_type: str = "application/octet-stream"
    custom_metadata: dict[str, str] = field(default_factory=dict)
