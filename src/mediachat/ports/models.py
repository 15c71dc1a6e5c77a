"""
Ports for the opaque model calls the pipeline depends on.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from ..domain.models import Message


@dataclass
class TextDelta:
    text: str


@dataclass
class ReasoningDelta:
    text: str


@dataclass
class ToolCallRequest:
    tool_call_id: str
    tool_name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass
class StepFinish:
    finish_reason: Literal["stop", "length", "tool_calls", "content_filter"] = "stop"


ModelEvent = TextDelta | ReasoningDelta | ToolCallRequest | StepFinish


@dataclass
class ToolSpec:
    """What the text model sees of a tool."""

    name: str
    description: str
    input_schema: dict[str, Any]


class TextModelPort(Protocol):
    model: str

    def stream(
        self,
        *,
        system: str,
        messages: Sequence[Message],
        tools: Sequence[ToolSpec],
    ) -> AsyncIterator[ModelEvent]: ...


class VisionModelPort(Protocol):
    async def describe(self, image: bytes, media_type: str, prompt: str) -> str: ...


class TranscriptionModelPort(Protocol):
    async def transcribe(self, audio: bytes, media_type: str) -> str:
        """Return the transcript, or an empty string when no speech was found."""
        ...
