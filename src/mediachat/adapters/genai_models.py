"""
google-genai implementations of the text, vision and transcription ports.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator, Sequence

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..domain.models import Message
from ..llm.google_credentials import get_genai_client
from ..errors import UpstreamModelError
from ..logging import get_logger
from ..ports import (
    ModelEvent,
    ReasoningDelta,
    StepFinish,
    TextDelta,
    ToolCallRequest,
    ToolSpec,
)
from .messages_to_genai import system_text, to_genai_contents

logger = get_logger(__name__)

TRANSCRIBE_PROMPT = (
    "Transcribe the speech in this recording verbatim. "
    "Reply with the transcript only. If there is no speech, reply with nothing."
)

# Failures of the call itself, as opposed to bugs in this module.
_CALL_ERRORS = (genai_errors.APIError, httpx.HTTPError, asyncio.TimeoutError)

_FINISH_REASONS = {
    types.FinishReason.STOP: "stop",
    types.FinishReason.MAX_TOKENS: "length",
    types.FinishReason.SAFETY: "content_filter",
}


def _tool_config(tools: Sequence[ToolSpec]) -> list[types.Tool] | None:
    if not tools:
        return None
    return [
        types.Tool(
            function_declarations=[
                types.FunctionDeclaration(
                    name=tool.name,
                    description=tool.description,
                    parameters_json_schema=tool.input_schema,
                )
                for tool in tools
            ]
        )
    ]


class _GenaiAdapter:
    def __init__(self, model: str, client: genai.Client | None = None) -> None:
        self.model = model
        self._client = client

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            try:
                self._client = get_genai_client()
            except (ValueError, OSError) as exc:
                raise UpstreamModelError(f"Model client unavailable: {exc}") from exc
        return self._client


class GenaiTextModel(_GenaiAdapter):
    async def stream(
        self,
        *,
        system: str,
        messages: Sequence[Message],
        tools: Sequence[ToolSpec],
    ) -> AsyncIterator[ModelEvent]:
        instruction = "\n\n".join(s for s in (system, system_text(messages)) if s)
        config = types.GenerateContentConfig(
            system_instruction=instruction or None,
            tools=_tool_config(tools),
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
            thinking_config=types.ThinkingConfig(include_thoughts=True),
        )
        finish = "stop"
        saw_tool_call = False
        try:
            stream = await self.client.aio.models.generate_content_stream(
                model=self.model,
                contents=to_genai_contents(messages),
                config=config,
            )
            async for chunk in stream:
                if not chunk.candidates:
                    continue
                candidate = chunk.candidates[0]
                if candidate.finish_reason is not None:
                    finish = _FINISH_REASONS.get(candidate.finish_reason, "stop")
                if candidate.content is None or not candidate.content.parts:
                    continue
                for part in candidate.content.parts:
                    if part.function_call is not None:
                        saw_tool_call = True
                        yield ToolCallRequest(
                            tool_call_id=part.function_call.id or f"tool_{uuid.uuid4().hex}",
                            tool_name=part.function_call.name or "",
                            input=dict(part.function_call.args or {}),
                        )
                    elif part.text and part.thought:
                        yield ReasoningDelta(text=part.text)
                    elif part.text:
                        yield TextDelta(text=part.text)
        except _CALL_ERRORS as exc:
            raise UpstreamModelError(f"Chat model call failed: {exc}") from exc
        yield StepFinish(finish_reason="tool_calls" if saw_tool_call else finish)


class GenaiVisionModel(_GenaiAdapter):
    async def describe(self, image: bytes, media_type: str, prompt: str) -> str:
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=[
                    types.Content(
                        role="user",
                        parts=[types.Part.from_bytes(data=image, mime_type=media_type)],
                    )
                ],
                config=types.GenerateContentConfig(system_instruction=prompt),
            )
        except _CALL_ERRORS as exc:
            raise UpstreamModelError(f"Vision model call failed: {exc}") from exc
        return response.text or ""


class GenaiTranscriptionModel(_GenaiAdapter):
    async def transcribe(self, audio: bytes, media_type: str) -> str:
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=[
                    types.Content(
                        role="user",
                        parts=[
                            types.Part.from_bytes(data=audio, mime_type=media_type),
                            types.Part(text=TRANSCRIBE_PROMPT),
                        ],
                    )
                ],
            )
        except _CALL_ERRORS as exc:
            raise UpstreamModelError(f"Transcription model call failed: {exc}") from exc
        return (response.text or "").strip()
