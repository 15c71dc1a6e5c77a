import asyncio
from collections.abc import Sequence
from typing import Any

from mediachat.domain.models import Message
from mediachat.errors import UpstreamModelError
from mediachat.ports import StepFinish, TextDelta, ToolSpec
from mediachat.store import InMemoryObjectStore


class RecordingObjectStore(InMemoryObjectStore):
    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, str]] = []

    async def get(self, key):
        self.calls.append(("get", key))
        return await super().get(key)

    async def put(self, key, body, *, content_type, custom_metadata=None):
        self.calls.append(("put", key))
        await super().put(key, body, content_type=content_type, custom_metadata=custom_metadata)

    async def head(self, key):
        self.calls.append(("head", key))
        return await super().head(key)

    def count(self, op: str) -> int:
        return sum(1 for name, _ in self.calls if name == op)


class FakeVision:
    def __init__(self, text: str = "a cat on a sofa", delay_seconds: float = 0.0) -> None:
        self.text = text
        self.delay_seconds = delay_seconds
        self.fail = False
        self.calls: list[dict[str, Any]] = []

    async def describe(self, image: bytes, media_type: str, prompt: str) -> str:
        self.calls.append({"image": image, "media_type": media_type, "prompt": prompt})
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.fail:
            raise UpstreamModelError("vision unavailable")
        return self.text


class FakeTranscriber:
    def __init__(self, text: str = "remind me to buy milk") -> None:
        self.text = text
        self.calls: list[dict[str, Any]] = []

    async def transcribe(self, audio: bytes, media_type: str) -> str:
        self.calls.append({"audio": audio, "media_type": media_type})
        return self.text


class FakeTextModel:
    """Replays one scripted list of events per model call.

    An Exception instance in a script is raised at that point in the stream.
    """

    def __init__(
        self,
        steps: list[list[Any]] | None = None,
        delay_seconds: float = 0.0,
    ) -> None:
        self.model = "fake-model"
        self.steps = steps or []
        self.delay_seconds = delay_seconds
        self.calls: list[dict[str, Any]] = []

    async def stream(
        self,
        *,
        system: str,
        messages: Sequence[Message],
        tools: Sequence[ToolSpec],
    ):
        self.calls.append(
            {
                "system": system,
                "messages": [m.model_copy(deep=True) for m in messages],
                "tools": [t.name for t in tools],
            }
        )
        index = len(self.calls) - 1
        events: list[Any]
        if index < len(self.steps):
            events = self.steps[index]
        else:
            events = [TextDelta(text="ok"), StepFinish()]
        for event in events:
            if self.delay_seconds:
                await asyncio.sleep(self.delay_seconds)
            if isinstance(event, Exception):
                raise event
            yield event
