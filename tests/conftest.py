from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from mediachat.continuation import ContinuationHub
from mediachat.deps import build_deps
from mediachat.domain.models import FilePart, Message, TextPart
from mediachat.main import create_app
from mediachat.media.captions import CaptionCache
from mediachat.media.normalizer import MediaNormalizer
from mediachat.orchestrator import Turn, TurnOrchestrator
from mediachat.settings import Settings
from mediachat.tools import ToolRegistry
from mediachat.tools.calculate import build_calculate_tool
from mediachat.tools.client import build_timezone_tool
from mediachat.tools.weather import build_weather_tool
from tests.fakes import FakeTextModel, FakeTranscriber, FakeVision, RecordingObjectStore


def user(text: str = "", *files: FilePart, id: str | None = None) -> Message:
    parts: list[Any] = [TextPart(text=text)] if text else []
    parts.extend(files)
    kwargs = {"id": id} if id else {}
    return Message(role="user", parts=parts, **kwargs)


def media_url(conversation_id: str, name: str) -> str:
    return f"/api/conversations/{conversation_id}/files/uploads/{conversation_id}/1700000000000-abcd1234/{name}"


def media_key(conversation_id: str, name: str) -> str:
    return f"uploads/{conversation_id}/1700000000000-abcd1234/{name}"


async def collect(turn: Turn) -> list:
    return [chunk async for chunk in turn.chunks()]


@pytest.fixture
def store() -> RecordingObjectStore:
    return RecordingObjectStore()


@pytest.fixture
def vision() -> FakeVision:
    return FakeVision()


@pytest.fixture
def transcriber() -> FakeTranscriber:
    return FakeTranscriber()


@pytest.fixture
def normalizer(store, vision, transcriber) -> MediaNormalizer:
    return MediaNormalizer(store=store, vision=vision, transcriber=transcriber)


@pytest.fixture
def text_model() -> FakeTextModel:
    return FakeTextModel()


@pytest.fixture
def hub() -> ContinuationHub:
    return ContinuationHub()


@pytest.fixture
def orchestrator(text_model, normalizer, hub) -> TurnOrchestrator:
    return TurnOrchestrator(
        text_model=text_model,
        normalizer=normalizer,
        hub=hub,
        max_steps=5,
        approval_timeout_s=2.0,
        system_prompt=lambda: "test system prompt",
    )


@pytest.fixture
def registry() -> ToolRegistry:
    return ToolRegistry(
        [build_calculate_tool(), build_timezone_tool(), build_weather_tool()]
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(max_upload_bytes=16, approval_timeout_s=1.0, caption_cache_size=8)


@pytest.fixture
def deps(settings, text_model, vision, transcriber, store):
    return build_deps(
        settings,
        text_model=text_model,
        vision=vision,
        transcriber=transcriber,
        object_store=store,
        tool_sources=[],
    )


@pytest.fixture
async def client(settings, deps):
    app = create_app(settings, deps=deps)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http_client:
        yield http_client
