"""
Process-wide services shared by the HTTP handlers.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from .adapters.genai_models import (
    GenaiTextModel,
    GenaiTranscriptionModel,
    GenaiVisionModel,
)
from .continuation import ContinuationHub
from .domain.models import Message, TextPart
from .logging import get_logger
from .media.captions import CaptionCache
from .media.normalizer import MediaNormalizer
from .media.uploads import MediaService
from .orchestrator import Turn, TurnOrchestrator
from .ports import (
    ObjectStorePort,
    TextModelPort,
    TranscriptionModelPort,
    VisionModelPort,
)
from .settings import Settings
from .store import InMemoryConversationStore, TurnGate, get_object_store
from .tools import TaskScheduler, ToolSource, build_tool_sources, build_tools

logger = get_logger(__name__)


@dataclass
class Deps:
    settings: Settings
    object_store: ObjectStorePort
    conversations: InMemoryConversationStore
    gate: TurnGate
    hub: ContinuationHub
    captions: CaptionCache
    media: MediaService
    normalizer: MediaNormalizer
    orchestrator: TurnOrchestrator
    scheduler: TaskScheduler
    tool_sources: list[ToolSource]

    def start_turn(self, conversation_id: str, messages: list[Message]) -> Turn:
        """Start a turn under the conversation's gate; the result is persisted on completion."""
        self.gate.acquire(conversation_id)
        try:
            turn = self.orchestrator.start_turn(
                conversation_id,
                messages,
                tools=build_tools(conversation_id, self.scheduler),
                tool_sources=self.tool_sources,
            )
        except Exception:
            self.gate.release(conversation_id)
            raise
        turn.completion.add_done_callback(
            lambda future: self._finish_turn(conversation_id, turn, future)
        )
        turn.start()
        return turn

    def _finish_turn(
        self, conversation_id: str, turn: Turn, future: asyncio.Future[Message]
    ) -> None:
        self.gate.release(conversation_id)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.warning(
                "turn_not_persisted", conversation_id=conversation_id, error=str(exc)
            )
            return
        assistant = future.result()
        history = list(turn.history)
        if assistant.parts:
            history.append(assistant)
        self.conversations.merge(conversation_id, history)

    async def run_scheduled_task(self, conversation_id: str, description: str) -> None:
        self.conversations.append(
            conversation_id,
            Message(
                role="user",
                parts=[TextPart(text=f"Running scheduled task: {description}")],
            ),
        )
        if self.gate.is_active(conversation_id):
            # The running turn's client will send the message back on its next turn.
            logger.info("scheduled_task_turn_skipped", conversation_id=conversation_id)
            return
        turn = self.start_turn(conversation_id, self.conversations.get(conversation_id))
        async for _ in turn.chunks():
            pass
        logger.info("scheduled_task_turn_finished", conversation_id=conversation_id)


def build_deps(
    settings: Settings,
    *,
    text_model: TextModelPort | None = None,
    vision: VisionModelPort | None = None,
    transcriber: TranscriptionModelPort | None = None,
    object_store: ObjectStorePort | None = None,
    tool_sources: list[ToolSource] | None = None,
) -> Deps:
    store = object_store or get_object_store(settings)
    captions = CaptionCache(settings.caption_cache_size)
    hub = ContinuationHub()
    normalizer = MediaNormalizer(
        store=store,
        vision=vision or GenaiVisionModel(settings.vision_model),
        transcriber=transcriber or GenaiTranscriptionModel(settings.transcription_model),
        captions=captions,
    )

    async def on_due(conversation_id: str, description: str) -> None:
        await deps.run_scheduled_task(conversation_id, description)

    deps = Deps(
        settings=settings,
        object_store=store,
        conversations=InMemoryConversationStore(),
        gate=TurnGate(),
        hub=hub,
        captions=captions,
        media=MediaService(
            store=store, max_upload_bytes=settings.max_upload_bytes, captions=captions
        ),
        normalizer=normalizer,
        orchestrator=TurnOrchestrator(
            text_model=text_model or GenaiTextModel(settings.llm_model),
            normalizer=normalizer,
            hub=hub,
            max_steps=settings.max_steps,
            prune_keep_last=settings.prune_keep_last,
            approval_timeout_s=settings.approval_timeout_s,
        ),
        scheduler=TaskScheduler(on_due),
        tool_sources=build_tool_sources(settings) if tool_sources is None else tool_sources,
    )
    return deps
