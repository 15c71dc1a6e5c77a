"""
Replace image and audio parts of user messages with cached text substitutes.

The chat model only ever sees text. Each image is described once by a vision
model and each voice recording is transcribed once; the result is written back
into the object's custom metadata (``description`` / ``transcript``) so later
turns read it from the store instead of calling the model again.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass

from ..domain.models import FilePart, Message, Part, StoredObject, TextPart
from ..errors import UpstreamModelError
from ..logging import get_logger
from ..ports import ObjectStorePort, TranscriptionModelPort, VisionModelPort
from .captions import CaptionCache
from .keys import resolve_key

logger = get_logger(__name__)


def is_image_type(media_type: str | None) -> bool:
    return bool(media_type) and media_type.startswith("image/")


def is_audio_type(media_type: str | None) -> bool:
    # Browser voice recordings arrive as video/webm.
    return bool(media_type) and (
        media_type.startswith("audio/") or media_type == "video/webm"
    )


def vision_prompt(context: str) -> str:
    if context:
        return f'The user said: "{context}". Describe the image in that context.'
    return "Describe this image concisely."


@dataclass(frozen=True)
class MediaKind:
    name: str
    metadata_key: str
    label: str
    unknown: str
    not_found: str
    failed: str


IMAGE = MediaKind(
    name="image",
    metadata_key="description",
    label="Attached image",
    unknown="[Unknown image]",
    not_found="[Image not found]",
    failed="[Could not describe image]",
)
AUDIO = MediaKind(
    name="audio",
    metadata_key="transcript",
    label="Voice message",
    unknown="[Unknown audio]",
    not_found="[Audio not found]",
    failed="[Could not transcribe]",
)


class MediaNormalizer:
    def __init__(
        self,
        *,
        store: ObjectStorePort,
        vision: VisionModelPort,
        transcriber: TranscriptionModelPort,
        captions: CaptionCache | None = None,
    ) -> None:
        self.store = store
        self.vision = vision
        self.transcriber = transcriber
        self.captions = captions
        self._inflight: dict[str, asyncio.Future[str]] = {}

    async def normalize_messages(
        self, messages: Sequence[Message], conversation_id: str
    ) -> list[Message]:
        return list(
            await asyncio.gather(
                *(self.normalize_message(message, conversation_id) for message in messages)
            )
        )

    async def normalize_message(self, message: Message, conversation_id: str) -> Message:
        if message.role != "user":
            return message

        images = [p for p in message.parts if isinstance(p, FilePart) and is_image_type(p.media_type)]
        audio = [p for p in message.parts if isinstance(p, FilePart) and is_audio_type(p.media_type)]
        if not images and not audio:
            return message

        context = " ".join(
            part.text for part in message.parts if isinstance(part, TextPart)
        ).strip()

        results = await asyncio.gather(
            *(self._substitute(IMAGE, part, context, conversation_id) for part in images),
            *(self._substitute(AUDIO, part, context, conversation_id) for part in audio),
        )

        media_ids = {id(part) for part in images} | {id(part) for part in audio}
        kept: list[Part] = [part for part in message.parts if id(part) not in media_ids]
        synthesized = [TextPart(text=text) for text in results]
        return message.model_copy(update={"parts": kept + synthesized})

    async def _substitute(
        self, kind: MediaKind, part: FilePart, context: str, conversation_id: str
    ) -> str:
        caption = await self._caption(kind, part, context, conversation_id)
        return f"[{kind.label}: {caption}]"

    async def _caption(
        self, kind: MediaKind, part: FilePart, context: str, conversation_id: str
    ) -> str:
        key = resolve_key(part.url, conversation_id)
        if key is None:
            logger.info("media_key_unresolved", kind=kind.name, url=part.url)
            return kind.unknown

        if self.captions is not None:
            cached = self.captions.get(conversation_id, key)
            if cached:
                return cached

        # Concurrent requests for the same key share one computation.
        inflight = self._inflight.get(key)
        if inflight is None:
            inflight = asyncio.ensure_future(
                self._compute(kind, key, part, context, conversation_id)
            )
            self._inflight[key] = inflight
            inflight.add_done_callback(lambda fut: self._forget(key, fut))
        return await asyncio.shield(inflight)

    async def _compute(
        self,
        kind: MediaKind,
        key: str,
        part: FilePart,
        context: str,
        conversation_id: str,
    ) -> str:
        obj = await self.store.get(key)
        if obj is None:
            logger.info("media_object_missing", kind=kind.name, key=key)
            return kind.not_found

        cached = obj.custom_metadata.get(kind.metadata_key)
        if cached:
            logger.debug("media_cache_hit", kind=kind.name, key=key)
            self._remember(conversation_id, key, cached)
            return cached

        logger.info("media_cache_miss", kind=kind.name, key=key)
        try:
            text = await self._run_model(kind, obj, part, context)
        except UpstreamModelError as exc:
            logger.warning("media_model_failed", kind=kind.name, key=key, error=str(exc))
            return kind.failed

        text = (text or "").strip()
        if not text:
            # Not memoized: a later turn may succeed.
            return kind.failed

        await self.store.put(
            key,
            obj.body,
            content_type=obj.content_type,
            custom_metadata={**obj.custom_metadata, kind.metadata_key: text},
        )
        self._remember(conversation_id, key, text)
        return text

    async def _run_model(
        self, kind: MediaKind, obj: StoredObject, part: FilePart, context: str
    ) -> str:
        media_type = obj.content_type or part.media_type
        if kind is IMAGE:
            return await self.vision.describe(obj.body, media_type, vision_prompt(context))
        return await self.transcriber.transcribe(obj.body, media_type)

    def _forget(self, key: str, future: asyncio.Future[str]) -> None:
        if self._inflight.get(key) is future:
            del self._inflight[key]

    def _remember(self, conversation_id: str, key: str, caption: str) -> None:
        if self.captions is not None:
            self.captions.set(conversation_id, key, caption)
