"""
Upload, serve, metadata and delete operations for conversation media.

Every operation checks the conversation namespace prefix itself; the object
store has no notion of ownership.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from ..errors import NotFoundError, ValidationError
from ..logging import get_logger
from ..ports import ObjectStorePort
from .captions import CaptionCache
from .keys import (
    file_url,
    is_in_namespace,
    namespace_prefix,
    new_upload_key,
    require_namespace,
    sanitize_filename,
)

logger = get_logger(__name__)

INLINE_CONTENT_TYPES = frozenset(
    {
        "image/png",
        "image/jpeg",
        "image/gif",
        "image/webp",
        "image/avif",
        "image/svg+xml",
        "audio/mpeg",
        "audio/mp4",
        "audio/ogg",
        "audio/wav",
        "audio/webm",
        "video/webm",
        "application/pdf",
    }
)


@dataclass
class UploadResult:
    key: str
    url: str
    name: str
    content_type: str
    size: int


@dataclass
class ServedObject:
    body: bytes
    content_type: str
    headers: dict[str, str]


def serve_headers(content_type: str, filename: str) -> tuple[str, dict[str, str]]:
    """Pick the response content type and headers for a stored object."""
    base_type = content_type.split(";", 1)[0].strip().lower()
    headers = {"X-Content-Type-Options": "nosniff"}
    if base_type in INLINE_CONTENT_TYPES:
        headers["Content-Disposition"] = "inline"
        return content_type, headers
    headers["Content-Disposition"] = (
        f'attachment; filename="{sanitize_filename(filename)}"'
    )
    return "application/octet-stream", headers


class MediaService:
    def __init__(
        self,
        *,
        store: ObjectStorePort,
        max_upload_bytes: int,
        captions: CaptionCache | None = None,
    ) -> None:
        self.store = store
        self.max_upload_bytes = max_upload_bytes
        self.captions = captions

    async def upload(
        self,
        conversation_id: str,
        *,
        filename: str,
        content_type: str | None,
        data: bytes,
    ) -> UploadResult:
        if not conversation_id:
            raise ValidationError("Missing conversation id")
        if len(data) > self.max_upload_bytes:
            logger.info("upload_rejected", reason="size", size=len(data))
            raise ValidationError(
                f"File too large (max {self.max_upload_bytes} bytes)"
            )
        key = new_upload_key(conversation_id, filename)
        content_type = content_type or "application/octet-stream"
        await self.store.put(
            key,
            data,
            content_type=content_type,
            custom_metadata={"filename": sanitize_filename(filename)},
        )
        logger.info("upload_stored", key=key, size=len(data), content_type=content_type)
        return UploadResult(
            key=key,
            url=file_url(conversation_id, key),
            name=filename,
            content_type=content_type,
            size=len(data),
        )

    async def open(self, conversation_id: str, key: str) -> ServedObject:
        require_namespace(key, conversation_id)
        obj = await self.store.get(key)
        if obj is None:
            raise NotFoundError("File not found")
        filename = obj.custom_metadata.get("filename") or key.rsplit("/", 1)[-1]
        content_type, headers = serve_headers(obj.content_type, filename)
        return ServedObject(body=obj.body, content_type=content_type, headers=headers)

    async def metadata(self, conversation_id: str, key: str) -> dict[str, str]:
        require_namespace(key, conversation_id)
        head = await self.store.head(key)
        if head is None:
            raise NotFoundError("File not found")
        return {
            "description": head.custom_metadata.get("description", ""),
            "transcript": head.custom_metadata.get("transcript", ""),
        }

    async def delete(self, conversation_id: str, keys: Iterable[str]) -> int:
        allowed = {key for key in keys if is_in_namespace(key, conversation_id)}
        if not allowed:
            return 0
        if self.captions is not None:
            for key in allowed:
                self.captions.discard(conversation_id, key)
        return await self.store.delete(allowed)

    async def clear(self, conversation_id: str) -> int:
        keys = await self.store.list(namespace_prefix(conversation_id))
        if self.captions is not None:
            self.captions.drop(conversation_id)
        if not keys:
            return 0
        return await self.store.delete(keys)

