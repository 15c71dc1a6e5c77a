"""
Object store backends and factory.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterable
from pathlib import Path

from ..domain.models import ObjectHead, StoredObject
from ..ports import ObjectStorePort
from ..settings import Settings, get_settings

_META_SUFFIX = ".meta.json"


class InMemoryObjectStore(ObjectStorePort):
    def __init__(self) -> None:
        self._objects: dict[str, StoredObject] = {}

    async def get(self, key: str) -> StoredObject | None:
        obj = self._objects.get(key)
        if obj is None:
            return None
        return StoredObject(
            key=obj.key,
            body=obj.body,
            content_type=obj.content_type,
            custom_metadata=dict(obj.custom_metadata),
        )

    async def put(
        self,
        key: str,
        body: bytes,
        *,
        content_type: str,
        custom_metadata: dict[str, str] | None = None,
    ) -> None:
        self._objects[key] = StoredObject(
            key=key,
            body=bytes(body),
            content_type=content_type,
            custom_metadata=dict(custom_metadata or {}),
        )

    async def head(self, key: str) -> ObjectHead | None:
        obj = self._objects.get(key)
        if obj is None:
            return None
        return ObjectHead(
            key=key,
            size=len(obj.body),
            content_type=obj.content_type,
            custom_metadata=dict(obj.custom_metadata),
        )

    async def delete(self, keys: Iterable[str]) -> int:
        count = 0
        for key in set(keys):
            if self._objects.pop(key, None) is not None:
                count += 1
        return count

    async def list(self, prefix: str) -> list[str]:
        return sorted(key for key in self._objects if key.startswith(prefix))


class FilesystemObjectStore(ObjectStorePort):
    """Stores each body as a file with its metadata in a JSON sidecar."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).resolve()

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root):
            raise ValueError(f"Key escapes store root: {key}")
        return path

    def _read(self, key: str) -> StoredObject | None:
        path = self._path(key)
        if not path.is_file():
            return None
        meta = self._read_meta(path)
        return StoredObject(
            key=key,
            body=path.read_bytes(),
            content_type=meta.get("content_type", "application/octet-stream"),
            custom_metadata=meta.get("custom_metadata", {}),
        )

    def _read_meta(self, path: Path) -> dict:
        sidecar = path.with_name(path.name + _META_SUFFIX)
        if not sidecar.is_file():
            return {}
        return json.loads(sidecar.read_text(encoding="utf-8"))

    def _write(
        self, key: str, body: bytes, content_type: str, custom_metadata: dict[str, str]
    ) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(body)
        sidecar = path.with_name(path.name + _META_SUFFIX)
        sidecar.write_text(
            json.dumps(
                {"content_type": content_type, "custom_metadata": custom_metadata},
                ensure_ascii=False,
            ),
            encoding="utf-8",
        )

    def _head(self, key: str) -> ObjectHead | None:
        path = self._path(key)
        if not path.is_file():
            return None
        meta = self._read_meta(path)
        return ObjectHead(
            key=key,
            size=path.stat().st_size,
            content_type=meta.get("content_type", "application/octet-stream"),
            custom_metadata=meta.get("custom_metadata", {}),
        )

    def _delete(self, keys: set[str]) -> int:
        count = 0
        for key in keys:
            path = self._path(key)
            if not path.is_file():
                continue
            path.unlink()
            path.with_name(path.name + _META_SUFFIX).unlink(missing_ok=True)
            count += 1
        return count

    def _list(self, prefix: str) -> list[str]:
        if not self.root.exists():
            return []
        keys = []
        for path in self.root.rglob("*"):
            if not path.is_file() or path.name.endswith(_META_SUFFIX):
                continue
            key = path.relative_to(self.root).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)

    async def get(self, key: str) -> StoredObject | None:
        return await asyncio.to_thread(self._read, key)

    async def put(
        self,
        key: str,
        body: bytes,
        *,
        content_type: str,
        custom_metadata: dict[str, str] | None = None,
    ) -> None:
        await asyncio.to_thread(
            self._write, key, bytes(body), content_type, dict(custom_metadata or {})
        )

    async def head(self, key: str) -> ObjectHead | None:
        return await asyncio.to_thread(self._head, key)

    async def delete(self, keys: Iterable[str]) -> int:
        return await asyncio.to_thread(self._delete, set(keys))

    async def list(self, prefix: str) -> list[str]:
        return await asyncio.to_thread(self._list, prefix)


_object_store: ObjectStorePort | None = None


def get_object_store(settings: Settings | None = None) -> ObjectStorePort:
    """Get or create the configured object store."""
    global _object_store
    if _object_store is not None:
        return _object_store

    settings = settings or get_settings()
    backend = settings.object_store_backend
    if backend == "memory":
        _object_store = InMemoryObjectStore()
        return _object_store
    if backend == "filesystem":
        _object_store = FilesystemObjectStore(settings.object_store_path)
        return _object_store

    raise RuntimeError(
        f"Unsupported object store backend: {backend}. Use 'memory' or 'filesystem'."
    )
