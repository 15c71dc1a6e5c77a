"""
Port definition for the blob store used as file storage and memo cache.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from ..domain.models import ObjectHead, StoredObject


class ObjectStorePort(Protocol):
    async def get(self, key: str) -> StoredObject | None:
        """Body and metadata in one call."""
        ...

    async def put(
        self,
        key: str,
        body: bytes,
        *,
        content_type: str,
        custom_metadata: dict[str, str] | None = None,
    ) -> None: ...

    async def head(self, key: str) -> ObjectHead | None: ...

    async def delete(self, keys: Iterable[str]) -> int: ...

    async def list(self, prefix: str) -> list[str]: ...


__all__ = ["ObjectHead", "ObjectStorePort", "StoredObject"]
