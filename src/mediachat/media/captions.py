"""Per-conversation LRU of media captions (descriptions and transcripts)."""

from __future__ import annotations

from collections import OrderedDict


class CaptionCache:
    def __init__(self, max_entries: int = 256) -> None:
        self.max_entries = max_entries
        self._by_conversation: dict[str, OrderedDict[str, str]] = {}

    def get(self, conversation_id: str, key: str) -> str | None:
        entries = self._by_conversation.get(conversation_id)
        if entries is None or key not in entries:
            return None
        entries.move_to_end(key)
        return entries[key]

    def set(self, conversation_id: str, key: str, caption: str) -> None:
        if self.max_entries <= 0 or not caption:
            return
        entries = self._by_conversation.setdefault(conversation_id, OrderedDict())
        entries[key] = caption
        entries.move_to_end(key)
        while len(entries) > self.max_entries:
            entries.popitem(last=False)

    def discard(self, conversation_id: str, key: str) -> None:
        entries = self._by_conversation.get(conversation_id)
        if entries is not None:
            entries.pop(key, None)

    def drop(self, conversation_id: str) -> None:
        self._by_conversation.pop(conversation_id, None)

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._by_conversation.values())
