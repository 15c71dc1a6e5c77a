"""
Conversation history storage and the one-turn-per-conversation gate.
"""

from __future__ import annotations

from ..domain.models import Message
from ..errors import TurnInProgressError


class InMemoryConversationStore:
    def __init__(self) -> None:
        self._conversations: dict[str, list[Message]] = {}

    def get(self, conversation_id: str) -> list[Message]:
        return [
            message.model_copy(deep=True)
            for message in self._conversations.get(conversation_id, [])
        ]

    def append(self, conversation_id: str, message: Message) -> None:
        history = self._conversations.setdefault(conversation_id, [])
        for index, existing in enumerate(history):
            if existing.id == message.id:
                history[index] = message.model_copy(deep=True)
                return
        history.append(message.model_copy(deep=True))

    def merge(self, conversation_id: str, messages: list[Message]) -> None:
        """Update stored messages by id and append new ones.

        Messages the server added on its own (scheduled task runs) survive a
        turn whose client never saw them.
        """
        for message in messages:
            self.append(conversation_id, message)

    def clear(self, conversation_id: str) -> None:
        self._conversations.pop(conversation_id, None)


class TurnGate:
    """Allows at most one in-flight turn per conversation; extra turns are rejected."""

    def __init__(self) -> None:
        self._active: set[str] = set()

    def is_active(self, conversation_id: str) -> bool:
        return conversation_id in self._active

    def acquire(self, conversation_id: str) -> None:
        if conversation_id in self._active:
            raise TurnInProgressError(
                f"A turn is already running for conversation {conversation_id}"
            )
        self._active.add(conversation_id)

    def release(self, conversation_id: str) -> None:
        self._active.discard(conversation_id)


__all__ = ["InMemoryConversationStore", "TurnGate"]
