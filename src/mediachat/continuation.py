"""In-memory continuation hub for approval decisions and client tool results."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, TypeVar

T = TypeVar("T")
SlotKey = tuple[str, str, str]


@dataclass
class ApprovalDecision:
    approved: bool
    reason: str | None = None


def parse_decision(value: Any) -> ApprovalDecision:
    if isinstance(value, dict):
        return ApprovalDecision(
            approved=bool(value.get("approved")), reason=value.get("reason")
        )
    return ApprovalDecision(approved=bool(value))


def _tool_output(value: Any) -> Any:
    if isinstance(value, dict) and "output" in value:
        return value["output"]
    return value


class ContinuationHub:
    """One-shot slots keyed by conversation and approval / tool call id.

    A slot opens when ``wait_for_*`` is called, which the orchestrator does
    before it tells the client what it is waiting for. Pushes for ids without
    an open slot are dropped.
    """

    def __init__(self) -> None:
        self._slots: dict[SlotKey, asyncio.Future[Any]] = {}

    def _open(self, key: SlotKey) -> asyncio.Future[Any]:
        future = self._slots.get(key)
        if future is None:
            future = asyncio.get_running_loop().create_future()
            self._slots[key] = future
        return future

    async def _collect(
        self,
        key: SlotKey,
        future: asyncio.Future[Any],
        timeout: float | None,
        convert: Callable[[Any], T],
    ) -> T:
        try:
            value = await asyncio.wait_for(asyncio.shield(future), timeout)
        finally:
            if self._slots.get(key) is future:
                del self._slots[key]
        return convert(value)

    def wait_for_approval(
        self, conversation_id: str, approval_id: str, timeout: float | None = None
    ) -> Coroutine[Any, Any, ApprovalDecision]:
        key = (conversation_id, "approval", approval_id)
        return self._collect(key, self._open(key), timeout, parse_decision)

    def wait_for_tool_result(
        self, conversation_id: str, tool_call_id: str, timeout: float | None = None
    ) -> Coroutine[Any, Any, Any]:
        key = (conversation_id, "tool", tool_call_id)
        return self._collect(key, self._open(key), timeout, _tool_output)

    def push(self, conversation_id: str, payload: dict[str, Any]) -> int:
        delivered = 0
        for approval_id, decision in (payload.get("approvals") or {}).items():
            delivered += self._resolve((conversation_id, "approval", approval_id), decision)
        for tool_call_id, result in (payload.get("tool_results") or {}).items():
            delivered += self._resolve((conversation_id, "tool", tool_call_id), result)
        return delivered

    def _resolve(self, key: SlotKey, value: Any) -> int:
        future = self._slots.get(key)
        if future is None or future.done():
            return 0
        future.set_result(value)
        return 1

    def pending(self, conversation_id: str) -> int:
        return sum(1 for key in self._slots if key[0] == conversation_id)

    def discard(self, conversation_id: str) -> None:
        for key in [k for k in self._slots if k[0] == conversation_id]:
            future = self._slots.pop(key)
            if not future.done():
                future.cancel()
