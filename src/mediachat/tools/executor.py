"""
Drive tool calls through their state machine.

    input-available -> output-available
    input-available -> approval-requested -> output-available | output-denied

Client-delegated tools (no ``execute``) stay at ``input-available`` until the
front-end supplies an output. Tool failures never escape: they become an
``{"error": ...}`` output and the call still reaches ``output-available``.
"""

from __future__ import annotations

import uuid
from typing import Any

import pydantic
from pydantic_core import to_jsonable_python

from ..domain.models import ToolApproval, ToolCallPart, ToolCallState
from ..errors import InvalidTransitionError, UnknownToolError
from ..logging import get_logger
from .registry import ToolDefinition, ToolRegistry, maybe_await

logger = get_logger(__name__)


def error_output(message: str) -> dict[str, str]:
    return {"error": message}


class ToolExecutor:
    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry

    async def execute(self, call: ToolCallPart) -> ToolCallPart:
        if call.state == ToolCallState.INPUT_STREAMING:
            self._move(call, ToolCallState.INPUT_AVAILABLE)
        if call.state != ToolCallState.INPUT_AVAILABLE:
            return call

        prepared = self._prepare(call)
        if prepared is None:
            return call
        tool, parsed = prepared

        if tool.needs_approval is not None:
            try:
                needs_approval = bool(await maybe_await(tool.needs_approval(parsed)))
            except Exception as exc:
                logger.warning("tool_approval_check_failed", tool=tool.name, error=str(exc))
                self._finish(call, error_output(str(exc)))
                return call
            if needs_approval:
                call.approval = ToolApproval(id=f"approval_{uuid.uuid4().hex}")
                self._move(call, ToolCallState.APPROVAL_REQUESTED)
                return call

        if tool.execute is None:
            logger.info("tool_call_delegated", tool=tool.name, tool_call_id=call.tool_call_id)
            return call

        await self._run(call, tool, parsed)
        return call

    async def decide(
        self, call: ToolCallPart, approved: bool, *, reason: str | None = None
    ) -> ToolCallPart:
        if call.state != ToolCallState.APPROVAL_REQUESTED or call.approval is None:
            raise InvalidTransitionError(
                f"{call.tool_call_id}: no pending approval (state {call.state.value})"
            )
        call.approval.approved = approved
        if reason:
            call.approval.reason = reason

        if not approved:
            call.output = None
            self._move(call, ToolCallState.OUTPUT_DENIED)
            return call

        prepared = self._prepare(call)
        if prepared is None:
            return call
        tool, parsed = prepared
        if tool.execute is None:
            # Approved client-delegated call: the front-end supplies the output.
            return call
        await self._run(call, tool, parsed)
        return call

    def supply_output(self, call: ToolCallPart, output: Any) -> ToolCallPart:
        approved = call.approval is not None and call.approval.approved is True
        if call.state == ToolCallState.INPUT_AVAILABLE or (
            call.state == ToolCallState.APPROVAL_REQUESTED and approved
        ):
            self._finish(call, output)
            return call
        raise InvalidTransitionError(
            f"{call.tool_call_id}: cannot accept output in state {call.state.value}"
        )

    def _prepare(self, call: ToolCallPart) -> tuple[ToolDefinition, Any] | None:
        try:
            tool = self.registry.resolve(call.tool_name)
        except UnknownToolError as exc:
            self._finish(call, error_output(str(exc)))
            return None
        try:
            parsed = tool.parse_input(call.input)
        except pydantic.ValidationError as exc:
            self._finish(call, error_output(f"Invalid input: {exc.errors(include_url=False)}"))
            return None
        return tool, parsed

    async def _run(self, call: ToolCallPart, tool: ToolDefinition, parsed: Any) -> None:
        try:
            result = await maybe_await(tool.execute(parsed))
        except Exception as exc:
            logger.warning(
                "tool_execution_failed",
                tool=tool.name,
                tool_call_id=call.tool_call_id,
                error=str(exc),
            )
            result = error_output(str(exc) or exc.__class__.__name__)
        self._finish(call, result)

    def _finish(self, call: ToolCallPart, output: Any) -> None:
        call.output = to_jsonable_python(output)
        self._move(call, ToolCallState.OUTPUT_AVAILABLE)

    def _move(self, call: ToolCallPart, new_state: ToolCallState) -> None:
        previous = call.state
        call.transition(new_state)
        logger.info(
            "tool_call_state",
            tool=call.tool_name,
            tool_call_id=call.tool_call_id,
            previous=previous.value,
            state=new_state.value,
        )
