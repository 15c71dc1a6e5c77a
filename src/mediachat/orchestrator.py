"""
Run one chat turn: prepare history, stream the model, dispatch tool calls.

Everything for a turn shares one event loop. The model pump and every tool
dispatch task write into one queue; ``Turn.chunks()`` drains it, so text order
is preserved while tool results arrive in completion order.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from typing import Any, TypeVar

from .adapters.tanstack_stream import ChunkFactory, FinishReason, StreamChunk
from .agent import build_system_prompt
from .continuation import ContinuationHub
from .domain.models import (
    Message,
    ReasoningPart,
    TextPart,
    ToolCallPart,
    ToolCallState,
)
from .errors import UpstreamModelError
from .logging import get_logger
from .media.normalizer import MediaNormalizer
from .ports import (
    ReasoningDelta,
    StepFinish,
    TextDelta,
    TextModelPort,
    ToolCallRequest,
)
from .tools import ToolExecutor, ToolRegistry, ToolSource

logger = get_logger(__name__)

ELIDED = "[elided]"

T = TypeVar("T")
_STOPPED = object()
_END = object()


def cleanup_messages(messages: Sequence[Message]) -> list[Message]:
    """Drop tool calls that never reached a terminal state."""
    cleaned: list[Message] = []
    for message in messages:
        parts = [
            part
            for part in message.parts
            if not (isinstance(part, ToolCallPart) and not part.is_terminal)
        ]
        if len(parts) == len(message.parts):
            cleaned.append(message)
            continue
        logger.info(
            "incomplete_tool_calls_dropped",
            message_id=message.id,
            dropped=len(message.parts) - len(parts),
        )
        if parts:
            cleaned.append(message.model_copy(update={"parts": parts}))
    return cleaned


def prune_messages(messages: Sequence[Message], keep_last: int = 2) -> list[Message]:
    """Elide tool-call payloads outside the last ``keep_last`` messages."""
    cutoff = max(len(messages) - keep_last, 0)
    pruned: list[Message] = []
    for index, message in enumerate(messages):
        if index >= cutoff or not message.tool_calls():
            pruned.append(message)
            continue
        parts = []
        for part in message.parts:
            if isinstance(part, ToolCallPart):
                part = part.model_copy(
                    update={
                        "input": {},
                        "output": ELIDED if part.output is not None else None,
                    }
                )
            parts.append(part)
        pruned.append(message.model_copy(update={"parts": parts}))
    return pruned


class Turn:
    """A running turn: a chunk stream plus a one-shot completion future."""

    def __init__(
        self,
        turn_id: str,
        run: Callable[[Turn], Awaitable[None]],
        abort: asyncio.Event,
    ) -> None:
        self.turn_id = turn_id
        self.abort = abort
        self.completion: asyncio.Future[Message] = (
            asyncio.get_running_loop().create_future()
        )
        self.history: list[Message] = []
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._run = run
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    def emit(self, chunk: StreamChunk) -> None:
        if not self._closed:
            self._queue.put_nowait(chunk)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_END)

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(self))

    async def chunks(self) -> AsyncIterator[StreamChunk]:
        self.start()
        try:
            while True:
                item = await self._queue.get()
                if item is _END:
                    break
                yield item
        finally:
            if self._task is not None and not self._task.done():
                # Consumer went away; stop the model but let the turn finalize.
                self.abort.set()


class TurnOrchestrator:
    def __init__(
        self,
        *,
        text_model: TextModelPort,
        normalizer: MediaNormalizer,
        hub: ContinuationHub,
        max_steps: int = 10,
        prune_keep_last: int = 2,
        approval_timeout_s: float | None = 300.0,
        system_prompt: Callable[[], str] = build_system_prompt,
    ) -> None:
        self.text_model = text_model
        self.normalizer = normalizer
        self.hub = hub
        self.max_steps = max_steps
        self.prune_keep_last = prune_keep_last
        self.approval_timeout_s = approval_timeout_s
        self.system_prompt = system_prompt

    def start_turn(
        self,
        conversation_id: str,
        messages: Sequence[Message],
        *,
        tools: ToolRegistry,
        tool_sources: Sequence[ToolSource] = (),
        abort: asyncio.Event | None = None,
    ) -> Turn:
        turn_id = uuid.uuid4().hex
        history = [message.model_copy(deep=True) for message in messages]

        async def run(turn: Turn) -> None:
            await self._run_turn(turn, conversation_id, history, tools, tool_sources)

        return Turn(turn_id, run, abort or asyncio.Event())

    async def _run_turn(
        self,
        turn: Turn,
        conversation_id: str,
        history: list[Message],
        tools: ToolRegistry,
        tool_sources: Sequence[ToolSource],
    ) -> None:
        chunks = ChunkFactory(turn_id=turn.turn_id, model=self.text_model.model)
        assistant = Message(role="assistant")
        logger.info("turn_started", turn_id=turn.turn_id, messages=len(history))
        try:
            registry = await tools.merged_with(tool_sources)
            executor = ToolExecutor(registry)

            await self._resolve_recorded_decisions(turn, chunks, history, executor)
            turn.history = history

            prepared = cleanup_messages(history)
            prepared = prune_messages(prepared, self.prune_keep_last)
            prepared = await self.normalizer.normalize_messages(prepared, conversation_id)

            finish = await self._run_steps(
                turn, chunks, conversation_id, prepared, assistant, registry, executor
            )
            turn.emit(chunks.done(finish))
            logger.info("turn_finished", turn_id=turn.turn_id, finish_reason=finish)
            if not turn.completion.done():
                turn.completion.set_result(assistant)
        except Exception as exc:
            if isinstance(exc, UpstreamModelError):
                logger.warning("turn_failed", turn_id=turn.turn_id, error=str(exc))
            else:
                logger.exception("turn_failed", turn_id=turn.turn_id)
            turn.emit(chunks.error(str(exc) or exc.__class__.__name__))
            turn.emit(chunks.done("stop"))
            if not turn.completion.done():
                turn.completion.set_exception(exc)
        finally:
            turn.close()

    async def _resolve_recorded_decisions(
        self,
        turn: Turn,
        chunks: ChunkFactory,
        history: list[Message],
        executor: ToolExecutor,
    ) -> None:
        """Apply approval decisions the client recorded on earlier turns' tool calls."""
        for message in history:
            for call in message.tool_calls():
                if call.state != ToolCallState.APPROVAL_REQUESTED:
                    continue
                if call.approval is None or call.approval.approved is None:
                    continue
                await executor.decide(call, call.approval.approved, reason=call.approval.reason)
                self._emit_outcome(turn, chunks, call)

    async def _run_steps(
        self,
        turn: Turn,
        chunks: ChunkFactory,
        conversation_id: str,
        messages: list[Message],
        assistant: Message,
        registry: ToolRegistry,
        executor: ToolExecutor,
    ) -> FinishReason:
        system = self.system_prompt()
        specs = registry.specs()
        text_so_far = ""
        call_index = 0
        finish: FinishReason = "stop"

        for step in range(self.max_steps):
            step_calls: list[ToolCallPart] = []
            dispatches: list[asyncio.Task[None]] = []
            current_text: TextPart | None = None
            current_reasoning: ReasoningPart | None = None
            outbound = messages + [assistant] if assistant.parts else messages

            async def pump() -> None:
                nonlocal text_so_far, call_index, finish, current_text, current_reasoning
                async for event in self.text_model.stream(
                    system=system, messages=outbound, tools=specs
                ):
                    if isinstance(event, TextDelta):
                        if current_text is None:
                            current_text = TextPart(text="")
                            assistant.parts.append(current_text)
                        current_text.text += event.text
                        text_so_far += event.text
                        turn.emit(chunks.content(text_so_far, event.text))
                    elif isinstance(event, ReasoningDelta):
                        if current_reasoning is None:
                            current_reasoning = ReasoningPart(text="", state="streaming")
                            assistant.parts.append(current_reasoning)
                        current_reasoning.text += event.text
                        turn.emit(chunks.thinking(current_reasoning.text, event.text))
                    elif isinstance(event, ToolCallRequest):
                        current_text = None
                        call = ToolCallPart(
                            tool_call_id=event.tool_call_id,
                            tool_name=event.tool_name,
                            input=event.input,
                            state=ToolCallState.INPUT_AVAILABLE,
                        )
                        assistant.parts.append(call)
                        step_calls.append(call)
                        turn.emit(chunks.tool_call(call_index, call.tool_call_id, call.tool_name, call.input))
                        call_index += 1
                        dispatches.append(
                            asyncio.create_task(
                                self._dispatch(turn, chunks, conversation_id, call, executor)
                            )
                        )
                    elif isinstance(event, StepFinish):
                        finish = event.finish_reason
                if current_reasoning is not None:
                    current_reasoning.state = "done"

            completed = await self._until_abort(turn, pump())
            if completed is _STOPPED:
                logger.info("turn_aborted", turn_id=turn.turn_id, step=step)
                return "stop"

            if dispatches:
                # Tool work already started keeps running even if the turn is aborted.
                await self._until_abort(turn, asyncio.shield(asyncio.gather(*dispatches)))
            if turn.abort.is_set():
                logger.info("turn_aborted", turn_id=turn.turn_id, step=step)
                return "stop"

            if not step_calls:
                return finish
            if any(not call.is_terminal for call in step_calls):
                # Waiting on the user or the browser; a later turn picks it up.
                return "tool_calls"

        logger.warning("max_steps_reached", turn_id=turn.turn_id, max_steps=self.max_steps)
        return "tool_calls"

    async def _dispatch(
        self,
        turn: Turn,
        chunks: ChunkFactory,
        conversation_id: str,
        call: ToolCallPart,
        executor: ToolExecutor,
    ) -> None:
        await executor.execute(call)

        if call.state == ToolCallState.APPROVAL_REQUESTED and call.approval is not None:
            if call.approval.approved is None:
                approval = self.hub.wait_for_approval(
                    conversation_id, call.approval.id, self.approval_timeout_s
                )
                turn.emit(
                    chunks.approval_requested(
                        call.tool_call_id, call.tool_name, call.input, call.approval.id
                    )
                )
                decision = await self._wait(
                    turn,
                    approval,
                    what="approval",
                    call=call,
                )
                if decision is _STOPPED:
                    return
                await executor.decide(call, decision.approved, reason=decision.reason)

        if self._awaiting_client(call):
            result = self.hub.wait_for_tool_result(
                conversation_id, call.tool_call_id, self.approval_timeout_s
            )
            turn.emit(chunks.tool_input_available(call.tool_call_id, call.tool_name, call.input))
            output = await self._wait(
                turn,
                result,
                what="client_tool",
                call=call,
            )
            if output is _STOPPED:
                return
            executor.supply_output(call, output)

        self._emit_outcome(turn, chunks, call)

    @staticmethod
    def _awaiting_client(call: ToolCallPart) -> bool:
        if call.state == ToolCallState.INPUT_AVAILABLE:
            return True
        return (
            call.state == ToolCallState.APPROVAL_REQUESTED
            and call.approval is not None
            and call.approval.approved is True
        )

    @staticmethod
    def _emit_outcome(turn: Turn, chunks: ChunkFactory, call: ToolCallPart) -> None:
        if call.state == ToolCallState.OUTPUT_AVAILABLE:
            turn.emit(chunks.tool_result(call.tool_call_id, call.output))
        elif call.state == ToolCallState.OUTPUT_DENIED:
            turn.emit(chunks.denied(call.tool_call_id, call.tool_name))

    async def _wait(
        self, turn: Turn, awaitable: Awaitable[T], *, what: str, call: ToolCallPart
    ) -> T | object:
        logger.info("waiting_for_" + what, tool_call_id=call.tool_call_id)
        try:
            return await self._until_abort(turn, awaitable)
        except TimeoutError:
            logger.info(what + "_timed_out", tool_call_id=call.tool_call_id)
            return _STOPPED

    @staticmethod
    async def _until_abort(turn: Turn, awaitable: Awaitable[T]) -> T | object:
        """Await ``awaitable`` unless the turn's abort signal fires first."""
        work = asyncio.ensure_future(awaitable)
        stop = asyncio.ensure_future(turn.abort.wait())
        try:
            await asyncio.wait({work, stop}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop.cancel()
        if work.done():
            return work.result()
        work.cancel()
        return _STOPPED
