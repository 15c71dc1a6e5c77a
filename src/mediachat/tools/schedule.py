"""
In-memory task scheduler and the tools that expose it to the model.

Schedules live only as long as the process; persistence is out of scope.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

from ..logging import get_logger
from .registry import ToolDefinition

logger = get_logger(__name__)

DueCallback = Callable[[str, str], Awaitable[None]]


@dataclass
class ScheduledTask:
    id: str
    conversation_id: str
    description: str
    kind: Literal["scheduled", "delayed"]
    run_at: datetime
    handle: asyncio.TimerHandle | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, str]:
        return {
            "id": self.id,
            "description": self.description,
            "type": self.kind,
            "runAt": self.run_at.isoformat(),
        }


class TaskScheduler:
    def __init__(self, on_due: DueCallback) -> None:
        self.on_due = on_due
        self._tasks: dict[str, ScheduledTask] = {}
        self._running: set[asyncio.Task[None]] = set()

    def schedule(
        self,
        conversation_id: str,
        description: str,
        *,
        run_at: datetime | None = None,
        delay_seconds: float | None = None,
    ) -> ScheduledTask:
        now = datetime.now(timezone.utc)
        if delay_seconds is not None:
            delay = max(float(delay_seconds), 0.0)
            run_at = datetime.fromtimestamp(now.timestamp() + delay, timezone.utc)
            kind: Literal["scheduled", "delayed"] = "delayed"
        elif run_at is not None:
            if run_at.tzinfo is None:
                run_at = run_at.replace(tzinfo=timezone.utc)
            delay = max((run_at - now).total_seconds(), 0.0)
            kind = "scheduled"
        else:
            raise ValueError("Either run_at or delay_seconds is required")

        task = ScheduledTask(
            id=uuid.uuid4().hex[:12],
            conversation_id=conversation_id,
            description=description,
            kind=kind,
            run_at=run_at,
        )
        loop = asyncio.get_running_loop()
        task.handle = loop.call_later(delay, self._fire, task.id)
        self._tasks[task.id] = task
        logger.info("task_scheduled", task_id=task.id, delay_s=round(delay, 3))
        return task

    def list(self, conversation_id: str) -> list[ScheduledTask]:
        return [t for t in self._tasks.values() if t.conversation_id == conversation_id]

    def cancel(self, conversation_id: str, task_id: str) -> bool:
        task = self._tasks.get(task_id)
        if task is None or task.conversation_id != conversation_id:
            return False
        if task.handle is not None:
            task.handle.cancel()
        del self._tasks[task_id]
        return True

    def cancel_all(self, conversation_id: str) -> int:
        ids = [t.id for t in self.list(conversation_id)]
        for task_id in ids:
            self.cancel(conversation_id, task_id)
        return len(ids)

    def _fire(self, task_id: str) -> None:
        task = self._tasks.pop(task_id, None)
        if task is None:
            return
        logger.info("task_due", task_id=task.id)
        running = asyncio.ensure_future(self.on_due(task.conversation_id, task.description))
        self._running.add(running)
        running.add_done_callback(self._running.discard)


class ScheduleWhen(BaseModel):
    type: Literal["scheduled", "delayed", "cron", "no-schedule"]
    date: datetime | None = None
    delayInSeconds: float | None = None
    cron: str | None = None


class ScheduleInput(BaseModel):
    description: str = Field(description="What to do when the task runs")
    when: ScheduleWhen


class TaskIdInput(BaseModel):
    taskId: str = Field(description="The ID of the task to cancel")


class EmptyInput(BaseModel):
    pass


def build_schedule_tools(
    scheduler: TaskScheduler, conversation_id: str
) -> list[ToolDefinition]:
    async def schedule_task(args: ScheduleInput) -> str:
        when = args.when
        if when.type == "no-schedule":
            return "Not a valid schedule input"
        if when.type == "cron":
            return "Recurring (cron) schedules are not supported"
        if when.type == "scheduled" and when.date is not None:
            task = scheduler.schedule(conversation_id, args.description, run_at=when.date)
            return f'Task scheduled: "{args.description}" (scheduled: {when.date.isoformat()}, id {task.id})'
        if when.type == "delayed" and when.delayInSeconds is not None:
            task = scheduler.schedule(
                conversation_id, args.description, delay_seconds=when.delayInSeconds
            )
            return f'Task scheduled: "{args.description}" (delayed: {when.delayInSeconds:g}s, id {task.id})'
        return "Invalid schedule type"

    async def get_scheduled_tasks(_: EmptyInput) -> list[dict[str, str]] | str:
        tasks = scheduler.list(conversation_id)
        if not tasks:
            return "No scheduled tasks found."
        return [task.to_dict() for task in tasks]

    async def cancel_scheduled_task(args: TaskIdInput) -> str:
        if scheduler.cancel(conversation_id, args.taskId):
            return f"Task {args.taskId} cancelled."
        return f"Task {args.taskId} not found."

    return [
        ToolDefinition(
            name="scheduleTask",
            description=(
                "Schedule a task to be executed at a later time. Use this when the "
                "user asks to be reminded or wants something done later."
            ),
            input_model=ScheduleInput,
            execute=schedule_task,
        ),
        ToolDefinition(
            name="getScheduledTasks",
            description="List all tasks that have been scheduled",
            input_model=EmptyInput,
            execute=get_scheduled_tasks,
        ),
        ToolDefinition(
            name="cancelScheduledTask",
            description="Cancel a scheduled task by its ID",
            input_model=TaskIdInput,
            execute=cancel_scheduled_task,
        ),
    ]
