"""Bounded-concurrency queue for batch conversions."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import Awaitable, Iterable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from ..errors import TaskNotFoundError
from ..models.config import ConversionOptions
from ..models.events import ConversionEvent, EventType
from ..models.results import ConversionResult
from ..models.tasks import BatchItem, ConversionTask, QueueStats, TaskPayload, TaskStatus
from ..storage.entries import HistoryEntry
from ..storage.protocols import HistoryStore

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 3

# Runs the conversion of one task
TaskExecutor = Callable[[ConversionTask], Awaitable[ConversionResult]]
EventEmitter = Callable[[ConversionEvent], None]


@dataclass
class TaskCallbacks:
    """
    Task-scoped callbacks; each may be a plain function or a coroutine function.

    Exceptions raised by callbacks are logged and never change the task.
    """

    on_progress: Optional[Callable[[ConversionTask], Any]] = None
    on_complete: Optional[Callable[[ConversionTask, ConversionResult], Any]] = None
    on_error: Optional[Callable[[ConversionTask, BaseException], Any]] = None


class TaskQueue:
    """
    Runs conversion tasks with at most `concurrency` in processing at once.

    Pending tasks are dispatched in insertion order whenever a slot is free
    and the queue is not paused; every settlement re-runs the scheduler.
    Each outcome is reported to the task's callbacks and appended to the
    history store.

    Dispatching needs a running event loop. Tasks added outside one are
    dispatched by the next resume() or join() inside a loop.

    Example:
        queue = TaskQueue(service.run_task, concurrency=3, store=store)
        tasks = queue.add_batch([BatchItem("https://example.com/a")], options)
        await queue.join()
        print(queue.get_stats().to_dict())
    """

    def __init__(
        self,
        executor: TaskExecutor,
        concurrency: int = DEFAULT_CONCURRENCY,
        store: Optional[HistoryStore] = None,
        auto_start: bool = True,
        on_event: Optional[EventEmitter] = None,
    ) -> None:
        """
        Initialize the queue.

        Args:
            executor: Coroutine function converting one task
            concurrency: Maximum number of tasks in processing
            store: Optional history store receiving every outcome
            auto_start: Start dispatching as soon as tasks are added
            on_event: Optional callback for queue events
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._executor = executor
        self._concurrency = concurrency
        self._store = store
        self._paused = not auto_start
        self._emit = on_event
        self._tasks: dict[str, ConversionTask] = {}
        self._callbacks: dict[str, TaskCallbacks] = {}
        self._inflight: set[asyncio.Task[None]] = set()

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def is_paused(self) -> bool:
        return self._paused

    def _event(self, event_type: EventType, task: ConversionTask, **kwargs: Any) -> None:
        if self._emit is None:
            return
        try:
            self._emit(ConversionEvent(type=event_type, source=task.payload.value, task_id=task.id, **kwargs))
        except Exception as e:
            logger.warning(f"Event callback failed: {e}")

    def _finished_counts(self) -> dict[str, int]:
        finished = sum(1 for task in self._tasks.values() if task.status in (TaskStatus.COMPLETED, TaskStatus.FAILED))
        return {"current": finished, "total": len(self._tasks)}

    def add_task(
        self,
        payload: TaskPayload,
        options: Optional[ConversionOptions] = None,
        callbacks: Optional[TaskCallbacks] = None,
    ) -> ConversionTask:
        """Queue one task and return it."""
        task = ConversionTask(payload=payload, options=options or ConversionOptions())
        self._tasks[task.id] = task
        if callbacks is not None:
            self._callbacks[task.id] = callbacks
        self._event(EventType.TASK_QUEUED, task)
        logger.debug(f"Queued {task.id} ({payload.kind.value}: {payload.value})")
        self._schedule()
        return task

    def add_batch(
        self,
        items: Iterable[BatchItem],
        options: Optional[ConversionOptions] = None,
        callbacks: Optional[TaskCallbacks] = None,
    ) -> list[ConversionTask]:
        """Queue one task per item; all share options and callbacks."""
        return [self.add_task(item.to_payload(), options, callbacks) for item in items]

    def get_task(self, task_id: str) -> Optional[ConversionTask]:
        return self._tasks.get(task_id)

    def get_all_tasks(self) -> list[ConversionTask]:
        return list(self._tasks.values())

    def get_tasks_by_status(self, status: TaskStatus) -> list[ConversionTask]:
        return [task for task in self._tasks.values() if task.status == status]

    def get_stats(self) -> QueueStats:
        stats = QueueStats(total=len(self._tasks))
        for task in self._tasks.values():
            if task.status == TaskStatus.PENDING:
                stats.pending += 1
            elif task.status == TaskStatus.PROCESSING:
                stats.processing += 1
            elif task.status == TaskStatus.COMPLETED:
                stats.completed += 1
            else:
                stats.failed += 1
        return stats

    def pause(self) -> None:
        """Stop dispatching new tasks; tasks in processing run to completion."""
        self._paused = True

    def resume(self) -> None:
        self._paused = False
        self._schedule()

    def cancel_task(self, task_id: str) -> bool:
        """
        Return a pending or processing task to pending.

        In-flight work is not interrupted; its late outcome is discarded and
        the task runs again.
        """
        task = self._tasks.get(task_id)
        if task is None or task.is_terminal:
            return False
        task.status = TaskStatus.PENDING
        self._event(EventType.TASK_CANCELLED, task)
        self._schedule()
        return True

    def retry_task(self, task_id: str) -> bool:
        """Return a failed task to pending."""
        task = self._tasks.get(task_id)
        if task is None or task.status != TaskStatus.FAILED:
            return False
        task.status = TaskStatus.PENDING
        task.error = None
        task.completed_at = None
        self._event(EventType.TASK_RETRYING, task)
        self._schedule()
        return True

    def remove_task(self, task_id: str) -> bool:
        self._callbacks.pop(task_id, None)
        return self._tasks.pop(task_id, None) is not None

    def clear(self) -> None:
        self._tasks.clear()
        self._callbacks.clear()

    def clear_completed(self) -> int:
        completed = [task.id for task in self.get_tasks_by_status(TaskStatus.COMPLETED)]
        for task_id in completed:
            self.remove_task(task_id)
        return len(completed)

    def export_state(self) -> str:
        """Serialize every task as JSON."""
        return json.dumps({"tasks": [task.to_dict() for task in self._tasks.values()]}, ensure_ascii=False)

    def import_state(self, state: str) -> int:
        """
        Replace the queue's tasks with those of export_state() output.

        Tasks that were processing when exported come back as pending.
        Callbacks are not part of the state.

        Returns:
            Number of tasks imported

        Raises:
            ValueError: If state is not valid queue JSON
        """
        try:
            data = json.loads(state)
            tasks = [ConversionTask.from_dict(item) for item in data["tasks"]]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid queue state: {e}") from e

        self._tasks = {}
        self._callbacks = {}
        for task in tasks:
            if task.status == TaskStatus.PROCESSING:
                task.status = TaskStatus.PENDING
            self._tasks[task.id] = task

        logger.info(f"Imported {len(tasks)} tasks")
        self._schedule()
        return len(tasks)

    def _processing_count(self) -> int:
        return sum(1 for task in self._tasks.values() if task.status == TaskStatus.PROCESSING)

    def _schedule(self) -> None:
        if self._paused:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return

        free = self._concurrency - self._processing_count()
        if free <= 0:
            return
        for task in [t for t in self._tasks.values() if t.status == TaskStatus.PENDING][:free]:
            task.status = TaskStatus.PROCESSING
            task.attempts += 1
            running = loop.create_task(self._run(task, task.attempts))
            self._inflight.add(running)
            running.add_done_callback(self._inflight.discard)

    def _is_current(self, task: ConversionTask, attempt: int) -> bool:
        return (
            self._tasks.get(task.id) is task
            and task.attempts == attempt
            and task.status == TaskStatus.PROCESSING
        )

    async def _run(self, task: ConversionTask, attempt: int) -> None:
        callbacks = self._callbacks.get(task.id, TaskCallbacks())
        self._event(EventType.TASK_STARTED, task)
        await self._invoke("on_progress", callbacks.on_progress, task)

        try:
            result = await self._executor(task)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self._is_current(task, attempt):
                logger.debug(f"Discarding stale failure of {task.id}")
                return
            task.status = TaskStatus.FAILED
            task.error = str(e) or e.__class__.__name__
            task.completed_at = datetime.now(timezone.utc)
            logger.warning(f"Task {task.id} failed: {task.error}")
            self._event(EventType.TASK_FAILED, task, error=task.error, **self._finished_counts())
            await self._invoke("on_error", callbacks.on_error, task, e)
            await self._persist(task)
        else:
            if not self._is_current(task, attempt):
                logger.debug(f"Discarding stale result of {task.id}")
                return
            task.status = TaskStatus.COMPLETED
            task.result = result
            task.completed_at = datetime.now(timezone.utc)
            logger.debug(f"Task {task.id} completed")
            self._event(EventType.TASK_COMPLETED, task, message=result.title, **self._finished_counts())
            await self._invoke("on_complete", callbacks.on_complete, task, result)
            await self._persist(task)
        finally:
            self._schedule()

    @staticmethod
    async def _invoke(name: str, callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            outcome = callback(*args)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning(f"{name} callback failed: {e}")

    async def _persist(self, task: ConversionTask) -> None:
        if self._store is None:
            return
        try:
            await self._store.append(HistoryEntry.from_task(task))
        except Exception as e:
            logger.error(f"Failed to save {task.id} to history: {e}")

    async def join(self) -> None:
        """
        Wait until no task is pending or processing.

        A paused queue returns once its in-flight tasks settle.
        """
        self._schedule()
        while True:
            inflight = [running for running in self._inflight if not running.done()]
            if inflight:
                await asyncio.gather(*inflight, return_exceptions=True)
                continue
            if not self._paused and self.get_tasks_by_status(TaskStatus.PENDING):
                self._schedule()
                continue
            return

    async def wait_for(self, task_id: str) -> ConversionTask:
        """
        Wait until one task reaches a terminal state.

        Raises:
            TaskNotFoundError: If the task is unknown or removed while waiting
        """
        while True:
            task = self._tasks.get(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            if task.is_terminal:
                return task
            inflight = [running for running in self._inflight if not running.done()]
            if not inflight:
                if self._paused or task.status != TaskStatus.PENDING:
                    return task
                self._schedule()
                continue
            await asyncio.wait(inflight, return_when=asyncio.FIRST_COMPLETED)
