"""Batch conversion queue."""

from .task_queue import DEFAULT_CONCURRENCY, TaskCallbacks, TaskExecutor, TaskQueue

__all__ = ["DEFAULT_CONCURRENCY", "TaskCallbacks", "TaskExecutor", "TaskQueue"]
