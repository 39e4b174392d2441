"""Task records for the batch queue."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from .config import ConversionOptions
from .results import ConversionResult


class TaskStatus(str, Enum):
    """Lifecycle states of a queued conversion."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class PayloadKind(str, Enum):
    """What a task payload refers to."""

    URL = "url"
    FILE = "file"
    SELECTION = "selection"
    LINK = "link"


@dataclass(frozen=True)
class TaskPayload:
    """The input of a task: a URL, a file path or a markup fragment."""

    kind: PayloadKind
    value: str

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "value": self.value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskPayload:
        return cls(kind=PayloadKind(data["kind"]), value=data["value"])


@dataclass(frozen=True)
class BatchItem:
    """One entry of a batch request; all items share the batch options."""

    payload: str
    kind: PayloadKind = PayloadKind.URL

    def to_payload(self) -> TaskPayload:
        return TaskPayload(kind=self.kind, value=self.payload)


def new_task_id() -> str:
    return f"task_{uuid.uuid4().hex}"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ConversionTask:
    """
    A unit of batch work.

    attempts counts how many times the task was dispatched; a settlement
    whose attempt number is stale is ignored by the queue.
    """

    payload: TaskPayload
    options: ConversionOptions = field(default_factory=ConversionOptions)
    id: str = field(default_factory=new_task_id)
    status: TaskStatus = TaskStatus.PENDING
    result: Optional[ConversionResult] = None
    error: Optional[str] = None
    created_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None
    attempts: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status in (TaskStatus.COMPLETED, TaskStatus.FAILED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "payload": self.payload.to_dict(),
            "options": self.options.model_dump(mode="json"),
            "status": self.status.value,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "attempts": self.attempts,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversionTask:
        completed_at = data.get("completed_at")
        return cls(
            id=data["id"],
            payload=TaskPayload.from_dict(data["payload"]),
            options=ConversionOptions.model_validate(data.get("options") or {}),
            status=TaskStatus(data.get("status", TaskStatus.PENDING.value)),
            result=ConversionResult.from_dict(data["result"]) if data.get("result") else None,
            error=data.get("error"),
            created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else _now(),
            completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
            attempts=int(data.get("attempts", 0)),
        )


@dataclass
class QueueStats:
    """Snapshot of task counts per status."""

    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def success_rate(self) -> float:
        """Completed tasks as a percentage of settled tasks."""
        settled = self.completed + self.failed
        if settled == 0:
            return 0.0
        return (self.completed / settled) * 100

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "pending": self.pending,
            "processing": self.processing,
            "completed": self.completed,
            "failed": self.failed,
            "success_rate": round(self.success_rate, 1),
        }
