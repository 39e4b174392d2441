"""History entry records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from ..models.tasks import ConversionTask, TaskStatus


@dataclass
class HistoryEntry:
    """
    The stored outcome of one conversion task.

    Completed tasks carry Markdown and metadata, failed tasks an error.
    """

    id: str
    status: TaskStatus
    title: str = ""
    source_url: str = ""
    markdown: str = ""
    error: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_task(cls, task: ConversionTask) -> HistoryEntry:
        result = task.result
        return cls(
            id=task.id,
            status=task.status,
            title=result.title if result else "",
            source_url=result.source_url if result and result.source_url else task.payload.value,
            markdown=result.markdown if result else "",
            error=task.error,
            metadata=result.metadata.to_dict() if result else {},
            created_at=task.completed_at or datetime.now(timezone.utc),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "title": self.title,
            "source_url": self.source_url,
            "markdown": self.markdown,
            "error": self.error,
            "metadata": dict(self.metadata),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoryEntry:
        created_at = data.get("created_at")
        return cls(
            id=data["id"],
            status=TaskStatus(data.get("status", TaskStatus.COMPLETED.value)),
            title=data.get("title") or "",
            source_url=data.get("source_url") or "",
            markdown=data.get("markdown") or "",
            error=data.get("error"),
            metadata=dict(data.get("metadata") or {}),
            created_at=datetime.fromisoformat(created_at) if created_at else datetime.now(timezone.utc),
        )
