"""Event types emitted by the pipeline and the task queue."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class EventType(str, Enum):
    """Types of events emitted during conversions."""

    # Pipeline
    CONVERSION_STARTED = "conversion_started"
    DOCUMENT_CLEANED = "document_cleaned"
    CONTENT_EXTRACTED = "content_extracted"
    PAGE_CONVERTED = "page_converted"
    CONVERSION_FAILED = "conversion_failed"

    # Queue
    TASK_QUEUED = "task_queued"
    TASK_STARTED = "task_started"
    TASK_COMPLETED = "task_completed"
    TASK_FAILED = "task_failed"
    TASK_CANCELLED = "task_cancelled"
    TASK_RETRYING = "task_retrying"


@dataclass
class ConversionEvent:
    """
    Event emitted while converting a document.

    Example:
        def on_event(event: ConversionEvent) -> None:
            if event.is_error:
                print(f"Error: {event.source} - {event.error}")
    """

    type: EventType

    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    source: Optional[str] = None
    task_id: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None

    # Finished and total task counts, set on task completion and failure
    current: Optional[int] = None
    total: Optional[int] = None

    @property
    def progress_percent(self) -> Optional[float]:
        """Calculate progress percentage if current and total are set."""
        if self.current is not None and self.total and self.total > 0:
            return (self.current / self.total) * 100
        return None

    @property
    def is_error(self) -> bool:
        return self.type in (EventType.CONVERSION_FAILED, EventType.TASK_FAILED)
