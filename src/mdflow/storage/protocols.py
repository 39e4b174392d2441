"""Protocol definitions for conversion history storage."""

from datetime import datetime
from typing import Optional, Protocol, runtime_checkable

from .entries import HistoryEntry


@runtime_checkable
class HistoryStore(Protocol):
    """
    Protocol for stores that keep the outcome of past conversions.

    Implementations must be initialized once with init() and serialize
    concurrent writes themselves; callers may append from many tasks at
    once.
    """

    async def init(self) -> None:
        """Create the underlying storage."""
        ...

    async def append(self, entry: HistoryEntry) -> None:
        """Add an entry, trimming the oldest entries past the size limit."""
        ...

    async def get(self, entry_id: str) -> Optional[HistoryEntry]:
        """Return one entry, or None if unknown."""
        ...

    async def list(
        self,
        offset: int = 0,
        limit: int = 20,
        search: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> tuple[list[HistoryEntry], int]:
        """
        Return one page of entries, newest first.

        Returns:
            Tuple of (entries on the page, total matching entries)
        """
        ...

    async def delete(self, entry_id: str) -> bool:
        """Delete one entry; False if it did not exist."""
        ...

    async def clear(self) -> None:
        """Delete every entry."""
        ...

    async def export_json(self) -> str:
        """Serialize every entry as a JSON list."""
        ...

    async def import_json(self, data: str, merge: bool = True) -> int:
        """Load entries from export_json() output; returns the count imported."""
        ...
