"""SQLite-backed conversion history."""

import asyncio
import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

from .entries import HistoryEntry

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 100
MEMORY = ":memory:"

_COLUMNS = "id, status, title, source_url, markdown, error, metadata, created_at"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _like_pattern(search: str) -> str:
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class SqliteHistoryStore:
    """
    Keeps conversion outcomes in a SQLite database.

    Writes are serialized by an asyncio.Lock so concurrent task completions
    can append independently. Only the newest max_items entries are kept.

    Example:
        store = SqliteHistoryStore(Path(".mdflow/history.db"))
        await store.init()
        await store.append(HistoryEntry.from_task(task))
        entries, total = await store.list(limit=10, search="python")
        await store.close()
    """

    def __init__(
        self,
        path: Union[Path, str] = MEMORY,
        max_items: int = DEFAULT_MAX_ITEMS,
    ) -> None:
        """
        Initialize the store.

        Args:
            path: Database file, or ":memory:" for a private in-memory store
            max_items: Maximum number of entries kept
        """
        self._path = path
        self._max_items = max_items
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = asyncio.Lock()

    async def init(self) -> None:
        """Open the database and create the history table."""
        if self._conn is not None:
            return
        if str(self._path) != MEMORY:
            Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._path))
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS history (
                id TEXT PRIMARY KEY,
                status TEXT NOT NULL,
                title TEXT,
                source_url TEXT,
                markdown TEXT,
                error TEXT,
                metadata TEXT,
                created_at TEXT NOT NULL
            )
        """
        )
        self._conn.execute("CREATE INDEX IF NOT EXISTS idx_created_at ON history(created_at)")
        self._conn.commit()
        logger.debug(f"Initialized history store at {self._path}")

    def _db(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("SqliteHistoryStore.init() must be called before use")
        return self._conn

    @staticmethod
    def _row_values(entry: HistoryEntry) -> tuple[Any, ...]:
        return (
            entry.id,
            entry.status.value,
            entry.title,
            entry.source_url,
            entry.markdown,
            entry.error,
            json.dumps(entry.metadata, ensure_ascii=False),
            _as_utc(entry.created_at).isoformat(),
        )

    @staticmethod
    def _entry_from_row(row: tuple[Any, ...]) -> HistoryEntry:
        return HistoryEntry.from_dict(
            {
                "id": row[0],
                "status": row[1],
                "title": row[2],
                "source_url": row[3],
                "markdown": row[4],
                "error": row[5],
                "metadata": json.loads(row[6]) if row[6] else {},
                "created_at": row[7],
            }
        )

    def _insert(self, conn: sqlite3.Connection, entry: HistoryEntry) -> None:
        conn.execute(
            f"INSERT OR REPLACE INTO history ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            self._row_values(entry),
        )

    def _trim(self, conn: sqlite3.Connection) -> None:
        cursor = conn.execute(
            """DELETE FROM history WHERE id NOT IN (
                   SELECT id FROM history ORDER BY created_at DESC, rowid DESC LIMIT ?
               )""",
            (self._max_items,),
        )
        if cursor.rowcount > 0:
            logger.debug(f"Trimmed {cursor.rowcount} old history entries")

    async def append(self, entry: HistoryEntry) -> None:
        async with self._lock:
            conn = self._db()
            self._insert(conn, entry)
            self._trim(conn)
            conn.commit()

    async def get(self, entry_id: str) -> Optional[HistoryEntry]:
        row = self._db().execute(f"SELECT {_COLUMNS} FROM history WHERE id = ?", (entry_id,)).fetchone()
        return self._entry_from_row(row) if row else None

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

        Args:
            offset: Entries to skip
            limit: Page size
            search: Case-insensitive substring of title, URL or Markdown
            start: Only entries created at or after this time
            end: Only entries created at or before this time

        Returns:
            Tuple of (entries on the page, total matching entries)
        """
        clauses: list[str] = []
        params: list[Any] = []
        if search:
            pattern = _like_pattern(search)
            clauses.append(
                "(title LIKE ? ESCAPE '\\' OR source_url LIKE ? ESCAPE '\\' OR markdown LIKE ? ESCAPE '\\')"
            )
            params.extend([pattern, pattern, pattern])
        if start is not None:
            clauses.append("created_at >= ?")
            params.append(_as_utc(start).isoformat())
        if end is not None:
            clauses.append("created_at <= ?")
            params.append(_as_utc(end).isoformat())
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        conn = self._db()
        total = conn.execute(f"SELECT COUNT(*) FROM history {where}", params).fetchone()[0]
        rows = conn.execute(
            f"SELECT {_COLUMNS} FROM history {where} ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
            [*params, limit, offset],
        ).fetchall()
        return [self._entry_from_row(row) for row in rows], total

    async def delete(self, entry_id: str) -> bool:
        async with self._lock:
            conn = self._db()
            cursor = conn.execute("DELETE FROM history WHERE id = ?", (entry_id,))
            conn.commit()
            return cursor.rowcount > 0

    async def clear(self) -> None:
        async with self._lock:
            conn = self._db()
            conn.execute("DELETE FROM history")
            conn.commit()

    async def stats(self) -> dict[str, Any]:
        """Count entries per status."""
        conn = self._db()
        counts = dict(conn.execute("SELECT status, COUNT(*) FROM history GROUP BY status").fetchall())
        total = sum(counts.values())
        return {
            "total": total,
            "completed": counts.get("completed", 0),
            "failed": counts.get("failed", 0),
            "max_items": self._max_items,
        }

    async def export_json(self) -> str:
        rows = self._db().execute(f"SELECT {_COLUMNS} FROM history ORDER BY created_at DESC, rowid DESC").fetchall()
        return json.dumps([self._entry_from_row(row).to_dict() for row in rows], indent=2, ensure_ascii=False)

    async def import_json(self, data: str, merge: bool = True) -> int:
        """
        Load entries from export_json() output.

        Args:
            data: JSON list of entries
            merge: Keep existing entries (same ids are replaced); when
                   False the history is cleared first

        Returns:
            Number of entries imported

        Raises:
            ValueError: If data is not a JSON list of entries
        """
        try:
            items = json.loads(data)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid history JSON: {e}") from e
        if not isinstance(items, list):
            raise ValueError("History JSON must be a list of entries")

        entries = []
        for item in items:
            try:
                entries.append(HistoryEntry.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed history entry: {e}")

        async with self._lock:
            conn = self._db()
            if not merge:
                conn.execute("DELETE FROM history")
            for entry in entries:
                self._insert(conn, entry)
            self._trim(conn)
            conn.commit()

        logger.info(f"Imported {len(entries)} history entries")
        return len(entries)

    async def close(self) -> None:
        async with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    async def __aenter__(self) -> "SqliteHistoryStore":
        await self.init()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
