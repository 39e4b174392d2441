"""Conversion history storage."""

from .entries import HistoryEntry
from .history import SqliteHistoryStore
from .protocols import HistoryStore

__all__ = ["HistoryEntry", "HistoryStore", "SqliteHistoryStore"]
