"""Document sources: web pages, local files and markup fragments."""

from .base import ExtractedDocument
from .file import FileSource
from .selection import SelectionSource
from .url import UrlSource

__all__ = ["ExtractedDocument", "FileSource", "SelectionSource", "UrlSource"]
