"""Wraps a markup fragment as a document."""

from typing import Optional

from .base import ExtractedDocument


class SelectionSource:
    """
    Turns a selected HTML fragment into a document.

    Selections skip main-content extraction; the whole fragment is converted.
    """

    def load(self, fragment: str, source_url: str = "", title: Optional[str] = None) -> ExtractedDocument:
        return ExtractedDocument(
            html=fragment,
            source_url=source_url,
            base_url=source_url or None,
            title=title,
            extract_main=False,
        )
