"""Input records shared by the document sources."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from ..models.document import SourceDocument


@dataclass
class ExtractedDocument:
    """
    Markup plus document metadata, ready for the conversion pipeline.

    External extractors for binary formats (PDF, Word) hand their output
    over in this shape. title, author and date override what the markup
    itself declares.

    Attributes:
        html: Markup as text or undecoded bytes
        source_url: URL (or path) the document came from
        base_url: URL relative references resolve against
        title: Title known outside the markup
        author: Author known outside the markup
        date: Date known outside the markup
        extract_main: Run main-content extraction (False for fragments)
    """

    html: Union[str, bytes]
    source_url: str = ""
    base_url: Optional[str] = None
    title: Optional[str] = None
    author: Optional[str] = None
    date: Optional[str] = None
    extract_main: bool = True

    def to_source_document(self) -> SourceDocument:
        return SourceDocument.from_html(self.html, base_url=self.base_url)
