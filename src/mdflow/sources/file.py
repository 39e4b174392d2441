"""Reads local files as documents."""

import html
import logging
import re
from pathlib import Path
from typing import Union

from ..errors import UnsupportedFormatError
from .base import ExtractedDocument

logger = logging.getLogger(__name__)

HTML_SUFFIXES = frozenset({".html", ".htm", ".xhtml"})
MARKDOWN_SUFFIXES = frozenset({".md", ".markdown"})
TEXT_SUFFIXES = frozenset({".txt"})
# Parsed by external extractors that hand over an ExtractedDocument
EXTERNAL_SUFFIXES = {".pdf": "pdf", ".docx": "docx", ".doc": "doc"}

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")


def text_to_html(text: str) -> str:
    """Wrap plain text in one <p> per blank-line separated block."""
    paragraphs = [block.strip() for block in _PARAGRAPH_BREAK.split(text) if block.strip()]
    body = "\n".join(f"<p>{html.escape(block)}</p>" for block in paragraphs)
    return f"<html><body>{body}</body></html>"


def markdown_to_html(text: str) -> str:
    """Wrap Markdown source in a <pre> so it is carried through unchanged."""
    return f'<html><body><pre><code class="language-markdown">{html.escape(text)}</code></pre></body></html>'


class FileSource:
    """
    Loads .html, .md and .txt files.

    PDF and Word files raise UnsupportedFormatError; they belong to external
    extractors producing an ExtractedDocument.
    """

    def load(self, path: Union[Path, str]) -> ExtractedDocument:
        """
        Read a file into a document.

        Raises:
            UnsupportedFormatError: For PDF/Word and unknown suffixes
            OSError: If the file cannot be read
        """
        path = Path(path)
        suffix = path.suffix.lower()
        if suffix in EXTERNAL_SUFFIXES:
            raise UnsupportedFormatError(
                EXTERNAL_SUFFIXES[suffix],
                f"{path.name}: {EXTERNAL_SUFFIXES[suffix].upper()} files need an external extractor",
            )

        source_url = path.resolve().as_uri()
        if suffix in HTML_SUFFIXES:
            logger.debug(f"Reading HTML file {path}")
            return ExtractedDocument(html=path.read_bytes(), source_url=source_url)
        if suffix in MARKDOWN_SUFFIXES:
            return ExtractedDocument(
                html=markdown_to_html(path.read_text(encoding="utf-8")),
                source_url=source_url,
                title=path.stem,
                extract_main=False,
            )
        if suffix in TEXT_SUFFIXES:
            return ExtractedDocument(
                html=text_to_html(path.read_text(encoding="utf-8")),
                source_url=source_url,
                title=path.stem,
                extract_main=False,
            )
        raise UnsupportedFormatError(suffix.lstrip(".") or path.name)
