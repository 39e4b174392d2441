"""Shared exporter types."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Protocol

from ..models.results import ConversionResult

MAX_FILENAME_LENGTH = 100

_UNSAFE_FILENAME = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class ExportResult:
    """Formatted output of one conversion, ready to hand to a sink."""

    content: str
    filename: str
    mime_type: str
    extension: str


@dataclass(frozen=True)
class ExportOptions:
    """
    Options shared by all exporters.

    Attributes:
        include_title: Put the title at the top of the output
        include_metadata: Add a metadata header (frontmatter for Markdown)
        source_html: Cleaned source markup, used by the HTML exporter
        extra_fields: Additional metadata fields (e.g. from a preset)
    """

    include_title: bool = True
    include_metadata: bool = False
    source_html: Optional[str] = None
    extra_fields: Optional[dict[str, object]] = None


class Exporter(Protocol):
    """Protocol for output formats."""

    extension: str
    mime_type: str

    def export(self, result: ConversionResult, options: Optional[ExportOptions] = None) -> ExportResult:
        ...


def sanitize_filename(title: str) -> str:
    """Filesystem-safe stem derived from a title."""
    name = _UNSAFE_FILENAME.sub("_", title.strip())
    name = _WHITESPACE.sub("_", name)[:MAX_FILENAME_LENGTH]
    return name or "untitled"
