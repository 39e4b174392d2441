"""Exporter lookup by output format."""

from ..errors import UnsupportedFormatError
from .base import Exporter
from .html import HtmlExporter
from .markdown import MarkdownExporter
from .text import TextExporter

SUPPORTED_FORMATS = ("markdown", "html", "text")


def get_exporter(fmt: str) -> Exporter:
    """
    Return the exporter for an output format.

    Raises:
        UnsupportedFormatError: For "pdf" and unknown formats
    """
    if fmt in ("markdown", "md"):
        return MarkdownExporter()
    if fmt == "html":
        return HtmlExporter()
    if fmt in ("text", "txt"):
        return TextExporter()
    if fmt == "pdf":
        raise UnsupportedFormatError("pdf", "PDF export needs an external renderer")
    raise UnsupportedFormatError(fmt)
