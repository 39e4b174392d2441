"""Output formats for conversion results."""

from .base import Exporter, ExportOptions, ExportResult, sanitize_filename
from .factory import SUPPORTED_FORMATS, get_exporter
from .frontmatter import FrontmatterBuilder
from .html import HtmlExporter
from .markdown import MarkdownExporter
from .text import TextExporter, markdown_to_text

__all__ = [
    "SUPPORTED_FORMATS",
    "ExportOptions",
    "ExportResult",
    "Exporter",
    "FrontmatterBuilder",
    "HtmlExporter",
    "MarkdownExporter",
    "TextExporter",
    "get_exporter",
    "markdown_to_text",
    "sanitize_filename",
]
