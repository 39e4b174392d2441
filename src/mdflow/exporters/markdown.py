"""Markdown export."""

from __future__ import annotations

from typing import Optional

from ..models.results import ConversionResult
from .base import ExportOptions, ExportResult, sanitize_filename
from .frontmatter import FrontmatterBuilder


class MarkdownExporter:
    """Exports the Markdown itself, optionally with YAML frontmatter."""

    extension = "md"
    mime_type = "text/markdown"

    def __init__(self, frontmatter_builder: Optional[FrontmatterBuilder] = None):
        self._frontmatter = frontmatter_builder or FrontmatterBuilder()

    def export(self, result: ConversionResult, options: Optional[ExportOptions] = None) -> ExportResult:
        options = options or ExportOptions()
        content = result.markdown
        if options.include_metadata:
            content = self.frontmatter(result, options) + content
        return ExportResult(
            content=content.rstrip("\n") + "\n",
            filename=f"{sanitize_filename(result.title)}.{self.extension}",
            mime_type=self.mime_type,
            extension=self.extension,
        )

    def frontmatter(self, result: ConversionResult, options: Optional[ExportOptions] = None) -> str:
        metadata = result.metadata
        fields: dict[str, object] = {
            "date": result.timestamp.isoformat(),
            "author": metadata.author,
            "published": metadata.date,
            "tags": list(metadata.tags),
            "word_count": metadata.word_count or None,
        }
        extra = dict(options.extra_fields) if options is not None and options.extra_fields else {}
        # Extra fields replace built-in keys instead of repeating them
        title = extra.pop("title", result.title)
        url = extra.pop("source", result.source_url or None)
        description = extra.pop("description", metadata.description)
        fields.update(extra)
        return self._frontmatter.build(
            title=str(title) if title else None,
            url=str(url) if url else None,
            description=str(description) if description else None,
            **fields,
        )
