"""Standalone HTML export."""

from __future__ import annotations

import html
from typing import Optional

from markdown_it import MarkdownIt

from ..models.results import ConversionResult
from .base import ExportOptions, ExportResult, sanitize_filename

DEFAULT_STYLES = """
  body { max-width: 800px; margin: 0 auto; padding: 2rem; line-height: 1.6; color: #333;
         font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif; }
  h1, h2 { border-bottom: 1px solid #eee; padding-bottom: 0.3em; }
  a { color: #0366d6; text-decoration: none; }
  pre { background: #f6f8fa; padding: 1em; border-radius: 6px; overflow-x: auto; }
  code { font-family: 'SFMono-Regular', Consolas, Menlo, monospace; font-size: 85%; }
  blockquote { margin: 1em 0; padding-left: 1em; border-left: 4px solid #dfe2e5; color: #6a737d; }
  table { border-collapse: collapse; width: 100%; margin: 1em 0; }
  th, td { border: 1px solid #dfe2e5; padding: 0.6em 1em; text-align: left; }
  th { background: #f6f8fa; }
  img { max-width: 100%; height: auto; }
  .metadata { background: #f6f8fa; border: 1px solid #e1e4e8; border-radius: 6px;
              padding: 1em; margin-bottom: 2em; font-size: 0.9em; color: #586069; }
  .metadata p { margin: 0.25em 0; }
"""


def markdown_renderer() -> MarkdownIt:
    """CommonMark with pipe tables and strikethrough; raw HTML in the Markdown is escaped."""
    return MarkdownIt("commonmark", {"html": False, "breaks": True}).enable(["table", "strikethrough"])


class HtmlExporter:
    """
    Renders the Markdown as a standalone HTML page.

    ExportOptions.source_html, when given, is embedded instead of the
    rendered Markdown.
    """

    extension = "html"
    mime_type = "text/html"

    def __init__(self, styles: str = DEFAULT_STYLES, renderer: Optional[MarkdownIt] = None):
        self._styles = styles
        self._renderer = renderer or markdown_renderer()

    def export(self, result: ConversionResult, options: Optional[ExportOptions] = None) -> ExportResult:
        options = options or ExportOptions()
        title = html.escape(result.title or "Untitled")

        parts = []
        if options.include_title:
            parts.append(f"<h1>{title}</h1>")
        if options.include_metadata:
            parts.append(self._metadata_block(result))
        if options.source_html is not None:
            parts.append(options.source_html)
        else:
            parts.append(self._renderer.render(result.markdown))

        page = "\n".join(
            [
                "<!DOCTYPE html>",
                '<html lang="en">',
                "<head>",
                '<meta charset="utf-8">',
                '<meta name="viewport" content="width=device-width, initial-scale=1">',
                f"<title>{title}</title>",
                f"<style>{self._styles}</style>",
                "</head>",
                "<body>",
                *parts,
                "</body>",
                "</html>",
            ]
        )
        return ExportResult(
            content=page + "\n",
            filename=f"{sanitize_filename(result.title)}.{self.extension}",
            mime_type=self.mime_type,
            extension=self.extension,
        )

    @staticmethod
    def _metadata_block(result: ConversionResult) -> str:
        rows = []
        if result.source_url:
            url = html.escape(result.source_url, quote=True)
            rows.append(f'<p><strong>Source:</strong> <a href="{url}">{url}</a></p>')
        if result.metadata.author:
            rows.append(f"<p><strong>Author:</strong> {html.escape(result.metadata.author)}</p>")
        if result.metadata.date:
            rows.append(f"<p><strong>Date:</strong> {html.escape(result.metadata.date)}</p>")
        rows.append(f"<p><strong>Exported:</strong> {result.timestamp.isoformat()}</p>")
        return '<div class="metadata">\n' + "\n".join(rows) + "\n</div>"
