"""Plain-text export."""

from __future__ import annotations

import re
from typing import Optional

from ..models.results import ConversionResult
from .base import ExportOptions, ExportResult, sanitize_filename

RULE_WIDTH = 40

_CODE_FENCE = re.compile(r"^(`{3,}|~{3,})[^\n]*\n(.*?)\n?^\1[ \t]*$", re.MULTILINE | re.DOTALL)
_INLINE_CODE = re.compile(r"`([^`]+)`")
_HEADING = re.compile(r"^#{1,6}\s+(.+)$", re.MULTILINE)
_EMPHASIS = [
    re.compile(r"\*\*\*(.+?)\*\*\*"),
    re.compile(r"\*\*(.+?)\*\*"),
    re.compile(r"(?<![\w\\])\*(?!\s)(.+?)(?<!\s)\*"),
    re.compile(r"___(.+?)___"),
    re.compile(r"__(.+?)__"),
    re.compile(r"(?<![\w\\])_(?!\s)(.+?)(?<!\s)_(?!\w)"),
    re.compile(r"~~(.+?)~~"),
]
_IMAGE = re.compile(r"!\[([^\]]*)\]\([^)]+\)")
_LINK = re.compile(r"\[([^\]]+)\]\(([^)\s]+)(?:\s+\"[^\"]*\")?\)")
_BLOCKQUOTE = re.compile(r"^>\s?", re.MULTILINE)
_HORIZONTAL_RULE = re.compile(r"^[-*_]{3,}$", re.MULTILINE)
_TABLE_SEPARATOR = re.compile(r"^\|?\s*:?-{3,}:?\s*(\|\s*:?-{3,}:?\s*)*\|?$", re.MULTILINE)
_TABLE_ROW = re.compile(r"^\|(.*)\|$", re.MULTILINE)
_UNORDERED_ITEM = re.compile(r"^(\s*)[-*+]\s+", re.MULTILINE)
_HTML_TAG = re.compile(r"<[^>]+>")
_ESCAPED = re.compile(r"\\([\\`*_{}\[\]()#+\-.!>])")
_BLANK_LINES = re.compile(r"\n{3,}")


def markdown_to_text(markdown: str) -> str:
    """Strip Markdown syntax, keeping the readable text."""
    blocks: list[str] = []

    def keep_code(match: re.Match[str]) -> str:
        blocks.append("\n".join(f"    {line}" for line in match.group(2).split("\n")))
        return f"\x00{len(blocks) - 1}\x00"

    text = _CODE_FENCE.sub(keep_code, markdown)
    text = _INLINE_CODE.sub(r"\1", text)
    text = _HEADING.sub(r"\1", text)
    for pattern in _EMPHASIS:
        text = pattern.sub(r"\1", text)
    text = _IMAGE.sub(r"[Image: \1]", text)
    text = _LINK.sub(r"\1 (\2)", text)
    text = _BLOCKQUOTE.sub("  ", text)
    text = _TABLE_SEPARATOR.sub("", text)
    text = _TABLE_ROW.sub(lambda m: "  |  ".join(cell.strip() for cell in m.group(1).split("|")), text)
    text = _HORIZONTAL_RULE.sub("-" * RULE_WIDTH, text)
    text = _UNORDERED_ITEM.sub(lambda m: f"{m.group(1)}  • ", text)
    text = _HTML_TAG.sub("", text)
    text = _ESCAPED.sub(r"\1", text)
    text = re.sub(r"\x00(\d+)\x00", lambda m: blocks[int(m.group(1))], text)
    return _BLANK_LINES.sub("\n\n", text).strip()


class TextExporter:
    """Exports plain text with Markdown syntax removed."""

    extension = "txt"
    mime_type = "text/plain"

    def export(self, result: ConversionResult, options: Optional[ExportOptions] = None) -> ExportResult:
        options = options or ExportOptions()
        parts: list[str] = []

        if options.include_metadata:
            parts.append(self._metadata_header(result))
        if options.include_title and result.title:
            parts.append(f"{result.title}\n{'=' * min(len(result.title), 80)}\n\n")
        parts.append(markdown_to_text(result.markdown))

        return ExportResult(
            content="".join(parts) + "\n",
            filename=f"{sanitize_filename(result.title)}.{self.extension}",
            mime_type=self.mime_type,
            extension=self.extension,
        )

    @staticmethod
    def _metadata_header(result: ConversionResult) -> str:
        lines = ["Document Information", "-" * RULE_WIDTH]
        if result.source_url:
            lines.append(f"Source: {result.source_url}")
        lines.append(f"Exported: {result.timestamp.isoformat()}")
        if result.metadata.author:
            lines.append(f"Author: {result.metadata.author}")
        if result.metadata.word_count:
            lines.append(f"Word Count: {result.metadata.word_count}")
        lines.extend(["-" * RULE_WIDTH, "", ""])
        return "\n".join(lines)
