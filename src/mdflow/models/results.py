"""Conversion result records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


@dataclass
class ConversionMetadata:
    """Document metadata and statistics computed from the final Markdown."""

    author: Optional[str] = None
    date: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    description: Optional[str] = None
    word_count: int = 0
    image_count: int = 0
    code_block_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "author": self.author,
            "date": self.date,
            "tags": list(self.tags),
            "description": self.description,
            "word_count": self.word_count,
            "image_count": self.image_count,
            "code_block_count": self.code_block_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversionMetadata:
        return cls(
            author=data.get("author"),
            date=data.get("date"),
            tags=list(data.get("tags") or []),
            description=data.get("description"),
            word_count=int(data.get("word_count", 0)),
            image_count=int(data.get("image_count", 0)),
            code_block_count=int(data.get("code_block_count", 0)),
        )


@dataclass
class ImageRecord:
    """
    One distinct image reference seen during a conversion.

    content holds the downloaded bytes when they were not written to disk.
    """

    original_url: str
    resolved_url: str
    local_path: str
    downloaded: bool
    alt: str = ""
    content: Optional[bytes] = None


@dataclass
class ConversionResult:
    """
    Output of one conversion.

    Example:
        result = await converter.convert(tree, ConversionOptions())
        print(result.title, result.metadata.word_count)
        store_row = result.to_dict()
    """

    markdown: str
    title: str
    source_url: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: ConversionMetadata = field(default_factory=ConversionMetadata)
    # Not serialized; images are reproduced by converting again
    images: list[ImageRecord] = field(default_factory=list)

    def save_images(self, directory: Path) -> list[Path]:
        """
        Write images held in memory under directory at their local paths.

        Images already written during conversion carry no content and are
        skipped.
        """
        written: list[Path] = []
        for record in self.images:
            if not record.downloaded or record.content is None:
                continue
            destination = directory / record.local_path
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(record.content)
            written.append(destination)
        return written

    def to_dict(self) -> dict[str, Any]:
        """Convert the result to a JSON-serializable dictionary."""
        return {
            "markdown": self.markdown,
            "title": self.title,
            "source_url": self.source_url,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversionResult:
        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            parsed = datetime.fromisoformat(timestamp)
        elif isinstance(timestamp, datetime):
            parsed = timestamp
        else:
            parsed = datetime.now(timezone.utc)
        return cls(
            markdown=data.get("markdown", ""),
            title=data.get("title") or "Untitled",
            source_url=data.get("source_url", ""),
            timestamp=parsed,
            metadata=ConversionMetadata.from_dict(data.get("metadata") or {}),
        )
