"""Source document wrapper handed to the conversion pipeline."""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass
from typing import Optional, Union

from bs4 import BeautifulSoup, Tag

PARSER = "html.parser"

_META_CHARSET = re.compile(rb'charset=["\']?([^"\'\s>/;]+)', re.IGNORECASE)


def declared_encoding(html: bytes) -> Optional[str]:
    """Character encoding declared by a meta tag in the first bytes of a page."""
    match = _META_CHARSET.search(html[:2048])
    if match:
        return match.group(1).decode("ascii", errors="ignore").strip() or None
    return None


def parse_html(html: Union[str, bytes]) -> BeautifulSoup:
    """
    Parse markup into a BeautifulSoup tree.

    Repeated attributes on one element keep their first value.
    """
    if isinstance(html, bytes):
        encoding = declared_encoding(html) or "utf-8"
        try:
            html = html.decode(encoding, errors="replace")
        except LookupError:
            html = html.decode("utf-8", errors="replace")
    return BeautifulSoup(html, PARSER, on_duplicate_attribute="ignore")


@dataclass(frozen=True)
class SourceDocument:
    """
    A parsed input document.

    The wrapped tree is never modified by the pipeline; every stage works on
    a copy obtained from copy_tree().

    Example:
        doc = SourceDocument.from_html(html_bytes, base_url="https://example.com/post")
        tree = doc.copy_tree()
    """

    soup: BeautifulSoup
    base_url: Optional[str] = None

    @classmethod
    def from_html(cls, html: Union[str, bytes], base_url: Optional[str] = None) -> SourceDocument:
        return cls(soup=parse_html(html), base_url=base_url)

    def copy_tree(self) -> BeautifulSoup:
        """Return a deep copy of the document tree."""
        return copy.copy(self.soup)

    @property
    def body(self) -> Optional[Tag]:
        body = self.soup.find("body")
        return body if isinstance(body, Tag) else None

    @property
    def title(self) -> Optional[str]:
        title = self.soup.find("title")
        if isinstance(title, Tag):
            text = title.get_text(strip=True)
            return text or None
        return None


_TAG_FACTORY = BeautifulSoup("", PARSER)


def new_tag(name: str, text: Optional[str] = None, **attrs: str) -> Tag:
    """Create a detached element that can be inserted into any tree."""
    tag = _TAG_FACTORY.new_tag(name, attrs=attrs)
    if text is not None:
        tag.string = text
    return tag
