"""Main content extraction using readability-style scoring."""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional, Union

from bs4 import BeautifulSoup, Tag

from ..errors import ConversionError
from ..models.document import SourceDocument
from .noise_filter import is_hidden

logger = logging.getLogger(__name__)

# Minimum normalized text length for a candidate container
MIN_CONTENT_LENGTH = 200
# Best candidates scoring below this fall back to the body
MIN_SCORE = 20

# Checked in priority order; each contributes at most its first match
CONTENT_SELECTORS = [
    "article",
    '[role="main"]',
    "main",
    ".content",
    ".post",
    ".article",
    ".entry-content",
    "#content",
    ".main-content",
    ".post-content",
    ".article-content",
]

FALLBACK_CANDIDATE_TAGS = ["div", "section"]

NOISE_SELECTORS = [
    # Navigation
    "nav",
    ".nav",
    ".navigation",
    ".navbar",
    ".menu",
    ".breadcrumb",
    ".pagination",
    ".pager",
    # Page chrome
    "header",
    "footer",
    ".header",
    ".footer",
    ".site-header",
    ".site-footer",
    # Sidebars
    ".sidebar",
    ".side-bar",
    "#sidebar",
    ".aside",
    "aside",
    # Comments
    ".comments",
    ".comment-list",
    "#comments",
    ".disqus",
    # Ads and social
    ".advertisement",
    ".ad",
    ".ads",
    ".advertisement-container",
    ".social-share",
    ".social-links",
    ".share-buttons",
    ".related-posts",
    ".recommended",
    ".sponsored",
    # Forms
    "form",
    ".form",
    ".search-form",
    ".subscribe",
    ".newsletter",
    # Embeds
    "iframe",
    "embed",
    "object",
    # Scripts
    "script",
    "style",
    "noscript",
    # Meta blocks
    ".metadata",
    ".post-meta",
    ".entry-meta",
    ".byline",
    ".author-info",
    ".tags",
    ".categories",
    ".taxonomy",
]

HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]

_WHITESPACE = re.compile(r"\s+")
_PUNCTUATION = re.compile(r"[,.?!]")

Document = Union[SourceDocument, BeautifulSoup, Tag]


@dataclass
class ScoredCandidate:
    """A container considered as the main content."""

    element: Tag
    score: float
    order: int


def _text(element: Tag) -> str:
    return _WHITESPACE.sub(" ", element.get_text()).strip()


def link_density(element: Tag) -> float:
    """Ratio of anchor text length to total text length, clamped to [0, 1]."""
    text_length = len(_text(element))
    if text_length == 0:
        return 0.0
    link_length = sum(len(_text(a)) for a in element.find_all("a"))
    if link_length == 0:
        return 0.0
    return min(1.0, link_length / text_length)


def content_score(element: Tag) -> float:
    """
    Score an element by how much it looks like article content.

    Long, punctuated, paragraph-rich text scores high; link-heavy
    containers are penalized.
    """
    text = _text(element)
    if not text:
        return 0.0

    density = link_density(element)
    score = len(text) * (1 - density)
    score += len(_PUNCTUATION.findall(text)) * 10
    score += len(element.find_all("p")) * 5
    score += len(element.find_all("img")) * 3
    score += len(element.find_all(HEADING_TAGS)) * 10

    if density > 0.5:
        score *= 0.5

    return max(0.0, score)


class ContentExtractor:
    """
    Finds the element holding the real content of a page.

    Example:
        extractor = ContentExtractor()
        main = extractor.extract_main_content(SourceDocument.from_html(html))
        metadata = extractor.extract_metadata(doc)
    """

    def __init__(
        self,
        content_selectors: Optional[list[str]] = None,
        noise_selectors: Optional[list[str]] = None,
        min_content_length: int = MIN_CONTENT_LENGTH,
        min_score: float = MIN_SCORE,
    ):
        """
        Initialize the extractor.

        Args:
            content_selectors: Candidate selectors in priority order (overrides defaults)
            noise_selectors: Extra boilerplate selectors (extends defaults)
            min_content_length: Minimum text length for a candidate
            min_score: Minimum score for the best candidate
        """
        self._content_selectors = content_selectors or CONTENT_SELECTORS
        self._noise_selectors = list(NOISE_SELECTORS)
        if noise_selectors:
            self._noise_selectors.extend(noise_selectors)
        self._min_content_length = min_content_length
        self._min_score = min_score

    @staticmethod
    def _root_of(document: Optional[Document]) -> Tag:
        if document is None:
            raise ConversionError("No document to extract content from")
        if isinstance(document, SourceDocument):
            return document.soup
        return document

    def _remove_noise(self, root: Tag) -> None:
        for selector in self._noise_selectors:
            try:
                matches = root.select(selector)
            except Exception as e:
                logger.warning(f"Skipping noise selector {selector!r}: {e}")
                continue
            for el in matches:
                el.extract()

        for el in [el for el in root.find_all(True) if is_hidden(el)]:
            el.extract()

    def find_candidates(self, root: Tag) -> list[Tag]:
        """Collect candidate containers in discovery order."""
        candidates: list[Tag] = []
        for selector in self._content_selectors:
            element = root.select_one(selector)
            if element is None or any(element is c for c in candidates):
                continue
            if len(_text(element)) >= self._min_content_length:
                candidates.append(element)

        if not candidates:
            for element in root.find_all(FALLBACK_CANDIDATE_TAGS):
                if len(_text(element)) >= self._min_content_length:
                    candidates.append(element)

        return candidates

    def score_candidates(self, candidates: list[Tag]) -> list[ScoredCandidate]:
        return [ScoredCandidate(element=el, score=content_score(el), order=i) for i, el in enumerate(candidates)]

    def extract_main_content(self, document: Optional[Document]) -> Tag:
        """
        Return the highest-scoring content container.

        The input is not modified. When no candidate scores at least
        min_score, the body (or the whole tree when there is no body) of the
        boilerplate-free copy is returned.

        Raises:
            ConversionError: If document is None
        """
        root = copy.copy(self._root_of(document))
        self._remove_noise(root)

        best: Optional[ScoredCandidate] = None
        for candidate in self.score_candidates(self.find_candidates(root)):
            # Strict comparison keeps the earlier candidate on ties
            if best is None or candidate.score > best.score:
                best = candidate

        if best is not None and best.score >= self._min_score:
            logger.debug(f"Selected <{best.element.name}> with score {best.score:.1f}")
            return best.element

        body = root.find("body")
        if isinstance(body, Tag):
            return body
        return root

    def extract_metadata(self, document: Optional[Document]) -> dict[str, Any]:
        """
        Read title, author, date, description and tags from document metadata.

        Only keys that are present in the document are returned.
        """
        root = self._root_of(document)
        metadata: dict[str, Any] = {}

        title = root.find("title")
        if isinstance(title, Tag) and title.get_text(strip=True):
            metadata["title"] = title.get_text(strip=True)

        lookups = {
            "author": 'meta[name="author"]',
            "date": 'meta[name="date"], meta[property="article:published_time"]',
            "description": 'meta[name="description"], meta[property="og:description"]',
            "tags": 'meta[name="keywords"], meta[name="tags"]',
        }
        for key, selector in lookups.items():
            meta = root.select_one(selector)
            content = str(meta.get("content", "")).strip() if meta is not None else ""
            if not content:
                continue
            if key == "tags":
                metadata[key] = [tag.strip() for tag in content.split(",") if tag.strip()]
            else:
                metadata[key] = content

        return metadata
