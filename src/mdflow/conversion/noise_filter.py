"""Removal of hidden, empty and unsafe markup."""

from __future__ import annotations

import copy
import logging
import re
from typing import TypeVar
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from bs4 import Comment, NavigableString, Tag

from ..models.document import parse_html

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Tag)

VOID_ELEMENTS = frozenset(
    {"br", "hr", "img", "input", "area", "base", "col", "embed", "link", "meta", "source", "track", "wbr"}
)
MEDIA_ELEMENTS = frozenset({"img", "svg", "canvas", "video", "picture", "audio", "iframe"})
FORM_CONTROLS = frozenset({"input", "textarea", "select"})
PRESERVE_WHITESPACE = frozenset({"pre", "code", "textarea"})
TABLE_CELLS = frozenset({"td", "th"})
NOISE_TAGS = ("script", "style", "noscript")

GLOBAL_ATTRIBUTES = frozenset({"class", "id", "title", "role"})
ALLOWED_ATTRIBUTES: dict[str, frozenset[str]] = {
    "a": frozenset({"href", "target", "rel", "download"}),
    "img": frozenset({"src", "alt", "title", "loading", "width", "height"}),
    "video": frozenset({"src", "poster", "controls", "loop", "muted", "autoplay"}),
    "audio": frozenset({"src", "controls", "loop", "muted", "autoplay"}),
    "iframe": frozenset({"src", "width", "height", "frameborder", "allow", "allowfullscreen"}),
    "source": frozenset({"src", "type"}),
    "td": frozenset({"colspan", "rowspan", "headers", "style", "align"}),
    "th": frozenset({"colspan", "rowspan", "headers", "scope", "style", "align"}),
    "time": frozenset({"datetime"}),
    "data": frozenset({"value"}),
    "code": frozenset({"class"}),
    "pre": frozenset({"class"}),
    "math": frozenset({"display", "xmlns"}),
    "annotation": frozenset({"encoding"}),
    "ol": frozenset({"start", "reversed", "type"}),
}

URL_ATTRIBUTES = ("href", "src", "action", "formaction", "xlink:href")
UNSAFE_SCHEMES = ("javascript:", "vbscript:", "data:text/html")

TRACKING_PARAMS = frozenset(
    {"utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content", "fbclid", "gclid", "msclkid"}
)

_WHITESPACE = re.compile(r"\s+")
_CONTROL_AND_SPACE = re.compile(r"[\x00-\x20\x7f]+")


def is_hidden(element: Tag) -> bool:
    """Check whether inline markup hides an element."""
    if element.has_attr("hidden"):
        return True
    if str(element.get("aria-hidden", "")).strip().lower() == "true":
        return True

    style = element.get("style")
    if not style:
        return False
    if isinstance(style, list):
        style = " ".join(style)
    declarations = _WHITESPACE.sub("", style).lower().split(";")
    for declaration in declarations:
        prop, _, value = declaration.partition(":")
        value = value.replace("!important", "")
        if prop == "display" and value == "none":
            return True
        if prop == "visibility" and value == "hidden":
            return True
        if prop == "opacity":
            try:
                if float(value.rstrip("%")) == 0:
                    return True
            except ValueError:
                continue
    return False


def _inside(element: Tag, names: frozenset[str]) -> bool:
    return element.find_parent(list(names)) is not None


def _is_empty(element: Tag) -> bool:
    name = element.name
    if name in VOID_ELEMENTS or name in MEDIA_ELEMENTS or name in TABLE_CELLS:
        return False
    if name in PRESERVE_WHITESPACE or _inside(element, PRESERVE_WHITESPACE):
        return False
    if element.get_text().strip():
        return False
    if element.find(list(MEDIA_ELEMENTS)) is not None:
        return False
    if element.find("br") is not None:
        return False
    if element.find(list(FORM_CONTROLS)) is not None:
        return False
    return True


class NoiseFilter:
    """
    Removes noise from a markup tree.

    All methods work on a copy and never raise on malformed input.

    Example:
        noise_filter = NoiseFilter()
        cleaned = noise_filter.clean(soup)
        safe = noise_filter.sanitize(cleaned)
    """

    def clean(self, subtree: T) -> T:
        """
        Remove hidden and empty nodes, strip attributes, normalize whitespace.

        Args:
            subtree: Tree or element to clean (left untouched)

        Returns:
            Cleaned copy
        """
        root = copy.copy(subtree)
        self._remove_hidden(root)
        self._remove_empty(root)
        self._strip_attributes(root)
        self._normalize_whitespace(root)
        return root

    def clean_html(self, html: str) -> str:
        """Clean a markup string and return the cleaned markup."""
        soup = parse_html(html)
        return str(self.clean(soup))

    def _remove_hidden(self, root: Tag) -> None:
        hidden = [el for el in root.find_all(True) if is_hidden(el)]
        for el in hidden:
            el.extract()

    def _remove_empty(self, root: Tag) -> None:
        empty = [el for el in root.find_all(True) if _is_empty(el)]
        for el in empty:
            el.extract()

    def _strip_attributes(self, root: Tag) -> None:
        for el in root.find_all(True):
            allowed = ALLOWED_ATTRIBUTES.get(el.name, frozenset())
            for attr in list(el.attrs):
                if attr.startswith(("data-", "aria-")):
                    continue
                if attr in GLOBAL_ATTRIBUTES or attr in allowed:
                    continue
                del el[attr]

    def _normalize_whitespace(self, root: Tag) -> None:
        for text in list(root.find_all(string=True)):
            if type(text) is not NavigableString:
                continue
            parent = text.parent
            if parent is not None and (
                parent.name in PRESERVE_WHITESPACE or _inside(parent, PRESERVE_WHITESPACE)
            ):
                continue
            normalized = _WHITESPACE.sub(" ", str(text))
            if normalized != str(text):
                text.replace_with(NavigableString(normalized))

    def sanitize(self, subtree: T) -> T:
        """Remove event handler attributes and script-bearing URLs."""
        root = copy.copy(subtree)
        for el in root.find_all(True):
            for attr in list(el.attrs):
                if attr.lower().startswith("on"):
                    del el[attr]
                    continue
                if attr.lower() in URL_ATTRIBUTES:
                    value = _CONTROL_AND_SPACE.sub("", str(el.get(attr, ""))).lower()
                    if value.startswith(UNSAFE_SCHEMES):
                        logger.debug(f"Removed unsafe {attr} on <{el.name}>")
                        del el[attr]
        return root

    def clean_urls(self, subtree: T) -> T:
        """Remove tracking query parameters from absolute anchor hrefs."""
        root = copy.copy(subtree)
        for link in root.find_all("a", href=True):
            href = str(link["href"])
            try:
                parts = urlsplit(href)
            except ValueError:
                continue
            if parts.scheme not in ("http", "https") or not parts.query:
                continue
            query = parse_qsl(parts.query, keep_blank_values=True)
            kept = [(key, value) for key, value in query if key not in TRACKING_PARAMS]
            if len(kept) != len(query):
                link["href"] = urlunsplit(parts._replace(query=urlencode(kept)))
        return root

    def remove_noise_tags(self, subtree: T) -> T:
        """Remove script, style and noscript elements and comments."""
        root = copy.copy(subtree)
        for el in root.find_all(NOISE_TAGS):
            el.extract()
        for comment in root.find_all(string=lambda s: isinstance(s, Comment)):
            comment.extract()
        return root

