"""Document tree to Markdown conversion."""

from __future__ import annotations

import asyncio
import copy
import logging
import re
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Union
from urllib.parse import urljoin

import html2text
from bs4 import NavigableString, Tag
from bs4.element import PreformattedString

from ..errors import ConversionError
from ..http.protocols import HttpClient
from ..models.config import ConversionOptions, CustomRule, RuleAction
from ..models.document import SourceDocument, parse_html
from ..models.results import ConversionMetadata, ConversionResult
from .code import DEFAULT_LANGUAGE, CodeFormatter
from .extractor import ContentExtractor
from .images import DEFAULT_IMAGE_TIMEOUT, ImageOptions, ImageProcessor
from .math import MathFormatter
from .noise_filter import NoiseFilter
from .rules import RuleSet
from .tables import TABLE_PLACEHOLDER_TAG, TableFormatter

logger = logging.getLogger(__name__)

UNTITLED = "Untitled"

_WHITESPACE = re.compile(r"\s+")
_BLANK_LINES = re.compile(r"\n{3,}")
_BACKTICK_RUN = re.compile(r"`+")
_IMAGE_REFERENCE = re.compile(r"!\[[^\]]*\]\([^)]*\)")
_FENCE_LINE = re.compile(r"^\s*(`{3,}|~{3,})", re.MULTILINE)

# Applied to every text node outside code
_ESCAPES = [
    (re.compile(r"\\"), r"\\\\"),
    (re.compile(r"\*"), r"\\*"),
    (re.compile(r"_"), r"\\_"),
    (re.compile(r"`"), r"\\`"),
    (re.compile(r"\["), r"\\["),
    (re.compile(r"\]"), r"\\]"),
    (re.compile(r"^(#{1,6} )"), r"\\\1"),
    (re.compile(r"^>"), r"\\>"),
    (re.compile(r"^([-+]) "), r"\\\1 "),
    (re.compile(r"^(\d+)\. "), r"\1\\. "),
]


class NodeKind(str, Enum):
    """Rendering variants of a tree element."""

    HEADING = "heading"
    PARAGRAPH = "paragraph"
    STRONG = "strong"
    EMPHASIS = "emphasis"
    STRIKETHROUGH = "strikethrough"
    LINK = "link"
    IMAGE = "image"
    LIST = "list"
    LIST_ITEM = "list_item"
    BLOCKQUOTE = "blockquote"
    INLINE_CODE = "inline_code"
    CODE_BLOCK = "code_block"
    LINE_BREAK = "line_break"
    RULE = "rule"
    TABLE = "table"
    BLOCK = "block"
    INLINE = "inline"
    SKIP = "skip"


TAG_KINDS: dict[str, NodeKind] = {
    **{f"h{level}": NodeKind.HEADING for level in range(1, 7)},
    "p": NodeKind.PARAGRAPH,
    "strong": NodeKind.STRONG,
    "b": NodeKind.STRONG,
    "em": NodeKind.EMPHASIS,
    "i": NodeKind.EMPHASIS,
    "del": NodeKind.STRIKETHROUGH,
    "s": NodeKind.STRIKETHROUGH,
    "strike": NodeKind.STRIKETHROUGH,
    "a": NodeKind.LINK,
    "img": NodeKind.IMAGE,
    "ul": NodeKind.LIST,
    "ol": NodeKind.LIST,
    "li": NodeKind.LIST_ITEM,
    "blockquote": NodeKind.BLOCKQUOTE,
    "code": NodeKind.INLINE_CODE,
    "kbd": NodeKind.INLINE_CODE,
    "samp": NodeKind.INLINE_CODE,
    "pre": NodeKind.CODE_BLOCK,
    "br": NodeKind.LINE_BREAK,
    "hr": NodeKind.RULE,
    TABLE_PLACEHOLDER_TAG: NodeKind.TABLE,
    # Block containers
    "[document]": NodeKind.BLOCK,
    "html": NodeKind.BLOCK,
    "body": NodeKind.BLOCK,
    "div": NodeKind.BLOCK,
    "section": NodeKind.BLOCK,
    "article": NodeKind.BLOCK,
    "main": NodeKind.BLOCK,
    "header": NodeKind.BLOCK,
    "footer": NodeKind.BLOCK,
    "nav": NodeKind.BLOCK,
    "aside": NodeKind.BLOCK,
    "figure": NodeKind.BLOCK,
    "figcaption": NodeKind.BLOCK,
    "address": NodeKind.BLOCK,
    "details": NodeKind.BLOCK,
    "summary": NodeKind.BLOCK,
    "dl": NodeKind.BLOCK,
    "dt": NodeKind.BLOCK,
    "dd": NodeKind.BLOCK,
    "fieldset": NodeKind.BLOCK,
    "form": NodeKind.BLOCK,
    "center": NodeKind.BLOCK,
    "table": NodeKind.BLOCK,
    "tr": NodeKind.BLOCK,
    # Never rendered
    "head": NodeKind.SKIP,
    "title": NodeKind.SKIP,
    "meta": NodeKind.SKIP,
    "link": NodeKind.SKIP,
    "script": NodeKind.SKIP,
    "style": NodeKind.SKIP,
    "noscript": NodeKind.SKIP,
    "template": NodeKind.SKIP,
    "svg": NodeKind.SKIP,
    "canvas": NodeKind.SKIP,
    "video": NodeKind.SKIP,
    "audio": NodeKind.SKIP,
    "iframe": NodeKind.SKIP,
    "object": NodeKind.SKIP,
    "embed": NodeKind.SKIP,
    "input": NodeKind.SKIP,
    "select": NodeKind.SKIP,
    "textarea": NodeKind.SKIP,
}

BLOCK_KINDS = frozenset(
    {
        NodeKind.HEADING,
        NodeKind.PARAGRAPH,
        NodeKind.LIST,
        NodeKind.LIST_ITEM,
        NodeKind.BLOCKQUOTE,
        NodeKind.CODE_BLOCK,
        NodeKind.RULE,
        NodeKind.TABLE,
        NodeKind.BLOCK,
    }
)


def kind_of(element: Tag) -> NodeKind:
    """Rendering variant of an element; unknown tags render their children inline."""
    return TAG_KINDS.get(element.name or "", NodeKind.INLINE)


def _is_block(node: object) -> bool:
    return isinstance(node, Tag) and kind_of(node) in BLOCK_KINDS


def escape_markdown(text: str) -> str:
    for pattern, replacement in _ESCAPES:
        text = pattern.sub(replacement, text)
    return text


def _wrap_inline(content: str, delimiter: str) -> str:
    stripped = content.strip()
    if not stripped:
        return content
    lead = content[: len(content) - len(content.lstrip())]
    trail = content[len(content.rstrip()) :]
    return f"{lead}{delimiter}{stripped}{delimiter}{trail}"


def _longest_backtick_run(text: str) -> int:
    return max((len(run) for run in _BACKTICK_RUN.findall(text)), default=0)


def _code_language(element: Optional[Tag]) -> str:
    if element is None:
        return ""
    classes = element.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    for name in classes:
        if name.startswith("language-"):
            language = name[len("language-") :]
            return "" if language == DEFAULT_LANGUAGE else language
    return ""


def _title_attr(element: Tag) -> str:
    title = str(element.get("title", "")).strip()
    if not title:
        return ""
    return ' "' + title.replace('"', '\\"') + '"'


def post_process(markdown: str) -> str:
    """Trim trailing whitespace per line, keep at most one blank line, trim the document."""
    markdown = "\n".join(line.rstrip() for line in markdown.split("\n"))
    markdown = _BLANK_LINES.sub("\n\n", markdown)
    return markdown.strip()


class _MarkdownRenderer:
    """Walks a prepared tree and renders each node by its NodeKind."""

    def __init__(self, options: ConversionOptions, rules: RuleSet, base_url: Optional[str] = None):
        self._options = options
        self._rules = rules
        self._base_url = base_url
        self._handlers: dict[NodeKind, Callable[[Tag], str]] = {
            NodeKind.HEADING: self._heading,
            NodeKind.PARAGRAPH: self._paragraph,
            NodeKind.STRONG: lambda el: self._emphasis(el, "**"),
            NodeKind.EMPHASIS: lambda el: self._emphasis(el, "*"),
            NodeKind.STRIKETHROUGH: lambda el: self._emphasis(el, "~~"),
            NodeKind.LINK: self._link,
            NodeKind.IMAGE: self._image,
            NodeKind.LIST: self._list,
            NodeKind.LIST_ITEM: lambda el: f"\n{self._list_item(el, '-')}\n",
            NodeKind.BLOCKQUOTE: self._blockquote,
            NodeKind.INLINE_CODE: self._inline_code,
            NodeKind.CODE_BLOCK: self._code_block,
            NodeKind.LINE_BREAK: lambda el: "\n",
            NodeKind.RULE: lambda el: "\n\n---\n\n",
            NodeKind.TABLE: lambda el: f"\n\n{el.get_text()}\n\n",
            NodeKind.BLOCK: lambda el: f"\n\n{self._children(el)}\n\n",
            NodeKind.INLINE: self._children,
            NodeKind.SKIP: lambda el: "",
        }

    def render(self, root: Tag) -> str:
        return self._node(root)

    def _node(self, node: object) -> str:
        if isinstance(node, Tag):
            return self._element(node)
        if isinstance(node, NavigableString) and not isinstance(node, PreformattedString):
            return self._text(node)
        return ""

    def _element(self, element: Tag, default: Optional[Callable[[Tag], str]] = None) -> str:
        render = default or self._handlers[kind_of(element)]
        rule: Optional[CustomRule] = self._rules.rule_for(element)
        if rule is None:
            return render(element)
        if rule.action == RuleAction.REPLACE:
            replacement = rule.replacement
            return f"\n\n{replacement}\n\n" if _is_block(element) else replacement
        return self._rules.render_override(rule, render(element))

    def _children(self, element: Tag) -> str:
        return "".join(self._node(child) for child in element.children)

    def _text(self, node: NavigableString) -> str:
        text = _WHITESPACE.sub(" ", str(node))
        parent = node.parent
        previous, following = node.previous_sibling, node.next_sibling
        if (previous is None and parent is not None and _is_block(parent)) or _is_block(previous):
            text = text.lstrip()
        if (following is None and parent is not None and _is_block(parent)) or _is_block(following):
            text = text.rstrip()
        return escape_markdown(text)

    def _inline_content(self, element: Tag) -> str:
        return _WHITESPACE.sub(" ", self._children(element)).strip()

    def _heading(self, element: Tag) -> str:
        content = self._inline_content(element)
        if not content:
            return ""
        level = int((element.name or "h1")[1])
        return f"\n\n{'#' * level} {content}\n\n"

    def _paragraph(self, element: Tag) -> str:
        content = self._children(element).strip()
        return f"\n\n{content}\n\n" if content else ""

    def _emphasis(self, element: Tag, delimiter: str) -> str:
        content = self._children(element)
        if not self._options.preserve_formatting:
            return content
        return _wrap_inline(content, delimiter)

    def _link(self, element: Tag) -> str:
        content = self._children(element).strip()
        href = str(element.get("href", "")).strip()
        if not href or not content:
            return content
        if self._base_url and not href.startswith("#"):
            href = urljoin(self._base_url, href)
        href = href.replace(" ", "%20").replace(")", "%29")
        return f"[{content}]({href}{_title_attr(element)})"

    def _image(self, element: Tag) -> str:
        src = str(element.get("src", "")).strip()
        if not src:
            return ""
        alt = _WHITESPACE.sub(" ", str(element.get("alt", ""))).strip()
        alt = alt.replace("[", "\\[").replace("]", "\\]")
        src = src.replace(" ", "%20").replace(")", "%29")
        return f"![{alt}]({src}{_title_attr(element)})"

    def _list(self, element: Tag) -> str:
        ordered = element.name == "ol"
        try:
            start = int(str(element.get("start", "1")))
        except ValueError:
            start = 1
        items = [child for child in element.children if isinstance(child, Tag) and child.name == "li"]
        if not items:
            return self._handlers[NodeKind.BLOCK](element)
        loose = any(item.find("p", recursive=False) is not None for item in items)
        rendered = []
        for offset, item in enumerate(items):
            marker = f"{start + offset}." if ordered else "-"
            rendered.append(self._element(item, lambda el, m=marker: self._list_item(el, m)))
        separator = "\n\n" if loose else "\n"
        return "\n\n" + separator.join(r.strip("\n") for r in rendered if r.strip()) + "\n\n"

    def _list_item(self, element: Tag, marker: str) -> str:
        content = _BLANK_LINES.sub("\n\n", self._children(element).strip())
        if element.find("p", recursive=False) is None and element.find("pre") is None:
            content = re.sub(r"\n{2,}", "\n", content)
        indent = " " * (len(marker) + 1)
        lines = content.split("\n")
        rest = [f"{indent}{line}" if line.strip() else "" for line in lines[1:]]
        return "\n".join([f"{marker} {lines[0]}".rstrip(), *rest])

    def _blockquote(self, element: Tag) -> str:
        content = _BLANK_LINES.sub("\n\n", self._children(element).strip())
        if not content:
            return ""
        quoted = "\n".join(f"> {line}" if line else ">" for line in content.split("\n"))
        return f"\n\n{quoted}\n\n"

    def _inline_code(self, element: Tag) -> str:
        if element.find_parent("pre") is not None:
            return element.get_text()
        text = _WHITESPACE.sub(" ", element.get_text())
        if not text.strip():
            return ""
        fence = "`" * (_longest_backtick_run(text) + 1)
        if text.startswith("`") or text.endswith("`"):
            text = f" {text} "
        return f"{fence}{text}{fence}"

    def _code_block(self, element: Tag) -> str:
        code_el = element.find("code")
        code_el = code_el if isinstance(code_el, Tag) else None
        code = (code_el or element).get_text().strip("\n")
        if not code.strip():
            return ""
        language = _code_language(code_el) if self._options.enable_code_highlight else ""
        fence = "`" * max(3, _longest_backtick_run(code) + 1)
        return f"\n\n{fence}{language}\n{code}\n{fence}\n\n"


class FallbackRenderer:
    """
    Renders a tree with html2text.

    Used when the node walk fails on a document.

    Example:
        markdown = FallbackRenderer().render(tree, "https://example.com/post")
    """

    def __init__(
        self,
        body_width: int = 0,
        inline_links: bool = True,
        protect_links: bool = True,
        unicode_snob: bool = True,
        escape_snob: bool = True,
        mark_code: bool = True,
    ):
        self._converter = html2text.HTML2Text()

        # Line width (0 = no wrapping for consistent output)
        self._converter.body_width = body_width

        self._converter.inline_links = inline_links
        self._converter.wrap_links = False
        self._converter.protect_links = protect_links
        self._converter.unicode_snob = unicode_snob
        self._converter.escape_snob = escape_snob
        self._converter.mark_code = mark_code
        self._converter.default_image_alt = ""
        self._converter.single_line_break = False

    def render(self, root: Tag, base_url: Optional[str] = None) -> str:
        self._converter.baseurl = base_url or ""
        return self._converter.handle(str(root))


class MarkdownConverter:
    """
    Converts a content subtree into a ConversionResult.

    The converter never mutates its input. Each call runs the code, table,
    image and math passes on its own copy, walks the prepared tree and
    post-processes the Markdown.

    Example:
        converter = MarkdownConverter(http_client=client, image_dir=Path("./out"))
        result = await converter.convert(subtree, ConversionOptions(), base_url=url)
        print(result.markdown)
    """

    def __init__(
        self,
        http_client: Optional[HttpClient] = None,
        image_dir: Optional[Path] = None,
        image_timeout: float = DEFAULT_IMAGE_TIMEOUT,
        noise_filter: Optional[NoiseFilter] = None,
        code_formatter: Optional[CodeFormatter] = None,
        table_formatter: Optional[TableFormatter] = None,
        math_formatter: Optional[MathFormatter] = None,
        base_rules: tuple[CustomRule, ...] = (),
    ):
        """
        Initialize the converter.

        Args:
            http_client: Client for image downloads
            image_dir: Directory downloaded images are written under; when
                       None their bytes stay on ConversionResult.images
            image_timeout: Per-image fetch timeout in seconds
            noise_filter: Filter used to strip script/style/comment nodes
            code_formatter: Code block pass
            table_formatter: Table pass
            math_formatter: Formula extraction and restore
            base_rules: Rules applied after the per-call custom rules
        """
        self._http_client = http_client
        self._image_dir = image_dir
        self._image_timeout = image_timeout
        self._noise_filter = noise_filter or NoiseFilter()
        self._code_formatter = code_formatter or CodeFormatter()
        self._table_formatter = table_formatter or TableFormatter()
        self._math_formatter = math_formatter or MathFormatter()
        self._extractor = ContentExtractor()
        self._fallback = FallbackRenderer()
        self._base_rules = tuple(base_rules)

    async def convert(
        self,
        subtree: Optional[Union[Tag, SourceDocument]],
        options: Optional[ConversionOptions] = None,
        base_url: Optional[str] = None,
        source_url: str = "",
        metadata_source: Optional[Union[Tag, SourceDocument]] = None,
    ) -> ConversionResult:
        """
        Convert a subtree to Markdown.

        Args:
            subtree: Content to convert (a SourceDocument converts its whole tree)
            options: Conversion options (defaults when None)
            base_url: URL that relative links and images resolve against
            source_url: URL recorded on the result (defaults to base_url)
            metadata_source: Tree that title and metadata are read from,
                             usually the whole original page (defaults to subtree)

        Returns:
            ConversionResult with Markdown, title and metadata

        Raises:
            ConversionError: If subtree is None
        """
        if subtree is None:
            raise ConversionError("No content to convert")
        options = options or ConversionOptions()

        if isinstance(subtree, SourceDocument):
            base_url = base_url or subtree.base_url
            subtree = subtree.soup
        if isinstance(metadata_source, SourceDocument):
            metadata_source = metadata_source.soup
        metadata_root = metadata_source if metadata_source is not None else subtree

        rules = RuleSet((*options.custom_rules, *self._base_rules))

        tree = self._noise_filter.remove_noise_tags(copy.copy(subtree))
        tree = rules.apply(tree)
        tree = self._code_formatter.process_code_blocks(tree, assign_language=options.enable_code_highlight)
        tree = self._table_formatter.process_tables(tree)

        images = []
        if options.download_images or options.rewrite_absolute:
            processor = ImageProcessor(self._http_client, save_dir=self._image_dir, timeout=self._image_timeout)
            image_options = ImageOptions(
                download_images=options.download_images,
                target_path=options.image_path,
                rewrite_absolute=options.rewrite_absolute,
            )
            tree = await processor.process(tree, image_options, base_url)
            images = processor.records

        placeholders = []
        if options.enable_math:
            tree, placeholders = self._math_formatter.extract_with_replacement(tree)

        markdown = self._render(tree, options, rules, base_url)
        markdown = rules.apply_regex(markdown)
        if placeholders:
            markdown = self._math_formatter.restore(markdown, placeholders)
        markdown = post_process(markdown)

        metadata = ConversionMetadata()
        if options.include_metadata:
            extracted = self._extractor.extract_metadata(metadata_root)
            metadata.author = extracted.get("author")
            metadata.date = extracted.get("date")
            metadata.tags = extracted.get("tags", [])
            metadata.description = extracted.get("description")
        metadata.word_count = len(markdown.split())
        metadata.image_count = len(_IMAGE_REFERENCE.findall(markdown))
        metadata.code_block_count = len(_FENCE_LINE.findall(markdown)) // 2

        title = self.resolve_title(metadata_root, subtree)
        logger.debug(f"Converted {title!r}: {metadata.word_count} words")

        return ConversionResult(
            markdown=markdown,
            title=title,
            source_url=source_url or base_url or "",
            metadata=metadata,
            images=images,
        )

    def _render(self, tree: Tag, options: ConversionOptions, rules: RuleSet, base_url: Optional[str]) -> str:
        try:
            return _MarkdownRenderer(options, rules, base_url).render(tree)
        except Exception as e:
            logger.warning(f"Markdown rendering failed, using html2text: {e}")
            return self._fallback.render(tree, base_url)

    @staticmethod
    def resolve_title(metadata_root: Tag, subtree: Optional[Tag] = None) -> str:
        """Title from <title>, the first <h1>, og:title, else "Untitled"."""
        title = metadata_root.find("title")
        if isinstance(title, Tag) and title.get_text(strip=True):
            return title.get_text(strip=True)

        for root in (metadata_root, subtree):
            if root is None:
                continue
            h1 = root.find("h1")
            if isinstance(h1, Tag) and h1.get_text(strip=True):
                return _WHITESPACE.sub(" ", h1.get_text()).strip()

        og_title = metadata_root.find("meta", attrs={"property": "og:title"})
        if isinstance(og_title, Tag) and str(og_title.get("content", "")).strip():
            return str(og_title["content"]).strip()

        return UNTITLED

    def convert_blocking(
        self,
        subtree: Optional[Union[Tag, SourceDocument]],
        options: Optional[ConversionOptions] = None,
        **kwargs: object,
    ) -> ConversionResult:
        """
        Blocking wrapper around convert().

        WARNING: Do not call from within an existing event loop. Use
        await convert() instead.
        """
        try:
            asyncio.get_running_loop()
            raise RuntimeError("convert_blocking() called from async context. Use 'await convert()' instead.")
        except RuntimeError as e:
            if "no running event loop" not in str(e).lower():
                raise

        return asyncio.run(self.convert(subtree, options, **kwargs))  # type: ignore[arg-type]


def html_to_markdown(html: str, options: Optional[ConversionOptions] = None, base_url: Optional[str] = None) -> str:
    """Convert an HTML string to Markdown with default components."""
    soup = parse_html(html)
    return MarkdownConverter().convert_blocking(soup, options, base_url=base_url).markdown
