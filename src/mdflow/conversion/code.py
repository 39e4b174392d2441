"""Code block language detection and normalization."""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional, TypeVar, Union

from bs4 import Tag

from ..models.document import new_tag

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Tag)

DEFAULT_LANGUAGE = "text"


@dataclass(frozen=True)
class LanguageProfile:
    """Detection signals for one language."""

    name: str
    patterns: tuple[re.Pattern[str], ...]
    keywords: tuple[str, ...]
    extensions: tuple[str, ...] = ()

    def score(self, code: str) -> int:
        """Pattern matches count 2, keyword matches count 1."""
        total = 0
        for pattern in self.patterns:
            total += 2 * sum(1 for _ in pattern.finditer(code))
        for keyword in self.keywords:
            total += len(_keyword_pattern(keyword).findall(code))
        return total


_KEYWORD_CACHE: dict[str, re.Pattern[str]] = {}


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    pattern = _KEYWORD_CACHE.get(keyword)
    if pattern is None:
        pattern = re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE)
        _KEYWORD_CACHE[keyword] = pattern
    return pattern


def _p(source: str, flags: int = re.IGNORECASE) -> re.Pattern[str]:
    return re.compile(source, flags)


_JS_CORE = r"\b(const|let|var|async|await|promise|function|=>)\b"

# Order matters: ties go to the language listed first
LANGUAGES: tuple[LanguageProfile, ...] = (
    LanguageProfile(
        "javascript",
        (_p(_JS_CORE), _p(r"\b(console|document|window|navigator)\b")),
        ("const", "let", "var", "function", "async", "await", "=>", "console", "document"),
        (".js", ".jsx", ".mjs"),
    ),
    LanguageProfile(
        "typescript",
        (_p(r"\b(interface|type|enum|namespace|declare|readonly|abstract)\b"), _p(_JS_CORE)),
        ("interface", "type", "enum", "namespace", "declare", "readonly", "abstract", "const", "let"),
        (".ts", ".tsx"),
    ),
    LanguageProfile(
        "python",
        (_p(r"\b(def|class|import|from|as|if __name__|print)\b"), _p(r"^\s*(def|class)\s+", re.MULTILINE)),
        ("def", "class", "import", "from", "as", "if", "else", "elif", "for", "while", "try", "except"),
        (".py", ".pyw"),
    ),
    LanguageProfile(
        "java",
        (
            _p(r"\b(public|private|protected|static|final|abstract|class|interface|extends|implements)\b"),
            _p(r"\b(System|out|println|String|int|boolean|void)\b"),
        ),
        ("public", "private", "protected", "static", "final", "abstract", "class", "interface"),
        (".java",),
    ),
    LanguageProfile(
        "cpp",
        (
            _p(r"\b(include|using namespace|std::|cout|cin|endl)\b"),
            _p(r"\b(class|struct|public|private|protected|virtual|override)\b"),
        ),
        ("include", "using", "namespace", "std", "class", "struct", "public", "private"),
        (".cpp", ".cc", ".cxx", ".hpp", ".h"),
    ),
    LanguageProfile(
        "csharp",
        (
            _p(r"\b(using|namespace|class|struct|interface|enum|delegate)\b"),
            _p(r"\b(public|private|protected|internal|static|readonly|get|set|value)\b"),
        ),
        ("using", "namespace", "class", "struct", "interface", "enum", "delegate"),
        (".cs",),
    ),
    LanguageProfile(
        "go",
        (
            _p(r"\b(func|var|const|type|struct|interface|range|chan|go|select)\b"),
            _p(r"\b(fmt|package|import|defer)\b"),
        ),
        ("func", "var", "const", "type", "struct", "interface", "range", "chan", "go", "select"),
        (".go",),
    ),
    LanguageProfile(
        "rust",
        (
            _p(r"\b(fn|let|mut|const|static|impl|struct|enum|trait|use|mod|crate)\b"),
            _p(r"\b(match|Some|None|Ok|Err|Result|Option|Vec|String)\b"),
        ),
        ("fn", "let", "mut", "const", "static", "impl", "struct", "enum", "trait", "use", "mod"),
        (".rs",),
    ),
    LanguageProfile(
        "php",
        (
            _p(r"<\?php|\?>"),
            _p(r"\b(function|class|extends|implements|public|private|protected|static|final)\b"),
            _p(r"\$\w+\s*=>", 0),
        ),
        ("function", "class", "extends", "implements", "public", "private", "protected"),
        (".php",),
    ),
    LanguageProfile(
        "ruby",
        (
            _p(r"\b(def|class|module|include|require|attr_accessor|do|end)\b"),
            _p(r"\b(print|puts|p|gets)\b"),
        ),
        ("def", "class", "module", "include", "require", "attr_accessor", "do", "end"),
        (".rb",),
    ),
    LanguageProfile(
        "swift",
        (
            _p(r"\b(func|var|let|struct|class|enum|protocol|extension|init|deinit)\b"),
            _p(r"\b(import|private|fileprivate|internal|public|open|static|mutating)\b"),
        ),
        ("func", "var", "let", "struct", "class", "enum", "protocol", "extension"),
        (".swift",),
    ),
    LanguageProfile(
        "kotlin",
        (
            _p(r"\b(fun|val|var|class|object|interface|enum|sealed|data|when)\b"),
            _p(r"\b(package|import|public|private|protected|internal|companion)\b"),
        ),
        ("fun", "val", "var", "class", "object", "interface", "enum", "sealed", "data"),
        (".kt", ".kts"),
    ),
    LanguageProfile(
        "html",
        (
            _p(r"<(!DOCTYPE|html|head|body|div|span|a|p|h[1-6]|ul|ol|li|table|tr|td|th)"),
            _p(r"\b(class|id|style|href|src|alt|title)\s*="),
        ),
        ("html", "head", "body", "div", "span", "class", "id"),
        (".html", ".htm"),
    ),
    LanguageProfile(
        "css",
        (
            _p(r"\.[a-z][\w-]*\s*{"),
            _p(r"#[a-z][\w-]*\s*{"),
            _p(r"\b(width|height|color|background|margin|padding|border|display|position)\s*:"),
        ),
        ("width", "height", "color", "background", "margin", "padding", "border", "display"),
        (".css", ".scss", ".sass", ".less"),
    ),
    LanguageProfile(
        "sql",
        (
            _p(r"\b(SELECT|FROM|WHERE|INSERT|INTO|VALUES|UPDATE|DELETE|CREATE|TABLE|DROP|ALTER)\b"),
            _p(r"\b(JOIN|LEFT|RIGHT|INNER|OUTER|ON|AS|ORDER BY|GROUP BY|HAVING)\b"),
        ),
        ("SELECT", "FROM", "WHERE", "INSERT", "INTO", "VALUES", "UPDATE", "DELETE"),
        (".sql",),
    ),
    LanguageProfile(
        "bash",
        (
            _p(r"\b(if|then|fi|for|do|done|case|esac|while|in|function)\b"),
            _p(r"^\s*#!", re.MULTILINE),
        ),
        ("if", "then", "fi", "for", "do", "done", "case", "esac", "while"),
        (".sh", ".bash"),
    ),
    LanguageProfile(
        "json",
        (_p(r"^\s*[\{\[]", re.MULTILINE), _p(r"\b(true|false|null)\b")),
        ("true", "false", "null"),
        (".json",),
    ),
    LanguageProfile(
        "yaml",
        (_p(r"^\s*[a-z][\w-]*\s*:", re.IGNORECASE | re.MULTILINE), _p(r"^\s*-\s+", re.MULTILINE)),
        ("true", "false", "null", "yes", "no"),
        (".yaml", ".yml"),
    ),
    LanguageProfile(
        "markdown",
        (_p(r"^(#{1,6}\s|[*-]\s|\d+\.\s)", re.MULTILINE), _p(r"\[.*?\]\(.*?\)", 0)),
        (),
        (".md", ".markdown"),
    ),
)

COMMON_CLASS_NAMES = {
    "javascript": "javascript",
    "js": "javascript",
    "typescript": "typescript",
    "ts": "typescript",
    "python": "python",
    "py": "python",
    "java": "java",
    "cpp": "cpp",
    "c++": "cpp",
    "csharp": "csharp",
    "c#": "csharp",
    "go": "go",
    "golang": "go",
    "rust": "rust",
    "php": "php",
    "ruby": "ruby",
    "rb": "ruby",
    "swift": "swift",
    "kotlin": "kotlin",
    "kt": "kotlin",
    "html": "html",
    "css": "css",
    "scss": "scss",
    "sass": "sass",
    "sql": "sql",
    "bash": "bash",
    "sh": "bash",
    "shell": "bash",
    "json": "json",
    "yaml": "yaml",
    "yml": "yaml",
    "xml": "xml",
}

_LANGUAGE_CLASS = re.compile(r"^language-(\w+)")
_LANG_CLASS = re.compile(r"^lang-(\w+)")


@dataclass(frozen=True)
class CodeBlockDescriptor:
    """A fenced code block found in a tree."""

    language: str
    code: str
    line_count: int
    has_explicit_language_hint: bool


def _class_list(value: Union[str, list[str], None]) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return value.split()
    return list(value)


def clean_code(code: str) -> str:
    """Drop surrounding blank lines and trailing whitespace, keep indentation."""
    lines = code.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    return "\n".join(lines).rstrip()


class CodeFormatter:
    """
    Detects code block languages.

    Example:
        formatter = CodeFormatter()
        formatter.detect_language("def foo():\\n    pass")   # 'python'
        formatter.language_from_class("hljs language-go")   # 'go'
    """

    def __init__(self, languages: tuple[LanguageProfile, ...] = LANGUAGES):
        self._languages = languages

    def detect_language(self, code: str) -> str:
        """Return the best-scoring language, or "text" if nothing matches."""
        best_name = DEFAULT_LANGUAGE
        best_score = 0
        for profile in self._languages:
            score = profile.score(code)
            if score > best_score:
                best_name, best_score = profile.name, score
        return best_name

    def language_from_class(self, classes: Union[str, list[str], None]) -> str:
        """
        Read a language from class names.

        language-x wins over lang-x, which wins over bare known names.
        Returns "" when no class names a language.
        """
        class_list = _class_list(classes)
        for pattern in (_LANGUAGE_CLASS, _LANG_CLASS):
            for cls in class_list:
                match = pattern.match(cls)
                if match:
                    return match.group(1).lower()
        for cls in class_list:
            known = COMMON_CLASS_NAMES.get(cls.lower())
            if known:
                return known
        return ""

    def _hinted_language(self, pre: Tag, code: Optional[Tag]) -> str:
        for el in (code, pre):
            if el is None:
                continue
            language = self.language_from_class(el.get("class"))
            if language:
                return language
            for attr in ("data-language", "data-lang"):
                value = str(el.get(attr, "")).strip().lower()
                if value:
                    return COMMON_CLASS_NAMES.get(value, value)
        return ""

    def _describe(self, pre: Tag) -> CodeBlockDescriptor:
        code_el = pre.find("code")
        source = code_el if isinstance(code_el, Tag) else pre
        code = clean_code(source.get_text())
        hint = self._hinted_language(pre, code_el if isinstance(code_el, Tag) else None)
        language = hint or self.detect_language(code)
        return CodeBlockDescriptor(
            language=language,
            code=code,
            line_count=len(code.split("\n")) if code else 0,
            has_explicit_language_hint=bool(hint),
        )

    def process_code_blocks(self, subtree: T, assign_language: bool = True) -> T:
        """
        Normalize every <pre> in a copy of subtree.

        Each block becomes <pre><code class="language-x">code</code></pre>
        with the language from class hints or detection. With
        assign_language=False the code element carries no class.
        """
        root = copy.copy(subtree)
        for pre in root.find_all("pre"):
            if pre.find_parent("pre") is not None:
                continue
            descriptor = self._describe(pre)
            new_code = new_tag("code")
            if assign_language:
                new_code["class"] = [f"language-{descriptor.language}"]
            new_code.string = descriptor.code
            pre.clear()
            pre.attrs = {key: value for key, value in pre.attrs.items() if key.startswith("data-mdflow")}
            pre.append(new_code)
        return root

    def extract_code_blocks(self, subtree: Tag) -> list[CodeBlockDescriptor]:
        return [self._describe(pre) for pre in subtree.find_all("pre") if pre.find_parent("pre") is None]

    def code_statistics(self, subtree: Tag) -> dict[str, Any]:
        """Summarize the code blocks of a tree."""
        blocks = self.extract_code_blocks(subtree)
        languages: dict[str, int] = {}
        for block in blocks:
            languages[block.language] = languages.get(block.language, 0) + 1
        total_lines = sum(block.line_count for block in blocks)
        return {
            "total_blocks": len(blocks),
            "total_lines": total_lines,
            "languages": languages,
            "average_lines": round(total_lines / len(blocks), 1) if blocks else 0.0,
        }
