"""Math formula protection and MathML to LaTeX conversion."""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar, Union

from bs4 import NavigableString, Tag

from ..models.document import parse_html

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Tag)

# Alphanumeric so that Markdown escaping leaves it intact
PLACEHOLDER_TEMPLATE = "MDFLOWMATH{index}END"

BLOCK_DOLLARS = re.compile(r"\$\$([^$]+)\$\$")
INLINE_DOLLARS = re.compile(r"\$([^$]+)\$")

# Restored as a display block when longer than this and containing a command
BLOCK_MIN_LENGTH = 50

SKIP_TEXT_PARENTS = frozenset({"pre", "code", "script", "style", "textarea", "math"})
CLASS_PREFIX = "math"
TEX_ENCODINGS = frozenset({"application/x-tex", "tex", "latex"})

GREEK_LETTERS = {
    "α": r"\alpha",
    "β": r"\beta",
    "γ": r"\gamma",
    "δ": r"\delta",
    "ε": r"\epsilon",
    "ζ": r"\zeta",
    "η": r"\eta",
    "θ": r"\theta",
    "κ": r"\kappa",
    "λ": r"\lambda",
    "μ": r"\mu",
    "ν": r"\nu",
    "ξ": r"\xi",
    "π": r"\pi",
    "ρ": r"\rho",
    "σ": r"\sigma",
    "τ": r"\tau",
    "φ": r"\phi",
    "χ": r"\chi",
    "ψ": r"\psi",
    "ω": r"\omega",
    "Γ": r"\Gamma",
    "Δ": r"\Delta",
    "Θ": r"\Theta",
    "Λ": r"\Lambda",
    "Ξ": r"\Xi",
    "Π": r"\Pi",
    "Σ": r"\Sigma",
    "Φ": r"\Phi",
    "Ψ": r"\Psi",
    "Ω": r"\Omega",
}

OPERATORS = {
    "−": "-",
    "×": r"\times",
    "÷": r"\div",
    "·": r"\cdot",
    "±": r"\pm",
    "∑": r"\sum",
    "∏": r"\prod",
    "∫": r"\int",
    "∂": r"\partial",
    "∞": r"\infty",
    "∇": r"\nabla",
}

RELATIONS = {
    "≤": r"\le",
    "≥": r"\ge",
    "≠": r"\ne",
    "≈": r"\approx",
    "≡": r"\equiv",
    "∈": r"\in",
    "→": r"\to",
}

SYMBOLS = {**GREEK_LETTERS, **OPERATORS, **RELATIONS}

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class FormulaPlaceholder:
    """A formula lifted out of the tree, replaced by an opaque token."""

    index: int
    formula: str
    is_block: bool

    @property
    def token(self) -> str:
        return PLACEHOLDER_TEMPLATE.format(index=self.index)


def is_block_formula(formula: str) -> bool:
    return "\\" in formula and len(formula) > BLOCK_MIN_LENGTH


def _has_math_class(element: Tag) -> bool:
    classes = element.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    return any(c.startswith(CLASS_PREFIX) for c in classes)


def _attached_to(element: Tag, root: Tag) -> bool:
    node: Optional[Tag] = element
    while node is not None:
        if node is root:
            return True
        node = node.parent
    return False


def _map_symbols(text: str) -> str:
    out = []
    for ch in text:
        latex = SYMBOLS.get(ch)
        if latex is None:
            out.append(ch)
        elif latex.startswith("\\"):
            # Commands need a separator before a following letter
            out.append(latex + " ")
        else:
            out.append(latex)
    return "".join(out)


class MathFormatter:
    """
    Protects math formulas from Markdown rendering.

    Formulas are lifted out of the tree before rendering and restored
    verbatim afterwards:

        tree, placeholders = formatter.extract_with_replacement(tree)
        markdown = render(tree)
        markdown = formatter.restore(markdown, placeholders)
    """

    def extract_with_replacement(self, subtree: T) -> tuple[T, list[FormulaPlaceholder]]:
        """
        Replace every recognized formula in a copy of subtree with a token.

        Recognized, in priority order: $$...$$ and $...$ in text, elements
        whose class starts with "math", and MathML <math> elements.

        Returns:
            Tuple of (modified copy, placeholders in token order)
        """
        root = copy.copy(subtree)
        placeholders: list[FormulaPlaceholder] = []

        def register(formula: str) -> str:
            placeholder = FormulaPlaceholder(
                index=len(placeholders),
                formula=formula,
                is_block=is_block_formula(formula),
            )
            placeholders.append(placeholder)
            return placeholder.token

        self._replace_delimited(root, register)
        self._replace_math_classes(root, register)
        self._replace_mathml(root, register)

        return root, placeholders

    def _replace_delimited(self, root: Tag, register: Callable[[str], str]) -> None:
        for text in list(root.find_all(string=True)):
            if type(text) is not NavigableString or "$" not in text:
                continue
            if self._in_skipped_context(text):
                continue
            original = str(text)
            replaced = BLOCK_DOLLARS.sub(lambda m: register(m.group(1)), original)
            replaced = INLINE_DOLLARS.sub(lambda m: register(m.group(1)), replaced)
            if replaced != original:
                text.replace_with(NavigableString(replaced))

    @staticmethod
    def _in_skipped_context(text: NavigableString) -> bool:
        for parent in text.parents:
            if parent.name in SKIP_TEXT_PARENTS:
                return True
            if parent.name in ("span", "div", "img") and _has_math_class(parent):
                return True
        return False

    def _replace_math_classes(self, root: Tag, register: Callable[[str], str]) -> None:
        elements = [el for el in root.find_all(["span", "div", "img"]) if _has_math_class(el)]
        for el in elements:
            if not _attached_to(el, root):
                continue
            if el.name == "img":
                formula = str(el.get("alt", "")).strip()
            else:
                formula = el.get_text().strip()
            if not formula:
                el.extract()
                continue
            el.replace_with(NavigableString(register(formula)))

    def _replace_mathml(self, root: Tag, register: Callable[[str], str]) -> None:
        for el in root.find_all("math"):
            if not _attached_to(el, root):
                continue
            formula = self.mathml_to_latex(el)
            if not formula:
                el.extract()
                continue
            el.replace_with(NavigableString(register(formula)))

    def mathml_to_latex(self, element: Tag) -> str:
        """Convert a MathML element to LaTeX."""
        annotation = element.find("annotation", attrs={"encoding": True})
        if annotation is not None and str(annotation.get("encoding", "")).lower() in TEX_ENCODINGS:
            return annotation.get_text().strip()
        return _WHITESPACE.sub(" ", self._convert_node(element)).strip()

    def _convert_node(self, node) -> str:
        if isinstance(node, NavigableString):
            return _map_symbols(str(node).strip())
        if not isinstance(node, Tag):
            return ""

        name = node.name
        if name == "annotation" or name == "annotation-xml":
            return ""
        children = [c for c in node.children if not (isinstance(c, NavigableString) and not c.strip())]
        parts = [self._convert_node(c) for c in children]
        stripped = [p.strip() for p in parts]

        if name == "mfrac" and len(parts) >= 2:
            return rf"\frac{{{stripped[0]}}}{{{stripped[1]}}}"
        if name == "msqrt":
            return rf"\sqrt{{{''.join(parts).strip()}}}"
        if name == "mroot" and len(parts) >= 2:
            return rf"\sqrt[{stripped[1]}]{{{stripped[0]}}}"
        if name == "msup" and len(parts) >= 2:
            return f"{{{stripped[0]}}}^{{{stripped[1]}}}"
        if name == "msub" and len(parts) >= 2:
            return f"{{{stripped[0]}}}_{{{stripped[1]}}}"
        if name == "msubsup" and len(parts) >= 3:
            return f"{{{stripped[0]}}}_{{{stripped[1]}}}^{{{stripped[2]}}}"
        if name == "mfenced":
            opening = str(node.get("open", "("))
            closing = str(node.get("close", ")"))
            return f"{opening}{','.join(parts)}{closing}"
        return "".join(parts)

    def restore(self, markdown: str, placeholders: list[FormulaPlaceholder]) -> str:
        """Replace tokens in rendered Markdown with $...$ or $$...$$ formulas."""
        for placeholder in placeholders:
            markdown = markdown.replace(placeholder.token, self.to_mathjax(placeholder.formula, placeholder.is_block))
        return markdown

    def to_mathjax(self, latex: str, display_mode: bool = False) -> str:
        if display_mode:
            return f"\n$$\n{latex}\n$$\n"
        return f"${latex}$"

    def extract_formulas(self, content: Union[str, Tag]) -> list[str]:
        """Return every formula recognized in markup or a tree."""
        root = parse_html(content) if isinstance(content, str) else content
        _, placeholders = self.extract_with_replacement(root)
        return [p.formula for p in placeholders]

    def contains_math(self, content: Union[str, Tag]) -> bool:
        return bool(self.extract_formulas(content))

    def normalize_latex(self, latex: str) -> str:
        """
        Normalize whitespace and delimiters of a LaTeX snippet.

        \\( \\) become $ and \\[ \\] become $$; binary operators get single
        spaces around them.
        """
        normalized = _WHITESPACE.sub(" ", latex).strip()
        normalized = re.sub(r"\s*([+\-*=<>])\s*", r" \1 ", normalized)
        normalized = normalized.replace(r"\(", "$").replace(r"\)", "$")
        normalized = normalized.replace(r"\[", "$$").replace(r"\]", "$$")
        return normalized.strip()
