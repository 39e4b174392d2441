"""Document conversion for mdflow (noise filtering, extraction, Markdown rendering)."""

from .code import CodeBlockDescriptor, CodeFormatter
from .extractor import ContentExtractor, ScoredCandidate
from .images import ImageOptions, ImageProcessor, ImageRecord
from .markdown import FallbackRenderer, MarkdownConverter, NodeKind, html_to_markdown
from .math import FormulaPlaceholder, MathFormatter
from .noise_filter import NoiseFilter
from .rules import BUILT_IN_RULES, RuleManager, RuleSet
from .tables import TableCell, TableFormatter, TableModel, TableRow

__all__ = [
    # Pipeline stages
    "NoiseFilter",
    "ContentExtractor",
    "MarkdownConverter",
    "FallbackRenderer",
    "html_to_markdown",
    # Sub-converters
    "CodeFormatter",
    "MathFormatter",
    "TableFormatter",
    "ImageProcessor",
    # Rules
    "BUILT_IN_RULES",
    "RuleManager",
    "RuleSet",
    # Records
    "CodeBlockDescriptor",
    "FormulaPlaceholder",
    "ImageOptions",
    "ImageRecord",
    "NodeKind",
    "ScoredCandidate",
    "TableCell",
    "TableModel",
    "TableRow",
]
