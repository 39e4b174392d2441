"""Pipeline steps for document conversion."""

from .clean import CleanStep
from .convert import ConvertStep
from .extract import ExtractStep

__all__ = [
    "CleanStep",
    "ConvertStep",
    "ExtractStep",
]
