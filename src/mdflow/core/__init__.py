"""Core orchestration for mdflow."""

from .service import ConversionService

__all__ = ["ConversionService"]
