"""Pipeline step that selects the main content of a page."""

import logging
from typing import Optional

from ...conversion.extractor import ContentExtractor
from ...errors import ConversionError
from ...models.events import ConversionEvent, EventType
from ..base import ConversionContext, EventEmitter

logger = logging.getLogger(__name__)


class ExtractStep:
    """
    Pipeline step that picks the main content container.

    Reads ctx.cleaned (or the raw document when no clean step ran), writes
    ctx.content. Selections (ctx.extract_main=False) pass through whole.
    """

    name = "extract"

    def __init__(self, extractor: Optional[ContentExtractor] = None):
        self._extractor = extractor or ContentExtractor()

    async def execute(
        self,
        ctx: ConversionContext,
        emit: Optional[EventEmitter] = None,
    ) -> ConversionContext:
        tree = ctx.cleaned if ctx.cleaned is not None else ctx.document.soup
        if tree is None:
            raise ConversionError("No document to extract content from")

        if not ctx.extract_main:
            ctx.content = tree
            return ctx

        ctx.content = self._extractor.extract_main_content(tree)
        logger.debug(f"Extracted <{ctx.content.name}> from {ctx.source_url or 'document'}")

        if emit:
            emit(
                ConversionEvent(
                    type=EventType.CONTENT_EXTRACTED,
                    source=ctx.source_url or None,
                    message=f"Selected <{ctx.content.name}>",
                )
            )

        return ctx
