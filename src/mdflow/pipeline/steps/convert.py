"""Pipeline step for Markdown conversion."""

import logging
from typing import Optional

from ...conversion.markdown import MarkdownConverter
from ...errors import ConversionError
from ...models.events import ConversionEvent, EventType
from ..base import ConversionContext, EventEmitter

logger = logging.getLogger(__name__)


class ConvertStep:
    """
    Pipeline step that converts the extracted content to Markdown.

    Reads ctx.content, writes ctx.result. Title and metadata come from the
    original document, since cleaning strips meta attributes.

    Example:
        step = ConvertStep(MarkdownConverter())
        ctx = await step.execute(ctx, emit=callback)
        # ctx.result now holds the ConversionResult
    """

    name = "convert"

    def __init__(self, converter: Optional[MarkdownConverter] = None):
        self._converter = converter or MarkdownConverter()

    async def execute(
        self,
        ctx: ConversionContext,
        emit: Optional[EventEmitter] = None,
    ) -> ConversionContext:
        content = ctx.content if ctx.content is not None else ctx.cleaned
        if content is None:
            raise ConversionError("No content to convert")

        ctx.result = await self._converter.convert(
            content,
            ctx.options,
            base_url=ctx.base_url,
            source_url=ctx.source_url,
            metadata_source=ctx.document.soup,
        )

        if emit:
            emit(
                ConversionEvent(
                    type=EventType.PAGE_CONVERTED,
                    source=ctx.source_url or None,
                    message=f"Converted to {len(ctx.result.markdown)} characters of Markdown",
                )
            )

        logger.debug(f"Converted {ctx.source_url or ctx.result.title} to {len(ctx.result.markdown)} characters")
        return ctx
