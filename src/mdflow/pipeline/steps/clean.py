"""Pipeline step that strips noise from the source document."""

import logging
from typing import Optional

from ...conversion.noise_filter import NoiseFilter
from ...models.events import ConversionEvent, EventType
from ..base import ConversionContext, EventEmitter

logger = logging.getLogger(__name__)


class CleanStep:
    """
    Pipeline step that runs the NoiseFilter over the whole document.

    Reads ctx.document, writes ctx.cleaned.
    """

    name = "clean"

    def __init__(self, noise_filter: Optional[NoiseFilter] = None, sanitize: bool = True):
        """
        Initialize the clean step.

        Args:
            noise_filter: Filter to use (uses default if None)
            sanitize: Also remove event handlers and script URLs
        """
        self._noise_filter = noise_filter or NoiseFilter()
        self._sanitize = sanitize

    async def execute(
        self,
        ctx: ConversionContext,
        emit: Optional[EventEmitter] = None,
    ) -> ConversionContext:
        cleaned = self._noise_filter.remove_noise_tags(ctx.document.soup)
        if self._sanitize:
            cleaned = self._noise_filter.sanitize(cleaned)
        ctx.cleaned = self._noise_filter.clean(cleaned)

        if emit:
            emit(ConversionEvent(type=EventType.DOCUMENT_CLEANED, source=ctx.source_url or None))

        return ctx
