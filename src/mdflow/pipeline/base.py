"""Base classes for the conversion pipeline."""

from dataclasses import dataclass
from typing import Callable, Optional, Protocol, runtime_checkable

from bs4 import Tag

from ..errors import ConversionError
from ..models.config import ConversionOptions
from ..models.document import SourceDocument
from ..models.events import ConversionEvent, EventType
from ..models.results import ConversionResult

# Type alias for event emitter function
EventEmitter = Callable[[ConversionEvent], None]


@dataclass
class ConversionContext:
    """
    Context object passed through pipeline steps.

    Holds the state of one document conversion as it moves through the
    pipeline. The source document itself is never modified; each step
    stores its own output tree.

    Attributes:
        document: The parsed source document
        options: Conversion options for this document
        source_url: URL recorded on the result
        extract_main: Run content extraction (False for selections)
        cleaned: Output of the clean step
        content: Output of the extract step
        result: Output of the convert step
        error: Error message if a step failed
    """

    document: SourceDocument
    options: ConversionOptions
    source_url: str = ""
    extract_main: bool = True

    cleaned: Optional[Tag] = None
    content: Optional[Tag] = None
    result: Optional[ConversionResult] = None

    error: Optional[str] = None

    @property
    def base_url(self) -> Optional[str]:
        return self.document.base_url or self.source_url or None


@runtime_checkable
class ConversionStep(Protocol):
    """
    Protocol for pipeline steps.

    Each step receives a ConversionContext, processes it, and returns
    the (possibly modified) context. Steps raise on failure; the pipeline
    records the error on the context and stops.

    Example implementation:
        class CleanStep:
            name = "clean"

            async def execute(
                self,
                ctx: ConversionContext,
                emit: Optional[EventEmitter] = None
            ) -> ConversionContext:
                ctx.cleaned = self.noise_filter.clean(ctx.document.soup)
                return ctx
    """

    name: str

    async def execute(
        self,
        ctx: ConversionContext,
        emit: Optional[EventEmitter] = None,
    ) -> ConversionContext:
        """
        Execute this pipeline step.

        Args:
            ctx: The conversion context with accumulated state
            emit: Optional callback to emit events

        Returns:
            The (possibly modified) context
        """
        ...


@dataclass
class ConversionPipeline:
    """
    Runs one document through clean, extract and convert steps.

    Steps are executed in order. If a step raises, the error is captured
    in ctx.error and processing stops.

    Example:
        pipeline = ConversionPipeline(steps=[
            CleanStep(),
            ExtractStep(),
            ConvertStep(converter),
        ])

        ctx = await pipeline.execute(document, options, emit=log_event)
        if ctx.error:
            logger.error(f"Failed: {ctx.error}")
        else:
            print(ctx.result.markdown)
    """

    steps: list[ConversionStep]

    async def execute(
        self,
        document: SourceDocument,
        options: Optional[ConversionOptions] = None,
        source_url: str = "",
        extract_main: bool = True,
        emit: Optional[EventEmitter] = None,
    ) -> ConversionContext:
        """
        Execute the pipeline for a document.

        Args:
            document: The parsed source document
            options: Conversion options (defaults when None)
            source_url: URL recorded on the result
            extract_main: Run content extraction
            emit: Optional callback for emitting events

        Returns:
            ConversionContext with final state (check error for status)
        """
        ctx = ConversionContext(
            document=document,
            options=options or ConversionOptions(),
            source_url=source_url,
            extract_main=extract_main,
        )

        if emit:
            emit(ConversionEvent(type=EventType.CONVERSION_STARTED, source=source_url or None))

        for step in self.steps:
            try:
                ctx = await step.execute(ctx, emit)
            except Exception as e:
                ctx.error = f"{step.name}: {e}"

                if emit:
                    emit(
                        ConversionEvent(
                            type=EventType.CONVERSION_FAILED,
                            source=source_url or None,
                            error=ctx.error,
                        )
                    )
                break

        return ctx

    async def convert(
        self,
        document: SourceDocument,
        options: Optional[ConversionOptions] = None,
        source_url: str = "",
        extract_main: bool = True,
        emit: Optional[EventEmitter] = None,
    ) -> ConversionResult:
        """
        Execute the pipeline and return its result.

        Raises:
            ConversionError: If a step failed or produced no result
        """
        ctx = await self.execute(document, options, source_url, extract_main, emit)
        if ctx.error:
            raise ConversionError(ctx.error)
        if ctx.result is None:
            raise ConversionError("Pipeline produced no result")
        return ctx.result
