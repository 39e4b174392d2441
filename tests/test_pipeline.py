"""Tests for the conversion pipeline and its steps."""

import pytest

from mdflow.conversion import MarkdownConverter
from mdflow.errors import ConversionError
from mdflow.models.config import ConversionOptions
from mdflow.models.document import SourceDocument
from mdflow.models.events import EventType
from mdflow.pipeline import ConversionContext, ConversionPipeline
from mdflow.pipeline.steps import CleanStep, ConvertStep, ExtractStep

ARTICLE_TEXT = (
    "Markdown converters need to find the part of a page that a person actually came to read. "
    "This paragraph is long enough, with plenty of punctuation, to look like real article text. "
    "It keeps going for a while so the extractor has something meaningful to score."
)

PAGE = f"""
<html>
<head><title>Field Notes</title><meta name="author" content="Ann"></head>
<body>
  <nav><a href="/">Home</a> <a href="/about">About</a></nav>
  <article>
    <h1>Field Notes</h1>
    <p onclick="track()">{ARTICLE_TEXT}</p>
    <script>var tracking = 1;</script>
  </article>
  <footer>Copyright</footer>
</body>
</html>
"""


def build_pipeline():
    return ConversionPipeline(steps=[CleanStep(), ExtractStep(), ConvertStep(MarkdownConverter())])


class FailingStep:
    name = "explode"

    async def execute(self, ctx, emit=None):
        raise ValueError("step broke")


class TestConversionContext:
    """Tests for ConversionContext."""

    def test_base_url_prefers_document(self):
        document = SourceDocument.from_html("<p>x</p>", base_url="https://example.com/final")

        ctx = ConversionContext(document=document, options=ConversionOptions(), source_url="https://example.com/")

        assert ctx.base_url == "https://example.com/final"

    def test_base_url_falls_back_to_source_url(self):
        ctx = ConversionContext(
            document=SourceDocument.from_html("<p>x</p>"),
            options=ConversionOptions(),
            source_url="https://example.com/",
        )

        assert ctx.base_url == "https://example.com/"
        assert ConversionContext(SourceDocument.from_html(""), ConversionOptions()).base_url is None


class TestConversionPipeline:
    """Tests for ConversionPipeline."""

    @pytest.mark.asyncio
    async def test_full_pipeline(self):
        """Test clean, extract and convert on a full page."""
        document = SourceDocument.from_html(PAGE)

        ctx = await build_pipeline().execute(document, source_url="https://example.com/notes")

        assert ctx.error is None
        assert ctx.content.name == "article"
        markdown = ctx.result.markdown
        assert markdown.startswith("# Field Notes")
        assert "Markdown converters need" in markdown
        assert "Home" not in markdown
        assert "Copyright" not in markdown
        assert "tracking" not in markdown
        assert ctx.result.title == "Field Notes"
        assert ctx.result.metadata.author == "Ann"
        assert ctx.result.source_url == "https://example.com/notes"

    @pytest.mark.asyncio
    async def test_source_document_is_untouched(self):
        """Test that steps work on copies."""
        document = SourceDocument.from_html(PAGE)
        before = str(document.soup)

        await build_pipeline().execute(document)

        assert str(document.soup) == before

    @pytest.mark.asyncio
    async def test_selection_skips_extraction(self):
        """Test that extract_main=False converts the whole fragment."""
        document = SourceDocument.from_html("<nav>Menu</nav><p>Chosen text</p>")
        events = []

        ctx = await build_pipeline().execute(document, extract_main=False, emit=events.append)

        assert "Menu" in ctx.result.markdown
        assert "Chosen text" in ctx.result.markdown
        assert EventType.CONTENT_EXTRACTED not in [event.type for event in events]

    @pytest.mark.asyncio
    async def test_events_in_order(self):
        """Test that each step reports progress."""
        events = []

        await build_pipeline().execute(SourceDocument.from_html(PAGE), emit=events.append)

        assert [event.type for event in events] == [
            EventType.CONVERSION_STARTED,
            EventType.DOCUMENT_CLEANED,
            EventType.CONTENT_EXTRACTED,
            EventType.PAGE_CONVERTED,
        ]

    @pytest.mark.asyncio
    async def test_failing_step_stops_pipeline(self):
        """Test that a failing step records the error and skips later steps."""
        events = []
        pipeline = ConversionPipeline(steps=[CleanStep(), FailingStep(), ConvertStep()])

        ctx = await pipeline.execute(SourceDocument.from_html(PAGE), emit=events.append)

        assert ctx.error == "explode: step broke"
        assert ctx.result is None
        assert events[-1].type == EventType.CONVERSION_FAILED
        assert events[-1].error == "explode: step broke"

    @pytest.mark.asyncio
    async def test_convert_raises_on_error(self):
        pipeline = ConversionPipeline(steps=[FailingStep()])

        with pytest.raises(ConversionError, match="step broke"):
            await pipeline.convert(SourceDocument.from_html(PAGE))

    @pytest.mark.asyncio
    async def test_convert_without_result_raises(self):
        """Test that a pipeline without a convert step has no result."""
        pipeline = ConversionPipeline(steps=[CleanStep()])

        with pytest.raises(ConversionError, match="no result"):
            await pipeline.convert(SourceDocument.from_html(PAGE))

    @pytest.mark.asyncio
    async def test_convert_step_without_content(self):
        """Test that converting before any tree is available fails."""
        ctx = ConversionContext(document=SourceDocument.from_html(PAGE), options=ConversionOptions())

        with pytest.raises(ConversionError):
            await ConvertStep().execute(ctx)
