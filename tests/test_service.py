"""Tests for ConversionService."""

import pytest
import pytest_asyncio

from mdflow.conversion import RuleManager
from mdflow.core import ConversionService
from mdflow.errors import FetchError, UnsupportedFormatError
from mdflow.models.config import ConversionOptions, MdflowConfig
from mdflow.models.tasks import BatchItem, ConversionTask, PayloadKind, TaskPayload, TaskStatus
from mdflow.storage import SqliteHistoryStore

ARTICLE_TEXT = (
    "Markdown converters need to find the part of a page that a person actually came to read. "
    "This paragraph is long enough, with plenty of punctuation, to look like real article text. "
    "It keeps going for a while so the extractor has something meaningful to score."
)

PAGE = f"""
<html>
<head><title>Field Notes</title></head>
<body>
  <nav><a href="/">Home</a></nav>
  <article><h1>Field Notes</h1><p>{ARTICLE_TEXT}</p><img src="/img/a.png" alt="Chart"></article>
</body>
</html>
""".encode("utf-8")


async def make_service(http_client, config=None):
    service = ConversionService(
        config or MdflowConfig(),
        http_client=http_client,
        history_store=SqliteHistoryStore(),
        rule_manager=RuleManager(),
    )
    await service.init()
    return service


class TestConversionService:
    """Tests for ConversionService."""

    @pytest_asyncio.fixture
    async def service(self, http_client):
        http_client.responses["https://example.com/notes"] = (200, "text/html", PAGE)
        service = await make_service(http_client)
        yield service
        await service.close()

    @pytest.mark.asyncio
    async def test_convert_url(self, service):
        """Test converting a fetched page end to end."""
        result = await service.convert_url("https://example.com/notes")

        assert result.title == "Field Notes"
        assert result.source_url == "https://example.com/notes"
        assert result.markdown.startswith("# Field Notes")
        assert "Markdown converters need" in result.markdown
        assert "Home" not in result.markdown
        assert result.metadata.image_count == 1

    @pytest.mark.asyncio
    async def test_convert_url_failure(self, service):
        with pytest.raises(FetchError):
            await service.convert_url("https://example.com/missing")

    @pytest.mark.asyncio
    async def test_convert_selection(self, service):
        """Test that a selection is converted whole."""
        result = await service.convert_selection("<p>Picked <b>text</b></p>", source_url="https://example.com/a")

        assert result.markdown == "Picked **text**"
        assert result.source_url == "https://example.com/a"

    @pytest.mark.asyncio
    async def test_convert_file(self, service, tmp_path):
        """Test converting a local text file."""
        path = tmp_path / "todo.txt"
        path.write_text("Buy milk\n\nCall Ann", encoding="utf-8")

        result = await service.convert_file(path)

        assert result.title == "todo"
        assert result.markdown == "Buy milk\n\nCall Ann"

    @pytest.mark.asyncio
    async def test_convert_unsupported_file(self, service, tmp_path):
        with pytest.raises(UnsupportedFormatError):
            await service.convert_file(tmp_path / "paper.pdf")

    @pytest.mark.asyncio
    async def test_queue_records_history(self, service):
        """Test that queued outcomes are stored in history."""
        tasks = service.queue.add_batch(
            [BatchItem("https://example.com/notes"), BatchItem("https://example.com/missing")]
        )
        await service.queue.join()

        assert tasks[0].status == TaskStatus.COMPLETED
        assert tasks[1].status == TaskStatus.FAILED
        assert "404" in tasks[1].error

        stats = await service.history.stats()
        assert stats["completed"] == 1
        assert stats["failed"] == 1

    @pytest.mark.asyncio
    async def test_export_markdown(self, service):
        """Test Markdown export with frontmatter."""
        result = await service.convert_selection("<p>Body</p>", source_url="https://example.com/a")

        exported = service.export(result)

        assert exported.extension == "md"
        assert exported.content.startswith("---\n")
        assert "source: https://example.com/a" in exported.content
        assert exported.content.endswith("---\n\nBody\n")

    @pytest.mark.asyncio
    async def test_export_unsupported_format(self, service):
        result = await service.convert_selection("<p>Body</p>")

        with pytest.raises(UnsupportedFormatError):
            service.export(result, fmt="pdf")

    def test_queue_requires_init(self):
        """Test that components are unavailable before init()."""
        service = ConversionService(MdflowConfig(), history_store=SqliteHistoryStore(), rule_manager=RuleManager())

        with pytest.raises(RuntimeError):
            service.queue
        with pytest.raises(RuntimeError):
            service.pipeline

    @pytest.mark.asyncio
    async def test_url_conversion_requires_init(self):
        """Test that fetching without an HTTP client is an explicit error."""
        service = ConversionService(MdflowConfig(), history_store=SqliteHistoryStore(), rule_manager=RuleManager())

        with pytest.raises(RuntimeError, match="init"):
            await service.convert_url("https://example.com/notes")

        task = TaskPayload(PayloadKind.URL, "https://example.com/notes")
        with pytest.raises(RuntimeError, match="init"):
            await service.run_task(ConversionTask(payload=task))


class TestServiceConfiguration:
    """Tests for configuration-driven behavior."""

    @pytest.mark.asyncio
    async def test_obsidian_preset_export(self, http_client):
        """Test that preset frontmatter and suffix are applied."""
        service = await make_service(http_client, MdflowConfig(preset="obsidian"))
        result = await service.convert_selection("<p>Clipped</p>", source_url="https://example.com/a")

        exported = service.export(result)
        await service.close()

        assert exported.content.count("source:") == 1
        assert "created: " in exported.content
        assert exported.content.endswith("Clipped\n\n---\n\n#web-clipping\n")

    @pytest.mark.asyncio
    async def test_clean_preset_skips_frontmatter(self, http_client):
        service = await make_service(http_client, MdflowConfig(preset="clean"))
        result = await service.convert_selection("<p>Plain</p>")

        exported = service.export(result)
        await service.close()

        assert exported.content == "Plain\n"

    @pytest.mark.asyncio
    async def test_html_export_of_queued_task(self, http_client):
        """Test that a queued html task exports its Markdown rendered as HTML."""
        config = MdflowConfig(options=ConversionOptions(format="html"))
        service = await make_service(http_client, config)

        task = service.queue.add_task(
            TaskPayload(PayloadKind.SELECTION, '<p onclick="x()">Hello <em>there</em></p>'),
            options=service.options,
        )
        await service.queue.join()
        exported = service.export(task.result, task=task)
        await service.close()

        assert exported.extension == "html"
        assert "<p>Hello <em>there</em></p>" in exported.content
        assert "onclick" not in exported.content

    @pytest.mark.asyncio
    async def test_html_export_of_direct_conversion(self, http_client):
        """Test that results converted outside the queue still export formatted HTML."""
        service = await make_service(http_client)
        result = await service.convert_selection(
            "<h2>Totals</h2><table><tr><th>Item</th><th>Count</th></tr><tr><td>Pens</td><td>3</td></tr></table>"
        )

        exported = service.export(result, fmt="html")
        await service.close()

        assert "<h2>Totals</h2>" in exported.content
        assert "<th>Item</th>" in exported.content
        assert "<td>Pens</td>" in exported.content
        assert "<pre>" not in exported.content

    @pytest.mark.asyncio
    async def test_queue_events_report_progress(self, http_client):
        """Test that finished-task events carry completed and total counts."""
        events = []
        service = ConversionService(
            MdflowConfig(storage={"enabled": False}),
            http_client=http_client,
            rule_manager=RuleManager(),
            on_event=events.append,
        )
        await service.init()

        items = [BatchItem("<p>one</p>", PayloadKind.SELECTION), BatchItem("<p>two</p>", PayloadKind.SELECTION)]
        service.queue.add_batch(items)
        await service.queue.join()
        await service.close()

        progress = [(e.current, e.total) for e in events if e.current is not None]
        assert sorted(progress) == [(1, 2), (2, 2)]
        assert all(e.progress_percent is not None for e in events if e.current is not None)

    @pytest.mark.asyncio
    async def test_history_disabled(self, http_client):
        """Test that storage.enabled=False means no history store."""
        service = ConversionService(
            MdflowConfig(storage={"enabled": False}),
            http_client=http_client,
            rule_manager=RuleManager(),
        )
        await service.init()

        task = service.queue.add_task(TaskPayload(PayloadKind.SELECTION, "<p>x</p>"))
        await service.queue.join()
        await service.close()

        assert service.history is None
        assert task.status == TaskStatus.COMPLETED

