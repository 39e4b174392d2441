"""ConversionService: wires sources, pipeline, queue, history and exporters."""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from types import TracebackType
from typing import Callable, Optional

from ..conversion.extractor import ContentExtractor
from ..conversion.markdown import MarkdownConverter
from ..conversion.noise_filter import NoiseFilter
from ..conversion.rules import RuleManager
from ..exporters import ExportOptions, ExportResult, get_exporter
from ..http import AsyncHttpClient, HttpClient
from ..models.config import ConversionOptions, MdflowConfig
from ..models.events import ConversionEvent
from ..models.presets import PresetExtras, apply_preset
from ..models.results import ConversionResult
from ..models.tasks import ConversionTask, PayloadKind
from ..pipeline.base import ConversionPipeline
from ..pipeline.steps import CleanStep, ConvertStep, ExtractStep
from ..queue import TaskQueue
from ..sources import ExtractedDocument, FileSource, SelectionSource, UrlSource
from ..storage import HistoryStore, SqliteHistoryStore

logger = logging.getLogger(__name__)


class ConversionService:
    """
    Composition root for mdflow.

    Builds every component from one MdflowConfig and injects them into
    each other. Components that need setup (HTTP session, rule file,
    history database) are initialized once in init().

    Example:
        config = MdflowConfig(preset="obsidian")

        async with ConversionService(config) as service:
            result = await service.convert_url("https://example.com/post")
            print(service.export(result).content)

            service.queue.add_batch([BatchItem(url) for url in urls])
            await service.queue.join()
    """

    def __init__(
        self,
        config: Optional[MdflowConfig] = None,
        http_client: Optional[HttpClient] = None,
        history_store: Optional[HistoryStore] = None,
        rule_manager: Optional[RuleManager] = None,
        on_event: Optional[Callable[[ConversionEvent], None]] = None,
    ):
        """
        Initialize the service.

        Args:
            config: Configuration (defaults if None); its preset is applied
            http_client: HTTP client to use instead of an owned AsyncHttpClient
            history_store: History store to use instead of the configured SQLite file
            rule_manager: Rule manager to use instead of the configured rules file
            on_event: Optional callback for pipeline and queue events
        """
        self.config = config or MdflowConfig()
        self.options, self.extras = apply_preset(self.config.preset, self.config.options)
        self._on_event = on_event

        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._history_store = history_store
        if history_store is None and self.config.storage.enabled:
            self._history_store = SqliteHistoryStore(
                self.config.storage.history_path,
                max_items=self.config.storage.max_history_items,
            )
        self._rule_manager = rule_manager or RuleManager(self.config.storage.rules_path)

        self._noise_filter = NoiseFilter()
        self._pipeline: Optional[ConversionPipeline] = None
        self._queue: Optional[TaskQueue] = None

    @property
    def queue(self) -> TaskQueue:
        if self._queue is None:
            raise RuntimeError("ConversionService.init() must be called before use")
        return self._queue

    @property
    def history(self) -> Optional[HistoryStore]:
        return self._history_store

    @property
    def rules(self) -> RuleManager:
        return self._rule_manager

    @property
    def pipeline(self) -> ConversionPipeline:
        if self._pipeline is None:
            raise RuntimeError("ConversionService.init() must be called before use")
        return self._pipeline

    async def init(self) -> None:
        """Open the HTTP session, load rules and history, build the pipeline and queue."""
        if self._pipeline is not None:
            return

        if self._http_client is None:
            self._http_client = await AsyncHttpClient.from_config(self.config.network).__aenter__()

        self._rule_manager.init()
        if self._history_store is not None:
            await self._history_store.init()

        converter = MarkdownConverter(
            http_client=self._http_client,
            image_dir=self.config.output.directory,
            image_timeout=self.config.network.image_timeout,
            noise_filter=self._noise_filter,
            base_rules=tuple(self._rule_manager.enabled_rules()),
        )
        self._pipeline = ConversionPipeline(
            steps=[
                CleanStep(self._noise_filter),
                ExtractStep(ContentExtractor()),
                ConvertStep(converter),
            ]
        )
        self._queue = TaskQueue(
            self.run_task,
            concurrency=self.config.queue.concurrency,
            store=self._history_store,
            on_event=self._on_event,
        )
        logger.debug(f"Service ready ({len(self._rule_manager.enabled_rules())} rules enabled)")

    async def close(self) -> None:
        if self._owns_http_client and isinstance(self._http_client, AsyncHttpClient):
            await self._http_client.close()
            self._http_client = None
        if isinstance(self._history_store, SqliteHistoryStore):
            await self._history_store.close()

    async def __aenter__(self) -> ConversionService:
        await self.init()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def convert_document(
        self,
        document: ExtractedDocument,
        options: Optional[ConversionOptions] = None,
    ) -> ConversionResult:
        """
        Convert one document through clean, extract and convert.

        Title, author and date known to the document record override what
        the markup declares.

        Raises:
            ConversionError: If a pipeline step fails
        """
        options = options or self.options
        result = await self.pipeline.convert(
            document.to_source_document(),
            options,
            source_url=document.source_url,
            extract_main=document.extract_main,
            emit=self._on_event,
        )

        if document.title:
            result.title = document.title
        if document.author and not result.metadata.author:
            result.metadata.author = document.author
        if document.date and not result.metadata.date:
            result.metadata.date = document.date
        return result

    def _url_source(self) -> UrlSource:
        if self._http_client is None:
            raise RuntimeError("ConversionService.init() must be called before use")
        return UrlSource(self._http_client, timeout=self.config.network.read_timeout)

    async def convert_url(self, url: str, options: Optional[ConversionOptions] = None) -> ConversionResult:
        return await self.convert_document(await self._url_source().load(url), options)

    async def convert_file(self, path: Path, options: Optional[ConversionOptions] = None) -> ConversionResult:
        return await self.convert_document(FileSource().load(path), options)

    async def convert_selection(
        self,
        fragment: str,
        source_url: str = "",
        options: Optional[ConversionOptions] = None,
    ) -> ConversionResult:
        return await self.convert_document(SelectionSource().load(fragment, source_url), options)

    async def run_task(self, task: ConversionTask) -> ConversionResult:
        """Queue executor: load the task's payload and convert it."""
        payload = task.payload
        if payload.kind in (PayloadKind.URL, PayloadKind.LINK):
            document = await self._url_source().load(payload.value)
        elif payload.kind == PayloadKind.FILE:
            document = FileSource().load(payload.value)
        else:
            document = SelectionSource().load(payload.value)
        return await self.convert_document(document, task.options)

    def export(
        self,
        result: ConversionResult,
        fmt: Optional[str] = None,
        source_html: Optional[str] = None,
        task: Optional[ConversionTask] = None,
    ) -> ExportResult:
        """
        Format a result for delivery.

        Markdown output carries the preset's prefix, suffix and frontmatter
        fields. HTML output renders the Markdown unless source_html is
        given.

        Raises:
            UnsupportedFormatError: For "pdf" and unknown formats
        """
        fmt = fmt or (task.options.format if task is not None else self.options.format)

        date = result.timestamp.date().isoformat()
        extras: PresetExtras = self.extras
        if fmt == "markdown":
            result = dataclasses.replace(
                result,
                markdown=extras.render(result.markdown, url=result.source_url, title=result.title, date=date),
            )

        include_metadata = self.config.output.add_frontmatter and (
            task.options.include_metadata if task is not None else self.options.include_metadata
        )
        options = ExportOptions(
            include_metadata=include_metadata,
            source_html=source_html,
            extra_fields=extras.frontmatter_fields(url=result.source_url, title=result.title, date=date) or None,
        )
        return get_exporter(fmt).export(result, options)

