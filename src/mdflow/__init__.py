"""
mdflow - Convert web pages, HTML fragments and files to clean Markdown.

Usage:
    from mdflow import ConversionService, MdflowConfig, BatchItem

    config = MdflowConfig(preset="obsidian")

    async with ConversionService(config) as service:
        result = await service.convert_url("https://example.com/post")
        print(service.export(result).content)

        service.queue.add_batch([BatchItem(url) for url in urls])
        await service.queue.join()

    # Or, without a service:
    from mdflow import html_to_markdown
    result = html_to_markdown("<h1>Title</h1><p>Hello</p>")
"""

__version__ = "0.1.0"

from .conversion import MarkdownConverter, RuleManager, html_to_markdown
from .core.service import ConversionService
from .errors import (
    ConversionError,
    FetchError,
    MdflowError,
    TaskNotFoundError,
    UnsupportedFormatError,
)
from .exporters import ExportResult, get_exporter
from .logging_config import setup_logging
from .models.config import (
    ConversionOptions,
    CustomRule,
    MdflowConfig,
    NetworkConfig,
    OutputConfig,
    QueueConfig,
    RuleAction,
    RuleType,
    StorageConfig,
)
from .models.events import ConversionEvent, EventType
from .models.presets import PresetName, apply_preset
from .models.results import ConversionMetadata, ConversionResult
from .models.tasks import BatchItem, ConversionTask, PayloadKind, TaskStatus
from .queue import TaskCallbacks, TaskQueue
from .storage import HistoryEntry, SqliteHistoryStore

__all__ = [
    "__version__",
    # Core
    "ConversionService",
    "MarkdownConverter",
    "html_to_markdown",
    "TaskQueue",
    "TaskCallbacks",
    "RuleManager",
    "SqliteHistoryStore",
    "HistoryEntry",
    "get_exporter",
    "ExportResult",
    "setup_logging",
    # Config
    "MdflowConfig",
    "ConversionOptions",
    "CustomRule",
    "RuleAction",
    "RuleType",
    "PresetName",
    "apply_preset",
    "QueueConfig",
    "NetworkConfig",
    "StorageConfig",
    "OutputConfig",
    # Results and tasks
    "ConversionResult",
    "ConversionMetadata",
    "BatchItem",
    "ConversionTask",
    "PayloadKind",
    "TaskStatus",
    # Events
    "EventType",
    "ConversionEvent",
    # Errors
    "MdflowError",
    "ConversionError",
    "FetchError",
    "UnsupportedFormatError",
    "TaskNotFoundError",
]
