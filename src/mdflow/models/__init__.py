"""mdflow configuration, result, task and event models."""

from .config import (
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
from .document import SourceDocument, parse_html
from .events import ConversionEvent, EventType
from .presets import PRESETS, PresetExtras, PresetName, apply_preset
from .results import ConversionMetadata, ConversionResult, ImageRecord
from .tasks import (
    BatchItem,
    ConversionTask,
    PayloadKind,
    QueueStats,
    TaskPayload,
    TaskStatus,
)

__all__ = [
    # Config
    "ConversionOptions",
    "CustomRule",
    "MdflowConfig",
    "NetworkConfig",
    "OutputConfig",
    "QueueConfig",
    "RuleAction",
    "RuleType",
    "StorageConfig",
    # Documents and results
    "SourceDocument",
    "parse_html",
    "ConversionMetadata",
    "ConversionResult",
    "ImageRecord",
    # Tasks
    "BatchItem",
    "ConversionTask",
    "PayloadKind",
    "QueueStats",
    "TaskPayload",
    "TaskStatus",
    # Events
    "ConversionEvent",
    "EventType",
    # Presets
    "PRESETS",
    "PresetExtras",
    "PresetName",
    "apply_preset",
]
