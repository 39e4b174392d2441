"""Pydantic configuration models for mdflow."""

from __future__ import annotations

import uuid
from enum import Enum
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator


class RuleType(str, Enum):
    """How a custom rule finds the content it acts on."""

    ELEMENT = "element"
    ATTRIBUTE = "attribute"
    CLASS = "class"
    REGEX = "regex"


class RuleAction(str, Enum):
    """What a custom rule does with matched content."""

    REMOVE = "remove"
    REPLACE = "replace"
    WRAP = "wrap"


class CustomRule(BaseModel):
    """
    A user-defined conversion override.

    Element and class rules are bound to nodes of the tree before rendering
    and take precedence over the default Markdown rendering of those nodes.
    Regex rules rewrite the rendered Markdown.

    Example:
        CustomRule(
            name="Drop share bars",
            type=RuleType.CLASS,
            class_name="share-bar, social",
            action=RuleAction.REMOVE,
        )
    """

    id: str = Field(default_factory=lambda: f"rule_{uuid.uuid4().hex[:12]}")
    name: str = Field(..., min_length=1, description="Human readable rule name")
    type: RuleType = Field(RuleType.ELEMENT, description="Matching strategy")
    selector: Optional[str] = Field(None, description="CSS selector for element rules")
    attribute: Optional[str] = Field(None, description="Attribute name for attribute rules")
    class_name: Optional[str] = Field(None, description="Comma separated class names for class rules")
    pattern: Optional[str] = Field(None, description="Regular expression for regex rules")
    flags: str = Field("", description="Regex flags: any of 'i', 'm', 's'")
    action: RuleAction = Field(RuleAction.REMOVE, description="Action applied to matches")
    replacement: str = Field("", description="Replacement text for replace rules")
    wrap_before: str = Field("", description="Text emitted before wrapped content")
    wrap_after: str = Field("", description="Text emitted after wrapped content")
    enabled: bool = Field(True, description="Disabled rules are ignored")
    priority: int = Field(0, description="Higher priorities are applied first")
    built_in: bool = Field(False, description="Shipped with mdflow; cannot be deleted")

    model_config = {"extra": "forbid", "frozen": True}

    @model_validator(mode="after")
    def _check_target(self) -> CustomRule:
        if self.type == RuleType.ELEMENT and not self.selector:
            raise ValueError("element rules need a selector")
        if self.type == RuleType.ATTRIBUTE and not self.attribute:
            raise ValueError("attribute rules need an attribute")
        if self.type == RuleType.CLASS and not self.class_name:
            raise ValueError("class rules need a class_name")
        if self.type == RuleType.REGEX and not self.pattern:
            raise ValueError("regex rules need a pattern")
        return self


OutputFormat = Literal["markdown", "html", "text", "pdf"]


class ConversionOptions(BaseModel):
    """
    Options for a single conversion. Immutable once created.

    Example:
        options = ConversionOptions(download_images=True, enable_math=False)
        relaxed = options.model_copy(update={"include_metadata": False})
    """

    format: OutputFormat = Field("markdown", description="Output format handed to the exporter")
    include_metadata: bool = Field(True, description="Collect author/date/tags/description")
    preserve_formatting: bool = Field(True, description="Render bold, italic and strikethrough")
    download_images: bool = Field(False, description="Download images and rewrite references")
    enable_math: bool = Field(True, description="Protect and convert math formulas")
    enable_code_highlight: bool = Field(True, description="Emit language hints on code fences")
    custom_rules: tuple[CustomRule, ...] = Field(
        default_factory=tuple,
        description="Ordered override rules; earlier rules win",
    )
    image_path: str = Field("images", description="Directory for downloaded images")
    rewrite_absolute: bool = Field(
        False,
        description="Rewrite same-origin absolute image URLs to relative paths",
    )

    model_config = {"extra": "forbid", "frozen": True}


class QueueConfig(BaseModel):
    """Configuration for the task queue."""

    concurrency: int = Field(3, ge=1, description="Maximum conversions running at once")

    model_config = {"extra": "forbid"}


class NetworkConfig(BaseModel):
    """Configuration for HTTP client and network behavior."""

    proxy: Optional[str] = Field(None, description="HTTP/HTTPS proxy URL")
    user_agent: Optional[str] = Field(None, description="Custom User-Agent header")
    max_retries: int = Field(3, ge=0, description="Maximum retry attempts for failed requests")
    read_timeout: float = Field(30.0, gt=0, description="Page fetch timeout in seconds")
    image_timeout: float = Field(30.0, gt=0, description="Per-image fetch timeout in seconds")

    model_config = {"extra": "forbid"}


class StorageConfig(BaseModel):
    """Configuration for conversion history and rule persistence."""

    history_path: Path = Field(Path(".mdflow/history.db"), description="SQLite history database")
    max_history_items: int = Field(100, ge=1, description="Oldest entries beyond this are trimmed")
    rules_path: Path = Field(Path(".mdflow/rules.json"), description="Custom rules JSON file")
    enabled: bool = Field(True, description="Persist conversion results")

    model_config = {"extra": "forbid"}


class OutputConfig(BaseModel):
    """Configuration for writing converted documents."""

    directory: Path = Field(Path("./markdown"), description="Output directory")
    add_frontmatter: bool = Field(True, description="Prepend YAML frontmatter to Markdown output")

    model_config = {"extra": "forbid"}


class MdflowConfig(BaseModel):
    """
    Root configuration model for mdflow.

    YAML format:
        preset: documentation
        options:
          download_images: true
        queue:
          concurrency: 5
        output:
          directory: ./notes
    """

    preset: Optional[str] = Field(None, description="Built-in preset applied to options")
    options: ConversionOptions = Field(default_factory=ConversionOptions)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO",
        description="Logging level",
    )
    log_file: Optional[Path] = Field(None, description="Log file path")

    model_config = {"extra": "forbid"}

    def to_yaml(self) -> str:
        """Serialize config to YAML string."""
        import yaml

        return yaml.safe_dump(
            self.model_dump(mode="json", exclude_none=True),
            default_flow_style=False,
            sort_keys=False,
        )

    @classmethod
    def from_yaml(cls, yaml_str: str) -> MdflowConfig:
        """Load config from YAML string."""
        import yaml

        data = yaml.safe_load(yaml_str) or {}
        return cls.model_validate(data)

    @classmethod
    def from_yaml_file(cls, path: Path) -> MdflowConfig:
        """Load config from a YAML file."""
        return cls.from_yaml(Path(path).read_text(encoding="utf-8"))
