"""Built-in conversion presets for common use cases."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .config import ConversionOptions


class PresetName(str, Enum):
    """Built-in presets."""

    DEFAULT = "default"
    CLEAN = "clean"
    ACADEMIC = "academic"
    DOCUMENTATION = "documentation"
    BLOG = "blog"
    OBSIDIAN = "obsidian"
    NOTION = "notion"


@dataclass(frozen=True)
class PresetExtras:
    """Output decorations a preset adds around the converted Markdown."""

    frontmatter: dict[str, str] = field(default_factory=dict)
    prefix: str = ""
    suffix: str = ""

    def render(self, markdown: str, url: str = "", title: str = "", date: str = "") -> str:
        """Wrap markdown with the preset prefix and suffix."""
        context = {"url": url, "title": title, "date": date}
        return _fill(self.prefix, context) + markdown + _fill(self.suffix, context)

    def frontmatter_fields(self, url: str = "", title: str = "", date: str = "") -> dict[str, str]:
        context = {"url": url, "title": title, "date": date}
        return {key: _fill(value, context) for key, value in self.frontmatter.items()}


def _fill(template: str, context: dict[str, str]) -> str:
    for key, value in context.items():
        template = template.replace("{" + key + "}", value)
    return template


PRESETS: dict[PresetName, dict[str, Any]] = {
    PresetName.DEFAULT: {
        "options": {},
    },
    PresetName.CLEAN: {
        # Minimal output without metadata or images
        "options": {
            "include_metadata": False,
            "enable_math": False,
            "enable_code_highlight": False,
        },
    },
    PresetName.ACADEMIC: {
        "options": {"enable_math": True},
        "frontmatter": {"type": "article", "category": "research"},
        "prefix": "> Source: {url}\n> Date: {date}\n\n---\n\n",
    },
    PresetName.DOCUMENTATION: {
        "options": {"enable_math": False, "enable_code_highlight": True},
        "frontmatter": {"type": "documentation"},
    },
    PresetName.BLOG: {
        "options": {"download_images": True, "enable_math": False},
        "frontmatter": {"type": "blog", "draft": "true"},
    },
    PresetName.OBSIDIAN: {
        "options": {"enable_math": True},
        "frontmatter": {"source": "{url}", "created": "{date}"},
        "suffix": "\n\n---\n\n#web-clipping",
    },
    PresetName.NOTION: {
        "options": {"include_metadata": False, "enable_math": True},
    },
}


def apply_preset(
    name: Optional[str],
    options: Optional[ConversionOptions] = None,
    overrides: Optional[dict[str, Any]] = None,
) -> tuple[ConversionOptions, PresetExtras]:
    """
    Apply a preset to conversion options.

    Preset values replace the defaults of options; explicit overrides given
    by the caller take precedence over the preset.

    Args:
        name: Preset name (None or "default" leaves options unchanged)
        options: Base options (defaults if None)
        overrides: Option values that must survive the preset

    Returns:
        Tuple of (options, extras)

    Raises:
        ValueError: If the preset name is unknown

    Example:
        >>> options, extras = apply_preset("notion")
        >>> options.include_metadata
        False
    """
    base = options or ConversionOptions()
    if name is None:
        return base, PresetExtras()

    preset = PRESETS[PresetName(name)]
    update = dict(preset.get("options", {}))
    if overrides:
        update.update(overrides)

    merged = base.model_copy(update=update) if update else base
    extras = PresetExtras(
        frontmatter=dict(preset.get("frontmatter", {})),
        prefix=preset.get("prefix", ""),
        suffix=preset.get("suffix", ""),
    )
    return ConversionOptions.model_validate(merged.model_dump()), extras
