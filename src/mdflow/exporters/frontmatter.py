"""YAML frontmatter for Markdown exports."""

from __future__ import annotations

from typing import Any

import yaml

MAX_DESCRIPTION_LENGTH = 500


def _yaml_value(value: Any) -> Any:
    if isinstance(value, (list, tuple, set)):
        return [_yaml_value(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _yaml_value(item) for key, item in value.items()}
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    return str(value)


class FrontmatterBuilder:
    """
    Renders a YAML block delimited by --- lines.

    Keys keep their order. None values and empty lists are left out.

    Example:
        builder = FrontmatterBuilder()
        block = builder.build(title="Post", url="https://example.com/post", tags=["a"])
    """

    def fields(
        self,
        title: str | None = None,
        url: str | None = None,
        description: str | None = None,
        **extra_fields: Any,
    ) -> dict[str, Any]:
        """Frontmatter mapping before serialization."""
        data: dict[str, Any] = {
            "title": title,
            "source": url,
            "description": description[:MAX_DESCRIPTION_LENGTH] if description else None,
        }
        data.update(extra_fields)
        return {key: _yaml_value(value) for key, value in data.items() if value is not None and value != [] and value != ()}

    def build(
        self,
        title: str | None = None,
        url: str | None = None,
        description: str | None = None,
        **extra_fields: Any,
    ) -> str:
        """Frontmatter block followed by a blank line, or "" when there are no fields."""
        data = self.fields(title, url, description, **extra_fields)
        if not data:
            return ""
        body = yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=False, width=1000)
        return f"---\n{body}---\n\n"
