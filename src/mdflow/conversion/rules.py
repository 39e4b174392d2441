"""Custom conversion rules and their persistence."""

from __future__ import annotations

import copy
import json
import logging
import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any, Optional, TypeVar

from bs4 import Tag
from pydantic import ValidationError

from ..models.config import CustomRule, RuleAction, RuleType

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=Tag)

# Attribute that ties a tree element to the rule overriding its rendering
RULE_MARKER = "data-mdflow-rule"

_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}
_EDGE_WHITESPACE = re.compile(r"^(\s*)(.*?)(\s*)$", re.DOTALL)

BUILT_IN_RULES: tuple[CustomRule, ...] = (
    CustomRule(
        id="builtin_remove_navigation",
        name="Remove Navigation",
        type=RuleType.ELEMENT,
        selector='nav, [role="navigation"]',
        action=RuleAction.REMOVE,
        priority=100,
        built_in=True,
    ),
    CustomRule(
        id="builtin_remove_footer",
        name="Remove Footer",
        type=RuleType.ELEMENT,
        selector='footer, [role="contentinfo"]',
        action=RuleAction.REMOVE,
        priority=100,
        built_in=True,
    ),
    CustomRule(
        id="builtin_remove_sidebar",
        name="Remove Sidebar",
        type=RuleType.ELEMENT,
        selector='aside, [role="complementary"]',
        action=RuleAction.REMOVE,
        priority=100,
        built_in=True,
    ),
    CustomRule(
        id="builtin_remove_ads",
        name="Remove Ads",
        type=RuleType.CLASS,
        class_name="ad,ads,advertisement,sponsored",
        action=RuleAction.REMOVE,
        priority=100,
        built_in=True,
    ),
    CustomRule(
        id="builtin_highlight_important",
        name="Highlight Important",
        type=RuleType.ELEMENT,
        selector="mark, .highlight",
        action=RuleAction.WRAP,
        wrap_before="**",
        wrap_after="**",
        enabled=False,
        priority=50,
        built_in=True,
    ),
    CustomRule(
        id="builtin_figure_captions",
        name="Keep Figure Captions",
        type=RuleType.ELEMENT,
        selector="figcaption",
        action=RuleAction.WRAP,
        wrap_before="_",
        wrap_after="_",
        priority=50,
        built_in=True,
    ),
)


def wrap_text(rendered: str, before: str, after: str) -> str:
    """Wrap rendered text, keeping surrounding whitespace outside the wrapper."""
    match = _EDGE_WHITESPACE.match(rendered)
    if match is None or not match.group(2):
        return rendered
    lead, core, trail = match.groups()
    return f"{lead}{before}{core}{after}{trail}"


class RuleSet:
    """
    An ordered list of enabled rules; earlier rules win.

    Element, attribute and class rules act on tree elements: removals happen
    in apply(), replace and wrap rules mark elements for the renderer.
    Regex rules rewrite rendered Markdown in apply_regex().

    Example:
        rules = RuleSet(options.custom_rules)
        tree = rules.apply(tree)
        ...
        override = rules.rule_for(element)
    """

    def __init__(self, rules: Iterable[CustomRule] = ()):
        self._rules = [rule for rule in rules if rule.enabled]

    def __len__(self) -> int:
        return len(self._rules)

    @property
    def rules(self) -> list[CustomRule]:
        return list(self._rules)

    def _matches(self, rule: CustomRule, root: Tag) -> list[Tag]:
        if rule.type == RuleType.ELEMENT:
            return root.select(rule.selector or "")
        if rule.type == RuleType.ATTRIBUTE:
            return root.find_all(attrs={rule.attribute: True})
        if rule.type == RuleType.CLASS:
            names = {name.strip() for name in (rule.class_name or "").split(",") if name.strip()}
            return [el for el in root.find_all(True) if names.intersection(el.get("class") or [])]
        return []

    def apply(self, subtree: T) -> T:
        """Apply element rules to a copy of subtree."""
        root = copy.copy(subtree)
        for index, rule in enumerate(self._rules):
            if rule.type == RuleType.REGEX:
                continue
            try:
                matches = self._matches(rule, root)
            except Exception as e:
                logger.warning(f"Skipping rule {rule.name!r}: {e}")
                continue
            for el in matches:
                if el.has_attr(RULE_MARKER):
                    continue
                if rule.action == RuleAction.REMOVE:
                    el.extract()
                else:
                    el[RULE_MARKER] = str(index)
        return root

    def rule_for(self, element: Tag) -> Optional[CustomRule]:
        marker = element.get(RULE_MARKER)
        if marker is None:
            return None
        try:
            return self._rules[int(str(marker))]
        except (ValueError, IndexError):
            return None

    def render_override(self, rule: CustomRule, default: str) -> str:
        """Rendered text of an element overridden by a replace or wrap rule."""
        if rule.action == RuleAction.REPLACE:
            return rule.replacement
        if rule.action == RuleAction.WRAP:
            return wrap_text(default, rule.wrap_before, rule.wrap_after)
        return ""

    def apply_regex(self, markdown: str) -> str:
        """Apply regex rules to rendered Markdown."""
        for rule in self._rules:
            if rule.type != RuleType.REGEX:
                continue
            flags = 0
            for flag in rule.flags:
                flags |= _REGEX_FLAGS.get(flag, 0)
            try:
                pattern = re.compile(rule.pattern or "", flags)
                if rule.action == RuleAction.REMOVE:
                    markdown = pattern.sub("", markdown)
                elif rule.action == RuleAction.REPLACE:
                    markdown = pattern.sub(lambda m, r=rule: m.expand(r.replacement), markdown)
                else:
                    markdown = pattern.sub(lambda m, r=rule: f"{r.wrap_before}{m.group(0)}{r.wrap_after}", markdown)
            except (re.error, IndexError) as e:
                logger.warning(f"Skipping regex rule {rule.name!r}: {e}")
        return markdown


class RuleManager:
    """
    Stores custom rules in a JSON file.

    Call init() once before use; it loads the file and restores any
    missing built-in rules.

    Example:
        manager = RuleManager(Path(".mdflow/rules.json"))
        manager.init()
        rules = RuleSet(manager.enabled_rules())
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self._rules: list[CustomRule] = []
        self._initialized = False

    def init(self) -> None:
        if self._initialized:
            return
        self._rules = self._load()
        self._ensure_built_ins()
        self._initialized = True

    def _load(self) -> list[CustomRule]:
        if self.path is None or not self.path.exists():
            return []
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            return [CustomRule.model_validate(item) for item in data]
        except (OSError, ValueError, ValidationError) as e:
            logger.warning(f"Could not load rules from {self.path}: {e}")
            return []

    def _save(self) -> None:
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                f.write(self.export_rules())
        except OSError as e:
            logger.error(f"Could not save rules to {self.path}: {e}")

    def _ensure_built_ins(self) -> None:
        existing = {rule.name for rule in self._rules}
        missing = [rule for rule in BUILT_IN_RULES if rule.name not in existing]
        if missing:
            self._rules.extend(missing)
            self._save()

    def _require_init(self) -> None:
        if not self._initialized:
            raise RuntimeError("RuleManager not initialized. Call init() first.")

    def get_rules(self) -> list[CustomRule]:
        self._require_init()
        return list(self._rules)

    def get_rule(self, rule_id: str) -> Optional[CustomRule]:
        self._require_init()
        return next((rule for rule in self._rules if rule.id == rule_id), None)

    def enabled_rules(self) -> list[CustomRule]:
        """Enabled rules, highest priority first."""
        self._require_init()
        return sorted((rule for rule in self._rules if rule.enabled), key=lambda rule: -rule.priority)

    def add_rule(self, rule: CustomRule) -> CustomRule:
        self._require_init()
        self._rules.append(rule)
        self._save()
        return rule

    def update_rule(self, rule_id: str, **updates: Any) -> Optional[CustomRule]:
        self._require_init()
        for i, rule in enumerate(self._rules):
            if rule.id == rule_id:
                updates.pop("id", None)
                updated = CustomRule.model_validate({**rule.model_dump(), **updates})
                self._rules[i] = updated
                self._save()
                return updated
        return None

    def delete_rule(self, rule_id: str) -> bool:
        """Delete a user rule. Built-in rules can only be disabled."""
        self._require_init()
        rule = self.get_rule(rule_id)
        if rule is None or rule.built_in:
            return False
        self._rules = [r for r in self._rules if r.id != rule_id]
        self._save()
        return True

    def toggle_rule(self, rule_id: str) -> bool:
        """Flip a rule's enabled flag and return the new state."""
        rule = self.get_rule(rule_id)
        if rule is None:
            return False
        updated = self.update_rule(rule_id, enabled=not rule.enabled)
        return bool(updated and updated.enabled)

    def export_rules(self) -> str:
        return json.dumps([rule.model_dump(mode="json") for rule in self._rules], indent=2, ensure_ascii=False)

    def import_rules(self, data: str, merge: bool = True) -> int:
        """
        Import rules from JSON.

        With merge=True, rules whose id already exists are skipped;
        otherwise user rules are replaced and built-ins kept.

        Returns:
            Number of rules imported
        """
        self._require_init()
        incoming = [CustomRule.model_validate(item) for item in json.loads(data)]
        if not merge:
            self._rules = [rule for rule in self._rules if rule.built_in]
        known = {rule.id for rule in self._rules}
        added = [rule for rule in incoming if rule.id not in known]
        self._rules.extend(added)
        self._save()
        return len(added)

    def reset_to_defaults(self) -> None:
        self._rules = list(BUILT_IN_RULES)
        self._save()
