"""Tests for custom rules and their persistence."""

import json

import pytest
from pydantic import ValidationError

from mdflow.conversion import BUILT_IN_RULES, RuleManager, RuleSet
from mdflow.conversion.rules import RULE_MARKER, wrap_text
from mdflow.models.config import CustomRule, RuleAction, RuleType
from mdflow.models.document import parse_html


class TestCustomRule:
    """Tests for CustomRule validation."""

    def test_element_rule_needs_selector(self):
        """Test that a rule without its target is rejected."""
        with pytest.raises(ValidationError):
            CustomRule(name="broken", type=RuleType.ELEMENT)

    def test_regex_rule_needs_pattern(self):
        with pytest.raises(ValidationError):
            CustomRule(name="broken", type=RuleType.REGEX)

    def test_ids_are_generated(self):
        """Test generated rule ids are unique."""
        a = CustomRule(name="a", selector="p")
        b = CustomRule(name="b", selector="p")

        assert a.id != b.id
        assert a.id.startswith("rule_")


class TestRuleSet:
    """Tests for RuleSet."""

    def test_disabled_rules_are_ignored(self):
        """Test that only enabled rules are kept."""
        rules = RuleSet([CustomRule(name="off", selector="p", enabled=False), CustomRule(name="on", selector="p")])

        assert len(rules) == 1
        assert rules.rules[0].name == "on"

    def test_remove_by_attribute(self):
        """Test attribute rules."""
        rules = RuleSet([CustomRule(name="tracking", type=RuleType.ATTRIBUTE, attribute="data-track")])

        tree = rules.apply(parse_html('<p data-track="1">ad</p><p>keep</p>'))

        assert tree.get_text() == "keep"

    def test_remove_by_class_list(self):
        """Test comma separated class names."""
        rules = RuleSet([CustomRule(name="noise", type=RuleType.CLASS, class_name="share, social")])

        tree = rules.apply(parse_html('<div class="share">s</div><div class="x social">t</div><div>u</div>'))

        assert tree.get_text() == "u"

    def test_replace_and_wrap_mark_elements(self):
        """Test that non-removal rules mark elements for rendering."""
        rules = RuleSet([CustomRule(name="w", selector="span", action=RuleAction.WRAP, wrap_before="[")])

        tree = rules.apply(parse_html("<p><span>x</span></p>"))

        span = tree.find("span")
        assert span[RULE_MARKER] == "0"
        assert rules.rule_for(span).name == "w"

    def test_first_rule_wins(self):
        """Test that an element matched by an earlier rule is not taken by a later one."""
        rules = RuleSet(
            [
                CustomRule(name="first", selector="p", action=RuleAction.REPLACE, replacement="one"),
                CustomRule(name="second", selector="p", action=RuleAction.REMOVE),
            ]
        )

        tree = rules.apply(parse_html("<p>x</p>"))

        assert rules.rule_for(tree.find("p")).name == "first"

    def test_invalid_selector_is_skipped(self):
        """Test that a broken selector does not stop other rules."""
        rules = RuleSet(
            [
                CustomRule(name="bad", selector="p[[["),
                CustomRule(name="good", selector="span"),
            ]
        )

        tree = rules.apply(parse_html("<p>keep</p><span>drop</span>"))

        assert tree.get_text() == "keep"

    def test_apply_regex_actions(self):
        """Test regex remove, replace with groups and wrap."""
        rules = RuleSet(
            [
                CustomRule(name="rm", type=RuleType.REGEX, pattern=r"\s*\[edit\]"),
                CustomRule(
                    name="swap",
                    type=RuleType.REGEX,
                    pattern=r"(\w+)@example\.com",
                    action=RuleAction.REPLACE,
                    replacement=r"\1 at example",
                ),
                CustomRule(
                    name="hl",
                    type=RuleType.REGEX,
                    pattern="TODO",
                    action=RuleAction.WRAP,
                    wrap_before="**",
                    wrap_after="**",
                ),
            ]
        )

        markdown = rules.apply_regex("## Intro [edit]\nMail bob@example.com TODO")

        assert markdown == "## Intro\nMail bob at example **TODO**"

    def test_invalid_regex_is_skipped(self):
        """Test that a broken pattern leaves the text unchanged."""
        rules = RuleSet([CustomRule(name="bad", type=RuleType.REGEX, pattern="(")])

        assert rules.apply_regex("text (") == "text ("

    def test_wrap_text_keeps_edge_whitespace(self):
        """Test wrapping leaves surrounding whitespace outside."""
        assert wrap_text("\n\nbody\n\n", "_", "_") == "\n\n_body_\n\n"
        assert wrap_text("   ", "_", "_") == "   "


class TestRuleManager:
    """Tests for RuleManager."""

    @pytest.fixture
    def manager(self, tmp_path):
        manager = RuleManager(tmp_path / "rules.json")
        manager.init()
        return manager

    def test_init_restores_built_ins(self, manager):
        """Test that a fresh store holds the built-in rules."""
        names = {rule.name for rule in manager.get_rules()}

        assert names == {rule.name for rule in BUILT_IN_RULES}
        assert manager.path.exists()

    def test_requires_init(self, tmp_path):
        """Test that use before init() is an error."""
        with pytest.raises(RuntimeError):
            RuleManager(tmp_path / "rules.json").get_rules()

    def test_enabled_rules_sorted_by_priority(self, manager):
        """Test priority ordering and filtering of disabled rules."""
        manager.add_rule(CustomRule(name="urgent", selector="x", priority=500))

        enabled = manager.enabled_rules()

        assert enabled[0].name == "urgent"
        assert all(rule.enabled for rule in enabled)
        priorities = [rule.priority for rule in enabled]
        assert priorities == sorted(priorities, reverse=True)

    def test_rules_persist_across_instances(self, manager):
        """Test that added rules are saved to the file."""
        rule = manager.add_rule(CustomRule(name="mine", selector=".promo"))

        reloaded = RuleManager(manager.path)
        reloaded.init()

        assert reloaded.get_rule(rule.id) == rule

    def test_update_rule(self, manager):
        """Test updating fields of a rule."""
        rule = manager.add_rule(CustomRule(name="mine", selector=".promo"))

        updated = manager.update_rule(rule.id, selector=".ad", id="ignored")

        assert updated.id == rule.id
        assert updated.selector == ".ad"
        assert manager.update_rule("missing", name="x") is None

    def test_built_ins_cannot_be_deleted(self, manager):
        """Test that built-in rules can only be toggled."""
        built_in = BUILT_IN_RULES[0]

        assert manager.delete_rule(built_in.id) is False
        assert manager.toggle_rule(built_in.id) is False
        assert manager.get_rule(built_in.id).enabled is False

    def test_delete_user_rule(self, manager):
        rule = manager.add_rule(CustomRule(name="mine", selector="p"))

        assert manager.delete_rule(rule.id) is True
        assert manager.get_rule(rule.id) is None

    def test_import_merge_skips_known_ids(self, manager):
        """Test merging imported rules."""
        existing = manager.add_rule(CustomRule(name="mine", selector="p"))
        new = CustomRule(name="theirs", selector="span")
        data = json.dumps([existing.model_dump(mode="json"), new.model_dump(mode="json")])

        imported = manager.import_rules(data)

        assert imported == 1
        assert manager.get_rule(new.id) is not None

    def test_import_replace_keeps_built_ins(self, manager):
        """Test replacing user rules on import."""
        old = manager.add_rule(CustomRule(name="old", selector="p"))
        new = CustomRule(name="new", selector="span")

        manager.import_rules(json.dumps([new.model_dump(mode="json")]), merge=False)

        assert manager.get_rule(old.id) is None
        assert manager.get_rule(new.id) is not None
        assert len(manager.get_rules()) == len(BUILT_IN_RULES) + 1

    def test_export_round_trips(self, manager):
        """Test that exported rules validate again."""
        exported = json.loads(manager.export_rules())

        assert [CustomRule.model_validate(item) for item in exported] == manager.get_rules()

    def test_reset_to_defaults(self, manager):
        manager.add_rule(CustomRule(name="mine", selector="p"))

        manager.reset_to_defaults()

        assert manager.get_rules() == list(BUILT_IN_RULES)

    def test_corrupt_file_falls_back_to_built_ins(self, tmp_path):
        """Test that an unreadable rules file is replaced by defaults."""
        path = tmp_path / "rules.json"
        path.write_text("{not json", encoding="utf-8")

        manager = RuleManager(path)
        manager.init()

        assert len(manager.get_rules()) == len(BUILT_IN_RULES)

    def test_in_memory_manager(self):
        """Test a manager without a file."""
        manager = RuleManager()
        manager.init()
        manager.add_rule(CustomRule(name="tmp", selector="p"))

        assert len(manager.get_rules()) == len(BUILT_IN_RULES) + 1
