"""Tests for tocbuild.metadata.rules: rule file parsing and validation."""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import pytest

from tocbuild.diagnostics import SEVERITY_ERROR, SEVERITY_WARNING
from tocbuild.errors import RuleConfigError
from tocbuild.metadata.rules import (
    DEFAULT_CODES,
    DateFormatRule,
    DateRangeRule,
    DeprecatedRule,
    EitherRule,
    KindRule,
    ListRule,
    MatchRule,
    MicrosoftAliasRule,
    RequiresRule,
    RuleEnvelope,
    RuleSet,
    kind_name,
    load_rules,
    parse_offset,
    parse_rule,
    parse_rules,
)

if TYPE_CHECKING:
    from pathlib import Path


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "rules.yml"
    path.write_text(content)
    return path


# ---------------------------------------------------------------------------
# load_rules: happy path
# ---------------------------------------------------------------------------


class TestLoadRules:
    def test_loads_all_kinds(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            "version: 1\n"
            "rules:\n"
            "  ms.date:\n"
            "    - type: DateFormat\n"
            "      format: MM/dd/yyyy\n"
            "      severity: error\n"
            "      code: ms-date-invalid\n"
            "    - type: DateRange\n"
            '      relativeMin: "-365.00:00:00"\n'
            '      relativeMax: "00:00:00"\n'
            "  ms.author:\n"
            "    - type: MicrosoftAlias\n"
            "      allowedDLs: docs-team; dotnet-team\n"
            "  ms.topic:\n"
            "    - type: List\n"
            "      list: topics\n"
            "    - type: Kind\n"
            "      multipleValues: false\n"
            "  title:\n"
            "    - type: Match\n"
            "      value: /^[A-Z]/\n"
            "    - type: Either\n"
            "      name: titleSuffix\n"
            "  author:\n"
            "    - type: Deprecated\n"
            "      replacedBy: ms.author\n"
            "    - type: Requires\n"
            "      name: ms.author\n"
            "  ms.service:\n"
            "    - type: Precludes\n"
            "      name: ms.prod\n",
        )
        rule_set = load_rules(path)

        assert len(rule_set) == 10
        assert rule_set.warnings == ()
        assert [f for f, _rules in rule_set] == [
            "ms.date",
            "ms.author",
            "ms.topic",
            "title",
            "author",
            "ms.service",
        ]

        date_format, date_range = rule_set.rules_for("ms.date")
        assert isinstance(date_format, DateFormatRule)
        assert date_format.format == "MM/dd/yyyy"
        assert date_format.envelope.severity == SEVERITY_ERROR
        assert date_format.envelope.code == "ms-date-invalid"
        assert isinstance(date_range, DateRangeRule)
        assert date_range.relative_min == timedelta(days=-365)
        assert date_range.relative_max == timedelta(0)

        (alias,) = rule_set.rules_for("ms.author")
        assert isinstance(alias, MicrosoftAliasRule)
        assert alias.allowed_dls == frozenset({"docs-team", "dotnet-team"})

        list_rule, kind_rule = rule_set.rules_for("ms.topic")
        assert isinstance(list_rule, ListRule)
        assert list_rule.list_name == "topics"
        assert isinstance(kind_rule, KindRule)
        assert kind_rule.multiple_values is False

        match_rule, either_rule = rule_set.rules_for("title")
        assert isinstance(match_rule, MatchRule)
        assert match_rule.value == "/^[A-Z]/"
        assert isinstance(either_rule, EitherRule)
        assert either_rule.name == "titleSuffix"

        deprecated, requires = rule_set.rules_for("author")
        assert isinstance(deprecated, DeprecatedRule)
        assert deprecated.replaced_by == "ms.author"
        assert isinstance(requires, RequiresRule)

    def test_defaults(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            "version: 1\nrules:\n  ms.topic:\n    - type: List\n      list: topics\n",
        )
        (rule,) = load_rules(path).rules_for("ms.topic")
        assert rule.envelope == RuleEnvelope(
            content_types=frozenset(),
            severity=SEVERITY_WARNING,
            code=DEFAULT_CODES["List"],
            additional_message=None,
            disabled=False,
        )

    def test_envelope_fields(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            "version: 1\n"
            "rules:\n"
            "  ms.topic:\n"
            "    - type: list\n"
            "      list: topics\n"
            "      severity: Suggestion\n"
            "      contentTypes: [article, tutorial]\n"
            "      additionalErrorMessage: See the style guide.\n"
            "      disabled: true\n",
        )
        (rule,) = load_rules(path).rules_for("ms.topic")
        assert rule.envelope.severity == "suggestion"
        assert rule.envelope.content_types == frozenset({"article", "tutorial"})
        assert rule.envelope.additional_message == "See the style guide."
        assert rule.envelope.disabled is True

    def test_additional_message_alias(self) -> None:
        rule, _warnings = parse_rule(
            "ms.topic", {"type": "List", "list": "topics", "additionalMessage": "Hint."}
        )
        assert rule.envelope.additional_message == "Hint."

    def test_empty_rules_section(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "version: 1\nrules: {}\n")
        rule_set = load_rules(path)
        assert len(rule_set) == 0
        assert list(rule_set) == []

    def test_kind_counts(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            "version: 1\n"
            "rules:\n"
            "  a:\n"
            "    - type: Deprecated\n"
            "  b:\n"
            "    - type: Deprecated\n"
            "    - type: Kind\n"
            "      multipleValues: true\n",
        )
        assert load_rules(path).kind_counts() == {"Deprecated": 2, "Kind": 1}


# ---------------------------------------------------------------------------
# Inactive attributes
# ---------------------------------------------------------------------------


class TestInactiveAttributes:
    def test_foreign_attribute_warns_and_is_dropped(self) -> None:
        rule, warnings = parse_rule(
            "ms.date", {"type": "DateFormat", "format": "yyyy-MM-dd", "list": "topics"}
        )
        assert isinstance(rule, DateFormatRule)
        assert not hasattr(rule, "list_name")
        assert len(warnings) == 1
        assert "'list'" in warnings[0]
        assert "DateFormat" in warnings[0]

    def test_warnings_kept_on_rule_set(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            "version: 1\n"
            "rules:\n"
            "  ms.topic:\n"
            "    - type: Kind\n"
            "      multipleValues: false\n"
            "      format: yyyy\n"
            "      name: other\n",
        )
        rule_set = load_rules(path)
        assert len(rule_set) == 1
        assert len(rule_set.warnings) == 2

    def test_null_foreign_attribute_is_silent(self) -> None:
        _rule, warnings = parse_rule("f", {"type": "Deprecated", "format": None})
        assert warnings == []


# ---------------------------------------------------------------------------
# Configuration errors
# ---------------------------------------------------------------------------


class TestRuleConfigErrors:
    def test_missing_version(self) -> None:
        with pytest.raises(RuleConfigError, match="version"):
            parse_rules({"rules": {}})

    def test_unsupported_version(self) -> None:
        with pytest.raises(RuleConfigError, match="unsupported version 2"):
            parse_rules({"version": 2, "rules": {}})

    def test_not_a_mapping(self) -> None:
        with pytest.raises(RuleConfigError):
            parse_rules(["version", 1])

    def test_unknown_kind(self) -> None:
        with pytest.raises(RuleConfigError, match="unknown rule type 'Regex'"):
            parse_rules({"version": 1, "rules": {"f": [{"type": "Regex"}]}})

    def test_unknown_attribute(self) -> None:
        with pytest.raises(RuleConfigError, match="unknown attribute"):
            parse_rules({"version": 1, "rules": {"f": [{"type": "Deprecated", "colour": 1}]}})

    def test_bad_severity(self) -> None:
        with pytest.raises(RuleConfigError, match="invalid severity 'fatal'"):
            parse_rules(
                {"version": 1, "rules": {"f": [{"type": "Deprecated", "severity": "fatal"}]}}
            )

    @pytest.mark.parametrize(
        ("rule", "fragment"),
        [
            ({"type": "DateFormat"}, "'format' is required"),
            ({"type": "DateRange"}, "relativeMin"),
            ({"type": "Either"}, "'name' is required"),
            ({"type": "Requires", "name": ""}, "'name' is required"),
            ({"type": "Kind"}, "'multipleValues' is required"),
            ({"type": "Kind", "multipleValues": "yes"}, "'multipleValues' is required"),
            ({"type": "List"}, "'list' is required"),
            ({"type": "Match"}, "'value' is required"),
            ({"type": "Match", "value": "/[/"}, "invalid pattern"),
            ({"type": "Precludes", "name": "f"}, "different field"),
            ({"type": "DateRange", "relativeMin": "bogus"}, "invalid time offset"),
            ({"type": "DateRange", "relativeMin": 10**10}, "invalid time offset"),
            ({"type": "DateRange", "relativeMax": 1e10}, "invalid time offset"),
            (
                {"type": "DateRange", "relativeMin": 10, "relativeMax": -10},
                "must not be greater",
            ),
        ],
    )
    def test_missing_or_invalid_kind_attribute(
        self, rule: dict[str, object], fragment: str
    ) -> None:
        with pytest.raises(RuleConfigError, match=fragment):
            parse_rules({"version": 1, "rules": {"f": [rule]}})

    def test_all_problems_reported_together(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            "version: 1\n"
            "rules:\n"
            "  a:\n"
            "    - type: DateFormat\n"
            "    - type: List\n"
            "      list: ok\n"
            "  b:\n"
            "    - type: Nope\n"
            "  c: not-a-list\n",
        )
        with pytest.raises(RuleConfigError) as exc_info:
            load_rules(path)

        problems = exc_info.value.problems
        assert len(problems) == 3
        assert problems[0].startswith("rules['a'][0]")
        assert problems[1].startswith("rules['b'][0]")
        assert problems[2].startswith("rules['c']")
        assert str(exc_info.value).startswith("3 invalid metadata rules")

    def test_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            parse_rules({"version": 1, "rules": {"f": [{"type": "Nope"}]}})

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "version: 1\nrules: [unclosed\n")
        with pytest.raises(RuleConfigError, match="invalid YAML"):
            load_rules(path)

    def test_out_of_range_offset_in_yaml(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            "version: 1\n"
            "rules:\n"
            "  ms.date:\n"
            "    - type: DateRange\n"
            "      relativeMin: .inf\n",
        )
        with pytest.raises(RuleConfigError, match="invalid time offset"):
            load_rules(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(RuleConfigError, match="cannot read"):
            load_rules(tmp_path / "missing.yml")


# ---------------------------------------------------------------------------
# Offsets and helpers
# ---------------------------------------------------------------------------


class TestParseOffset:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("-30.00:00:00", timedelta(days=-30)),
            ("12:00", timedelta(hours=12)),
            ("1.02:03:04", timedelta(days=1, hours=2, minutes=3, seconds=4)),
            ("00:00:01.5", timedelta(seconds=1, milliseconds=500)),
            (7, timedelta(days=7)),
            (-0.5, timedelta(hours=-12)),
            ("14", timedelta(days=14)),
            (timedelta(hours=3), timedelta(hours=3)),
        ],
    )
    def test_valid(self, raw: object, expected: timedelta) -> None:
        assert parse_offset(raw) == expected

    @pytest.mark.parametrize(
        "raw",
        ["soon", True, [1], "1:2:3:4", 10**10, 1e10, float("inf"), float("nan"), "1e10", "inf"],
    )
    def test_invalid(self, raw: object) -> None:
        with pytest.raises(ValueError, match="invalid time offset"):
            parse_offset(raw)


class TestRuleSet:
    def test_from_rules_groups_in_order(self) -> None:
        env = RuleEnvelope(code="x")
        rules = [
            DeprecatedRule("b", env),
            DeprecatedRule("a", env),
            KindRule("b", env, multiple_values=True),
        ]
        rule_set = RuleSet.from_rules(rules)
        assert [name for name, _rules in rule_set] == ["b", "a"]
        assert rule_set.rules_for("b") == (rules[0], rules[2])
        assert rule_set.rules_for("missing") == ()

    def test_by_field_is_read_only(self) -> None:
        rule_set = RuleSet.from_rules([DeprecatedRule("a", RuleEnvelope())])
        with pytest.raises(TypeError):
            rule_set.by_field["b"] = ()  # type: ignore[index]

    def test_kind_name_rejects_other_objects(self) -> None:
        with pytest.raises(TypeError):
            kind_name(object())  # type: ignore[arg-type]
