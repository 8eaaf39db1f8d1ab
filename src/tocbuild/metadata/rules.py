"""Metadata rule schema: parse rules.yml into typed, immutable rule variants."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import timedelta
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import yaml

from tocbuild.diagnostics import SEVERITY_WARNING, VALID_SEVERITIES
from tocbuild.errors import RuleConfigError

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping
    from pathlib import Path

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SUPPORTED_SCHEMA_VERSIONS: frozenset[int] = frozenset({1})

# Keys shared by every rule kind.
_COMMON_KEYS: frozenset[str] = frozenset(
    {"type", "contentTypes", "severity", "code", "additionalErrorMessage",
     "additionalMessage", "disabled"}
)

# Kind-specific keys, by authored kind name.
_KIND_KEYS: dict[str, frozenset[str]] = {
    "DateFormat": frozenset({"format"}),
    "DateRange": frozenset({"relativeMin", "relativeMax"}),
    "Deprecated": frozenset({"replacedBy"}),
    "Either": frozenset({"name"}),
    "Precludes": frozenset({"name"}),
    "Requires": frozenset({"name"}),
    "Kind": frozenset({"multipleValues"}),
    "List": frozenset({"list"}),
    "Match": frozenset({"value"}),
    "MicrosoftAlias": frozenset({"allowedDLs"}),
}

_ALL_KIND_KEYS: frozenset[str] = frozenset().union(*_KIND_KEYS.values())

DEFAULT_CODES: dict[str, str] = {
    "DateFormat": "date-format-invalid",
    "DateRange": "date-out-of-range",
    "Deprecated": "metadata-deprecated",
    "Either": "metadata-either-missing",
    "Precludes": "metadata-precluded",
    "Requires": "metadata-required-missing",
    "Kind": "metadata-kind-invalid",
    "List": "metadata-value-not-in-list",
    "Match": "metadata-value-mismatch",
    "MicrosoftAlias": "microsoft-alias-invalid",
}

# .NET TimeSpan text: [-][d.]hh:mm[:ss[.fff]]
_TIMESPAN_RE = re.compile(
    r"^(?P<sign>-)?(?:(?P<days>\d+)\.)?(?P<hours>\d{1,2}):(?P<minutes>\d{2})"
    r"(?::(?P<seconds>\d{2})(?:\.(?P<fraction>\d{1,7}))?)?$"
)

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RuleEnvelope:
    """Attributes every rule carries, independent of its kind."""

    content_types: frozenset[str] = frozenset()  # empty = all content types
    severity: str = SEVERITY_WARNING  # "error" | "warning" | "suggestion"
    code: str = ""
    additional_message: str | None = None
    disabled: bool = False

    def applies_to(self, content_type: str | None) -> bool:
        """Return True if an enabled rule should run for *content_type*."""
        if self.disabled:
            return False
        if not self.content_types:
            return True
        return content_type is not None and content_type in self.content_types


@dataclass(frozen=True)
class DateFormatRule:
    """The field must be a date written in ``format``."""

    field: str
    envelope: RuleEnvelope
    format: str


@dataclass(frozen=True)
class DateRangeRule:
    """The field must be a date within offsets of the build time.

    Either bound may be ``None``, leaving that side unbounded.
    """

    field: str
    envelope: RuleEnvelope
    relative_min: timedelta | None = None
    relative_max: timedelta | None = None


@dataclass(frozen=True)
class DeprecatedRule:
    """Any use of the field is reported; ``replaced_by`` names the successor."""

    field: str
    envelope: RuleEnvelope
    replaced_by: str | None = None


@dataclass(frozen=True)
class EitherRule:
    """At least one of ``field`` and ``name`` must be present."""

    field: str
    envelope: RuleEnvelope
    name: str


@dataclass(frozen=True)
class PrecludesRule:
    """``field`` and ``name`` must not both be present."""

    field: str
    envelope: RuleEnvelope
    name: str


@dataclass(frozen=True)
class RequiresRule:
    """When ``field`` is present, ``name`` must be present too."""

    field: str
    envelope: RuleEnvelope
    name: str


@dataclass(frozen=True)
class KindRule:
    """The field must hold a sequence (or a single value) as configured."""

    field: str
    envelope: RuleEnvelope
    multiple_values: bool


@dataclass(frozen=True)
class ListRule:
    """Every value of the field must appear in the named allow-list."""

    field: str
    envelope: RuleEnvelope
    list_name: str


@dataclass(frozen=True)
class MatchRule:
    """The field must equal ``value``, or match it when written as ``/regex/``."""

    field: str
    envelope: RuleEnvelope
    value: str


@dataclass(frozen=True)
class MicrosoftAliasRule:
    """The alias in the field must belong to one of ``allowed_dls``.

    An empty ``allowed_dls`` accepts any alias the directory knows.
    """

    field: str
    envelope: RuleEnvelope
    allowed_dls: frozenset[str] = frozenset()


MetadataRule = (
    DateFormatRule
    | DateRangeRule
    | DeprecatedRule
    | EitherRule
    | PrecludesRule
    | RequiresRule
    | KindRule
    | ListRule
    | MatchRule
    | MicrosoftAliasRule
)

RULE_KINDS: dict[str, type[MetadataRule]] = {
    "DateFormat": DateFormatRule,
    "DateRange": DateRangeRule,
    "Deprecated": DeprecatedRule,
    "Either": EitherRule,
    "Precludes": PrecludesRule,
    "Requires": RequiresRule,
    "Kind": KindRule,
    "List": ListRule,
    "Match": MatchRule,
    "MicrosoftAlias": MicrosoftAliasRule,
}

_KIND_BY_LOWER: dict[str, str] = {kind.lower(): kind for kind in RULE_KINDS}


def kind_name(rule: MetadataRule) -> str:
    """Return the authored kind name (``"DateFormat"``, ...) of *rule*."""
    for name, cls in RULE_KINDS.items():
        if isinstance(rule, cls):
            return name
    msg = f"Not a metadata rule: {rule!r}"
    raise TypeError(msg)


@dataclass(frozen=True)
class RuleSet:
    """Rules grouped by target field, in configuration order.

    Built once per build session and shared read-only by every file.
    """

    by_field: Mapping[str, tuple[MetadataRule, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    warnings: tuple[str, ...] = ()

    @classmethod
    def from_rules(
        cls, rules: list[MetadataRule], *, warnings: list[str] | None = None
    ) -> RuleSet:
        grouped: dict[str, list[MetadataRule]] = {}
        for rule in rules:
            grouped.setdefault(rule.field, []).append(rule)
        frozen = {name: tuple(items) for name, items in grouped.items()}
        return cls(by_field=MappingProxyType(frozen), warnings=tuple(warnings or ()))

    def __iter__(self) -> Iterator[tuple[str, tuple[MetadataRule, ...]]]:
        return iter(self.by_field.items())

    def __len__(self) -> int:
        return sum(len(rules) for rules in self.by_field.values())

    def rules_for(self, field_name: str) -> tuple[MetadataRule, ...]:
        return self.by_field.get(field_name, ())

    def kind_counts(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for _field_name, rules in self:
            for rule in rules:
                name = kind_name(rule)
                counts[name] = counts.get(name, 0) + 1
        return counts


# ---------------------------------------------------------------------------
# Value parsing helpers
# ---------------------------------------------------------------------------


def parse_offset(raw: object) -> timedelta:
    """Parse a signed build-time offset.

    Accepts a ``timedelta``, a number of days, or .NET TimeSpan text such
    as ``"-30.00:00:00"`` or ``"12:00"``.  Values outside the ``timedelta``
    range (or NaN) raise ``ValueError`` like any other malformed offset.
    """
    if isinstance(raw, timedelta):
        return raw
    if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
        msg = f"invalid time offset {raw!r}"
        raise ValueError(msg)
    try:
        return _to_timedelta(raw)
    except OverflowError:
        msg = f"invalid time offset {raw!r}, out of range"
        raise ValueError(msg) from None


def _to_timedelta(raw: int | float | str) -> timedelta:
    if not isinstance(raw, str):
        try:
            return timedelta(days=raw)
        except ValueError:
            # NaN
            msg = f"invalid time offset {raw!r}"
            raise ValueError(msg) from None

    text = raw.strip()
    m = _TIMESPAN_RE.match(text)
    if m is None:
        try:
            return timedelta(days=float(text))
        except ValueError:
            msg = f"invalid time offset '{raw}', expected [-][d.]hh:mm[:ss]"
            raise ValueError(msg) from None

    fraction = m.group("fraction") or "0"
    delta = timedelta(
        days=int(m.group("days") or 0),
        hours=int(m.group("hours")),
        minutes=int(m.group("minutes")),
        seconds=int(m.group("seconds") or 0),
        microseconds=int(fraction.ljust(7, "0")) // 10,
    )
    return -delta if m.group("sign") else delta


def _split_names(raw: object) -> frozenset[str]:
    """Normalize a string (comma/semicolon separated) or list to a name set."""
    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        parts = re.split(r"[,;]", raw)
    elif isinstance(raw, list):
        parts = [str(item) for item in raw]
    else:
        msg = f"expected a string or list, got {type(raw).__name__}"
        raise ValueError(msg)
    return frozenset(p.strip() for p in parts if p.strip())


def _required_str(data: Mapping[str, Any], key: str, context: str) -> str:
    value = data.get(key)
    if value is None or not isinstance(value, str) or not value.strip():
        msg = f"{context}: '{key}' is required and must be a non-empty string"
        raise ValueError(msg)
    return value


# ---------------------------------------------------------------------------
# YAML parsing
# ---------------------------------------------------------------------------


def _parse_envelope(kind: str, data: Mapping[str, Any], context: str) -> RuleEnvelope:
    severity = str(data.get("severity", SEVERITY_WARNING)).lower()
    if severity not in VALID_SEVERITIES:
        msg = (
            f"{context}: invalid severity '{data.get('severity')}', "
            f"must be one of {sorted(VALID_SEVERITIES)}"
        )
        raise ValueError(msg)

    content_types_raw = data.get("contentTypes")
    if content_types_raw is None:
        content_types: frozenset[str] = frozenset()
    elif isinstance(content_types_raw, list):
        content_types = frozenset(str(c) for c in content_types_raw)
    elif isinstance(content_types_raw, str):
        content_types = frozenset({content_types_raw})
    else:
        msg = f"{context}: 'contentTypes' must be a list of strings"
        raise ValueError(msg)

    code_raw = data.get("code")
    code = str(code_raw) if code_raw else DEFAULT_CODES[kind]

    message_raw = data.get("additionalErrorMessage", data.get("additionalMessage"))
    additional_message = str(message_raw) if message_raw else None

    disabled_raw = data.get("disabled", False)
    if not isinstance(disabled_raw, bool):
        msg = f"{context}: 'disabled' must be a boolean"
        raise ValueError(msg)

    return RuleEnvelope(
        content_types=content_types,
        severity=severity,
        code=code,
        additional_message=additional_message,
        disabled=disabled_raw,
    )


def _parse_kind_fields(
    kind: str, field_name: str, envelope: RuleEnvelope, data: Mapping[str, Any], context: str
) -> MetadataRule:
    """Build the variant for *kind* from its own keys only."""
    if kind == "DateFormat":
        return DateFormatRule(field_name, envelope, _required_str(data, "format", context))

    if kind == "DateRange":
        min_raw = data.get("relativeMin")
        max_raw = data.get("relativeMax")
        if min_raw is None and max_raw is None:
            msg = f"{context}: at least one of 'relativeMin' or 'relativeMax' is required"
            raise ValueError(msg)
        try:
            relative_min = parse_offset(min_raw) if min_raw is not None else None
            relative_max = parse_offset(max_raw) if max_raw is not None else None
        except ValueError as exc:
            msg = f"{context}: {exc}"
            raise ValueError(msg) from exc
        if relative_min is not None and relative_max is not None and relative_min > relative_max:
            msg = f"{context}: 'relativeMin' must not be greater than 'relativeMax'"
            raise ValueError(msg)
        return DateRangeRule(field_name, envelope, relative_min, relative_max)

    if kind == "Deprecated":
        replaced_by = data.get("replacedBy")
        return DeprecatedRule(field_name, envelope, str(replaced_by) if replaced_by else None)

    if kind in ("Either", "Precludes", "Requires"):
        name = _required_str(data, "name", context)
        if name == field_name:
            msg = f"{context}: 'name' must refer to a different field"
            raise ValueError(msg)
        cls = RULE_KINDS[kind]
        return cls(field_name, envelope, name)  # type: ignore[call-arg]

    if kind == "Kind":
        multiple = data.get("multipleValues")
        if not isinstance(multiple, bool):
            msg = f"{context}: 'multipleValues' is required and must be a boolean"
            raise ValueError(msg)
        return KindRule(field_name, envelope, multiple)

    if kind == "List":
        return ListRule(field_name, envelope, _required_str(data, "list", context))

    if kind == "Match":
        value = data.get("value")
        if value is None or isinstance(value, (dict, list)):
            msg = f"{context}: 'value' is required and must be a scalar"
            raise ValueError(msg)
        value_str = str(value)
        if _is_pattern(value_str):
            try:
                re.compile(value_str[1:-1])
            except re.error as exc:
                msg = f"{context}: invalid pattern {value_str}: {exc}"
                raise ValueError(msg) from exc
        return MatchRule(field_name, envelope, value_str)

    # MicrosoftAlias
    try:
        allowed = _split_names(data.get("allowedDLs"))
    except ValueError as exc:
        msg = f"{context}: 'allowedDLs' {exc}"
        raise ValueError(msg) from exc
    return MicrosoftAliasRule(field_name, envelope, allowed)


def _is_pattern(value: str) -> bool:
    return len(value) >= 2 and value.startswith("/") and value.endswith("/")


def parse_rule(
    field_name: str, data: Mapping[str, Any], *, index: int = 0
) -> tuple[MetadataRule, list[str]]:
    """Parse one authored rule mapping.

    Returns the rule plus warnings for populated attributes that belong to
    another kind.  Raises ``ValueError`` for malformed rules.
    """
    context = f"rules['{field_name}'][{index}]"

    type_raw = data.get("type")
    if type_raw is None or not isinstance(type_raw, str):
        msg = f"{context}: missing required 'type' field"
        raise ValueError(msg)
    kind = _KIND_BY_LOWER.get(type_raw.strip().lower())
    if kind is None:
        msg = f"{context}: unknown rule type '{type_raw}', must be one of {sorted(RULE_KINDS)}"
        raise ValueError(msg)
    context = f"{context} ({kind})"

    unknown = sorted(str(k) for k in data if k not in _COMMON_KEYS and k not in _ALL_KIND_KEYS)
    if unknown:
        msg = f"{context}: unknown attribute(s) {unknown}"
        raise ValueError(msg)

    warnings = [
        f"{context}: attribute '{key}' does not apply to {kind} rules and is ignored"
        for key in sorted(_ALL_KIND_KEYS - _KIND_KEYS[kind])
        if data.get(key) is not None
    ]

    envelope = _parse_envelope(kind, data, context)
    return _parse_kind_fields(kind, field_name, envelope, data, context), warnings


def parse_rules(data: object) -> RuleSet:
    """Validate an already-parsed rules document and build a :class:`RuleSet`.

    Every malformed rule is reported once; if any are found a single
    :class:`RuleConfigError` listing all of them is raised.
    """
    if not isinstance(data, dict):
        raise RuleConfigError(["rules file must be a YAML mapping"])

    version = data.get("version")
    if version is None:
        raise RuleConfigError(["missing required 'version' field"])
    if version not in SUPPORTED_SCHEMA_VERSIONS:
        expected = sorted(SUPPORTED_SCHEMA_VERSIONS)
        raise RuleConfigError([f"unsupported version {version}, expected one of {expected}"])

    rules_data = data.get("rules") or {}
    if not isinstance(rules_data, dict):
        raise RuleConfigError(["'rules' must be a mapping of field name to rule list"])

    problems: list[str] = []
    warnings: list[str] = []
    rules: list[MetadataRule] = []

    for field_name, field_rules in rules_data.items():
        if not isinstance(field_rules, list):
            problems.append(f"rules['{field_name}']: must be a list of rules")
            continue
        for idx, rule_data in enumerate(field_rules):
            if not isinstance(rule_data, dict):
                problems.append(f"rules['{field_name}'][{idx}]: must be a mapping")
                continue
            try:
                rule, rule_warnings = parse_rule(str(field_name), rule_data, index=idx)
            except ValueError as exc:
                problems.append(str(exc))
                continue
            rules.append(rule)
            warnings.extend(rule_warnings)

    if problems:
        raise RuleConfigError(problems)

    for warning in warnings:
        logger.warning("%s", warning)

    return RuleSet.from_rules(rules, warnings=warnings)


def load_rules(rules_path: Path) -> RuleSet:
    """Parse a rules YAML file and return a validated :class:`RuleSet`.

    Raises :class:`RuleConfigError` on any schema problem.
    """
    try:
        with rules_path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except OSError as exc:
        raise RuleConfigError([f"cannot read {rules_path}: {exc}"]) from exc
    except yaml.YAMLError as exc:
        raise RuleConfigError([f"invalid YAML in {rules_path}: {exc}"]) from exc

    rule_set = parse_rules(data)
    logger.debug("Loaded %d metadata rules from %s", len(rule_set), rules_path)
    return rule_set
