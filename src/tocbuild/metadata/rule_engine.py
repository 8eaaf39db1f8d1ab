"""Metadata rule engine: evaluate a RuleSet against one document's metadata."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import TYPE_CHECKING, Any, Protocol

from tocbuild.diagnostics import Diagnostic
from tocbuild.metadata.rules import (
    DateFormatRule,
    DateRangeRule,
    DeprecatedRule,
    EitherRule,
    KindRule,
    ListRule,
    MatchRule,
    MicrosoftAliasRule,
    PrecludesRule,
    RequiresRule,
)

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import timedelta

    from tocbuild.metadata.rules import MetadataRule, RuleSet

# Formats tried, in order, when a DateRange value is not ISO-8601.
_FALLBACK_DATE_FORMATS: tuple[str, ...] = ("%m/%d/%Y", "%m/%d/%Y %H:%M:%S", "%Y/%m/%d")

# .NET custom date format specifiers -> strptime directives, keyed by
# (letter, run length).  Runs longer than listed use the last entry.
_DOTNET_DIRECTIVES: dict[str, tuple[str, ...]] = {
    "y": ("%y", "%y", "%Y", "%Y"),
    "M": ("%m", "%m", "%b", "%B"),
    "d": ("%d", "%d", "%a", "%A"),
    "H": ("%H", "%H"),
    "h": ("%I", "%I"),
    "m": ("%M", "%M"),
    "s": ("%S", "%S"),
    "t": ("%p", "%p"),
    "f": ("%f",),
    "F": ("%f",),
    "z": ("%z",),
}

# ---------------------------------------------------------------------------
# External lookups
# ---------------------------------------------------------------------------


class AllowListProvider(Protocol):
    """Resolves a named allow-list used by List rules."""

    def get_allowed_values(self, list_name: str) -> frozenset[str] | None:
        """Return the allowed values, or None when the list is unknown."""
        ...


class AliasDirectory(Protocol):
    """Resolves the distribution lists an alias belongs to."""

    def get_distribution_lists(self, alias: str) -> frozenset[str] | None:
        """Return the alias's distribution lists, or None for an unknown alias."""
        ...


@dataclass(frozen=True)
class StaticAllowLists:
    """Allow-lists held in memory, typically from the build configuration."""

    lists: Mapping[str, frozenset[str]] = field(default_factory=dict)

    @classmethod
    def from_config(cls, raw: Mapping[str, Any]) -> StaticAllowLists:
        return cls({str(k): frozenset(str(v) for v in values) for k, values in raw.items()})

    def get_allowed_values(self, list_name: str) -> frozenset[str] | None:
        return self.lists.get(list_name)


@dataclass(frozen=True)
class StaticAliasDirectory:
    """Alias membership held in memory: alias -> distribution lists."""

    members: Mapping[str, frozenset[str]] = field(default_factory=dict)

    @classmethod
    def from_config(cls, raw: Mapping[str, Any]) -> StaticAliasDirectory:
        members: dict[str, frozenset[str]] = {}
        for alias, dls in raw.items():
            if isinstance(dls, str):
                dls = [dls]
            members[str(alias).lower()] = frozenset(str(d) for d in dls or ())
        return cls(members)

    def get_distribution_lists(self, alias: str) -> frozenset[str] | None:
        return self.members.get(alias.lower())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class EvaluationContext:
    """Build-time inputs shared by every rule evaluation.

    ``now`` is fixed once per build so that every file is judged against
    the same clock.
    """

    now: datetime = field(default_factory=_utcnow)
    allow_lists: AllowListProvider = field(default_factory=StaticAllowLists)
    alias_directory: AliasDirectory = field(default_factory=StaticAliasDirectory)


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def is_present(metadata: Mapping[str, Any], name: str) -> bool:
    """A field is present when its key exists and the value is not null."""
    return metadata.get(name) is not None


def _is_sequence(value: object) -> bool:
    return isinstance(value, (list, tuple))


def _as_values(value: object) -> list[Any]:
    return list(value) if _is_sequence(value) else [value]  # type: ignore[call-overload]


def _display(value: object) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def dotnet_to_strptime(pattern: str) -> str:
    """Translate a .NET custom date format (``MM/dd/yyyy``) to strptime syntax.

    Patterns that already contain ``%`` are returned unchanged.  Quoted text
    and backslash-escaped characters are kept as literals.
    """
    if "%" in pattern:
        return pattern

    out: list[str] = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch in ("'", '"'):
            end = pattern.find(ch, i + 1)
            end = len(pattern) if end == -1 else end
            out.append(pattern[i + 1 : end].replace("%", "%%"))
            i = end + 1
            continue
        if ch == "\\" and i + 1 < len(pattern):
            out.append(pattern[i + 1].replace("%", "%%"))
            i += 2
            continue
        directives = _DOTNET_DIRECTIVES.get(ch)
        if directives is None:
            out.append(ch)
            i += 1
            continue
        run = 1
        while i + run < len(pattern) and pattern[i + run] == ch:
            run += 1
        out.append(directives[min(run, len(directives)) - 1])
        i += run
    return "".join(out)


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_date(value: object) -> datetime | None:
    """Parse a metadata date value; returns None when it is not a date."""
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time())
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    try:
        return _naive_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        pass
    for fmt in _FALLBACK_DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


# ---------------------------------------------------------------------------
# Predicates: each returns None on success or the failure message
# ---------------------------------------------------------------------------


def _check_date_format(rule: DateFormatRule, value: Any) -> str | None:
    if value is None:
        return None
    text = value.isoformat() if isinstance(value, (datetime, date)) else value
    expected = (
        f"Invalid date format for '{rule.field}': '{_display(value)}'. "
        f"Expected format '{rule.format}'."
    )
    if not isinstance(text, str):
        return expected
    try:
        datetime.strptime(text.strip(), dotnet_to_strptime(rule.format))
    except ValueError:
        return expected
    return None


def _shift(anchor: datetime, offset: timedelta | None) -> datetime | None:
    """``anchor + offset``; None (unbounded) when absent or past the datetime range."""
    if offset is None:
        return None
    try:
        return anchor + offset
    except OverflowError:
        return None


def _check_date_range(rule: DateRangeRule, value: Any, now: datetime) -> str | None:
    if value is None:
        return None
    parsed = parse_date(value)
    if parsed is None:
        return f"Invalid date for '{rule.field}': '{_display(value)}'."

    anchor = _naive_utc(now)
    lower = _shift(anchor, rule.relative_min)
    upper = _shift(anchor, rule.relative_max)
    if (lower is not None and parsed < lower) or (upper is not None and parsed > upper):
        lower_text = lower.date().isoformat() if lower is not None else "any date"
        upper_text = upper.date().isoformat() if upper is not None else "any date"
        return (
            f"Value of '{rule.field}' ({_display(value)}) is out of range: "
            f"must be between {lower_text} and {upper_text}."
        )
    return None


def _check_deprecated(rule: DeprecatedRule, present: bool) -> str | None:
    if not present:
        return None
    if rule.replaced_by:
        return f"Metadata '{rule.field}' is deprecated, use '{rule.replaced_by}' instead."
    return f"Metadata '{rule.field}' is deprecated."


def _check_kind(rule: KindRule, value: Any) -> str | None:
    if value is None:
        return None
    if rule.multiple_values:
        if not _is_sequence(value):
            return f"Metadata '{rule.field}' must be a list of values."
        return None
    if _is_sequence(value) and len(value) > 1:
        return f"Metadata '{rule.field}' must be a single value, got {len(value)} values."
    return None


def _check_list(rule: ListRule, value: Any, lists: AllowListProvider) -> str | None:
    if value is None:
        return None
    allowed = lists.get_allowed_values(rule.list_name)
    if allowed is None:
        return f"List '{rule.list_name}' used by '{rule.field}' is not defined."
    invalid = [_display(v) for v in _as_values(value) if _display(v) not in allowed]
    if invalid:
        values = ", ".join(f"'{v}'" for v in invalid)
        return f"Value {values} of '{rule.field}' is not in list '{rule.list_name}'."
    return None


def matches_value(expected: str, actual: object) -> bool:
    """Exact comparison, or a regex search when *expected* is ``/pattern/``."""
    text = _display(actual)
    if len(expected) >= 2 and expected.startswith("/") and expected.endswith("/"):
        return re.search(expected[1:-1], text) is not None
    return text == expected


def _check_match(rule: MatchRule, value: Any) -> str | None:
    if value is None:
        return None
    failed = [v for v in _as_values(value) if not matches_value(rule.value, v)]
    if failed:
        return f"Value '{_display(failed[0])}' of '{rule.field}' does not match '{rule.value}'."
    return None


def _check_alias(
    rule: MicrosoftAliasRule, value: Any, directory: AliasDirectory
) -> str | None:
    if value is None:
        return None
    for alias in _as_values(value):
        if not isinstance(alias, str) or not alias.strip():
            return f"Metadata '{rule.field}' must be a Microsoft alias, got '{_display(alias)}'."
        dls = directory.get_distribution_lists(alias.strip())
        if dls is None:
            return f"'{alias}' in '{rule.field}' is not a known Microsoft alias."
        if rule.allowed_dls and not (dls & rule.allowed_dls):
            allowed = ", ".join(sorted(rule.allowed_dls))
            return (
                f"'{alias}' in '{rule.field}' does not belong to an allowed "
                f"distribution list ({allowed})."
            )
    return None


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


def _failure_message(
    rule: MetadataRule, metadata: Mapping[str, Any], context: EvaluationContext
) -> str | None:
    value = metadata.get(rule.field)
    present = value is not None

    if isinstance(rule, DateFormatRule):
        return _check_date_format(rule, value)
    if isinstance(rule, DateRangeRule):
        return _check_date_range(rule, value, context.now)
    if isinstance(rule, DeprecatedRule):
        return _check_deprecated(rule, present)
    if isinstance(rule, EitherRule):
        if not present and not is_present(metadata, rule.name):
            return f"Either '{rule.field}' or '{rule.name}' must be specified."
        return None
    if isinstance(rule, PrecludesRule):
        if present and is_present(metadata, rule.name):
            return f"Only one of '{rule.field}' and '{rule.name}' can be specified."
        return None
    if isinstance(rule, RequiresRule):
        if present and not is_present(metadata, rule.name):
            return f"'{rule.name}' is required when '{rule.field}' is specified."
        return None
    if isinstance(rule, KindRule):
        return _check_kind(rule, value)
    if isinstance(rule, ListRule):
        return _check_list(rule, value, context.allow_lists)
    if isinstance(rule, MatchRule):
        return _check_match(rule, value)
    if isinstance(rule, MicrosoftAliasRule):
        return _check_alias(rule, value, context.alias_directory)

    msg = f"Unsupported metadata rule: {type(rule).__name__}"
    raise TypeError(msg)


def evaluate_rule(
    rule: MetadataRule,
    metadata: Mapping[str, Any],
    content_type: str | None,
    context: EvaluationContext,
) -> Diagnostic | None:
    """Evaluate one rule, returning a diagnostic when it fails.

    Disabled rules and rules scoped to other content types return None.
    """
    if not rule.envelope.applies_to(content_type):
        return None

    message = _failure_message(rule, metadata, context)
    if message is None:
        return None
    if rule.envelope.additional_message:
        message = f"{message} {rule.envelope.additional_message}"

    return Diagnostic(
        code=rule.envelope.code,
        severity=rule.envelope.severity,
        field=rule.field,
        message=message,
    )


def evaluate_rules(
    rule_set: RuleSet,
    metadata: Mapping[str, Any],
    content_type: str | None,
    *,
    context: EvaluationContext | None = None,
) -> list[Diagnostic]:
    """Evaluate every rule in *rule_set* against *metadata*.

    Diagnostics follow the configuration order of fields and rules, so two
    runs over identical input produce identical output.
    """
    ctx = context if context is not None else EvaluationContext()
    diagnostics: list[Diagnostic] = []
    for _field_name, rules in rule_set:
        for rule in rules:
            diagnostic = evaluate_rule(rule, metadata, content_type, ctx)
            if diagnostic is not None:
                diagnostics.append(diagnostic)
    return diagnostics
