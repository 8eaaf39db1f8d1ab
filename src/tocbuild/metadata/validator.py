"""Metadata validation stage: run the rule engine, then coerce to TocMetadata."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from tocbuild.diagnostics import SEVERITY_ERROR, Diagnostic
from tocbuild.metadata.rule_engine import EvaluationContext, evaluate_rules
from tocbuild.toc.model import TocMetadata

if TYPE_CHECKING:
    from collections.abc import Mapping

    from tocbuild.diagnostics import ErrorSink
    from tocbuild.metadata.rules import RuleSet

logger = logging.getLogger(__name__)

SCHEMA_VIOLATION_CODE = "violate-schema"

# Raw keys mapped onto typed TocMetadata attributes.
_STRING_FIELDS: tuple[str, ...] = ("title", "pdf_absolute_path")
_LIST_FIELDS: tuple[str, ...] = ("monikers",)
_TYPED_FIELDS: frozenset[str] = frozenset(_STRING_FIELDS + _LIST_FIELDS)


def _type_name(value: object) -> str:
    if isinstance(value, dict):
        return "object"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    return type(value).__name__


def _schema_error(name: str, expected: str, value: object) -> Diagnostic:
    return Diagnostic(
        code=SCHEMA_VIOLATION_CODE,
        severity=SEVERITY_ERROR,
        field=name,
        message=f"Expected type '{expected}' for '{name}', got '{_type_name(value)}'.",
    )


def _coerce_string(name: str, value: object) -> tuple[str | None, Diagnostic | None]:
    if isinstance(value, str):
        return value, None
    if isinstance(value, bool):
        return str(value).lower(), None
    if isinstance(value, (int, float)):
        return str(value), None
    return None, _schema_error(name, "string", value)


def _coerce_string_list(
    name: str, value: object
) -> tuple[tuple[str, ...], Diagnostic | None]:
    if isinstance(value, str):
        return (value,), None
    if isinstance(value, (list, tuple)):
        if all(isinstance(v, (str, int, float)) for v in value):
            return tuple(str(v) for v in value), None
    return (), _schema_error(name, "array of strings", value)


def coerce_toc_metadata(raw: Mapping[str, Any]) -> tuple[TocMetadata, list[Diagnostic]]:
    """Best-effort conversion of raw metadata to :class:`TocMetadata`.

    Fields that fail to convert are left at their defaults and reported;
    every other field is still populated.
    """
    diagnostics: list[Diagnostic] = []
    typed: dict[str, Any] = {}

    for name in _STRING_FIELDS:
        value = raw.get(name)
        if value is None:
            continue
        coerced, problem = _coerce_string(name, value)
        if problem is not None:
            diagnostics.append(problem)
        else:
            typed[name] = coerced

    for name in _LIST_FIELDS:
        value = raw.get(name)
        if value is None:
            continue
        items, problem = _coerce_string_list(name, value)
        if problem is not None:
            diagnostics.append(problem)
        else:
            typed[name] = items

    extension = {k: v for k, v in raw.items() if k not in _TYPED_FIELDS}
    metadata = TocMetadata(extension=MappingProxyType(extension), **typed)
    return metadata, diagnostics


class MetadataValidator:
    """Validate raw metadata against a rule set and produce typed metadata.

    Holds no mutable state, so one instance serves every worker thread.
    """

    def __init__(self, rule_set: RuleSet, context: EvaluationContext | None = None) -> None:
        self.rule_set = rule_set
        self.context = context if context is not None else EvaluationContext()

    def validate(
        self,
        errors: ErrorSink,
        file: str,
        raw_metadata: Mapping[str, Any],
        content_type: str | None,
    ) -> TocMetadata:
        """Report rule and coercion diagnostics for *file*; return typed metadata."""
        rule_diagnostics = evaluate_rules(
            self.rule_set, raw_metadata, content_type, context=self.context
        )
        errors.extend(file, rule_diagnostics)

        metadata, coercion_diagnostics = coerce_toc_metadata(raw_metadata)
        errors.extend(file, coercion_diagnostics)

        if rule_diagnostics or coercion_diagnostics:
            logger.debug(
                "%s: %d rule and %d schema diagnostics",
                file,
                len(rule_diagnostics),
                len(coercion_diagnostics),
            )
        return metadata
