"""Metadata domain: rule schema, rule engine, and the validation stage."""

from tocbuild.metadata.rule_engine import (
    AliasDirectory,
    AllowListProvider,
    EvaluationContext,
    StaticAliasDirectory,
    StaticAllowLists,
    evaluate_rule,
    evaluate_rules,
)
from tocbuild.metadata.rules import (
    RULE_KINDS,
    DateFormatRule,
    DateRangeRule,
    DeprecatedRule,
    EitherRule,
    KindRule,
    ListRule,
    MatchRule,
    MetadataRule,
    MicrosoftAliasRule,
    PrecludesRule,
    RequiresRule,
    RuleEnvelope,
    RuleSet,
    load_rules,
    parse_rules,
)
from tocbuild.metadata.validator import MetadataValidator, coerce_toc_metadata

__all__ = [
    "RULE_KINDS",
    "AliasDirectory",
    "AllowListProvider",
    "DateFormatRule",
    "DateRangeRule",
    "DeprecatedRule",
    "EitherRule",
    "EvaluationContext",
    "KindRule",
    "ListRule",
    "MatchRule",
    "MetadataRule",
    "MetadataValidator",
    "MicrosoftAliasRule",
    "PrecludesRule",
    "RequiresRule",
    "RuleEnvelope",
    "RuleSet",
    "StaticAliasDirectory",
    "StaticAllowLists",
    "coerce_toc_metadata",
    "evaluate_rule",
    "evaluate_rules",
    "load_rules",
    "parse_rules",
]
