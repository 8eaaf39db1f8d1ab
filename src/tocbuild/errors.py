"""Exception hierarchy shared by the loaders and collaborators."""

from __future__ import annotations


class DocBuildError(Exception):
    """Base class for every error raised inside a documentation build."""


class ConfigError(DocBuildError, ValueError):
    """Raised when the build configuration file is unreadable or invalid."""


class RuleConfigError(DocBuildError, ValueError):
    """Raised when a metadata rules file contains malformed rules.

    All problems found in the file are collected first; ``problems`` holds
    one message per offending rule.
    """

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        count = len(self.problems)
        header = f"{count} invalid metadata rule{'s' if count != 1 else ''}"
        super().__init__("\n".join([header, *(f"  - {p}" for p in self.problems)]))


class TocLoadError(DocBuildError):
    """Raised when a TOC file cannot be read or parsed."""


class RenderError(DocBuildError):
    """Raised when a template transform or view render fails."""


class OutputError(DocBuildError):
    """Raised when an output artifact cannot be written."""
