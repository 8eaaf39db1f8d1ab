"""Diagnostics and the per-file error sink shared by concurrent builds."""

from __future__ import annotations

import threading
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"
SEVERITY_SUGGESTION = "suggestion"

VALID_SEVERITIES: frozenset[str] = frozenset(
    {SEVERITY_ERROR, SEVERITY_WARNING, SEVERITY_SUGGESTION}
)

# Ordering used when sorting diagnostics for display.
_SEVERITY_RANK: dict[str, int] = {
    SEVERITY_ERROR: 0,
    SEVERITY_WARNING: 1,
    SEVERITY_SUGGESTION: 2,
}

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Diagnostic:
    """A single problem reported against a file."""

    code: str
    severity: str  # "error" | "warning" | "suggestion"
    field: str | None  # metadata field, None for file-level problems
    message: str
    file: str | None = None

    @property
    def is_error(self) -> bool:
        return self.severity == SEVERITY_ERROR

    def for_file(self, file: str) -> Diagnostic:
        """Return a copy of this diagnostic attached to *file*."""
        return replace(self, file=file)

    def to_dict(self) -> dict[str, object]:
        return {
            "file": self.file,
            "code": self.code,
            "severity": self.severity,
            "field": self.field,
            "message": self.message,
        }


def sort_key(diagnostic: Diagnostic) -> tuple[str, int, str, str]:
    """Stable display order: file, severity, field, code."""
    return (
        diagnostic.file or "",
        _SEVERITY_RANK.get(diagnostic.severity, len(_SEVERITY_RANK)),
        diagnostic.field or "",
        diagnostic.code,
    )


# ---------------------------------------------------------------------------
# Error sink
# ---------------------------------------------------------------------------


class _Bucket:
    __slots__ = ("lock", "items")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.items: list[Diagnostic] = []


class ErrorSink:
    """Append-only multimap of file -> diagnostics.

    Safe to share between worker threads.  The guard lock is held only
    while a file's bucket is created; appends to an existing bucket take
    that file's own lock, so builds of different files never contend.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._buckets: dict[str, _Bucket] = {}

    def _bucket(self, file: str) -> _Bucket:
        bucket = self._buckets.get(file)
        if bucket is None:
            with self._guard:
                bucket = self._buckets.setdefault(file, _Bucket())
        return bucket

    def add(self, file: str, diagnostic: Diagnostic) -> None:
        """Attach *diagnostic* to *file*."""
        bucket = self._bucket(file)
        with bucket.lock:
            bucket.items.append(diagnostic.for_file(file))

    def extend(self, file: str, diagnostics: Iterable[Diagnostic]) -> None:
        attached = [d.for_file(file) for d in diagnostics]
        if not attached:
            return
        bucket = self._bucket(file)
        with bucket.lock:
            bucket.items.extend(attached)

    def get(self, file: str) -> tuple[Diagnostic, ...]:
        """Return the diagnostics recorded so far for *file*, in report order."""
        bucket = self._buckets.get(file)
        if bucket is None:
            return ()
        with bucket.lock:
            return tuple(bucket.items)

    def file_has_error(self, file: str) -> bool:
        return any(d.is_error for d in self.get(file))

    def files(self) -> list[str]:
        with self._guard:
            return sorted(self._buckets)

    def all(self) -> list[Diagnostic]:
        """Every diagnostic, sorted by file, severity, field, and code."""
        collected: list[Diagnostic] = []
        for file in self.files():
            collected.extend(self.get(file))
        collected.sort(key=sort_key)
        return collected

    def counts(self) -> dict[str, int]:
        """Diagnostic counts keyed by severity."""
        result = {severity: 0 for severity in sorted(VALID_SEVERITIES)}
        for diagnostic in self.all():
            result[diagnostic.severity] = result.get(diagnostic.severity, 0) + 1
        return result

    def has_errors(self) -> bool:
        return any(self.file_has_error(file) for file in self.files())
