"""Build pipeline: wire collaborators, build TOC files concurrently, format results."""

from __future__ import annotations

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from tocbuild.diagnostics import SEVERITY_ERROR, Diagnostic, ErrorSink
from tocbuild.metadata.rule_engine import (
    EvaluationContext,
    StaticAliasDirectory,
    StaticAllowLists,
)
from tocbuild.metadata.validator import MetadataValidator
from tocbuild.output import FileOutput, PublishManifest
from tocbuild.providers import (
    ConfigDocumentProvider,
    ConfigMetadataProvider,
    ConfigMonikerProvider,
    DeprecationChecker,
)
from tocbuild.toc.builder import TocBuilder
from tocbuild.toc.loader import JSON_SUFFIXES, MARKDOWN_SUFFIXES, YAML_SUFFIXES, TocLoader
from tocbuild.toc.render import JinjaTemplateEngine

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from tocbuild.config import BuildConfig
    from tocbuild.metadata.rules import RuleSet

logger = logging.getLogger(__name__)

_TOC_SUFFIXES = YAML_SUFFIXES | JSON_SUFFIXES | MARKDOWN_SUFFIXES
_SKIP_DIRS = frozenset({".git", "node_modules", "_site", "__pycache__"})

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass
class BuildResult:
    """Result of building a set of TOC files."""

    errors: ErrorSink = field(default_factory=ErrorSink)
    manifest: PublishManifest = field(default_factory=PublishManifest)
    files: list[str] = field(default_factory=list)
    rules_loaded: int = 0
    elapsed_ms: float = 0.0

    @property
    def diagnostics(self) -> list[Diagnostic]:
        return self.errors.all()

    @property
    def has_errors(self) -> bool:
        return self.errors.has_errors()


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def create_builder(
    config: BuildConfig,
    rule_set: RuleSet,
    *,
    manifest: PublishManifest | None = None,
    now: datetime | None = None,
) -> TocBuilder:
    """Create a :class:`TocBuilder` with the default file-system collaborators."""
    context = EvaluationContext(
        now=now or datetime.now(timezone.utc),
        allow_lists=StaticAllowLists.from_config(config.allow_lists),
        alias_directory=StaticAliasDirectory.from_config(config.aliases),
    )
    loader = TocLoader(config.docset_root)
    return TocBuilder(
        config=config,
        loader=loader,
        content_validator=DeprecationChecker(),
        metadata_provider=ConfigMetadataProvider(config, loader),
        metadata_validator=MetadataValidator(rule_set, context),
        document_provider=ConfigDocumentProvider(config),
        moniker_provider=ConfigMonikerProvider(config),
        publish_manifest=manifest if manifest is not None else PublishManifest(),
        template_engine=JinjaTemplateEngine(config.template_dir),
        output=FileOutput(config.output_dir),
    )


def is_toc_file(path: Path) -> bool:
    return path.stem.lower() == "toc" and path.suffix.lower() in _TOC_SUFFIXES


def discover_toc_files(docset_root: Path) -> list[str]:
    """Find TOC files under *docset_root*, as sorted docset-relative POSIX paths."""
    found: list[str] = []
    for path in docset_root.rglob("*"):
        rel = path.relative_to(docset_root)
        if any(part in _SKIP_DIRS for part in rel.parts[:-1]):
            continue
        if path.is_file() and is_toc_file(path):
            found.append(rel.as_posix())
    return sorted(found)


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def build_all(
    builder: TocBuilder,
    files: Iterable[str],
    *,
    max_workers: int = 4,
    errors: ErrorSink | None = None,
) -> BuildResult:
    """Build every file in *files* on a thread pool.

    Files are independent: an unexpected exception while building one file
    is recorded against that file and does not affect the others.
    """
    start = time.monotonic()
    sink = errors if errors is not None else ErrorSink()
    file_list = list(files)

    logger.info("Building %d TOC files with %d workers", len(file_list), max_workers)

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="tocbuild") as pool:
        futures = {pool.submit(builder.build, sink, file): file for file in file_list}
        for future in as_completed(futures):
            file = futures[future]
            try:
                future.result()
            except Exception as exc:
                logger.exception("Unexpected failure while building %s", file)
                sink.add(
                    file,
                    Diagnostic(
                        code="build-failed",
                        severity=SEVERITY_ERROR,
                        field=None,
                        message=f"Unexpected failure: {exc}",
                    ),
                )

    elapsed = (time.monotonic() - start) * 1000
    result = BuildResult(
        errors=sink,
        manifest=builder.publish_manifest,
        files=sorted(file_list),
        rules_loaded=len(builder.metadata_validator.rule_set),
        elapsed_ms=elapsed,
    )
    counts = sink.counts()
    logger.info(
        "Built %d files in %.0f ms: %d errors, %d warnings, %d suggestions",
        len(file_list),
        elapsed,
        counts.get("error", 0),
        counts.get("warning", 0),
        counts.get("suggestion", 0),
    )
    return result


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------

_SEVERITY_MARKS = {"error": "✗", "warning": "⚠", "suggestion": "ℹ"}


def format_rich(result: BuildResult) -> str:
    """Format a BuildResult as human-readable text.

    Example output::

        Rules: 12 loaded
        Files: 3 built, 3 published

        docs/toc.yml
          ✗ error ms-date-invalid (ms.date): Invalid date format ...

        1 error, 0 warnings, 0 suggestions (0.1s)
    """
    lines: list[str] = [
        f"Rules: {result.rules_loaded} loaded",
        f"Files: {len(result.files)} built, {len(result.manifest)} published",
        "",
    ]

    current_file: str | None = None
    for d in result.diagnostics:
        if d.file != current_file:
            if current_file is not None:
                lines.append("")
            current_file = d.file
            lines.append(str(d.file))
        mark = _SEVERITY_MARKS.get(d.severity, "-")
        where = f" ({d.field})" if d.field else ""
        lines.append(f"  {mark} {d.severity} {d.code}{where}: {d.message}")
    if current_file is not None:
        lines.append("")

    counts = result.errors.counts()
    elapsed_str = f"{result.elapsed_ms / 1000:.1f}s"
    lines.append(
        f"{counts.get('error', 0)} errors, {counts.get('warning', 0)} warnings, "
        f"{counts.get('suggestion', 0)} suggestions ({elapsed_str})"
    )
    return "\n".join(lines)


def format_json(result: BuildResult) -> str:
    """Format a BuildResult as structured JSON with ``diagnostics`` and ``summary``."""
    output: dict[str, object] = {
        "diagnostics": [d.to_dict() for d in result.diagnostics],
        "published": [item.to_dict() for item in result.manifest.items()],
        "summary": {
            "files": len(result.files),
            "rules_loaded": result.rules_loaded,
            "counts": result.errors.counts(),
            "elapsed_ms": result.elapsed_ms,
        },
    }
    return json.dumps(output, indent=2, default=str)


def format_porcelain(result: BuildResult) -> str:
    """One line per diagnostic: ``file:severity:code:field:message``.

    Returns an empty string when there are no diagnostics.
    """
    return "\n".join(
        f"{d.file or ''}:{d.severity}:{d.code}:{d.field or ''}:{d.message}"
        for d in result.diagnostics
    )
