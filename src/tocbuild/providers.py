"""Collaborator contracts used by the TOC builder, with config-driven defaults."""

from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Protocol

from tocbuild.diagnostics import SEVERITY_SUGGESTION, Diagnostic
from tocbuild.toc.loader import MARKDOWN_SUFFIXES

if TYPE_CHECKING:
    from collections.abc import Mapping

    from tocbuild.config import BuildConfig
    from tocbuild.toc.loader import TocLoader

logger = logging.getLogger(__name__)

RENDER_CONTENT = "content"
RENDER_OTHER = "other"

DEFAULT_CONTENT_TYPE = "toc"

# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RawMetadata:
    """Unvalidated metadata for one file plus its content-type tag."""

    values: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    content_type: str | None = None


class ContentValidator(Protocol):
    def check_deprecated(self, file: str) -> list[Diagnostic]:
        """Return advisory diagnostics for deprecated TOC usage."""
        ...


class MetadataProvider(Protocol):
    def get_metadata(
        self, file: str, toc_metadata: Mapping[str, Any] | None = None
    ) -> RawMetadata:
        """Merge metadata for *file*; *toc_metadata* is the already-loaded TOC block."""
        ...


class DocumentProvider(Protocol):
    def get_site_path(self, file: str) -> str: ...

    def get_output_path(self, file: str) -> str: ...

    def get_render_type(self, file: str) -> str:
        """Return ``"content"`` or ``"other"``."""
        ...


class MonikerProvider(Protocol):
    def get_file_level_monikers(self, file: str) -> str | None:
        """Return the file's moniker group, or None when it is unversioned."""
        ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_posix(file: str) -> str:
    return Path(file).as_posix()


def glob_match(path: str, pattern: str) -> bool:
    """``fnmatch`` with a leading ``**/`` also matching files at the root."""
    if fnmatch.fnmatch(path, pattern):
        return True
    return pattern.startswith("**/") and fnmatch.fnmatch(path, pattern[3:])


def change_extension(path: str, extension: str) -> str:
    """Replace the last suffix of *path*, appending when it has none."""
    pure = PurePosixPath(path)
    return pure.with_suffix(extension).as_posix() if pure.suffix else f"{path}{extension}"


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


class DeprecationChecker:
    """Flags Markdown TOC files, which are kept only for older docsets."""

    def check_deprecated(self, file: str) -> list[Diagnostic]:
        if PurePosixPath(to_posix(file)).suffix.lower() in MARKDOWN_SUFFIXES:
            return [
                Diagnostic(
                    code="toc-markdown-deprecated",
                    severity=SEVERITY_SUGGESTION,
                    field=None,
                    message="Markdown TOC is deprecated, convert it to toc.yml.",
                )
            ]
        return []


class ConfigMetadataProvider:
    """Merge metadata sources, later ones winning.

    Order: ``global_metadata``, glob-matched ``file_metadata``, then the TOC
    file's own ``metadata`` block.  The builder passes that block in from the
    tree it already loaded; the loader is only used when it is omitted.
    """

    def __init__(self, config: BuildConfig, loader: TocLoader) -> None:
        self.config = config
        self.loader = loader

    def get_metadata(
        self, file: str, toc_metadata: Mapping[str, Any] | None = None
    ) -> RawMetadata:
        path = to_posix(file)
        values: dict[str, Any] = dict(self.config.global_metadata)

        for key, globs in self.config.file_metadata.items():
            for pattern, value in globs.items():
                if glob_match(path, pattern):
                    values[key] = value

        if toc_metadata is None:
            toc_metadata = self.loader.load(file).metadata
        values.update(toc_metadata)

        content_type_raw = values.get(self.config.content_type_field)
        content_type = (
            content_type_raw if isinstance(content_type_raw, str) else DEFAULT_CONTENT_TYPE
        )
        return RawMetadata(values=MappingProxyType(values), content_type=content_type)


class ConfigDocumentProvider:
    """Derive site and output paths from the file's docset-relative path."""

    def __init__(self, config: BuildConfig) -> None:
        self.config = config

    def get_site_path(self, file: str) -> str:
        return change_extension(to_posix(file), ".json")

    def get_render_type(self, file: str) -> str:
        path = to_posix(file)
        if any(glob_match(path, pattern) for pattern in self.config.component_files):
            return RENDER_OTHER
        return RENDER_CONTENT

    def get_output_path(self, file: str) -> str:
        site_path = self.get_site_path(file)
        if self.config.is_html and self.get_render_type(file) == RENDER_CONTENT:
            return change_extension(site_path, ".html")
        return site_path


class ConfigMonikerProvider:
    """First ``monikers`` glob matching the file decides its moniker group."""

    def __init__(self, config: BuildConfig) -> None:
        self.config = config

    def get_file_level_monikers(self, file: str) -> str | None:
        path = to_posix(file)
        for pattern, group in self.config.monikers.items():
            if glob_match(path, pattern):
                return group
        return None
