"""Typed navigation model handed to the renderer."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping


def _empty_mapping() -> Mapping[str, Any]:
    return MappingProxyType({})


@dataclass(frozen=True)
class TocItem:
    """One navigation entry; ``extra`` keeps any keys the loader does not model."""

    name: str
    href: str | None = None
    items: tuple[TocItem, ...] = ()
    extra: Mapping[str, Any] = field(default_factory=_empty_mapping)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        data["name"] = self.name
        if self.href is not None:
            data["href"] = self.href
        if self.items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


@dataclass(frozen=True)
class TocMetadata:
    """Navigation metadata after coercion from the raw front matter."""

    title: str | None = None
    pdf_absolute_path: str | None = None
    monikers: tuple[str, ...] = ()
    extension: Mapping[str, Any] = field(default_factory=_empty_mapping)

    def with_pdf_path(self, path: str) -> TocMetadata:
        return replace(self, pdf_absolute_path=path)

    def to_dict(self) -> dict[str, Any]:
        """Flatten to the JSON shape consumed by templates.

        Extension keys come first so the typed fields win on collision.
        """
        data: dict[str, Any] = dict(self.extension)
        if self.title is not None:
            data["title"] = self.title
        if self.pdf_absolute_path is not None:
            data["pdf_absolute_path"] = self.pdf_absolute_path
        if self.monikers:
            data["monikers"] = list(self.monikers)
        return data


@dataclass(frozen=True)
class TocModel:
    """Top-level items plus metadata for one TOC file; built once per build call."""

    items: tuple[TocItem, ...]
    metadata: TocMetadata
    site_path: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "metadata": self.metadata.to_dict(),
        }
