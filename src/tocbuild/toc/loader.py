"""TOC file loader: YAML, JSON, and Markdown navigation trees."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import yaml

from tocbuild.errors import TocLoadError
from tocbuild.toc.model import TocItem

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

YAML_SUFFIXES: frozenset[str] = frozenset({".yml", ".yaml"})
JSON_SUFFIXES: frozenset[str] = frozenset({".json"})
MARKDOWN_SUFFIXES: frozenset[str] = frozenset({".md"})

# Markdown heading: "## [Name](href)" or "## Name".
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_LINK_RE = re.compile(r"^\[(?P<name>[^\]]*)\]\((?P<href>[^)]*)\)$")
_FRONT_MATTER_RE = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)", re.DOTALL)

_ITEM_KEYS = frozenset({"name", "href", "items"})


@dataclass(frozen=True)
class TocTree:
    """Parsed TOC file: top-level items plus the file's own metadata block."""

    items: tuple[TocItem, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


# ---------------------------------------------------------------------------
# Structured (YAML / JSON) TOCs
# ---------------------------------------------------------------------------


def _parse_item(data: object, context: str) -> TocItem:
    if not isinstance(data, dict):
        msg = f"{context}: TOC item must be a mapping"
        raise TocLoadError(msg)

    name = data.get("name")
    if name is None or isinstance(name, (dict, list)) or not str(name).strip():
        msg = f"{context}: TOC item missing required 'name'"
        raise TocLoadError(msg)

    href_raw = data.get("href")
    if href_raw is not None and not isinstance(href_raw, str):
        msg = f"{context}: 'href' must be a string"
        raise TocLoadError(msg)

    children = _parse_items(data.get("items"), f"{context} > {name}")
    extra = {str(k): v for k, v in data.items() if k not in _ITEM_KEYS}
    return TocItem(
        name=str(name),
        href=href_raw,
        items=children,
        extra=MappingProxyType(extra),
    )


def _parse_items(data: object, context: str) -> tuple[TocItem, ...]:
    if data is None:
        return ()
    if not isinstance(data, list):
        msg = f"{context}: 'items' must be a list"
        raise TocLoadError(msg)
    return tuple(_parse_item(item, f"{context}[{idx}]") for idx, item in enumerate(data))


def parse_structured_toc(data: object, context: str) -> TocTree:
    """Build a :class:`TocTree` from an already-parsed YAML or JSON document."""
    if data is None:
        return TocTree()
    if isinstance(data, list):
        return TocTree(items=_parse_items(data, context))
    if not isinstance(data, dict):
        msg = f"{context}: TOC must be a list of items or a mapping with 'items'"
        raise TocLoadError(msg)

    metadata = data.get("metadata") or {}
    if not isinstance(metadata, dict):
        msg = f"{context}: 'metadata' must be a mapping"
        raise TocLoadError(msg)
    return TocTree(
        items=_parse_items(data.get("items"), context),
        metadata=MappingProxyType({str(k): v for k, v in metadata.items()}),
    )


# ---------------------------------------------------------------------------
# Markdown TOCs
# ---------------------------------------------------------------------------


def parse_markdown_toc(text: str, context: str) -> TocTree:
    """Parse a heading-based Markdown TOC.

    Each heading is one item; nesting follows heading depth, and a heading
    may not skip a level relative to its parent.  An optional YAML front
    matter block supplies the file's metadata.
    """
    metadata: dict[str, Any] = {}
    fm = _FRONT_MATTER_RE.match(text)
    if fm is not None:
        try:
            front = yaml.safe_load(fm.group(1))
        except yaml.YAMLError as exc:
            msg = f"{context}: invalid front matter: {exc}"
            raise TocLoadError(msg) from exc
        if front is not None and not isinstance(front, dict):
            msg = f"{context}: front matter must be a mapping"
            raise TocLoadError(msg)
        metadata = {str(k): v for k, v in (front or {}).items()}
        text = text[fm.end():]

    # Each open entry: (level, name, href, children)
    root: list[TocItem] = []
    stack: list[tuple[int, str, str | None, list[TocItem]]] = []

    def close_until(level: int) -> None:
        while stack and stack[-1][0] >= level:
            _level, name, href, children = stack.pop()
            item = TocItem(name=name, href=href, items=tuple(children))
            (stack[-1][3] if stack else root).append(item)

    base_level: int | None = None
    for line_no, line in enumerate(text.splitlines(), start=1):
        m = _HEADING_RE.match(line)
        if m is None:
            continue
        level = len(m.group(1))
        if base_level is None:
            base_level = level
        if level < base_level:
            msg = f"{context}:{line_no}: heading level {level} is above the first heading"
            raise TocLoadError(msg)

        close_until(level)
        parent_level = stack[-1][0] if stack else base_level - 1
        if level > parent_level + 1:
            msg = f"{context}:{line_no}: heading skips from level {parent_level} to {level}"
            raise TocLoadError(msg)

        content = m.group(2)
        link = _LINK_RE.match(content)
        if link is not None:
            name, href = link.group("name").strip(), link.group("href").strip() or None
        else:
            name, href = content, None
        if not name:
            msg = f"{context}:{line_no}: heading has an empty name"
            raise TocLoadError(msg)
        stack.append((level, name, href, []))

    close_until(0)
    return TocTree(items=tuple(root), metadata=MappingProxyType(metadata))


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


class TocLoader:
    """Load TOC files addressed relative to the docset root."""

    def __init__(self, docset_root: Path) -> None:
        self.docset_root = docset_root

    def resolve(self, file: str) -> Path:
        path = Path(file)
        return path if path.is_absolute() else self.docset_root / path

    def load(self, file: str) -> TocTree:
        """Parse *file*; raises :class:`TocLoadError` if it is unreadable or malformed."""
        path = self.resolve(file)
        suffix = path.suffix.lower()
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            msg = f"{file}: cannot read TOC file: {exc}"
            raise TocLoadError(msg) from exc

        if suffix in MARKDOWN_SUFFIXES:
            tree = parse_markdown_toc(text, file)
        elif suffix in YAML_SUFFIXES:
            try:
                data = yaml.safe_load(text)
            except yaml.YAMLError as exc:
                msg = f"{file}: invalid YAML: {exc}"
                raise TocLoadError(msg) from exc
            tree = parse_structured_toc(data, file)
        elif suffix in JSON_SUFFIXES:
            try:
                data = json.loads(text) if text.strip() else None
            except json.JSONDecodeError as exc:
                msg = f"{file}: invalid JSON: {exc}"
                raise TocLoadError(msg) from exc
            tree = parse_structured_toc(data, file)
        else:
            msg = f"{file}: unsupported TOC file type '{suffix}'"
            raise TocLoadError(msg)

        logger.debug("Loaded %s with %d top-level items", file, len(tree.items))
        return tree
