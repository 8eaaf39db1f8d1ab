"""Build configuration: read ``tocbuild.yml`` into an immutable BuildConfig."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import yaml

from tocbuild.errors import ConfigError

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "tocbuild.yml"

OUTPUT_HTML = "html"
OUTPUT_JSON = "json"
VALID_OUTPUT_TYPES: frozenset[str] = frozenset({OUTPUT_HTML, OUTPUT_JSON})


def _empty() -> Mapping[str, Any]:
    return MappingProxyType({})


@dataclass(frozen=True)
class BuildConfig:
    """Read-only settings passed explicitly to every build stage."""

    output_type: str = OUTPUT_HTML  # "html" | "json"
    dry_run: bool = False
    output_pdf: bool = False
    base_path: str = ""
    docset_root: Path = field(default_factory=Path.cwd)
    output_dir: Path = field(default_factory=lambda: Path.cwd() / "_site")
    rules_file: Path | None = None
    template_dir: Path | None = None
    content_type_field: str = "ms.topic"
    max_workers: int = 4
    global_metadata: Mapping[str, Any] = field(default_factory=_empty)
    # metadata key -> {glob: value}
    file_metadata: Mapping[str, Mapping[str, Any]] = field(default_factory=_empty)
    # glob -> moniker group, first match wins
    monikers: Mapping[str, str] = field(default_factory=_empty)
    allow_lists: Mapping[str, tuple[str, ...]] = field(default_factory=_empty)
    aliases: Mapping[str, tuple[str, ...]] = field(default_factory=_empty)
    component_files: tuple[str, ...] = ()

    @property
    def is_html(self) -> bool:
        return self.output_type == OUTPUT_HTML

    def with_overrides(self, **overrides: Any) -> BuildConfig:
        """Return a copy with the non-None *overrides* applied (CLI flags)."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            msg = f"unknown configuration keys: {unknown}"
            raise ConfigError(msg)
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def _mapping(data: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        msg = f"{CONFIG_FILE_NAME}: '{key}' must be a mapping"
        raise ConfigError(msg)
    return {str(k): v for k, v in value.items()}


def _bool(data: Mapping[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        msg = f"{CONFIG_FILE_NAME}: '{key}' must be true or false"
        raise ConfigError(msg)
    return value


def _string_lists(data: Mapping[str, Any], key: str) -> dict[str, tuple[str, ...]]:
    result: dict[str, tuple[str, ...]] = {}
    for name, values in _mapping(data, key).items():
        if isinstance(values, str):
            values = [values]
        if not isinstance(values, list):
            msg = f"{CONFIG_FILE_NAME}: '{key}.{name}' must be a list"
            raise ConfigError(msg)
        result[name] = tuple(str(v) for v in values)
    return result


def _path(base: Path, raw: object, key: str) -> Path:
    if not isinstance(raw, str) or not raw.strip():
        msg = f"{CONFIG_FILE_NAME}: '{key}' must be a non-empty path"
        raise ConfigError(msg)
    path = Path(raw)
    return path if path.is_absolute() else (base / path)


def parse_build_config(data: Mapping[str, Any], *, base_dir: Path) -> BuildConfig:
    """Build a :class:`BuildConfig` from parsed YAML; relative paths resolve against *base_dir*."""
    output_type = str(data.get("output_type", OUTPUT_HTML)).lower()
    if output_type not in VALID_OUTPUT_TYPES:
        msg = (
            f"{CONFIG_FILE_NAME}: invalid output_type '{output_type}', "
            f"must be one of {sorted(VALID_OUTPUT_TYPES)}"
        )
        raise ConfigError(msg)

    max_workers_raw = data.get("max_workers", 4)
    if isinstance(max_workers_raw, bool) or not isinstance(max_workers_raw, int):
        msg = f"{CONFIG_FILE_NAME}: 'max_workers' must be an integer"
        raise ConfigError(msg)
    if max_workers_raw < 1:
        msg = f"{CONFIG_FILE_NAME}: 'max_workers' must be >= 1"
        raise ConfigError(msg)

    file_metadata: dict[str, Mapping[str, Any]] = {}
    for key, globs in _mapping(data, "file_metadata").items():
        if not isinstance(globs, dict):
            msg = f"{CONFIG_FILE_NAME}: 'file_metadata.{key}' must map globs to values"
            raise ConfigError(msg)
        file_metadata[key] = MappingProxyType({str(g): v for g, v in globs.items()})

    component_raw = data.get("component_files") or []
    if not isinstance(component_raw, list):
        msg = f"{CONFIG_FILE_NAME}: 'component_files' must be a list of globs"
        raise ConfigError(msg)

    base_path = str(data.get("base_path") or "")
    rules_raw = data.get("rules_file")
    template_raw = data.get("template_dir")

    return BuildConfig(
        output_type=output_type,
        dry_run=_bool(data, "dry_run", False),
        output_pdf=_bool(data, "output_pdf", False),
        base_path=base_path,
        docset_root=_path(base_dir, data.get("docset_root", "."), "docset_root"),
        output_dir=_path(base_dir, data.get("output_dir", "_site"), "output_dir"),
        rules_file=_path(base_dir, rules_raw, "rules_file") if rules_raw else None,
        template_dir=_path(base_dir, template_raw, "template_dir") if template_raw else None,
        content_type_field=str(data.get("content_type_field") or "ms.topic"),
        max_workers=max_workers_raw,
        global_metadata=MappingProxyType(_mapping(data, "global_metadata")),
        file_metadata=MappingProxyType(file_metadata),
        monikers=MappingProxyType({k: str(v) for k, v in _mapping(data, "monikers").items()}),
        allow_lists=MappingProxyType(_string_lists(data, "allow_lists")),
        aliases=MappingProxyType(_string_lists(data, "aliases")),
        component_files=tuple(str(g) for g in component_raw),
    )


def load_build_config(
    config_path: Path | None = None, *, project_root: Path | None = None
) -> BuildConfig:
    """Load the build configuration.

    When *config_path* is None, ``<project_root>/tocbuild.yml`` is used; a
    missing default file yields defaults rooted at *project_root*.  An
    explicit path that does not exist, unreadable YAML, or invalid values
    raise :class:`ConfigError`.
    """
    root = project_root or Path.cwd()
    explicit = config_path is not None
    path = config_path if config_path is not None else root / CONFIG_FILE_NAME

    if not path.is_file():
        if explicit:
            msg = f"configuration file not found: {path}"
            raise ConfigError(msg)
        logger.debug("No %s in %s, using defaults", CONFIG_FILE_NAME, root)
        return parse_build_config({}, base_dir=root)

    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        msg = f"failed to read {path}: {exc}"
        raise ConfigError(msg) from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        msg = f"{path}: configuration must be a YAML mapping"
        raise ConfigError(msg)

    config = parse_build_config(data, base_dir=path.parent)
    logger.debug("Loaded build configuration from %s", path)
    return config
