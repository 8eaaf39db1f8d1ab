"""View rendering for TOC models: view-model transforms and HTML templates."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

import jinja2

from tocbuild.errors import RenderError

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

logger = logging.getLogger(__name__)

TOC_HTML_TEMPLATE = "toc.html"
TOC_HTML_TRANSFORM = "toc.html.js"
TOC_JSON_TRANSFORM = "toc.json.js"


class TemplateEngine(Protocol):
    def run_transform(self, name: str, model: dict[str, Any]) -> dict[str, Any]:
        """Turn a serialized model into the view model for *name*."""
        ...

    def render(self, name: str, view_model: dict[str, Any], file: str) -> str:
        """Render the template *name* with *view_model*."""
        ...


# ---------------------------------------------------------------------------
# Built-in transforms
# ---------------------------------------------------------------------------


def _count_items(items: list[dict[str, Any]]) -> int:
    return sum(1 + _count_items(item.get("items", [])) for item in items)


def toc_json_view(model: dict[str, Any]) -> dict[str, Any]:
    """JSON view: the item tree with metadata keys lifted to the top level.

    The PDF build reads ``pdf_absolute_path`` and the tree from this file
    to produce document outlines.
    """
    view: dict[str, Any] = dict(model.get("metadata", {}))
    view["items"] = model.get("items", [])
    return view


def toc_html_view(model: dict[str, Any]) -> dict[str, Any]:
    """HTML view model: page title, tree, and counters used by the template."""
    metadata: dict[str, Any] = model.get("metadata", {})
    items: list[dict[str, Any]] = model.get("items", [])
    return {
        "title": metadata.get("title") or "Table of contents",
        "items": items,
        "item_count": _count_items(items),
        "pdf_absolute_path": metadata.get("pdf_absolute_path"),
        "metadata": metadata,
    }


_TRANSFORMS: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
    TOC_JSON_TRANSFORM: toc_json_view,
    TOC_HTML_TRANSFORM: toc_html_view,
}


# ---------------------------------------------------------------------------
# Jinja engine
# ---------------------------------------------------------------------------


class JinjaTemplateEngine:
    """Template engine backed by jinja2.

    Templates in *template_dir* override the packaged defaults with the
    same name.
    """

    def __init__(self, template_dir: Path | None = None) -> None:
        loaders: list[jinja2.BaseLoader] = []
        if template_dir is not None:
            loaders.append(jinja2.FileSystemLoader(str(template_dir)))
        loaders.append(jinja2.PackageLoader("tocbuild", "templates"))
        self.env = jinja2.Environment(
            loader=jinja2.ChoiceLoader(loaders),
            autoescape=jinja2.select_autoescape(["html"]),
            undefined=jinja2.StrictUndefined,
            keep_trailing_newline=True,
        )

    def run_transform(self, name: str, model: dict[str, Any]) -> dict[str, Any]:
        transform = _TRANSFORMS.get(name)
        if transform is None:
            msg = f"unknown view transform '{name}', expected one of {sorted(_TRANSFORMS)}"
            raise RenderError(msg)
        return transform(model)

    def render(self, name: str, view_model: dict[str, Any], file: str) -> str:
        try:
            template = self.env.get_template(name)
            return template.render(**view_model, file=file)
        except jinja2.TemplateError as exc:
            msg = f"{file}: failed to render {name}: {exc}"
            raise RenderError(msg) from exc
