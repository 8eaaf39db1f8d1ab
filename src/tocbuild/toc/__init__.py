"""TOC domain: navigation model, file loader, and view rendering.

The orchestrator lives in :mod:`tocbuild.toc.builder` and is imported from
there directly.
"""

from tocbuild.toc.loader import TocLoader, TocTree, parse_markdown_toc, parse_structured_toc
from tocbuild.toc.model import TocItem, TocMetadata, TocModel
from tocbuild.toc.render import JinjaTemplateEngine, TemplateEngine

__all__ = [
    "JinjaTemplateEngine",
    "TemplateEngine",
    "TocItem",
    "TocLoader",
    "TocMetadata",
    "TocModel",
    "TocTree",
    "parse_markdown_toc",
    "parse_structured_toc",
]
