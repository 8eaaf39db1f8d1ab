"""Shared test fixtures for tocbuild."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

import pytest

from tocbuild.metadata.rule_engine import (
    EvaluationContext,
    StaticAliasDirectory,
    StaticAllowLists,
)

if TYPE_CHECKING:
    from pathlib import Path

FIXED_NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def context() -> EvaluationContext:
    """Evaluation context with a fixed clock and small lookup tables."""
    return EvaluationContext(
        now=FIXED_NOW,
        allow_lists=StaticAllowLists.from_config(
            {"topics": ["article", "overview", "tutorial"], "products": ["dotnet", "azure"]}
        ),
        alias_directory=StaticAliasDirectory.from_config(
            {"jdoe": ["docs-team", "dotnet-team"], "asmith": ["azure-team"], "ghost": []}
        ),
    )


@pytest.fixture()
def docset(tmp_path: Path) -> Path:
    """Create a minimal docset with one YAML TOC."""
    root = tmp_path / "docs"
    root.mkdir()
    (root / "toc.yml").write_text(
        "metadata:\n"
        "  title: Docs\n"
        "items:\n"
        "  - name: Overview\n"
        "    href: index.md\n"
        "  - name: Guides\n"
        "    items:\n"
        "      - name: Install\n"
        "        href: guides/install.md\n"
    )
    return root
