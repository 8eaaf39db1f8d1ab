"""Tests for tocbuild.providers: config-driven collaborator defaults."""

from __future__ import annotations

from pathlib import Path

import pytest

from tocbuild.config import OUTPUT_JSON, BuildConfig
from tocbuild.errors import TocLoadError
from tocbuild.providers import (
    DEFAULT_CONTENT_TYPE,
    RENDER_CONTENT,
    RENDER_OTHER,
    ConfigDocumentProvider,
    ConfigMetadataProvider,
    ConfigMonikerProvider,
    DeprecationChecker,
    change_extension,
    glob_match,
)
from tocbuild.toc.loader import TocLoader


class TestHelpers:
    @pytest.mark.parametrize(
        ("path", "pattern", "expected"),
        [
            ("docs/toc.yml", "docs/*", True),
            ("toc.yml", "**/toc.yml", True),
            ("a/b/toc.yml", "**/toc.yml", True),
            ("api/toc.yml", "docs/**", False),
        ],
    )
    def test_glob_match(self, path: str, pattern: str, expected: bool) -> None:
        assert glob_match(path, pattern) is expected

    @pytest.mark.parametrize(
        ("path", "extension", "expected"),
        [
            ("docs/toc.yml", ".json", "docs/toc.json"),
            ("toc.json", ".pdf", "toc.pdf"),
            ("docs/TOC", ".json", "docs/TOC.json"),
        ],
    )
    def test_change_extension(self, path: str, extension: str, expected: str) -> None:
        assert change_extension(path, extension) == expected


class TestDeprecationChecker:
    def test_markdown_toc_is_flagged(self) -> None:
        (diagnostic,) = DeprecationChecker().check_deprecated("docs/TOC.md")
        assert diagnostic.code == "toc-markdown-deprecated"
        assert diagnostic.severity == "suggestion"

    def test_yaml_toc_is_clean(self) -> None:
        assert DeprecationChecker().check_deprecated("docs/toc.yml") == []


class TestConfigMetadataProvider:
    def test_merge_order(self, docset: Path) -> None:
        config = BuildConfig(
            docset_root=docset,
            global_metadata={"title": "Global", "ms.author": "jdoe", "ms.topic": "article"},
            file_metadata={"ms.author": {"**/toc.yml": "asmith"}, "ms.prod": {"api/**": "x"}},
        )
        raw = ConfigMetadataProvider(config, TocLoader(docset)).get_metadata("toc.yml")
        assert raw.values["title"] == "Docs"
        assert raw.values["ms.author"] == "asmith"
        assert "ms.prod" not in raw.values
        assert raw.content_type == "article"

    def test_default_content_type(self, docset: Path) -> None:
        config = BuildConfig(docset_root=docset)
        raw = ConfigMetadataProvider(config, TocLoader(docset)).get_metadata("toc.yml")
        assert raw.content_type == DEFAULT_CONTENT_TYPE

    def test_custom_content_type_field(self, docset: Path) -> None:
        config = BuildConfig(
            docset_root=docset,
            content_type_field="layout",
            global_metadata={"layout": "landing"},
        )
        raw = ConfigMetadataProvider(config, TocLoader(docset)).get_metadata("toc.yml")
        assert raw.content_type == "landing"

    def test_unreadable_toc_raises(self, tmp_path: Path) -> None:
        config = BuildConfig(docset_root=tmp_path)
        with pytest.raises(TocLoadError):
            ConfigMetadataProvider(config, TocLoader(tmp_path)).get_metadata("toc.yml")

    def test_given_toc_metadata_skips_reading(self, tmp_path: Path) -> None:
        config = BuildConfig(docset_root=tmp_path, global_metadata={"title": "Global"})
        provider = ConfigMetadataProvider(config, TocLoader(tmp_path))

        raw = provider.get_metadata("toc.yml", {"title": "Local", "ms.topic": "overview"})

        assert dict(raw.values) == {"title": "Local", "ms.topic": "overview"}
        assert raw.content_type == "overview"


class TestConfigDocumentProvider:
    def test_html_content_paths(self) -> None:
        provider = ConfigDocumentProvider(BuildConfig(docset_root=Path("/d")))
        assert provider.get_site_path("docs/toc.yml") == "docs/toc.json"
        assert provider.get_render_type("docs/toc.yml") == RENDER_CONTENT
        assert provider.get_output_path("docs/toc.yml") == "docs/toc.html"

    def test_json_output(self) -> None:
        provider = ConfigDocumentProvider(BuildConfig(output_type=OUTPUT_JSON))
        assert provider.get_output_path("docs/toc.md") == "docs/toc.json"

    def test_component_files_render_other(self) -> None:
        provider = ConfigDocumentProvider(BuildConfig(component_files=("shared/**",)))
        assert provider.get_render_type("shared/nav/toc.yml") == RENDER_OTHER
        assert provider.get_output_path("shared/nav/toc.yml") == "shared/nav/toc.json"


class TestConfigMonikerProvider:
    def test_first_match_wins(self) -> None:
        config = BuildConfig(monikers={"core/**": "netcore-3.0", "**/toc.yml": "netframework"})
        provider = ConfigMonikerProvider(config)
        assert provider.get_file_level_monikers("core/api/toc.yml") == "netcore-3.0"
        assert provider.get_file_level_monikers("toc.yml") == "netframework"
        assert provider.get_file_level_monikers("core.md") is None
