"""TOC build orchestrator: load, validate, assemble, render, and publish one file."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from tocbuild.diagnostics import SEVERITY_ERROR, SEVERITY_WARNING, Diagnostic
from tocbuild.errors import OutputError, RenderError, TocLoadError
from tocbuild.providers import RENDER_CONTENT, RawMetadata, change_extension, to_posix
from tocbuild.toc.model import TocModel
from tocbuild.toc.render import TOC_HTML_TEMPLATE, TOC_HTML_TRANSFORM, TOC_JSON_TRANSFORM

if TYPE_CHECKING:
    from tocbuild.config import BuildConfig
    from tocbuild.diagnostics import ErrorSink
    from tocbuild.metadata.validator import MetadataValidator
    from tocbuild.output import Output, PublishManifest
    from tocbuild.providers import (
        ContentValidator,
        DocumentProvider,
        MetadataProvider,
        MonikerProvider,
    )
    from tocbuild.toc.loader import TocLoader, TocTree
    from tocbuild.toc.render import TemplateEngine

logger = logging.getLogger(__name__)

PDF_ROUTE = "opbuildpdf"


def url_combine(*segments: str) -> str:
    """Join URL segments with single slashes, skipping empty ones."""
    parts = [s.strip("/") for s in segments if s and s.strip("/")]
    return "/".join(parts)


def pdf_absolute_path(base_path: str, moniker_group: str | None, site_path: str) -> str:
    """Site-absolute link to the PDF generated for a TOC."""
    return "/" + url_combine(
        base_path, PDF_ROUTE, moniker_group or "", change_extension(site_path, ".pdf")
    )


def _error(code: str, message: str) -> Diagnostic:
    return Diagnostic(code=code, severity=SEVERITY_ERROR, field=None, message=message)


class TocBuilder:
    """Build one TOC file at a time; safe to call from many threads at once.

    Every collaborator is passed in; the builder keeps no per-file state.
    """

    def __init__(
        self,
        config: BuildConfig,
        loader: TocLoader,
        content_validator: ContentValidator,
        metadata_provider: MetadataProvider,
        metadata_validator: MetadataValidator,
        document_provider: DocumentProvider,
        moniker_provider: MonikerProvider,
        publish_manifest: PublishManifest,
        template_engine: TemplateEngine,
        output: Output,
    ) -> None:
        self.config = config
        self.loader = loader
        self.content_validator = content_validator
        self.metadata_provider = metadata_provider
        self.metadata_validator = metadata_validator
        self.document_provider = document_provider
        self.moniker_provider = moniker_provider
        self.publish_manifest = publish_manifest
        self.template_engine = template_engine
        self.output = output

    def build(self, errors: ErrorSink, file: str) -> TocModel | None:
        """Run the full sequence for *file*.

        Returns the assembled model, or None when the TOC could not be
        loaded (the only failure that stops the sequence).  A failing
        collaborator becomes a diagnostic against the file; files with
        error diagnostics are not rendered but are still published.
        """
        # Step a: Load the navigation tree.
        try:
            tree = self.loader.load(file)
        except TocLoadError as exc:
            errors.add(file, _error("invalid-toc", str(exc)))
            logger.warning("Skipping %s: %s", file, exc)
            return None

        site_path, output_path = self._resolve_paths(errors, file)
        try:
            return self._assemble(errors, file, tree, site_path, output_path)
        finally:
            # Step g: Publish, always, with metadata attached by a later pass.
            self.publish_manifest.set_publish_item(file, None, output_path)

    def _resolve_paths(self, errors: ErrorSink, file: str) -> tuple[str, str]:
        """Site and output paths, falling back to ``<file>.json`` when the provider fails."""
        try:
            return (
                self.document_provider.get_site_path(file),
                self.document_provider.get_output_path(file),
            )
        except Exception as exc:
            errors.add(file, _error("document-path-failed", f"Cannot resolve paths: {exc}"))
            logger.warning("Document provider failed for %s: %s", file, exc)
            fallback = change_extension(to_posix(file), ".json")
            return fallback, fallback

    def _assemble(
        self,
        errors: ErrorSink,
        file: str,
        tree: TocTree,
        site_path: str,
        output_path: str,
    ) -> TocModel:
        # Step b: Advisory deprecation checks.
        try:
            errors.extend(file, self.content_validator.check_deprecated(file))
        except Exception as exc:
            errors.add(
                file,
                Diagnostic(
                    code="deprecation-check-failed",
                    severity=SEVERITY_WARNING,
                    field=None,
                    message=f"Deprecation check failed: {exc}",
                ),
            )
            logger.warning("Deprecation check failed for %s: %s", file, exc)

        # Step c: Fetch and validate metadata.
        try:
            raw = self.metadata_provider.get_metadata(file, tree.metadata)
        except Exception as exc:
            errors.add(file, _error("metadata-unavailable", str(exc)))
            logger.warning("Metadata unavailable for %s: %s", file, exc)
            raw = RawMetadata()
        metadata = self.metadata_validator.validate(errors, file, raw.values, raw.content_type)

        # Step d: PDF link, written into the metadata before the model is built.
        if self.config.output_pdf:
            try:
                moniker_group = self.moniker_provider.get_file_level_monikers(file)
            except Exception as exc:
                errors.add(file, _error("moniker-lookup-failed", f"No PDF link: {exc}"))
                logger.warning("Moniker lookup failed for %s: %s", file, exc)
            else:
                metadata = metadata.with_pdf_path(
                    pdf_absolute_path(self.config.base_path, moniker_group, site_path)
                )

        # Step e: Assemble the model.
        model = TocModel(items=tree.items, metadata=metadata, site_path=site_path)

        # Step f: Render, unless the file has errors or this is a dry run.
        if errors.file_has_error(file):
            logger.debug("%s has errors, skipping render", file)
        elif self.config.dry_run:
            logger.debug("Dry run, skipping render of %s", file)
        else:
            try:
                self._render(file, model, output_path)
            except RenderError as exc:
                errors.add(file, _error("render-failed", str(exc)))
                logger.warning("Render failed for %s: %s", file, exc)
            except OutputError as exc:
                errors.add(file, _error("output-failed", str(exc)))
                logger.warning("Write failed for %s: %s", file, exc)
        return model

    def _render(self, file: str, model: TocModel, output_path: str) -> None:
        engine = self.template_engine
        data = model.to_dict()

        if not self.config.is_html:
            self.output.write_json(output_path, engine.run_transform(TOC_JSON_TRANSFORM, data))
            return

        if self.document_provider.get_render_type(file) == RENDER_CONTENT:
            view_model = engine.run_transform(TOC_HTML_TRANSFORM, data)
            html = engine.render(TOC_HTML_TEMPLATE, view_model, file)
            self.output.write_text(output_path, html)

        # toc.json drives the PDF outline, so it is written next to the HTML.
        self.output.write_json(
            change_extension(output_path, ".json"),
            engine.run_transform(TOC_JSON_TRANSFORM, data),
        )
