"""tocbuild CLI entry point."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from tocbuild import __version__


@click.group()
@click.version_option(version=__version__, prog_name="tocbuild")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Minimal output (errors only).")
@click.pass_context
def main(ctx: click.Context, *, verbose: bool, quiet: bool) -> None:
    """tocbuild - validate page metadata and assemble navigation TOCs."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _resolve_files(paths: tuple[Path, ...], docset_root: Path) -> list[str]:
    """Turn CLI paths into docset-relative TOC file names (directories are searched)."""
    from tocbuild.pipeline import discover_toc_files

    if not paths:
        return discover_toc_files(docset_root)

    root = docset_root.resolve()
    files: list[str] = []
    for path in paths:
        resolved = path.resolve()
        if resolved.is_dir():
            prefix = resolved.relative_to(root) if resolved.is_relative_to(root) else None
            for rel in discover_toc_files(resolved):
                files.append((prefix / rel).as_posix() if prefix else str(resolved / rel))
        elif resolved.is_relative_to(root):
            files.append(resolved.relative_to(root).as_posix())
        else:
            files.append(str(resolved))
    return sorted(set(files))


@main.command()
@click.argument("paths", nargs=-1, type=click.Path(exists=True, path_type=Path))
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to tocbuild.yml (default: <project>/tocbuild.yml).",
)
@click.option(
    "--rules",
    "rules_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Metadata rules file (overrides rules_file in the config).",
)
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for rendered output.",
)
@click.option("--dry-run", is_flag=True, default=False, help="Validate only, write nothing.")
@click.option("--pdf/--no-pdf", "output_pdf", default=None, help="Add PDF links to TOC metadata.")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["rich", "json", "porcelain"]),
    default=None,
    help="Output format (default: rich if TTY, porcelain if piped).",
)
@click.option("--strict", is_flag=True, default=False, help="Exit 1 if any error is reported.")
@click.option(
    "--project",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Project root (default: current directory).",
)
def build(
    *,
    paths: tuple[Path, ...],
    config_path: Path | None,
    rules_path: Path | None,
    output_dir: Path | None,
    dry_run: bool,
    output_pdf: bool | None,
    fmt: str | None,
    strict: bool,
    project: Path | None,
) -> None:
    """Validate metadata and build TOC files.

    Builds the given TOC files (or every toc.yml/toc.json/toc.md under the
    docset root).  Exit codes: 0 = done, 1 = errors with --strict,
    2 = configuration error.
    """
    from tocbuild.config import load_build_config
    from tocbuild.errors import ConfigError, OutputError, RuleConfigError
    from tocbuild.metadata.rules import RuleSet, load_rules
    from tocbuild.output import MANIFEST_FILE_NAME
    from tocbuild.pipeline import build_all, create_builder
    from tocbuild.pipeline import format_json as _format_json
    from tocbuild.pipeline import format_porcelain as _format_porcelain
    from tocbuild.pipeline import format_rich as _format_rich

    project_root = project or Path.cwd()

    if fmt is None:
        fmt = "rich" if sys.stdout.isatty() else "porcelain"

    try:
        config = load_build_config(config_path, project_root=project_root)
        config = config.with_overrides(
            output_dir=output_dir,
            dry_run=True if dry_run else None,
            output_pdf=output_pdf,
        )
        rules_file = rules_path or config.rules_file
        rule_set = load_rules(rules_file) if rules_file is not None else RuleSet()
    except (ConfigError, RuleConfigError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    for warning in rule_set.warnings:
        click.echo(f"Warning: {warning}", err=True)

    files = _resolve_files(paths, config.docset_root)
    builder = create_builder(config, rule_set)
    result = build_all(builder, files, max_workers=config.max_workers)

    if not config.dry_run:
        try:
            result.manifest.write(config.output_dir / MANIFEST_FILE_NAME)
        except OutputError as exc:
            click.echo(f"Error: {exc}", err=True)
            sys.exit(2)

    formatters = {
        "rich": _format_rich,
        "json": _format_json,
        "porcelain": _format_porcelain,
    }
    output = formatters[fmt](result)
    if output:
        click.echo(output)

    if strict and result.has_errors:
        sys.exit(1)


@main.command("check-rules")
@click.argument("rules_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def check_rules(*, rules_path: Path) -> None:
    """Validate a metadata rules file without building anything.

    Exit codes: 0 = valid (warnings allowed), 2 = invalid rules.
    """
    from rich.console import Console
    from rich.table import Table

    from tocbuild.errors import RuleConfigError
    from tocbuild.metadata.rules import kind_name, load_rules

    try:
        rule_set = load_rules(rules_path)
    except RuleConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    for warning in rule_set.warnings:
        click.echo(f"Warning: {warning}", err=True)

    console = Console()
    table = Table(title=f"{rules_path.name}: {len(rule_set)} rules", show_header=True)
    table.add_column("Field")
    table.add_column("Rules", justify="right")
    table.add_column("Kinds")
    for field_name, rules in rule_set:
        kinds = sorted({kind_name(rule) for rule in rules})
        table.add_row(field_name, str(len(rules)), ", ".join(kinds))
    console.print(table)
