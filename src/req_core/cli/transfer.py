"""Export and import commands.

Commands:
    req export: Write the module as a YAML document
    req import: Upsert a YAML document into a module atomically
"""

from __future__ import annotations

from pathlib import Path

import click

from req_core.cli.utils import ExitCode, error_exit, get_module, get_store, handle_errors, info, success
from req_core.store import dump_document, export_module, import_document, load_document


@click.command(name="export", help="Export the module as YAML.")
@click.option(
    "--file",
    "-f",
    "path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write to a file instead of stdout.",
)
@click.option("--include-deleted", is_flag=True, help="Include soft-deleted requirements.")
@click.pass_context
def export_command(ctx: click.Context, path: Path | None, include_deleted: bool) -> None:
    with handle_errors():
        document = export_module(get_store(ctx), get_module(ctx), include_deleted=include_deleted)
    text = dump_document(document)
    if path is None:
        click.echo(text, nl=False)
        return
    try:
        path.write_text(text, encoding="utf-8")
    except OSError as e:
        error_exit(f"Cannot write export: {e}", exit_code=ExitCode.GENERAL_ERROR, path=str(path))
    info(f"Exported {len(document.requirements)} requirement(s) to {path}")


@click.command(name="import", help="Import a YAML document; all records or none are applied.")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--into",
    "target",
    default=None,
    help="Target module (default: the document's module, then the configured module).",
)
@click.pass_context
def import_command(ctx: click.Context, path: Path, target: str | None) -> None:
    """Import requirements and domains, matched by display ID."""
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        error_exit(f"Cannot read import file: {e}", exit_code=ExitCode.GENERAL_ERROR, path=str(path))
    with handle_errors():
        document = load_document(text)
        summary = import_document(get_store(ctx), document, module=target or document.module or get_module(ctx))
    success(
        f"Imported into '{summary.module}': {summary.created} created, "
        f"{summary.updated} updated, {summary.domains} domain(s)"
    )


__all__: list[str] = ["export_command", "import_command"]
