"""Main entry point for the req CLI.

This module provides the Click-based CLI with hierarchical command groups.

Command Groups:
    req module: Module management (create, list)
    req tag: Tag a requirement (add, remove)
    req domain: Domain management (add, remove, list, assign, unassign)
    req dep: Dependency edges (add, remove, orphans)

Root Commands:
    req init: Create the database and the default module
    req list / show / create / edit / update: Requirement records
    req delete / restore / purge: Soft delete lifecycle
    req approve / revert / withdraw / diff: Approval lifecycle
    req export / import: YAML transfer documents
    req scan / coverage / check: Traceability and quality reports

Example:
    $ req --help
    $ req create AUTH functional "Users can log in" -a "Valid login succeeds"
    $ req --module billing coverage src --output json
"""

from __future__ import annotations

import sys
from importlib.metadata import version as get_version
from pathlib import Path

import click

from req_core.cli.approval import approve_command, diff_command, revert_command, withdraw_command
from req_core.cli.associations import dep, domain, tag
from req_core.cli.module import init_command, module
from req_core.cli.requirement import (
    create_command,
    delete_command,
    edit_command,
    list_command,
    purge_command,
    restore_command,
    show_command,
    update_command,
)
from req_core.cli.trace import check_command, coverage_command, scan_command
from req_core.cli.transfer import export_command, import_command
from req_core.config import get_settings
from req_core.logging import configure_logging


def _get_version() -> str:
    """Get the req-core package version.

    Returns:
        Version string from package metadata, or 'unknown' if not installed.
    """
    try:
        return get_version("req-core")
    except Exception:
        return "unknown"


@click.group(
    name="req",
    help="req - Requirement store with approval lifecycle and code traceability.",
    epilog="Use 'req <command> --help' for command-specific help.",
    context_settings={
        "help_option_names": ["-h", "--help"],
    },
)
@click.version_option(
    version=_get_version(),
    prog_name="req",
    message="%(prog)s %(version)s",
)
@click.option(
    "--db",
    "database",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="SQLite database file (default: REQ_DATABASE or requirements.db).",
)
@click.option(
    "--module",
    "-m",
    type=str,
    default=None,
    help="Module to operate on (default: REQ_MODULE or 'default').",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Minimum log level written to stderr.",
)
@click.option(
    "--json-logs",
    is_flag=True,
    default=False,
    help="Write logs as JSON lines.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    database: Path | None,
    module: str | None,
    log_level: str | None,
    json_logs: bool,
) -> None:
    """Root command group for the req CLI.

    Resolves settings (options over environment over defaults) and
    configures logging; the store is opened lazily by the first command
    that needs it.
    """
    overrides: dict[str, object] = {}
    if database is not None:
        overrides["database"] = database
    if module is not None:
        overrides["module"] = module
    if log_level is not None:
        overrides["log_level"] = log_level.upper()
    if json_logs:
        overrides["log_json"] = True
    settings = get_settings().model_copy(update=overrides)

    configure_logging(log_level=settings.log_level, json_output=settings.log_json)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


# Register command groups
cli.add_command(module)
cli.add_command(tag)
cli.add_command(domain)
cli.add_command(dep)

# Register root commands
cli.add_command(init_command)
cli.add_command(list_command)
cli.add_command(show_command)
cli.add_command(create_command)
cli.add_command(edit_command)
cli.add_command(update_command)
cli.add_command(delete_command)
cli.add_command(restore_command)
cli.add_command(purge_command)
cli.add_command(approve_command)
cli.add_command(revert_command)
cli.add_command(withdraw_command)
cli.add_command(diff_command)
cli.add_command(export_command)
cli.add_command(import_command)
cli.add_command(scan_command)
cli.add_command(coverage_command)
cli.add_command(check_command)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the req CLI.

    Args:
        argv: Command-line arguments (uses sys.argv if None).
    """
    try:
        rv = cli(args=argv, standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    if isinstance(rv, int) and rv:
        sys.exit(rv)


if __name__ == "__main__":
    main()
