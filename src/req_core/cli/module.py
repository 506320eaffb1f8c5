"""Module commands.

Commands:
    req init: Create the database schema and the configured module
    req module create: Create a module
    req module list: List modules with requirement counts
"""

from __future__ import annotations

import click

from req_core.cli.utils import get_module, get_settings, get_store, handle_errors, success
from req_core.schemas.requirement import Status


@click.command(name="init", help="Create the database and the configured module.")
@click.pass_context
def init_command(ctx: click.Context) -> None:
    """Initialize the database; running it again changes nothing."""
    store = get_store(ctx)
    with handle_errors():
        store.ensure_module(get_module(ctx))
    success(f"Initialized {get_settings(ctx).database} (module '{get_module(ctx)}')")


@click.group(name="module", help="Manage modules.")
def module() -> None:
    """Module command group.

    A module is an independent namespace of requirements, domains and
    sequence counters.
    """
    pass


@module.command(name="create", help="Create a module.")
@click.argument("name")
@click.option("--description", default=None, help="Module description.")
@click.pass_context
def module_create(ctx: click.Context, name: str, description: str | None) -> None:
    with handle_errors():
        created = get_store(ctx).create_module(name, description)
    success(f"Created module '{created.name}'")


@module.command(name="list", help="List modules.")
@click.pass_context
def module_list(ctx: click.Context) -> None:
    with handle_errors():
        modules = get_store(ctx).list_modules()
    for item in modules:
        counts = ", ".join(f"{status.value}={item.counts.get(status, 0)}" for status in Status)
        line = f"{item.name:<20} {counts}"
        if item.description:
            line = f"{line}  {item.description}"
        click.echo(line)


__all__: list[str] = ["init_command", "module"]
