"""Tag, domain and dependency commands.

Command Groups:
    req tag: add, remove
    req domain: add, remove, list, assign, unassign
    req dep: add, remove, orphans

Example:
    $ req domain add checkout "Checkout flow"
    $ req domain assign AUTH-001 checkout
    $ req dep add AUTH-002 AUTH-001
"""

from __future__ import annotations

import click

from req_core.cli.utils import (
    OUTPUT_CHOICE,
    echo_json,
    get_module,
    get_store,
    handle_errors,
    info,
    success,
)


@click.group(name="tag", help="Tag requirements.")
def tag() -> None:
    pass


@tag.command(name="add", help="Add a tag to a requirement.")
@click.argument("display_id")
@click.argument("name")
@click.pass_context
def tag_add(ctx: click.Context, display_id: str, name: str) -> None:
    with handle_errors():
        added = get_store(ctx).add_tag(get_module(ctx), display_id, name)
    if added:
        success(f"Tagged {display_id.upper()} with '{name}'")
    else:
        info(f"{display_id.upper()} already tagged '{name}'")


@tag.command(name="remove", help="Remove a tag from a requirement.")
@click.argument("display_id")
@click.argument("name")
@click.pass_context
def tag_remove(ctx: click.Context, display_id: str, name: str) -> None:
    with handle_errors():
        removed = get_store(ctx).remove_tag(get_module(ctx), display_id, name)
    if removed:
        success(f"Removed tag '{name}' from {display_id.upper()}")
    else:
        info(f"{display_id.upper()} is not tagged '{name}'")


@click.group(name="domain", help="Manage domains and their assignments.")
def domain() -> None:
    pass


@domain.command(name="add", help="Create a domain.")
@click.argument("reference")
@click.argument("name")
@click.option("--description", default=None, help="Domain description.")
@click.pass_context
def domain_add(ctx: click.Context, reference: str, name: str, description: str | None) -> None:
    with handle_errors():
        created = get_store(ctx).add_domain(get_module(ctx), reference, name, description)
    success(f"Created domain '{created.reference}'")


@domain.command(name="remove", help="Delete a domain and its assignments.")
@click.argument("reference")
@click.pass_context
def domain_remove(ctx: click.Context, reference: str) -> None:
    with handle_errors():
        count = get_store(ctx).remove_domain(get_module(ctx), reference)
    success(f"Removed domain '{reference}' ({count} assignment(s))")


@domain.command(name="list", help="List domains with their requirement counts.")
@click.option("--output", "-o", type=OUTPUT_CHOICE, default="text", help="Output format.")
@click.pass_context
def domain_list(ctx: click.Context, output: str) -> None:
    with handle_errors():
        domains = get_store(ctx).list_domains(get_module(ctx))
    if output == "json":
        echo_json(domains)
        return
    for item in domains:
        line = f"{item.reference:<20} {item.requirement_count:>4}  {item.name}"
        if item.description:
            line = f"{line} - {item.description}"
        click.echo(line)


@domain.command(name="assign", help="Assign a requirement to a domain.")
@click.argument("display_id")
@click.argument("reference")
@click.pass_context
def domain_assign(ctx: click.Context, display_id: str, reference: str) -> None:
    with handle_errors():
        added = get_store(ctx).assign_domain(get_module(ctx), display_id, reference)
    if added:
        success(f"Assigned {display_id.upper()} to '{reference}'")
    else:
        info(f"{display_id.upper()} already assigned to '{reference}'")


@domain.command(name="unassign", help="Remove a requirement from a domain.")
@click.argument("display_id")
@click.argument("reference")
@click.pass_context
def domain_unassign(ctx: click.Context, display_id: str, reference: str) -> None:
    with handle_errors():
        removed = get_store(ctx).unassign_domain(get_module(ctx), display_id, reference)
    if removed:
        success(f"Unassigned {display_id.upper()} from '{reference}'")
    else:
        info(f"{display_id.upper()} is not assigned to '{reference}'")


@click.group(name="dep", help="Manage dependency edges between requirements.")
def dep() -> None:
    pass


@dep.command(name="add", help="Record that DISPLAY_ID depends on TARGET.")
@click.argument("display_id")
@click.argument("target")
@click.pass_context
def dep_add(ctx: click.Context, display_id: str, target: str) -> None:
    """Add an edge; rejected when it would close a cycle."""
    with handle_errors():
        added = get_store(ctx).add_dependency(get_module(ctx), display_id, target)
    if added:
        success(f"{display_id.upper()} now depends on {target.upper()}")
    else:
        info(f"{display_id.upper()} already depends on {target.upper()}")


@dep.command(name="remove", help="Remove the edge DISPLAY_ID -> TARGET.")
@click.argument("display_id")
@click.argument("target")
@click.pass_context
def dep_remove(ctx: click.Context, display_id: str, target: str) -> None:
    with handle_errors():
        get_store(ctx).remove_dependency(get_module(ctx), display_id, target)
    success(f"{display_id.upper()} no longer depends on {target.upper()}")


@dep.command(name="orphans", help="List dependencies on deprecated or deleted requirements.")
@click.option("--output", "-o", type=OUTPUT_CHOICE, default="text", help="Output format.")
@click.pass_context
def dep_orphans(ctx: click.Context, output: str) -> None:
    with handle_errors():
        issues = get_store(ctx).orphan_dependencies(get_module(ctx))
    if output == "json":
        echo_json(issues)
        return
    for issue in issues:
        click.echo(issue.message)
    info(f"{len(issues)} orphan dependency edge(s)")


__all__: list[str] = ["dep", "domain", "tag"]
