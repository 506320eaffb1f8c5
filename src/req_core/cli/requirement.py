"""Requirement record commands.

Commands:
    req list: List requirements with optional filters
    req show: Show one requirement
    req create: Create a proposed requirement
    req edit: Change a single field
    req update: Replace summary, detail and acceptance criteria
    req delete / restore: Soft delete and undo it
    req purge: Permanently remove old soft-deleted requirements
"""

from __future__ import annotations

import click

from req_core.cli.utils import (
    OUTPUT_CHOICE,
    echo_json,
    get_module,
    get_store,
    handle_errors,
    success,
    warn,
)
from req_core.schemas.requirement import Requirement


def format_line(requirement: Requirement) -> str:
    """One-line listing of a requirement."""
    flags = requirement.approval_status.value
    if requirement.status.value != "active":
        flags = f"{flags}, {requirement.status.value}"
    return (
        f"{requirement.display_id:<10} {requirement.priority.value:<7} "
        f"[{flags}] {requirement.summary}"
    )


def format_requirement(requirement: Requirement) -> str:
    """Multi-line description of a requirement."""
    lines = [
        f"{requirement.display_id}: {requirement.summary}",
        f"  Module:    {requirement.module}",
        f"  Type:      {requirement.type.value}",
        f"  Priority:  {requirement.priority.value}",
        f"  Status:    {requirement.status.value}",
        f"  Approval:  {requirement.approval_status.value}",
    ]
    if requirement.approved_at is not None:
        lines.append(f"  Approved:  {requirement.approved_at.isoformat()}")
    if requirement.revised_at is not None:
        lines.append(f"  Revised:   {requirement.revised_at.isoformat()}")
    if requirement.detail:
        lines.append("")
        lines.extend(f"  {line}" for line in requirement.detail.splitlines())
    if requirement.acceptance:
        lines.append("")
        lines.append("  Acceptance:")
        lines.extend(f"    - {criterion}" for criterion in requirement.acceptance)
    for label, values in (
        ("Depends", requirement.depends),
        ("Tags", requirement.tags),
        ("Domains", requirement.domains),
    ):
        if values:
            lines.append(f"  {label + ':':<10} {', '.join(values)}")
    return "\n".join(lines)


@click.command(name="list", help="List requirements in the module.")
@click.option("--category", "-c", default=None, help="Filter by category (AUTH, DATA, ...).")
@click.option("--priority", "-p", default=None, help="Filter by priority.")
@click.option("--type", "-t", "type_", default=None, help="Filter by type.")
@click.option("--status", "-s", default=None, help="Filter by record status.")
@click.option("--approval", default=None, help="Filter by approval status.")
@click.option("--tag", default=None, help="Only requirements carrying this tag.")
@click.option("--domain", "-d", default=None, help="Only requirements assigned to this domain.")
@click.option("--include-deleted", is_flag=True, help="Include soft-deleted requirements.")
@click.option("--output", "-o", type=OUTPUT_CHOICE, default="text", help="Output format.")
@click.pass_context
def list_command(
    ctx: click.Context,
    category: str | None,
    priority: str | None,
    type_: str | None,
    status: str | None,
    approval: str | None,
    tag: str | None,
    domain: str | None,
    include_deleted: bool,
    output: str,
) -> None:
    with handle_errors():
        requirements = get_store(ctx).list_requirements(
            get_module(ctx),
            category=category,
            priority=priority,
            type=type_,
            status=status,
            approval_status=approval,
            tag=tag,
            domain=domain,
            include_deleted=include_deleted,
        )
    if output == "json":
        echo_json(requirements)
        return
    for requirement in requirements:
        click.echo(format_line(requirement))


@click.command(name="show", help="Show a requirement.")
@click.argument("display_id")
@click.option("--output", "-o", type=OUTPUT_CHOICE, default="text", help="Output format.")
@click.pass_context
def show_command(ctx: click.Context, display_id: str, output: str) -> None:
    with handle_errors():
        requirement = get_store(ctx).show(get_module(ctx), display_id)
    if output == "json":
        echo_json(requirement)
    else:
        click.echo(format_requirement(requirement))


@click.command(name="create", help="Create a proposed requirement.")
@click.argument("category")
@click.argument("type_", metavar="TYPE")
@click.argument("summary")
@click.option("--priority", "-p", default="should", show_default=True, help="MoSCoW priority.")
@click.option("--detail", default=None, help="Long description.")
@click.option("--accept", "-a", "acceptance", multiple=True, help="Acceptance criterion (repeatable).")
@click.option("--tag", "tags", multiple=True, help="Tag (repeatable).")
@click.option("--domain", "domains", multiple=True, help="Domain reference (repeatable).")
@click.option("--depends", multiple=True, help="Display ID this requirement depends on (repeatable).")
@click.pass_context
def create_command(
    ctx: click.Context,
    category: str,
    type_: str,
    summary: str,
    priority: str,
    detail: str | None,
    acceptance: tuple[str, ...],
    tags: tuple[str, ...],
    domains: tuple[str, ...],
    depends: tuple[str, ...],
) -> None:
    """Create a requirement; the display ID is assigned from the category."""
    with handle_errors():
        requirement = get_store(ctx).create(
            get_module(ctx),
            category,
            type_,
            summary,
            priority=priority,
            detail=detail,
            acceptance=acceptance,
            tags=tags,
            domains=domains,
            depends=depends,
        )
    if not requirement.acceptance:
        warn("Requirement has no acceptance criteria", id=requirement.display_id)
    success(f"Created {requirement.display_id}")


@click.command(name="edit", help="Change one field: summary, detail, type, priority or status.")
@click.argument("display_id")
@click.argument(
    "field",
    type=click.Choice(["summary", "detail", "type", "priority", "status"], case_sensitive=False),
)
@click.argument("value")
@click.pass_context
def edit_command(ctx: click.Context, display_id: str, field: str, value: str) -> None:
    """Edit a field. Changing the content of an approved requirement revises it."""
    with handle_errors():
        requirement = get_store(ctx).edit_field(get_module(ctx), display_id, field.lower(), value)
    success(f"Updated {requirement.display_id} ({requirement.approval_status.value})")


@click.command(name="update", help="Replace summary, detail and acceptance criteria.")
@click.argument("display_id")
@click.option("--summary", required=True, help="New summary.")
@click.option("--detail", default=None, help="New detail (omit to clear).")
@click.option("--accept", "-a", "acceptance", multiple=True, help="Acceptance criterion (repeatable).")
@click.pass_context
def update_command(
    ctx: click.Context,
    display_id: str,
    summary: str,
    detail: str | None,
    acceptance: tuple[str, ...],
) -> None:
    with handle_errors():
        requirement = get_store(ctx).update_full(get_module(ctx), display_id, summary, detail, acceptance)
    success(f"Updated {requirement.display_id} ({requirement.approval_status.value})")


@click.command(name="delete", help="Soft delete a requirement.")
@click.argument("display_id")
@click.pass_context
def delete_command(ctx: click.Context, display_id: str) -> None:
    with handle_errors():
        requirement = get_store(ctx).soft_delete(get_module(ctx), display_id)
    success(f"Deleted {requirement.display_id}")


@click.command(name="restore", help="Restore a soft-deleted requirement.")
@click.argument("display_id")
@click.pass_context
def restore_command(ctx: click.Context, display_id: str) -> None:
    with handle_errors():
        requirement = get_store(ctx).restore(get_module(ctx), display_id)
    success(f"Restored {requirement.display_id}")


@click.command(name="purge", help="Permanently remove requirements soft-deleted more than N days ago.")
@click.option("--older-than", "older_than", type=int, required=True, help="Age in days.")
@click.option("--all-modules", is_flag=True, help="Purge across every module.")
@click.pass_context
def purge_command(ctx: click.Context, older_than: int, all_modules: bool) -> None:
    """Purge old soft-deleted requirements; their edges are removed with them."""
    with handle_errors():
        purged = get_store(ctx).purge(older_than, module=None if all_modules else get_module(ctx))
    for requirement in purged:
        click.echo(f"{requirement.module}/{requirement.display_id}")
    success(f"Purged {len(purged)} requirement(s)")


__all__: list[str] = [
    "create_command",
    "delete_command",
    "edit_command",
    "format_line",
    "format_requirement",
    "list_command",
    "purge_command",
    "restore_command",
    "show_command",
    "update_command",
]
