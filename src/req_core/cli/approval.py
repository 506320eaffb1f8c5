"""Approval lifecycle commands.

Commands:
    req approve: Mark current content as the approved baseline
    req revert: Restore the approved baseline of a revised requirement
    req withdraw: Return a requirement to proposed, discarding the baseline
    req diff: Compare a revised requirement with its approved baseline
"""

from __future__ import annotations

import click

from req_core.cli.utils import OUTPUT_CHOICE, echo_json, get_module, get_store, handle_errors, success
from req_core.schemas.requirement import RequirementDiff


def format_diff(diff: RequirementDiff) -> str:
    """Render a baseline diff; unchanged fields are omitted."""
    if not diff.has_differences():
        return f"{diff.display_id}: no differences from the approved baseline"
    lines = [f"{diff.display_id}: changes since approval"]
    for change in (diff.summary, diff.detail):
        if change.changed:
            lines.append(f"  {change.field}:")
            lines.append(f"    - {change.approved or ''}")
            lines.append(f"    + {change.current or ''}")
    if diff.acceptance_removed or diff.acceptance_added:
        lines.append("  acceptance:")
        lines.extend(f"    - {criterion}" for criterion in diff.acceptance_removed)
        lines.extend(f"    + {criterion}" for criterion in diff.acceptance_added)
    return "\n".join(lines)


@click.command(name="approve", help="Approve a requirement's current content.")
@click.argument("display_id")
@click.pass_context
def approve_command(ctx: click.Context, display_id: str) -> None:
    with handle_errors():
        requirement = get_store(ctx).approve(get_module(ctx), display_id)
    success(f"Approved {requirement.display_id}")


@click.command(name="revert", help="Revert a revised requirement to its approved baseline.")
@click.argument("display_id")
@click.pass_context
def revert_command(ctx: click.Context, display_id: str) -> None:
    with handle_errors():
        requirement = get_store(ctx).revert(get_module(ctx), display_id)
    success(f"Reverted {requirement.display_id} to its approved baseline")


@click.command(name="withdraw", help="Withdraw approval; the requirement becomes proposed.")
@click.argument("display_id")
@click.pass_context
def withdraw_command(ctx: click.Context, display_id: str) -> None:
    with handle_errors():
        requirement = get_store(ctx).withdraw(get_module(ctx), display_id)
    success(f"Withdrew approval of {requirement.display_id}")


@click.command(name="diff", help="Show changes of a revised requirement since approval.")
@click.argument("display_id")
@click.option("--output", "-o", type=OUTPUT_CHOICE, default="text", help="Output format.")
@click.pass_context
def diff_command(ctx: click.Context, display_id: str, output: str) -> None:
    with handle_errors():
        diff = get_store(ctx).diff(get_module(ctx), display_id)
    if output == "json":
        echo_json(diff)
    else:
        click.echo(format_diff(diff))


__all__: list[str] = [
    "approve_command",
    "diff_command",
    "format_diff",
    "revert_command",
    "withdraw_command",
]
