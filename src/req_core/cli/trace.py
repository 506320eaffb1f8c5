"""Traceability and quality commands.

Commands:
    req scan: Map code annotations to requirements
    req coverage: Coverage state per requirement, with a threshold gate
    req check: Missing acceptance criteria and orphan dependencies

Example:
    $ req scan src tests
    $ req coverage . --threshold 80
    $ req check --strict
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from req_core.cli.utils import (
    OUTPUT_CHOICE,
    ExitCode,
    echo_json,
    get_module,
    get_settings,
    get_store,
    handle_errors,
    info,
    warn,
)
from req_core.schemas.traceability import CoverageReport, CoverageState, ScanResult
from req_core.traceability import PatternClassifier, TraceabilityScanner, coverage_report

ROOT_ARGUMENT = click.argument(
    "root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
)


def _scan(ctx: click.Context, root: Path) -> ScanResult:
    settings = get_settings(ctx)
    scanner = TraceabilityScanner(
        get_store(ctx),
        classifier=PatternClassifier(settings.test_patterns),
        exclude_dirs=settings.exclude_dirs,
    )
    with handle_errors():
        return scanner.scan(root, get_module(ctx))


def format_scan(result: ScanResult) -> str:
    lines = [f"Scanned {result.files_scanned} file(s) in {result.root} against module '{result.module}'"]
    for display_id in sorted(result.mappings):
        lines.append(display_id)
        for ref in result.mappings[display_id]:
            lines.append(f"  [{ref.kind.value}] {ref.location} {ref.unit}")
    if result.orphan_tags:
        lines.append("")
        lines.append("Orphan tags:")
        lines.extend(f"  {o.reference} at {o.location} ({o.unit})" for o in result.orphan_tags)
    if result.warnings:
        lines.append("")
        lines.append("Warnings:")
        lines.extend(f"  {w.location}: {w.message}" for w in result.warnings)
    return "\n".join(lines)


def format_coverage(report: CoverageReport) -> str:
    """Format a coverage report as a table."""
    lines = []
    lines.append("=" * 72)
    lines.append(f"COVERAGE REPORT: {report.module}")
    lines.append("=" * 72)
    lines.append(f"{'ID':<10} {'Status':<11} {'Coverage':<20} Summary")
    lines.append("-" * 72)
    for entry in report.requirements:
        lines.append(f"{entry.display_id:<10} {entry.status.value:<11} {entry.state.value:<20} {entry.summary}")
    lines.append("-" * 72)
    lines.append(
        "  ".join(f"{state.value}={report.by_state.get(state, 0)}" for state in CoverageState)
    )
    for category, counts in sorted(report.by_category.items(), key=lambda item: item[0].value):
        lines.append(
            f"  {category.value:<6} "
            + "  ".join(f"{state.value}={counts.get(state, 0)}" for state in CoverageState)
        )
    lines.append(
        f"Fully covered: {report.coverage_percentage:.1f}% of {report.total_requirements} requirement(s)"
    )
    if report.orphan_tags or report.orphan_dependencies:
        lines.append("")
        lines.append("Integrity issues:")
        lines.extend(f"  [{o.kind.value}] {o.location}: {o.message}" for o in report.orphan_tags)
        lines.extend(f"  [{o.kind.value}] {o.location}: {o.message}" for o in report.orphan_dependencies)
    if report.warnings:
        lines.append("")
        lines.append("Warnings:")
        lines.extend(f"  {w.location}: {w.message}" for w in report.warnings)
    lines.append("=" * 72)
    return "\n".join(lines)


@click.command(name="scan", help="Scan source files for requirement annotations.")
@ROOT_ARGUMENT
@click.option("--output", "-o", type=OUTPUT_CHOICE, default="text", help="Output format.")
@click.pass_context
def scan_command(ctx: click.Context, root: Path, output: str) -> None:
    result = _scan(ctx, root)
    if output == "json":
        echo_json(result)
    else:
        click.echo(format_scan(result))


@click.command(name="coverage", help="Report coverage of requirements by annotated code.")
@ROOT_ARGUMENT
@click.option("--include-inactive", is_flag=True, help="Include deprecated and deleted requirements.")
@click.option(
    "--threshold",
    type=click.FloatRange(0.0, 100.0),
    default=None,
    help="Exit 1 if the fully-covered percentage is below this value.",
)
@click.option("--output", "-o", type=OUTPUT_CHOICE, default="text", help="Output format.")
@click.pass_context
def coverage_command(
    ctx: click.Context,
    root: Path,
    include_inactive: bool,
    threshold: float | None,
    output: str,
) -> None:
    """Scan ROOT and combine the result with the store into a coverage report."""
    scan = _scan(ctx, root)
    with handle_errors():
        report = coverage_report(get_store(ctx), scan, include_inactive=include_inactive)
    if output == "json":
        echo_json(report)
    else:
        click.echo(format_coverage(report))

    if threshold is not None and not report.passes_threshold(threshold):
        info(f"Coverage {report.coverage_percentage:.1f}% is below threshold {threshold:.1f}%")
        sys.exit(ExitCode.GENERAL_ERROR)


@click.command(name="check", help="Report requirements without acceptance criteria and orphan dependencies.")
@click.option("--strict", is_flag=True, help="Exit 1 when anything is reported.")
@click.pass_context
def check_command(ctx: click.Context, strict: bool) -> None:
    store = get_store(ctx)
    module = get_module(ctx)
    with handle_errors():
        missing = store.missing_acceptance(module)
        orphans = store.orphan_dependencies(module)
    for requirement in missing:
        warn("No acceptance criteria", id=requirement.display_id)
    for issue in orphans:
        warn(issue.message, id=issue.location)
    findings = len(missing) + len(orphans)
    info(f"{findings} finding(s) in module '{module}'")
    if strict and findings:
        sys.exit(ExitCode.GENERAL_ERROR)


__all__: list[str] = [
    "check_command",
    "coverage_command",
    "format_coverage",
    "format_scan",
    "scan_command",
]
