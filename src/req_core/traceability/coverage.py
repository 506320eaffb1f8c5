"""Coverage reporting.

Combines a scan result with the requirements of a module into one coverage
state per requirement, plus per-state and per-category summaries.

Functions:
    classify: Coverage state of one requirement from its code references
    calculate_coverage: Fully-covered counts and percentage
    compute_coverage: Build a CoverageReport from requirements and a scan
    coverage_report: Build a CoverageReport straight from the store
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

import structlog

from req_core.schemas.requirement import Category, Requirement, Status
from req_core.schemas.traceability import (
    ArtifactKind,
    CodeReference,
    CoverageReport,
    CoverageState,
    IntegrityIssue,
    RequirementCoverage,
    ScanResult,
)

logger = structlog.get_logger(__name__)


def classify(references: Iterable[CodeReference]) -> CoverageState:
    """Return the coverage state implied by a set of code references."""
    kinds = {ref.kind for ref in references}
    implemented = ArtifactKind.IMPLEMENTATION in kinds
    tested = ArtifactKind.TEST in kinds
    if implemented and tested:
        return CoverageState.FULLY_COVERED
    if implemented:
        return CoverageState.IMPLEMENTATION_ONLY
    if tested:
        return CoverageState.TEST_ONLY
    return CoverageState.UNCOVERED


def calculate_coverage(entries: Sequence[RequirementCoverage]) -> tuple[int, int, float]:
    """Calculate fully-covered statistics.

    Returns:
        Tuple of (fully_covered_count, total_count, percentage).
    """
    total = len(entries)
    covered = sum(1 for entry in entries if entry.state is CoverageState.FULLY_COVERED)
    percentage = (covered / total * 100) if total > 0 else 0.0
    return covered, total, percentage


def compute_coverage(
    module: str,
    requirements: Iterable[Requirement],
    scan: ScanResult,
    orphan_dependencies: Iterable[IntegrityIssue] = (),
    include_inactive: bool = False,
) -> CoverageReport:
    """Build a coverage report.

    Args:
        module: Module the requirements belong to.
        requirements: Candidate requirements, in report order.
        scan: Scanner output for the same module.
        orphan_dependencies: Integrity issues to carry into the report.
        include_inactive: Keep deprecated and deleted requirements.

    Returns:
        CoverageReport with every state and category counted.
    """
    entries: list[RequirementCoverage] = []
    for requirement in requirements:
        if not include_inactive and requirement.status is not Status.ACTIVE:
            continue
        references = scan.references(requirement.display_id)
        entries.append(
            RequirementCoverage(
                display_id=requirement.display_id,
                category=requirement.category,
                status=requirement.status,
                summary=requirement.summary,
                state=classify(references),
                implementations=[r for r in references if r.kind is ArtifactKind.IMPLEMENTATION],
                tests=[r for r in references if r.kind is ArtifactKind.TEST],
            )
        )

    by_state = {state: 0 for state in CoverageState}
    by_category: dict[Category, dict[CoverageState, int]] = {}
    for entry in entries:
        by_state[entry.state] += 1
        counts = by_category.setdefault(entry.category, {state: 0 for state in CoverageState})
        counts[entry.state] += 1

    _, total, percentage = calculate_coverage(entries)
    return CoverageReport(
        module=module,
        total_requirements=total,
        coverage_percentage=percentage,
        by_state=by_state,
        by_category=by_category,
        requirements=entries,
        orphan_tags=list(scan.orphan_tags),
        orphan_dependencies=list(orphan_dependencies),
        warnings=list(scan.warnings),
    )


def coverage_report(store: object, scan: ScanResult, include_inactive: bool = False) -> CoverageReport:
    """Build a coverage report for the scanned module from the store.

    Raises:
        NotFoundError: If the module does not exist.
    """
    requirements = store.list_requirements(  # type: ignore[attr-defined]
        scan.module, include_deleted=include_inactive
    )
    orphan_dependencies = store.orphan_dependencies(scan.module)  # type: ignore[attr-defined]
    report = compute_coverage(
        scan.module,
        requirements,
        scan,
        orphan_dependencies=orphan_dependencies,
        include_inactive=include_inactive,
    )
    logger.info(
        "coverage_computed",
        module=scan.module,
        total=report.total_requirements,
        percentage=round(report.coverage_percentage, 1),
    )
    return report


__all__ = [
    "calculate_coverage",
    "classify",
    "compute_coverage",
    "coverage_report",
]
