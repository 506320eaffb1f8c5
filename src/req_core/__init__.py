"""req-core: Requirement store with approval lifecycle and code traceability.

This package provides:
- RequirementStore: SQLite-backed store of requirements per module
- Approval lifecycle: proposed, approved and revised content with baseline mirror
- Dependency graph: acyclic ``depends`` edges within one module
- TraceabilityScanner: Maps code annotations to requirement display IDs
- Coverage reporting: Four-state coverage per requirement with orphan reports
- Errors: ReqError hierarchy with CLI exit codes

Example:
    >>> from req_core import RequirementStore, TraceabilityScanner, coverage_report
    >>> store = RequirementStore.open("requirements.db")
    >>> req = store.create("default", "AUTH", "functional", "Users can log in")
    >>> req.display_id
    'AUTH-001'
    >>> scan = TraceabilityScanner(store).scan(Path("."), "default")
    >>> coverage_report(store, scan).coverage_percentage
    0.0
"""

from __future__ import annotations

__version__ = "0.1.0"

from req_core.errors import ConflictError, NotFoundError, ReqError, StateError, ValidationError
from req_core.store import RequirementStore
from req_core.traceability import TraceabilityScanner, compute_coverage, coverage_report

__all__ = [
    "ConflictError",
    "NotFoundError",
    "ReqError",
    "RequirementStore",
    "StateError",
    "TraceabilityScanner",
    "ValidationError",
    "__version__",
    "compute_coverage",
    "coverage_report",
]
