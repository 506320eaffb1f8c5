"""Pydantic models for req-core.

Submodules:
    requirement: Enumerated domains, display IDs and store read models
    traceability: Scanner mappings, integrity issues and coverage reports
    transfer: Export/import document records
"""

from __future__ import annotations

from req_core.schemas.requirement import (
    ApprovalStatus,
    Baseline,
    Category,
    DisplayId,
    Domain,
    FieldChange,
    ModuleInfo,
    Priority,
    Requirement,
    RequirementDiff,
    RequirementType,
    Status,
    format_display_id,
    parse_category,
)
from req_core.schemas.traceability import (
    AnnotationBlock,
    AnnotationWarning,
    ArtifactKind,
    CodeReference,
    CoverageReport,
    CoverageState,
    IntegrityIssue,
    IssueKind,
    RequirementCoverage,
    ScanResult,
)
from req_core.schemas.transfer import (
    BaselineRecord,
    DomainRecord,
    RequirementRecord,
    TransferDocument,
)

__all__ = [
    "AnnotationBlock",
    "AnnotationWarning",
    "ApprovalStatus",
    "ArtifactKind",
    "Baseline",
    "BaselineRecord",
    "Category",
    "CodeReference",
    "CoverageReport",
    "CoverageState",
    "DisplayId",
    "Domain",
    "DomainRecord",
    "FieldChange",
    "IntegrityIssue",
    "IssueKind",
    "ModuleInfo",
    "Priority",
    "Requirement",
    "RequirementCoverage",
    "RequirementDiff",
    "RequirementRecord",
    "RequirementType",
    "ScanResult",
    "Status",
    "TransferDocument",
    "format_display_id",
    "parse_category",
]
