"""Traceability and coverage models.

Scanner output maps display IDs to the code units that reference them.
Coverage combines that mapping with the requirement store into one of
four coverage states per requirement.

Example:
    >>> ref = CodeReference(
    ...     location="src/auth/login.py:12",
    ...     unit="LoginService.authenticate",
    ...     kind=ArtifactKind.IMPLEMENTATION,
    ... )
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from req_core.schemas.requirement import Category, Status


class ArtifactKind(str, Enum):
    """Classification of a source artifact by its place in the corpus."""

    IMPLEMENTATION = "implementation"
    TEST = "test"


class CoverageState(str, Enum):
    """Coverage of a requirement by annotated code units."""

    UNCOVERED = "uncovered"
    IMPLEMENTATION_ONLY = "implementation-only"
    TEST_ONLY = "test-only"
    FULLY_COVERED = "fully-covered"


class IssueKind(str, Enum):
    """Kinds of advisory integrity issues."""

    ORPHAN_TAG = "orphan-tag"
    ORPHAN_DEPENDENCY = "orphan-dependency"


class AnnotationBlock(BaseModel):
    """One annotation block found by a parser.

    Attributes:
        path: Artifact path relative to the scan root (POSIX separators).
        line: 1-based line of the annotation.
        unit: Name of the annotated code unit (class, function, method).
        unit_line: 1-based line where the code unit is declared.
        ids: Raw ID tokens, in the order written.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str
    line: int = Field(..., ge=1)
    unit: str
    unit_line: int = Field(..., ge=1)
    ids: list[str] = Field(default_factory=list)

    @property
    def location(self) -> str:
        return f"{self.path}:{self.line}"


class CodeReference(BaseModel):
    """A code unit that references a requirement."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    location: str
    unit: str
    kind: ArtifactKind


class IntegrityIssue(BaseModel):
    """Advisory integrity finding. Reported, never raised.

    Attributes:
        kind: Orphan tag or orphan dependency.
        reference: The display ID that did not resolve.
        location: Where the reference was found (code location or requirement).
        unit: Code unit carrying the reference, for orphan tags.
        message: Human-readable explanation.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: IssueKind
    reference: str
    location: str
    unit: str | None = None
    message: str


class AnnotationWarning(BaseModel):
    """Lint warning for annotation convention violations or unreadable files."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    location: str
    unit: str | None = None
    message: str


class ScanResult(BaseModel):
    """Point-in-time result of scanning a corpus against a module.

    Attributes:
        module: Module the IDs were resolved against.
        root: Scan root directory.
        scanned_at: When the scan ran.
        files_scanned: Number of artifacts parsed.
        mappings: Display ID to referencing code units.
        orphan_tags: References that did not resolve in the module.
        warnings: Convention violations and unreadable artifacts.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    module: str
    root: str
    scanned_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))
    files_scanned: int = Field(0, ge=0)
    mappings: dict[str, list[CodeReference]] = Field(default_factory=dict)
    orphan_tags: list[IntegrityIssue] = Field(default_factory=list)
    warnings: list[AnnotationWarning] = Field(default_factory=list)

    def references(self, display_id: str) -> list[CodeReference]:
        """Return the code units referencing a display ID."""
        return self.mappings.get(display_id, [])


class RequirementCoverage(BaseModel):
    """Coverage information for a single requirement."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    display_id: str
    category: Category
    status: Status
    summary: str
    state: CoverageState
    implementations: list[CodeReference] = Field(default_factory=list)
    tests: list[CodeReference] = Field(default_factory=list)


class CoverageReport(BaseModel):
    """Coverage report for a module.

    Attributes:
        module: Module covered.
        total_requirements: Requirements included in the report.
        coverage_percentage: Share of requirements that are fully covered.
        by_state: Count per coverage state.
        by_category: Count per coverage state, per category.
        requirements: Per-requirement coverage.
        orphan_tags: Code references that did not resolve.
        orphan_dependencies: Dependency edges whose target is not active.
        warnings: Scanner lint warnings.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    module: str
    generated_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))
    total_requirements: int = Field(0, ge=0)
    coverage_percentage: float = Field(0.0, ge=0.0, le=100.0)
    by_state: dict[CoverageState, int] = Field(default_factory=dict)
    by_category: dict[Category, dict[CoverageState, int]] = Field(default_factory=dict)
    requirements: list[RequirementCoverage] = Field(default_factory=list)
    orphan_tags: list[IntegrityIssue] = Field(default_factory=list)
    orphan_dependencies: list[IntegrityIssue] = Field(default_factory=list)
    warnings: list[AnnotationWarning] = Field(default_factory=list)

    def passes_threshold(self, threshold: float) -> bool:
        """Check if the fully-covered percentage meets a threshold."""
        return self.coverage_percentage >= threshold


__all__ = [
    "AnnotationBlock",
    "AnnotationWarning",
    "ArtifactKind",
    "CodeReference",
    "CoverageReport",
    "CoverageState",
    "IntegrityIssue",
    "IssueKind",
    "RequirementCoverage",
    "ScanResult",
]
