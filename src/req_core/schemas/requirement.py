"""Requirement models.

This module provides the enumerated domains of the requirement store, the
derived display identifier, and the read models returned by the store.

A requirement is identified by ``(module, category, seq)``. The display
identifier (``AUTH-001``) is computed from category and seq and never
stored as a single string.

Example:
    >>> display_id = DisplayId.parse("auth-7")
    >>> str(display_id)
    'AUTH-007'
    >>> display_id.category
    <Category.AUTH: 'AUTH'>
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from req_core.errors import ValidationError


class Category(str, Enum):
    """Requirement categories."""

    AUTH = "AUTH"
    DATA = "DATA"
    UI = "UI"
    API = "API"
    PERF = "PERF"
    SEC = "SEC"
    INT = "INT"
    BIZ = "BIZ"
    INF = "INF"


class RequirementType(str, Enum):
    """Kind of requirement."""

    FUNCTIONAL = "functional"
    NON_FUNCTIONAL = "non-functional"
    CONSTRAINT = "constraint"
    INTERFACE = "interface"


class Priority(str, Enum):
    """MoSCoW priority."""

    MUST = "must"
    SHOULD = "should"
    COULD = "could"
    WONT = "wont"


class Status(str, Enum):
    """Record lifecycle status. Deletion is a status flip until purge."""

    ACTIVE = "active"
    DEPRECATED = "deprecated"
    DELETED = "deleted"


class ApprovalStatus(str, Enum):
    """Approval lifecycle of a requirement's content."""

    PROPOSED = "proposed"
    """Never approved, or withdrawn. No baseline."""

    APPROVED = "approved"
    """Current content is the approved baseline."""

    REVISED = "revised"
    """Content diverged from the approved baseline, which is kept as a mirror."""


_DISPLAY_ID_PATTERN = re.compile(r"^([A-Za-z]+)-(\d+)$")

# Largest value a SQLite INTEGER column holds.
MAX_SEQ = 2**63 - 1


def format_display_id(category: Category | str, seq: int) -> str:
    """Format a display identifier from its parts.

    Args:
        category: Requirement category.
        seq: Sequence number within ``(module, category)``.

    Returns:
        The display identifier, e.g. ``AUTH-001``.
    """
    value = category.value if isinstance(category, Category) else category
    return f"{value}-{seq:03d}"


def parse_category(value: str) -> Category:
    """Parse a category name, case-insensitively.

    Raises:
        ValidationError: If the value is not a known category.
    """
    try:
        return Category(value.strip().upper())
    except ValueError:
        allowed = ", ".join(c.value for c in Category)
        raise ValidationError(f"Invalid category '{value}' (expected one of: {allowed})") from None


class DisplayId(BaseModel):
    """Parsed display identifier: category plus sequence number."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    category: Category
    seq: int = Field(..., ge=1, le=MAX_SEQ)

    def __str__(self) -> str:
        return format_display_id(self.category, self.seq)

    @classmethod
    def parse(cls, text: str) -> DisplayId:
        """Parse ``CATEGORY-NNN`` into a DisplayId.

        Args:
            text: Display identifier; category is case-insensitive and the
                number need not be zero-padded.

        Raises:
            ValidationError: If the text is malformed or the category unknown.
        """
        match = _DISPLAY_ID_PATTERN.match(text.strip())
        if match is None:
            raise ValidationError(f"Malformed display ID '{text}' (expected CATEGORY-NNN)")
        digits = match.group(2).lstrip("0")
        if len(digits) > len(str(MAX_SEQ)) or (digits and int(digits) > MAX_SEQ):
            raise ValidationError(f"Malformed display ID '{text}' (sequence number too large)")
        seq = int(digits or "0")
        if seq < 1:
            raise ValidationError(f"Malformed display ID '{text}' (sequence starts at 1)")
        return cls(category=parse_category(match.group(1)), seq=seq)


class Baseline(BaseModel):
    """Snapshot of approved content, kept while a requirement is revised.

    Attributes:
        summary: Approved summary.
        detail: Approved detail.
        acceptance: Approved acceptance criteria, in order.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    summary: str
    detail: str | None = None
    acceptance: list[str] = Field(default_factory=list)


class Requirement(BaseModel):
    """A requirement with all of its owned and associated data.

    ``baseline`` is present if and only if ``approval_status`` is revised.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: int = Field(..., description="Internal row identifier")
    module: str
    category: Category
    seq: int = Field(..., ge=1)
    type: RequirementType
    priority: Priority = Priority.SHOULD
    summary: str = Field(..., min_length=1)
    detail: str | None = None
    status: Status = Status.ACTIVE
    approval_status: ApprovalStatus = ApprovalStatus.PROPOSED
    approved_at: datetime | None = None
    revised_at: datetime | None = None
    baseline: Baseline | None = None
    acceptance: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    domains: list[str] = Field(default_factory=list)
    depends: list[str] = Field(default_factory=list, description="Display IDs this depends on")
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    @model_validator(mode="after")
    def _baseline_only_when_revised(self) -> Requirement:
        revised = self.approval_status == ApprovalStatus.REVISED
        if revised != (self.baseline is not None):
            raise ValueError("baseline must be present exactly when approval_status is 'revised'")
        return self

    @property
    def display_id(self) -> str:
        """Derived display identifier, e.g. ``AUTH-001``."""
        return format_display_id(self.category, self.seq)


class Domain(BaseModel):
    """A named grouping of requirements within a module."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    module: str
    reference: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str | None = None
    requirement_count: int = Field(0, ge=0)


class ModuleInfo(BaseModel):
    """A module with per-status requirement counts."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str
    description: str | None = None
    created_at: datetime
    counts: dict[Status, int] = Field(default_factory=dict)


class FieldChange(BaseModel):
    """Comparison of one scalar field against the approved baseline."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    field: str
    approved: str | None
    current: str | None

    @property
    def changed(self) -> bool:
        return self.approved != self.current


class RequirementDiff(BaseModel):
    """Field-level difference between current content and approved baseline.

    Attributes:
        display_id: Requirement being compared.
        summary: Summary comparison.
        detail: Detail comparison.
        acceptance_added: Criteria present now but not in the baseline.
        acceptance_removed: Criteria in the baseline but not present now.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    display_id: str
    summary: FieldChange
    detail: FieldChange
    acceptance_added: list[str] = Field(default_factory=list)
    acceptance_removed: list[str] = Field(default_factory=list)

    def has_differences(self) -> bool:
        """Check whether any field differs from the baseline."""
        return (
            self.summary.changed
            or self.detail.changed
            or bool(self.acceptance_added)
            or bool(self.acceptance_removed)
        )


__all__ = [
    "MAX_SEQ",
    "ApprovalStatus",
    "Baseline",
    "Category",
    "DisplayId",
    "Domain",
    "FieldChange",
    "ModuleInfo",
    "Priority",
    "Requirement",
    "RequirementDiff",
    "RequirementType",
    "Status",
    "format_display_id",
    "parse_category",
]
