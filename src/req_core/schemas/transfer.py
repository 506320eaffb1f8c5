"""Bulk transfer (export/import) document models.

One record per requirement, keyed by display ID:

    id: AUTH-001
    type: functional
    priority: must
    summary: Users can sign in with email and password
    detail: ...
    accepts: [...]
    depends: [DATA-002]
    tags: [onboarding]
    domains: [accounts]

Records additionally carry the approval baseline, so an export followed
by an import reproduces approved and revised requirements exactly.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from req_core.errors import ValidationError
from req_core.schemas.requirement import (
    MAX_SEQ,
    ApprovalStatus,
    DisplayId,
    Priority,
    RequirementType,
    Status,
    parse_category,
)


class BaselineRecord(BaseModel):
    """Approved content snapshot of a revised requirement."""

    model_config = ConfigDict(extra="forbid")

    summary: str = Field(..., min_length=1)
    detail: str | None = None
    accepts: list[str] = Field(default_factory=list)


class RequirementRecord(BaseModel):
    """A single requirement in the transfer document."""

    model_config = ConfigDict(extra="forbid")

    id: str
    type: RequirementType
    priority: Priority = Priority.SHOULD
    summary: str = Field(..., min_length=1)
    detail: str | None = None
    accepts: list[str] = Field(default_factory=list)
    depends: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    domains: list[str] = Field(default_factory=list)
    status: Status = Status.ACTIVE
    approval_status: ApprovalStatus = ApprovalStatus.PROPOSED
    approved_at: datetime | None = None
    revised_at: datetime | None = None
    baseline: BaselineRecord | None = None
    deleted_at: datetime | None = None

    @field_validator("id", "depends", mode="after")
    @classmethod
    def _normalize_display_ids(cls, value: str | list[str]) -> str | list[str]:
        if isinstance(value, list):
            return [_normalize(item) for item in value]
        return _normalize(value)

    @model_validator(mode="after")
    def _baseline_only_when_revised(self) -> RequirementRecord:
        revised = self.approval_status == ApprovalStatus.REVISED
        if revised != (self.baseline is not None):
            raise ValueError("baseline must be present exactly when approval_status is 'revised'")
        if self.id in self.depends:
            raise ValueError(f"{self.id} cannot depend on itself")
        return self

    @property
    def display_id(self) -> DisplayId:
        return DisplayId.parse(self.id)


class DomainRecord(BaseModel):
    """Domain definition carried in the transfer document."""

    model_config = ConfigDict(extra="forbid")

    reference: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    description: str | None = None


class TransferDocument(BaseModel):
    """A module's requirements, domains and associations."""

    model_config = ConfigDict(extra="forbid")

    module: str | None = None
    description: str | None = None
    sequences: dict[str, int] = Field(
        default_factory=dict,
        description="Highest sequence number ever assigned, per category",
    )
    domains: list[DomainRecord] = Field(default_factory=list)
    requirements: list[RequirementRecord] = Field(default_factory=list)

    @field_validator("sequences", mode="after")
    @classmethod
    def _normalize_sequences(cls, value: dict[str, int]) -> dict[str, int]:
        normalized: dict[str, int] = {}
        for name, last in value.items():
            if not 0 <= last <= MAX_SEQ:
                raise ValueError(f"sequence for {name} out of range: {last}")
            try:
                category = parse_category(name).value
            except ValidationError as e:
                raise ValueError(str(e)) from e
            normalized[category] = max(normalized.get(category, 0), last)
        return normalized

    @model_validator(mode="after")
    def _unique_keys(self) -> TransferDocument:
        ids = [record.id for record in self.requirements]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"duplicate requirement ids: {', '.join(duplicates)}")
        refs = [domain.reference for domain in self.domains]
        duplicate_refs = sorted({r for r in refs if refs.count(r) > 1})
        if duplicate_refs:
            raise ValueError(f"duplicate domain references: {', '.join(duplicate_refs)}")
        return self


def _normalize(value: str) -> str:
    try:
        return str(DisplayId.parse(value))
    except ValidationError as e:
        raise ValueError(str(e)) from e


__all__ = [
    "BaselineRecord",
    "DomainRecord",
    "RequirementRecord",
    "TransferDocument",
]
