"""Approval state machine for requirement content.

States:
    proposed: initial state, no baseline.
    approved: current content is the baseline; ``approved_at`` set.
    revised: content diverged after approval; the approved content is kept
        as a baseline mirror and ``revised_at`` set.

Transitions:
    approve:  proposed -> approved, revised -> approved (baseline cleared)
    edit:     approved -> revised (baseline captured before the change);
              proposed and revised edit in place
    revert:   revised -> approved (baseline restored into live content)
    withdraw: approved | revised -> proposed (everything cleared)

The functions here are pure: they compute the next approval fields (and
content, for revert) from a Requirement. The store persists the result in
the same transaction as the content change.

Example:
    >>> fields = on_edit(requirement, Content("New summary", None, ("ok",)), now)
    >>> fields.status
    <ApprovalStatus.REVISED: 'revised'>
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from req_core.errors import StateError
from req_core.schemas.requirement import (
    ApprovalStatus,
    Baseline,
    FieldChange,
    Requirement,
    RequirementDiff,
    Status,
)

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(frozen=True)
class Content:
    """The approvable content of a requirement."""

    summary: str
    detail: str | None
    acceptance: tuple[str, ...]

    @classmethod
    def of(cls, requirement: Requirement) -> Content:
        return cls(requirement.summary, requirement.detail, tuple(requirement.acceptance))

    @classmethod
    def of_baseline(cls, baseline: Baseline) -> Content:
        return cls(baseline.summary, baseline.detail, tuple(baseline.acceptance))

    def as_baseline(self) -> Baseline:
        return Baseline(summary=self.summary, detail=self.detail, acceptance=list(self.acceptance))


@dataclass(frozen=True)
class ApprovalFields:
    """Approval columns of a requirement after a transition."""

    status: ApprovalStatus
    approved_at: datetime | None = None
    revised_at: datetime | None = None
    baseline: Baseline | None = None

    @classmethod
    def of(cls, requirement: Requirement) -> ApprovalFields:
        return cls(
            status=requirement.approval_status,
            approved_at=requirement.approved_at,
            revised_at=requirement.revised_at,
            baseline=requirement.baseline,
        )


def on_edit(requirement: Requirement, new: Content, now: datetime) -> ApprovalFields:
    """Compute approval fields for a content change.

    Editing an approved requirement captures its current content as the
    baseline and moves it to revised. Edits in proposed or revised state
    leave the approval fields untouched, so the baseline always reflects
    the last approved content. An edit that changes nothing is not a
    divergence.

    Args:
        requirement: Requirement before the edit.
        new: Content after the edit.
        now: Timestamp for ``revised_at``.

    Returns:
        Approval fields to store with the new content.
    """
    current = ApprovalFields.of(requirement)
    if requirement.approval_status != ApprovalStatus.APPROVED:
        return current
    if new == Content.of(requirement):
        return current
    return ApprovalFields(
        status=ApprovalStatus.REVISED,
        approved_at=requirement.approved_at,
        revised_at=now,
        baseline=Content.of(requirement).as_baseline(),
    )


def approve(requirement: Requirement, now: datetime) -> ApprovalFields | None:
    """Approve the current content as the new baseline.

    Returns:
        New approval fields, or None when the requirement is already
        approved with no pending changes (a no-op).

    Raises:
        StateError: If the requirement is soft-deleted.
    """
    if requirement.status == Status.DELETED:
        raise StateError(
            f"Cannot approve deleted requirement {requirement.display_id}",
            display_id=requirement.display_id,
            state=requirement.approval_status.value,
        )
    if requirement.approval_status == ApprovalStatus.APPROVED:
        return None
    return ApprovalFields(status=ApprovalStatus.APPROVED, approved_at=now)


def revert(requirement: Requirement) -> tuple[Content, ApprovalFields]:
    """Discard revisions and restore the approved baseline.

    Returns:
        The restored content and the approval fields (approved, no baseline).

    Raises:
        StateError: If the requirement is not revised.
    """
    baseline = _require_revised(requirement, "revert")
    fields = ApprovalFields(status=ApprovalStatus.APPROVED, approved_at=requirement.approved_at)
    return Content.of_baseline(baseline), fields


def withdraw(requirement: Requirement) -> ApprovalFields:
    """Return an approved or revised requirement to proposed.

    Raises:
        StateError: If the requirement is already proposed.
    """
    if requirement.approval_status == ApprovalStatus.PROPOSED:
        raise StateError(
            f"{requirement.display_id} is proposed; only approved or revised requirements can be withdrawn",
            display_id=requirement.display_id,
            state=requirement.approval_status.value,
        )
    return ApprovalFields(status=ApprovalStatus.PROPOSED)


def diff(requirement: Requirement) -> RequirementDiff:
    """Compare current content with the approved baseline.

    Acceptance criteria are compared as sets.

    Raises:
        StateError: If the requirement is not revised.
    """
    baseline = _require_revised(requirement, "diff")
    current_accepts = set(requirement.acceptance)
    approved_accepts = set(baseline.acceptance)
    return RequirementDiff(
        display_id=requirement.display_id,
        summary=FieldChange(field="summary", approved=baseline.summary, current=requirement.summary),
        detail=FieldChange(field="detail", approved=baseline.detail, current=requirement.detail),
        acceptance_added=[a for a in requirement.acceptance if a not in approved_accepts],
        acceptance_removed=[a for a in baseline.acceptance if a not in current_accepts],
    )


def _require_revised(requirement: Requirement, operation: str) -> Baseline:
    if requirement.approval_status != ApprovalStatus.REVISED or requirement.baseline is None:
        raise StateError(
            f"Cannot {operation} {requirement.display_id}: requirement is "
            f"{requirement.approval_status.value}, not revised",
            display_id=requirement.display_id,
            state=requirement.approval_status.value,
        )
    return requirement.baseline


__all__ = [
    "ApprovalFields",
    "Content",
    "approve",
    "diff",
    "on_edit",
    "revert",
    "withdraw",
]
