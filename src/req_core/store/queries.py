"""Lookups and model conversion shared by the store classes.

Every function takes an open session and runs inside the caller's
transaction or snapshot.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import datetime

from sqlalchemy import Select, select
from sqlalchemy.orm import Session, selectinload

from req_core.errors import NotFoundError
from req_core.schemas.requirement import (
    ApprovalStatus,
    Baseline,
    DisplayId,
    Requirement,
    format_display_id,
)
from req_core.store.models import (
    AcceptanceModel,
    ApprovedAcceptanceModel,
    DomainModel,
    ModuleModel,
    RequirementModel,
    requirement_depends,
)


def requirement_select() -> Select[tuple[RequirementModel]]:
    """Select requirements with every collection needed for conversion."""
    return select(RequirementModel).options(
        selectinload(RequirementModel.acceptance),
        selectinload(RequirementModel.approved_acceptance),
        selectinload(RequirementModel.tags),
        selectinload(RequirementModel.domains),
        selectinload(RequirementModel.depends_on),
    )


def get_module(session: Session, name: str) -> ModuleModel:
    """Resolve a module by name.

    Raises:
        NotFoundError: If the module does not exist.
    """
    module = session.scalar(select(ModuleModel).where(ModuleModel.name == name))
    if module is None:
        raise NotFoundError("module", name)
    return module


def ensure_module(
    session: Session,
    name: str,
    now: datetime,
    description: str | None = None,
) -> ModuleModel:
    """Resolve a module by name, creating it on first use."""
    module = session.scalar(select(ModuleModel).where(ModuleModel.name == name))
    if module is None:
        module = ModuleModel(name=name, description=description, created_at=now, updated_at=now)
        session.add(module)
        session.flush()
    return module


def get_requirement(
    session: Session,
    module: ModuleModel,
    display_id: DisplayId | str,
) -> RequirementModel:
    """Fetch a requirement by display ID within a module.

    Raises:
        ValidationError: If the display ID is malformed.
        NotFoundError: If no such requirement exists in the module.
    """
    parsed = display_id if isinstance(display_id, DisplayId) else DisplayId.parse(display_id)
    model = session.scalar(
        requirement_select().where(
            RequirementModel.module_id == module.id,
            RequirementModel.category == parsed.category.value,
            RequirementModel.seq == parsed.seq,
        )
    )
    if model is None:
        raise NotFoundError("requirement", str(parsed), module=module.name)
    return model


def get_domain(session: Session, module: ModuleModel, reference: str) -> DomainModel:
    """Fetch a domain by reference within a module.

    Raises:
        NotFoundError: If the domain does not exist.
    """
    domain = session.scalar(
        select(DomainModel).where(
            DomainModel.module_id == module.id,
            DomainModel.reference == reference.strip(),
        )
    )
    if domain is None:
        raise NotFoundError("domain", reference, module=module.name)
    return domain


def module_adjacency(session: Session, module_id: int) -> dict[int, list[int]]:
    """Outgoing dependency edges of every requirement in a module."""
    adjacency: dict[int, list[int]] = defaultdict(list)
    rows = session.execute(
        select(requirement_depends.c.requirement_id, requirement_depends.c.depends_on_id)
        .join(RequirementModel, RequirementModel.id == requirement_depends.c.requirement_id)
        .where(RequirementModel.module_id == module_id)
    )
    for source, target in rows:
        adjacency[source].append(target)
    return dict(adjacency)


def set_acceptance(model: RequirementModel, criteria: Iterable[str]) -> None:
    model.acceptance = [
        AcceptanceModel(criterion=criterion, position=position)
        for position, criterion in enumerate(criteria)
    ]


def set_approval(
    model: RequirementModel,
    status: ApprovalStatus,
    approved_at: datetime | None,
    revised_at: datetime | None,
    baseline: Baseline | None,
) -> None:
    """Set the approval columns and the baseline mirror together."""
    model.approval_status = status.value
    model.approved_at = approved_at
    model.revised_at = revised_at
    model.approved_summary = baseline.summary if baseline is not None else None
    model.approved_detail = baseline.detail if baseline is not None else None
    model.approved_acceptance = [
        ApprovedAcceptanceModel(criterion=criterion, position=position)
        for position, criterion in enumerate(baseline.acceptance if baseline is not None else [])
    ]


def display_id_of(model: RequirementModel) -> str:
    return format_display_id(model.category, model.seq)


def to_requirement(model: RequirementModel) -> Requirement:
    """Convert a loaded model to the Requirement schema."""
    baseline = None
    if model.approval_status == ApprovalStatus.REVISED.value:
        baseline = Baseline(
            summary=model.approved_summary or "",
            detail=model.approved_detail,
            acceptance=[a.criterion for a in model.approved_acceptance],
        )
    depends = sorted(model.depends_on, key=lambda target: (target.category, target.seq))
    return Requirement(
        id=model.id,
        module=model.module.name,
        category=model.category,
        seq=model.seq,
        type=model.type,
        priority=model.priority,
        summary=model.summary,
        detail=model.detail,
        status=model.status,
        approval_status=model.approval_status,
        approved_at=model.approved_at,
        revised_at=model.revised_at,
        baseline=baseline,
        acceptance=[a.criterion for a in model.acceptance],
        tags=sorted(t.tag for t in model.tags),
        domains=sorted(d.reference for d in model.domains),
        depends=[display_id_of(target) for target in depends],
        created_at=model.created_at,
        updated_at=model.updated_at,
        deleted_at=model.deleted_at,
    )


def to_requirements(models: Sequence[RequirementModel]) -> list[Requirement]:
    return [to_requirement(model) for model in models]


__all__ = [
    "display_id_of",
    "ensure_module",
    "get_domain",
    "get_module",
    "get_requirement",
    "module_adjacency",
    "requirement_select",
    "set_acceptance",
    "set_approval",
    "to_requirement",
    "to_requirements",
]
