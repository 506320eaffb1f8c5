"""Requirement store.

RequirementStore owns the requirement records of every module: creation
with automatic sequence numbers, content edits routed through the approval
state machine, soft delete and age-gated purge, plus the association
operations inherited from AssociationMixin.

Each mutating method runs in one write transaction; a failure at any point
rolls back every table it touched.

Example:
    >>> store = RequirementStore.open(Path("requirements.db"))
    >>> req = store.create("default", "AUTH", "functional", "Users can sign in",
    ...                    acceptance=["Valid credentials open a session"])
    >>> req.display_id
    'AUTH-001'
    >>> store.approve("default", "AUTH-001").approval_status
    <ApprovalStatus.APPROVED: 'approved'>
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import TypeVar

import structlog
from sqlalchemy import ColumnElement, delete, func, select
from sqlalchemy.orm import Session

from req_core import approval
from req_core.errors import ConflictError, NotFoundError, ValidationError
from req_core.schemas.requirement import (
    ApprovalStatus,
    Category,
    ModuleInfo,
    Priority,
    Requirement,
    RequirementDiff,
    RequirementType,
    Status,
    format_display_id,
)
from req_core.store import queries
from req_core.store.associations import AssociationMixin
from req_core.store.database import Database, utcnow
from req_core.store.models import (
    DomainModel,
    ModuleModel,
    RequirementModel,
    SequenceModel,
    TagModel,
    requirement_domains,
)

logger = structlog.get_logger(__name__)

EnumT = TypeVar("EnumT", bound=Enum)

EDITABLE_FIELDS = frozenset({"summary", "detail", "type", "priority", "status"})

# Keeps IN (...) lists under SQLite's host parameter limit.
_CHUNK_SIZE = 500


def coerce_enum(enum_cls: type[EnumT], value: EnumT | str, field: str) -> EnumT:
    """Convert user input to an enum member.

    Raises:
        ValidationError: If the value is not one of the enumerated values.
    """
    if isinstance(value, enum_cls):
        return value
    text = str(value).strip()
    if enum_cls is Category:
        text = text.upper()
    else:
        text = text.lower()
    try:
        return enum_cls(text)
    except ValueError:
        allowed = ", ".join(str(member.value) for member in enum_cls)
        raise ValidationError(f"Invalid {field} '{value}' (expected one of: {allowed})") from None


def clean_summary(summary: str) -> str:
    cleaned = summary.strip()
    if not cleaned:
        raise ValidationError("Summary must not be empty")
    return cleaned


def clean_detail(detail: str | None) -> str | None:
    if detail is None:
        return None
    cleaned = detail.strip()
    return cleaned or None


def clean_acceptance(acceptance: Iterable[str]) -> tuple[str, ...]:
    criteria = tuple(a.strip() for a in acceptance)
    if any(not a for a in criteria):
        raise ValidationError("Acceptance criteria must not be empty strings")
    return criteria


class RequirementStore(AssociationMixin):
    """Transactional store of modules, requirements and their associations.

    Args:
        database: Open database.
        clock: Source of the current time; injectable for tests.
    """

    def __init__(self, database: Database, clock: Callable[[], datetime] | None = None) -> None:
        self._db = database
        self._clock = clock or utcnow

    @classmethod
    def open(
        cls,
        path: Path | str,
        busy_timeout: float = 5.0,
        clock: Callable[[], datetime] | None = None,
    ) -> RequirementStore:
        """Open a store backed by a SQLite file (created if missing)."""
        return cls(Database.open(path, busy_timeout=busy_timeout), clock=clock)

    @property
    def database(self) -> Database:
        return self._db

    def close(self) -> None:
        self._db.close()

    def current_time(self) -> datetime:
        """Current time according to the store clock."""
        return self._clock()

    # ------------------------------------------------------------------
    # Modules
    # ------------------------------------------------------------------

    def create_module(self, name: str, description: str | None = None) -> ModuleInfo:
        """Create a module explicitly.

        Raises:
            ValidationError: If the name is empty.
            ConflictError: If the module already exists.
        """
        name = name.strip()
        if not name:
            raise ValidationError("Module name must not be empty")
        with self._db.transaction() as session:
            if session.scalar(select(ModuleModel.id).where(ModuleModel.name == name)) is not None:
                raise ConflictError(f"Module '{name}' already exists")
            module = queries.ensure_module(session, name, self._clock(), description)
        logger.info("module_created", module=name)
        return ModuleInfo(name=name, description=description, created_at=module.created_at)

    def ensure_module(self, name: str) -> None:
        """Create a module if it does not exist yet."""
        with self._db.transaction() as session:
            queries.ensure_module(session, name, self._clock())

    def list_modules(self) -> list[ModuleInfo]:
        """List modules with requirement counts per status."""
        with self._db.snapshot() as session:
            modules = session.scalars(select(ModuleModel).order_by(ModuleModel.name)).all()
            counts = session.execute(
                select(RequirementModel.module_id, RequirementModel.status, func.count()).group_by(
                    RequirementModel.module_id, RequirementModel.status
                )
            ).all()
        by_module: dict[int, dict[Status, int]] = {}
        for module_id, status, n in counts:
            by_module.setdefault(module_id, {})[Status(status)] = n
        return [
            ModuleInfo(
                name=module.name,
                description=module.description,
                created_at=module.created_at,
                counts=by_module.get(module.id, {}),
            )
            for module in modules
        ]

    # ------------------------------------------------------------------
    # Requirements
    # ------------------------------------------------------------------

    def create(
        self,
        module: str,
        category: Category | str,
        type: RequirementType | str,
        summary: str,
        *,
        priority: Priority | str = Priority.SHOULD,
        detail: str | None = None,
        acceptance: Sequence[str] = (),
        tags: Sequence[str] = (),
        domains: Sequence[str] = (),
        depends: Sequence[str] = (),
    ) -> Requirement:
        """Create a proposed requirement with the next sequence number.

        The module is created on first use. Sequence numbers are never
        reused within ``(module, category)``, even after purge.

        Raises:
            ValidationError: If an enum value or the summary is malformed.
            NotFoundError: If a domain or dependency target does not exist.
        """
        category_value = coerce_enum(Category, category, "category")
        type_value = coerce_enum(RequirementType, type, "type")
        priority_value = coerce_enum(Priority, priority, "priority")
        summary = clean_summary(summary)
        criteria = clean_acceptance(acceptance)
        now = self._clock()

        with self._db.transaction() as session:
            module_model = queries.ensure_module(session, module, now)
            domain_models = [
                queries.get_domain(session, module_model, reference)
                for reference in dict.fromkeys(d.strip() for d in domains)
            ]
            # A new requirement has no incoming edges, so no cycle is possible.
            targets: list[RequirementModel] = []
            for target_id in depends:
                target = queries.get_requirement(session, module_model, target_id)
                if target.status == Status.DELETED.value:
                    raise NotFoundError("dependency target", queries.display_id_of(target), module=module)
                if target not in targets:
                    targets.append(target)

            model = RequirementModel(
                module=module_model,
                category=category_value.value,
                seq=self._next_seq(session, module_model.id, category_value),
                type=type_value.value,
                priority=priority_value.value,
                summary=summary,
                detail=clean_detail(detail),
                status=Status.ACTIVE.value,
                approval_status=ApprovalStatus.PROPOSED.value,
                created_at=now,
                updated_at=now,
                tags=[TagModel(tag=tag) for tag in dict.fromkeys(t.strip() for t in tags) if tag],
                domains=domain_models,
                depends_on=targets,
            )
            queries.set_acceptance(model, criteria)
            session.add(model)
            session.flush()
            requirement = queries.to_requirement(model)

        logger.info("requirement_created", module=module, display_id=requirement.display_id)
        if not criteria:
            logger.warning(
                "requirement_missing_acceptance",
                module=module,
                display_id=requirement.display_id,
            )
        return requirement

    @staticmethod
    def _next_seq(session: Session, module_id: int, category: Category) -> int:
        counter = session.get(SequenceModel, (module_id, category.value))
        if counter is None:
            counter = SequenceModel(module_id=module_id, category=category.value, last_seq=0)
            session.add(counter)
        counter.last_seq += 1
        seq = counter.last_seq
        taken = session.scalar(
            select(RequirementModel.id).where(
                RequirementModel.module_id == module_id,
                RequirementModel.category == category.value,
                RequirementModel.seq == seq,
            )
        )
        if taken is not None:
            raise ConflictError(f"Sequence {format_display_id(category, seq)} is already assigned")
        return seq

    def show(self, module: str, display_id: str) -> Requirement:
        """Fetch one requirement, whatever its status.

        Raises:
            NotFoundError: If the module or requirement does not exist.
        """
        with self._db.snapshot() as session:
            model = queries.get_requirement(session, queries.get_module(session, module), display_id)
            return queries.to_requirement(model)

    def list_requirements(
        self,
        module: str,
        *,
        category: Category | str | None = None,
        priority: Priority | str | None = None,
        type: RequirementType | str | None = None,
        status: Status | str | None = None,
        approval_status: ApprovalStatus | str | None = None,
        tag: str | None = None,
        domain: str | None = None,
        include_deleted: bool = False,
    ) -> list[Requirement]:
        """List requirements in a module, ordered by display ID.

        Soft-deleted requirements are excluded unless ``include_deleted`` is
        set or ``status`` asks for them explicitly.

        Raises:
            NotFoundError: If the module does not exist.
            ValidationError: If a filter value is not a valid enum value.
        """
        conditions: list[ColumnElement[bool]] = []
        if category is not None:
            conditions.append(RequirementModel.category == coerce_enum(Category, category, "category").value)
        if priority is not None:
            conditions.append(RequirementModel.priority == coerce_enum(Priority, priority, "priority").value)
        if type is not None:
            conditions.append(RequirementModel.type == coerce_enum(RequirementType, type, "type").value)
        if status is not None:
            conditions.append(RequirementModel.status == coerce_enum(Status, status, "status").value)
        elif not include_deleted:
            conditions.append(RequirementModel.status != Status.DELETED.value)
        if approval_status is not None:
            value = coerce_enum(ApprovalStatus, approval_status, "approval status").value
            conditions.append(RequirementModel.approval_status == value)
        if tag is not None:
            conditions.append(
                RequirementModel.id.in_(select(TagModel.requirement_id).where(TagModel.tag == tag.strip()))
            )
        if domain is not None:
            conditions.append(
                RequirementModel.id.in_(
                    select(requirement_domains.c.requirement_id)
                    .join(DomainModel, DomainModel.id == requirement_domains.c.domain_id)
                    .where(DomainModel.reference == domain.strip())
                )
            )

        with self._db.snapshot() as session:
            module_model = queries.get_module(session, module)
            models = session.scalars(
                queries.requirement_select()
                .where(RequirementModel.module_id == module_model.id, *conditions)
                .order_by(RequirementModel.category, RequirementModel.seq)
            ).all()
            return queries.to_requirements(models)

    def edit_field(self, module: str, display_id: str, field: str, value: str | None) -> Requirement:
        """Change a single field.

        ``summary`` and ``detail`` are content and go through the approval
        state machine; ``type``, ``priority`` and ``status`` do not.

        Raises:
            ValidationError: For unknown fields or invalid values.
            NotFoundError: If the requirement does not exist.
        """
        field = field.strip().lower()
        if field not in EDITABLE_FIELDS:
            allowed = ", ".join(sorted(EDITABLE_FIELDS))
            raise ValidationError(f"Field '{field}' cannot be edited (editable: {allowed})")

        if field == "summary":
            summary = clean_summary(value or "")
            return self._change_content(
                module,
                display_id,
                lambda current: approval.Content(summary, current.detail, current.acceptance),
            )
        if field == "detail":
            detail = clean_detail(value)
            return self._change_content(
                module,
                display_id,
                lambda current: approval.Content(current.summary, detail, current.acceptance),
            )

        if value is None:
            raise ValidationError(f"Field '{field}' requires a value")
        column_value: str
        if field == "type":
            column_value = coerce_enum(RequirementType, value, "type").value
        elif field == "priority":
            column_value = coerce_enum(Priority, value, "priority").value
        else:
            new_status = coerce_enum(Status, value, "status")
            if new_status == Status.DELETED:
                raise ValidationError("Use delete to soft-delete a requirement")
            column_value = new_status.value

        with self._db.transaction() as session:
            model = queries.get_requirement(session, queries.get_module(session, module), display_id)
            if field == "status" and model.status == Status.DELETED.value:
                raise ValidationError(f"{queries.display_id_of(model)} is deleted; restore it first")
            setattr(model, field, column_value)
            model.updated_at = self._clock()
            session.flush()
            requirement = queries.to_requirement(model)
        logger.info(
            "requirement_edited",
            module=module,
            display_id=requirement.display_id,
            field=field,
        )
        return requirement

    def update_full(
        self,
        module: str,
        display_id: str,
        summary: str,
        detail: str | None,
        acceptance: Sequence[str],
    ) -> Requirement:
        """Replace summary, detail and acceptance criteria atomically.

        On an approved requirement the current content is captured as the
        baseline and the requirement becomes revised.

        Raises:
            ValidationError: If the summary or a criterion is empty.
            NotFoundError: If the requirement does not exist.
        """
        new = approval.Content(
            summary=clean_summary(summary),
            detail=clean_detail(detail),
            acceptance=clean_acceptance(acceptance),
        )
        return self._change_content(module, display_id, lambda _current: new)

    def _change_content(
        self,
        module: str,
        display_id: str,
        build: Callable[[approval.Content], approval.Content],
    ) -> Requirement:
        now = self._clock()
        with self._db.transaction() as session:
            model = queries.get_requirement(session, queries.get_module(session, module), display_id)
            before = queries.to_requirement(model)
            current = approval.Content.of(before)
            new = build(current)
            fields = approval.on_edit(before, new, now)
            model.summary = new.summary
            model.detail = new.detail
            model.updated_at = now
            if new.acceptance != current.acceptance:
                queries.set_acceptance(model, new.acceptance)
            if fields != approval.ApprovalFields.of(before):
                queries.set_approval(model, fields.status, fields.approved_at, fields.revised_at, fields.baseline)
            session.flush()
            requirement = queries.to_requirement(model)

        logger.info(
            "requirement_updated",
            module=module,
            display_id=requirement.display_id,
            approval_status=requirement.approval_status.value,
        )
        if before.approval_status != requirement.approval_status:
            logger.info(
                "requirement_revised",
                module=module,
                display_id=requirement.display_id,
            )
        return requirement

    def soft_delete(self, module: str, display_id: str) -> Requirement:
        """Mark a requirement deleted. Associations are kept until purge."""
        now = self._clock()
        with self._db.transaction() as session:
            model = queries.get_requirement(session, queries.get_module(session, module), display_id)
            if model.status != Status.DELETED.value:
                model.status = Status.DELETED.value
                model.deleted_at = now
                model.updated_at = now
                session.flush()
            requirement = queries.to_requirement(model)
        logger.info("requirement_deleted", module=module, display_id=requirement.display_id)
        return requirement

    def restore(self, module: str, display_id: str) -> Requirement:
        """Undo a soft delete. A requirement that is not deleted is returned unchanged."""
        now = self._clock()
        with self._db.transaction() as session:
            model = queries.get_requirement(session, queries.get_module(session, module), display_id)
            if model.status == Status.DELETED.value:
                model.status = Status.ACTIVE.value
                model.deleted_at = None
                model.updated_at = now
                session.flush()
            requirement = queries.to_requirement(model)
        logger.info("requirement_restored", module=module, display_id=requirement.display_id)
        return requirement

    def purge(self, older_than_days: int, module: str | None = None) -> list[Requirement]:
        """Physically remove requirements soft-deleted more than N days ago.

        Acceptance criteria, baseline mirrors, tags, domain assignments and
        every dependency edge touching a purged requirement are removed with
        it by the database's cascading foreign keys. Sequence numbers are
        not released.

        Args:
            older_than_days: Minimum age of the soft delete, in days.
            module: Restrict to one module; all modules when None.

        Returns:
            The purged requirements as they were before removal.

        Raises:
            ValidationError: If ``older_than_days`` is negative.
            NotFoundError: If ``module`` is given and does not exist.
        """
        if older_than_days < 0:
            raise ValidationError("older_than_days must not be negative")
        cutoff = self._clock() - timedelta(days=older_than_days)

        with self._db.transaction() as session:
            stmt = (
                queries.requirement_select()
                .join(ModuleModel, ModuleModel.id == RequirementModel.module_id)
                .where(
                    RequirementModel.status == Status.DELETED.value,
                    RequirementModel.deleted_at < cutoff,
                )
                .order_by(ModuleModel.name, RequirementModel.category, RequirementModel.seq)
            )
            if module is not None:
                stmt = stmt.where(RequirementModel.module_id == queries.get_module(session, module).id)
            purged = queries.to_requirements(session.scalars(stmt).all())
            ids = [r.id for r in purged]
            for start in range(0, len(ids), _CHUNK_SIZE):
                session.execute(
                    delete(RequirementModel)
                    .where(RequirementModel.id.in_(ids[start : start + _CHUNK_SIZE]))
                    .execution_options(synchronize_session=False)
                )
            session.expunge_all()

        logger.info(
            "requirements_purged",
            module=module,
            older_than_days=older_than_days,
            count=len(purged),
            display_ids=[f"{r.module}:{r.display_id}" for r in purged],
        )
        return purged

    def missing_acceptance(self, module: str) -> list[Requirement]:
        """Active requirements without any acceptance criterion."""
        return [
            r for r in self.list_requirements(module, status=Status.ACTIVE) if not r.acceptance
        ]

    # ------------------------------------------------------------------
    # Approval
    # ------------------------------------------------------------------

    def approve(self, module: str, display_id: str) -> Requirement:
        """Approve the current content. Approving an approved requirement is a no-op.

        Raises:
            StateError: If the requirement is soft-deleted.
        """
        now = self._clock()
        with self._db.transaction() as session:
            model = queries.get_requirement(session, queries.get_module(session, module), display_id)
            before = queries.to_requirement(model)
            fields = approval.approve(before, now)
            if fields is None:
                logger.debug("requirement_already_approved", module=module, display_id=before.display_id)
                return before
            queries.set_approval(model, fields.status, fields.approved_at, None, None)
            model.updated_at = now
            session.flush()
            requirement = queries.to_requirement(model)
        logger.info("requirement_approved", module=module, display_id=requirement.display_id)
        return requirement

    def revert(self, module: str, display_id: str) -> Requirement:
        """Restore the approved baseline of a revised requirement.

        Raises:
            StateError: If the requirement is not revised.
        """
        now = self._clock()
        with self._db.transaction() as session:
            model = queries.get_requirement(session, queries.get_module(session, module), display_id)
            content, fields = approval.revert(queries.to_requirement(model))
            model.summary = content.summary
            model.detail = content.detail
            model.updated_at = now
            queries.set_acceptance(model, content.acceptance)
            queries.set_approval(model, fields.status, fields.approved_at, None, None)
            session.flush()
            requirement = queries.to_requirement(model)
        logger.info("requirement_reverted", module=module, display_id=requirement.display_id)
        return requirement

    def withdraw(self, module: str, display_id: str) -> Requirement:
        """Return an approved or revised requirement to proposed.

        Raises:
            StateError: If the requirement is proposed.
        """
        now = self._clock()
        with self._db.transaction() as session:
            model = queries.get_requirement(session, queries.get_module(session, module), display_id)
            fields = approval.withdraw(queries.to_requirement(model))
            queries.set_approval(model, fields.status, None, None, None)
            model.updated_at = now
            session.flush()
            requirement = queries.to_requirement(model)
        logger.info("requirement_withdrawn", module=module, display_id=requirement.display_id)
        return requirement

    def diff(self, module: str, display_id: str) -> RequirementDiff:
        """Compare a revised requirement with its approved baseline.

        Raises:
            StateError: If the requirement is not revised.
        """
        return approval.diff(self.show(module, display_id))

    def sequence_counters(self, module: str) -> dict[str, int]:
        """Highest sequence number ever assigned, per category of a module."""
        with self._db.snapshot() as session:
            module_model = queries.get_module(session, module)
            rows = session.execute(
                select(SequenceModel.category, SequenceModel.last_seq)
                .where(SequenceModel.module_id == module_model.id)
                .order_by(SequenceModel.category)
            ).all()
        return {category: last_seq for category, last_seq in rows}

    def resolve_ids(self, module: str) -> dict[str, Requirement]:
        """All requirements of a module (any status) keyed by display ID."""
        return {r.display_id: r for r in self.list_requirements(module, include_deleted=True)}


__all__ = [
    "RequirementStore",
    "coerce_enum",
]
