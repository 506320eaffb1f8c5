"""Tag, domain and dependency associations of requirements.

Tags and domain assignments are idempotent: repeating an add or removing
something that is not there is a no-op. Domain references are unique per
module. Dependency edges stay within a module and the graph stays acyclic.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime

import structlog
from sqlalchemy import and_, func, select
from sqlalchemy.orm import aliased

from req_core.errors import ConflictError, NotFoundError, ValidationError
from req_core.graph import would_create_cycle
from req_core.schemas.requirement import DisplayId, Domain, Status, format_display_id
from req_core.schemas.traceability import IntegrityIssue, IssueKind
from req_core.store import queries
from req_core.store.database import Database
from req_core.store.models import DomainModel, RequirementModel, TagModel, requirement_depends, requirement_domains

logger = structlog.get_logger(__name__)


def _clean(value: str, what: str) -> str:
    cleaned = value.strip()
    if not cleaned:
        raise ValidationError(f"{what} must not be empty")
    return cleaned


class AssociationMixin:
    """Association operations for RequirementStore."""

    _db: Database
    _clock: Callable[[], datetime]

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def add_tag(self, module: str, display_id: str, tag: str) -> bool:
        """Tag a requirement.

        Returns:
            True if the tag was added, False if it was already present.
        """
        tag = _clean(tag, "Tag")
        with self._db.transaction() as session:
            model = queries.get_requirement(session, queries.get_module(session, module), display_id)
            added = tag not in {t.tag for t in model.tags}
            if added:
                model.tags.append(TagModel(tag=tag))
        if added:
            logger.info("tag_added", module=module, display_id=queries.display_id_of(model), tag=tag)
        return added

    def remove_tag(self, module: str, display_id: str, tag: str) -> bool:
        """Remove a tag from a requirement.

        Returns:
            True if the tag was removed, False if it was not present.
        """
        tag = _clean(tag, "Tag")
        with self._db.transaction() as session:
            model = queries.get_requirement(session, queries.get_module(session, module), display_id)
            remaining = [t for t in model.tags if t.tag != tag]
            removed = len(remaining) != len(model.tags)
            if removed:
                model.tags = remaining
        if removed:
            logger.info("tag_removed", module=module, display_id=queries.display_id_of(model), tag=tag)
        return removed

    # ------------------------------------------------------------------
    # Domains
    # ------------------------------------------------------------------

    def add_domain(
        self,
        module: str,
        reference: str,
        name: str,
        description: str | None = None,
    ) -> Domain:
        """Create a domain in a module, creating the module on first use.

        Raises:
            ConflictError: If the reference is already used in the module.
        """
        reference = _clean(reference, "Domain reference")
        name = _clean(name, "Domain name")
        now = self._clock()
        with self._db.transaction() as session:
            module_model = queries.ensure_module(session, module, now)
            existing = session.scalar(
                select(DomainModel.id).where(
                    DomainModel.module_id == module_model.id,
                    DomainModel.reference == reference,
                )
            )
            if existing is not None:
                raise ConflictError(f"Domain '{reference}' already exists in module {module}")
            session.add(
                DomainModel(
                    module_id=module_model.id,
                    reference=reference,
                    name=name,
                    description=description,
                    created_at=now,
                    updated_at=now,
                )
            )
        logger.info("domain_added", module=module, reference=reference)
        return Domain(module=module, reference=reference, name=name, description=description)

    def remove_domain(self, module: str, reference: str) -> int:
        """Delete a domain and all of its assignments. Requirements are kept.

        Returns:
            Number of requirement assignments removed with the domain.

        Raises:
            NotFoundError: If the module or domain does not exist.
        """
        with self._db.transaction() as session:
            domain = queries.get_domain(session, queries.get_module(session, module), reference)
            count = session.scalar(
                select(func.count()).select_from(requirement_domains).where(
                    requirement_domains.c.domain_id == domain.id
                )
            )
            session.delete(domain)
        logger.info("domain_removed", module=module, reference=reference, assignments=count)
        return int(count or 0)

    def list_domains(self, module: str) -> list[Domain]:
        """List the domains of a module with their assignment counts."""
        with self._db.snapshot() as session:
            module_model = queries.get_module(session, module)
            rows = session.execute(
                select(DomainModel, func.count(requirement_domains.c.requirement_id))
                .outerjoin(requirement_domains, requirement_domains.c.domain_id == DomainModel.id)
                .where(DomainModel.module_id == module_model.id)
                .group_by(DomainModel.id)
                .order_by(DomainModel.reference)
            ).all()
        return [
            Domain(
                module=module,
                reference=domain.reference,
                name=domain.name,
                description=domain.description,
                requirement_count=count,
            )
            for domain, count in rows
        ]

    def assign_domain(self, module: str, display_id: str, reference: str) -> bool:
        """Assign a requirement to a domain. Repeat assignment is a no-op.

        Returns:
            True if a new assignment was made.
        """
        with self._db.transaction() as session:
            module_model = queries.get_module(session, module)
            model = queries.get_requirement(session, module_model, display_id)
            domain = queries.get_domain(session, module_model, reference)
            assigned = domain not in model.domains
            if assigned:
                model.domains.append(domain)
        if assigned:
            logger.info(
                "domain_assigned",
                module=module,
                display_id=queries.display_id_of(model),
                reference=reference,
            )
        return assigned

    def unassign_domain(self, module: str, display_id: str, reference: str) -> bool:
        """Remove a requirement from a domain. Missing assignment is a no-op.

        Returns:
            True if an assignment was removed.
        """
        with self._db.transaction() as session:
            module_model = queries.get_module(session, module)
            model = queries.get_requirement(session, module_model, display_id)
            domain = queries.get_domain(session, module_model, reference)
            removed = domain in model.domains
            if removed:
                model.domains.remove(domain)
        if removed:
            logger.info(
                "domain_unassigned",
                module=module,
                display_id=queries.display_id_of(model),
                reference=reference,
            )
        return removed

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    def add_dependency(self, module: str, display_id: str, depends_on: str) -> bool:
        """Record that a requirement depends on another in the same module.

        The edge is rejected if it is a self-loop or if ``display_id`` is
        already reachable from ``depends_on``; the graph is left unchanged.

        Returns:
            True if the edge was added, False if it already existed.

        Raises:
            NotFoundError: If either requirement does not resolve, or the
                target is soft-deleted.
            ConflictError: If the edge would create a cycle.
        """
        source_id = DisplayId.parse(display_id)
        target_id = DisplayId.parse(depends_on)

        with self._db.transaction() as session:
            module_model = queries.get_module(session, module)
            source = queries.get_requirement(session, module_model, source_id)
            if source_id == target_id:
                raise ConflictError(f"{source_id} cannot depend on itself")
            target = queries.get_requirement(session, module_model, target_id)
            if target.status == Status.DELETED.value:
                raise NotFoundError("dependency target", str(target_id), module=module)
            if target in source.depends_on:
                return False
            if would_create_cycle(queries.module_adjacency(session, module_model.id), source.id, target.id):
                raise ConflictError(
                    f"Dependency {source_id} -> {target_id} would create a cycle "
                    f"({target_id} already depends on {source_id})"
                )
            source.depends_on.append(target)
        logger.info("dependency_added", module=module, source=str(source_id), target=str(target_id))
        return True

    def remove_dependency(self, module: str, display_id: str, depends_on: str) -> None:
        """Delete a single dependency edge.

        Raises:
            NotFoundError: If either requirement or the edge does not exist.
        """
        with self._db.transaction() as session:
            module_model = queries.get_module(session, module)
            source = queries.get_requirement(session, module_model, display_id)
            target = queries.get_requirement(session, module_model, depends_on)
            if target not in source.depends_on:
                raise NotFoundError(
                    "dependency",
                    f"{queries.display_id_of(source)} -> {queries.display_id_of(target)}",
                    module=module,
                )
            source.depends_on.remove(target)
        logger.info(
            "dependency_removed",
            module=module,
            source=queries.display_id_of(source),
            target=queries.display_id_of(target),
        )

    def orphan_dependencies(self, module: str) -> list[IntegrityIssue]:
        """List edges from live requirements whose target is no longer active.

        Advisory only: edges to deprecated or soft-deleted requirements are
        reported, not removed.
        """
        source = aliased(RequirementModel)
        target = aliased(RequirementModel)
        with self._db.snapshot() as session:
            module_model = queries.get_module(session, module)
            rows = session.execute(
                select(source.category, source.seq, target.category, target.seq, target.status)
                .select_from(requirement_depends)
                .join(source, source.id == requirement_depends.c.requirement_id)
                .join(target, target.id == requirement_depends.c.depends_on_id)
                .where(
                    and_(
                        source.module_id == module_model.id,
                        source.status != Status.DELETED.value,
                        target.status != Status.ACTIVE.value,
                    )
                )
                .order_by(source.category, source.seq, target.category, target.seq)
            ).all()
        issues = []
        for s_cat, s_seq, t_cat, t_seq, t_status in rows:
            source_label = format_display_id(s_cat, s_seq)
            target_label = format_display_id(t_cat, t_seq)
            issues.append(
                IntegrityIssue(
                    kind=IssueKind.ORPHAN_DEPENDENCY,
                    reference=target_label,
                    location=source_label,
                    message=f"{source_label} depends on {target_label}, which is {t_status}",
                )
            )
        return issues


__all__ = ["AssociationMixin"]
