"""Bulk export and import of a module.

Export produces a TransferDocument (rendered as YAML); import upserts each
record by display ID inside a single write transaction, so a bad record
anywhere in the batch leaves the store untouched.

Example:
    >>> document = export_module(store, "default")
    >>> text = dump_document(document)
    >>> import_document(store, load_document(text), module="copy")
    ImportSummary(module='copy', created=3, updated=0, domains=1)
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from req_core.errors import ConflictError, ValidationError
from req_core.graph import find_cycle
from req_core.schemas.requirement import ApprovalStatus, Baseline, Requirement, Status
from req_core.schemas.transfer import (
    BaselineRecord,
    DomainRecord,
    RequirementRecord,
    TransferDocument,
)
from req_core.store import queries
from req_core.store.models import DomainModel, ModuleModel, RequirementModel, SequenceModel, TagModel
from req_core.store.requirements import RequirementStore

logger = structlog.get_logger(__name__)


class ImportSummary(BaseModel):
    """Counts of what an import changed."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    module: str
    created: int = 0
    updated: int = 0
    domains: int = 0


def to_record(requirement: Requirement, keep_depends: set[str] | None = None) -> RequirementRecord:
    """Convert a stored requirement to a transfer record.

    Args:
        requirement: Requirement to convert.
        keep_depends: If given, only dependencies on these display IDs are kept.
    """
    baseline = None
    if requirement.baseline is not None:
        baseline = BaselineRecord(
            summary=requirement.baseline.summary,
            detail=requirement.baseline.detail,
            accepts=list(requirement.baseline.acceptance),
        )
    depends = requirement.depends
    if keep_depends is not None:
        depends = [d for d in depends if d in keep_depends]
    return RequirementRecord(
        id=requirement.display_id,
        type=requirement.type,
        priority=requirement.priority,
        summary=requirement.summary,
        detail=requirement.detail,
        accepts=list(requirement.acceptance),
        depends=depends,
        tags=list(requirement.tags),
        domains=list(requirement.domains),
        status=requirement.status,
        approval_status=requirement.approval_status,
        approved_at=requirement.approved_at,
        revised_at=requirement.revised_at,
        baseline=baseline,
        deleted_at=requirement.deleted_at,
    )


def export_module(
    store: RequirementStore,
    module: str,
    include_deleted: bool = False,
) -> TransferDocument:
    """Export a module's domains and requirements.

    Dependencies on requirements left out of the export (soft-deleted ones,
    unless ``include_deleted``) are dropped so the document imports cleanly.

    Raises:
        NotFoundError: If the module does not exist.
    """
    with store.database.snapshot():
        description = next((m.description for m in store.list_modules() if m.name == module), None)
        domains = store.list_domains(module)
        requirements = store.list_requirements(module, include_deleted=include_deleted)
        sequences = store.sequence_counters(module)

    exported = {r.display_id for r in requirements}
    records = [to_record(r, keep_depends=exported) for r in requirements]
    dropped = sum(len(r.depends) for r in requirements) - sum(len(r.depends) for r in records)
    if dropped:
        logger.warning("export_dropped_dependencies", module=module, count=dropped)

    logger.info("module_exported", module=module, requirements=len(records), domains=len(domains))
    return TransferDocument(
        module=module,
        description=description,
        sequences=sequences,
        domains=[
            DomainRecord(reference=d.reference, name=d.name, description=d.description) for d in domains
        ],
        requirements=records,
    )


def dump_document(document: TransferDocument) -> str:
    """Render a transfer document as YAML."""
    data = document.model_dump(mode="json", exclude_none=True)
    if not data.get("sequences"):
        data.pop("sequences", None)
    for record in data.get("requirements", []):
        for key in ("depends", "tags", "domains"):
            if not record.get(key):
                record.pop(key, None)
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=False)


def load_document(text: str) -> TransferDocument:
    """Parse YAML into a transfer document.

    A bare list of records is accepted as a document without module or
    domain definitions.

    Raises:
        ValidationError: If the YAML is malformed or a record is invalid.
    """
    try:
        data: Any = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValidationError(f"Invalid YAML: {e}") from e
    if data is None:
        data = {}
    if isinstance(data, list):
        data = {"requirements": data}
    if not isinstance(data, dict):
        raise ValidationError("Import document must be a mapping or a list of requirements")
    try:
        return TransferDocument.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid import document",
            errors=[f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()],
        ) from e


def import_document(
    store: RequirementStore,
    document: TransferDocument,
    module: str | None = None,
) -> ImportSummary:
    """Upsert a transfer document into a module atomically.

    Records are matched by display ID: existing requirements are
    overwritten, new ones are inserted with the given sequence number.
    Requirements not mentioned in the document are left alone.
    Dependencies are resolved after all records are written, so records
    may reference each other in any order.
    Sequence counters in the document are raised into the target module.

    Args:
        store: Target store.
        document: Parsed transfer document.
        module: Target module; defaults to the document's module.

    Raises:
        ValidationError: If no target module is known.
        NotFoundError: If a domain or dependency does not resolve.
        ConflictError: If the resulting dependency graph has a cycle.
    """
    target = module or document.module
    if not target:
        raise ValidationError("No target module given and the document names none")
    now = store.current_time()

    created = updated = 0
    with store.database.transaction() as session:
        module_model = queries.ensure_module(session, target, now, document.description)
        for domain in document.domains:
            _upsert_domain(session, module_model, domain, now)

        models: dict[str, RequirementModel] = {}
        for record in document.requirements:
            model, is_new = _upsert_requirement(session, module_model, record, now)
            models[record.id] = model
            if is_new:
                created += 1
            else:
                updated += 1

        # Counters only grow, so display IDs purged at the source stay retired.
        for category, last_seq in document.sequences.items():
            _raise_counter(session, module_model, category, last_seq)

        for record in document.requirements:
            targets: list[RequirementModel] = []
            for dependency in record.depends:
                dependency_model = queries.get_requirement(session, module_model, dependency)
                if dependency_model not in targets:
                    targets.append(dependency_model)
            models[record.id].depends_on = targets
        session.flush()

        cycle = find_cycle(queries.module_adjacency(session, module_model.id))
        if cycle is not None:
            labels = [queries.display_id_of(session.get_one(RequirementModel, pk)) for pk in cycle]
            raise ConflictError(f"Import would create a dependency cycle: {' -> '.join(labels)}")

    summary = ImportSummary(module=target, created=created, updated=updated, domains=len(document.domains))
    logger.info("module_imported", module=target, created=created, updated=updated)
    return summary


def _upsert_domain(session: Session, module: ModuleModel, domain: DomainRecord, now: datetime) -> None:
    model = session.scalar(
        select(DomainModel).where(
            DomainModel.module_id == module.id,
            DomainModel.reference == domain.reference,
        )
    )
    if model is None:
        session.add(
            DomainModel(
                module_id=module.id,
                reference=domain.reference,
                name=domain.name,
                description=domain.description,
                created_at=now,
                updated_at=now,
            )
        )
    else:
        model.name = domain.name
        model.description = domain.description
        model.updated_at = now


def _raise_counter(session: Session, module: ModuleModel, category: str, seq: int) -> None:
    counter = session.get(SequenceModel, (module.id, category))
    if counter is None:
        session.add(SequenceModel(module_id=module.id, category=category, last_seq=seq))
    else:
        counter.last_seq = max(counter.last_seq, seq)


def _approval_times(record: RequirementRecord, now: datetime) -> tuple[datetime | None, datetime | None]:
    if record.approval_status == ApprovalStatus.PROPOSED:
        return None, None
    approved_at = record.approved_at or now
    if record.approval_status == ApprovalStatus.APPROVED:
        return approved_at, None
    return approved_at, record.revised_at or now


def _upsert_requirement(
    session: Session,
    module: ModuleModel,
    record: RequirementRecord,
    now: datetime,
) -> tuple[RequirementModel, bool]:
    display_id = record.display_id
    category = display_id.category.value

    model = session.scalar(
        queries.requirement_select().where(
            RequirementModel.module_id == module.id,
            RequirementModel.category == category,
            RequirementModel.seq == display_id.seq,
        )
    )
    is_new = model is None
    if model is None:
        model = RequirementModel(module=module, category=category, seq=display_id.seq, created_at=now)
        session.add(model)

    model.type = record.type.value
    model.priority = record.priority.value
    model.summary = record.summary.strip()
    model.detail = record.detail
    model.status = record.status.value
    model.deleted_at = (record.deleted_at or now) if record.status == Status.DELETED else None
    model.updated_at = now

    _raise_counter(session, module, category, display_id.seq)

    queries.set_acceptance(model, [a.strip() for a in record.accepts])
    baseline = None
    if record.baseline is not None:
        baseline = Baseline(
            summary=record.baseline.summary,
            detail=record.baseline.detail,
            acceptance=list(record.baseline.accepts),
        )
    approved_at, revised_at = _approval_times(record, now)
    queries.set_approval(model, record.approval_status, approved_at, revised_at, baseline)

    kept = {t.tag: t for t in model.tags}
    model.tags = [
        kept.get(tag) or TagModel(tag=tag) for tag in dict.fromkeys(t.strip() for t in record.tags) if tag
    ]
    model.domains = [
        queries.get_domain(session, module, reference) for reference in dict.fromkeys(record.domains)
    ]
    session.flush()
    return model, is_new


__all__ = [
    "ImportSummary",
    "dump_document",
    "export_module",
    "import_document",
    "load_document",
    "to_record",
]
