"""SQLAlchemy models for the requirement store.

Enumerated columns are plain strings guarded by CHECK constraints; the
pydantic schemas own the enum types. Owned rows (acceptance criteria,
baseline mirror, tags) and association rows (domain assignments,
dependency edges) are removed by ``ON DELETE CASCADE`` when their
requirement is purged, so bulk deletes need no ORM bookkeeping.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from req_core.schemas.requirement import (
    ApprovalStatus,
    Category,
    Priority,
    RequirementType,
    Status,
)


def _in(column: str, enum_cls: Any) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


class UTCDateTime(TypeDecorator[datetime]):
    """Timezone-aware datetimes stored as naive UTC.

    SQLite has no timezone support; values are normalized to UTC on the way
    in and tagged as UTC on the way out. The fixed-width storage format
    keeps timestamps lexically ordered.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class Base(DeclarativeBase):
    """Base class for all store models."""

    pass


requirement_depends = Table(
    "requirement_depends",
    Base.metadata,
    Column("requirement_id", ForeignKey("requirements.id", ondelete="CASCADE"), primary_key=True),
    Column("depends_on_id", ForeignKey("requirements.id", ondelete="CASCADE"), primary_key=True),
    CheckConstraint("requirement_id != depends_on_id", name="ck_depends_no_self_loop"),
    Index("ix_depends_target", "depends_on_id"),
)

requirement_domains = Table(
    "requirement_domains",
    Base.metadata,
    Column("requirement_id", ForeignKey("requirements.id", ondelete="CASCADE"), primary_key=True),
    Column("domain_id", ForeignKey("domains.id", ondelete="CASCADE"), primary_key=True),
    Index("ix_reqdom_domain", "domain_id"),
)


class ModuleModel(Base):
    """Isolation boundary owning requirements and domains."""

    __tablename__ = "modules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class SequenceModel(Base):
    """Highest seq ever handed out per (module, category); never decremented."""

    __tablename__ = "sequences"

    module_id: Mapped[int] = mapped_column(ForeignKey("modules.id"), primary_key=True)
    category: Mapped[str] = mapped_column(String(8), primary_key=True)
    last_seq: Mapped[int] = mapped_column(Integer, nullable=False)


class AcceptanceModel(Base):
    __tablename__ = "acceptance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    requirement_id: Mapped[int] = mapped_column(
        ForeignKey("requirements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    criterion: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)


class ApprovedAcceptanceModel(Base):
    """Acceptance criteria as of the last approval; rows exist only while revised."""

    __tablename__ = "approved_acceptance"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    requirement_id: Mapped[int] = mapped_column(
        ForeignKey("requirements.id", ondelete="CASCADE"), nullable=False, index=True
    )
    criterion: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)


class TagModel(Base):
    __tablename__ = "requirement_tags"

    requirement_id: Mapped[int] = mapped_column(
        ForeignKey("requirements.id", ondelete="CASCADE"), primary_key=True
    )
    tag: Mapped[str] = mapped_column(String(255), primary_key=True, index=True)


class DomainModel(Base):
    """Named grouping of requirements, keyed by reference within a module."""

    __tablename__ = "domains"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    module_id: Mapped[int] = mapped_column(ForeignKey("modules.id"), nullable=False)
    reference: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (UniqueConstraint("module_id", "reference", name="uq_domain_reference"),)


class RequirementModel(Base):
    """A requirement row.

    ``approved_summary``/``approved_detail`` and the approved acceptance
    rows hold the baseline mirror; they are populated exactly while the
    requirement is revised.
    """

    __tablename__ = "requirements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    module_id: Mapped[int] = mapped_column(ForeignKey("modules.id"), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(8), nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default=Priority.SHOULD.value)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=Status.ACTIVE.value, index=True
    )
    approval_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ApprovalStatus.PROPOSED.value
    )
    approved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    revised_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    approved_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    module: Mapped[ModuleModel] = relationship(lazy="joined")
    acceptance: Mapped[list[AcceptanceModel]] = relationship(
        order_by=AcceptanceModel.position,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    approved_acceptance: Mapped[list[ApprovedAcceptanceModel]] = relationship(
        order_by=ApprovedAcceptanceModel.position,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    tags: Mapped[list[TagModel]] = relationship(
        order_by=TagModel.tag,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    domains: Mapped[list[DomainModel]] = relationship(
        secondary=requirement_domains,
        order_by=DomainModel.reference,
        passive_deletes=True,
    )
    depends_on: Mapped[list[RequirementModel]] = relationship(
        secondary=requirement_depends,
        primaryjoin=lambda: RequirementModel.id == requirement_depends.c.requirement_id,
        secondaryjoin=lambda: RequirementModel.id == requirement_depends.c.depends_on_id,
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("module_id", "category", "seq", name="uq_requirement_display_id"),
        CheckConstraint("seq >= 1", name="ck_requirement_seq"),
        CheckConstraint(_in("category", Category), name="ck_requirement_category"),
        CheckConstraint(_in("type", RequirementType), name="ck_requirement_type"),
        CheckConstraint(_in("priority", Priority), name="ck_requirement_priority"),
        CheckConstraint(_in("status", Status), name="ck_requirement_status"),
        CheckConstraint(_in("approval_status", ApprovalStatus), name="ck_requirement_approval"),
        CheckConstraint(
            "(approval_status = 'revised') = (approved_summary IS NOT NULL)",
            name="ck_requirement_baseline",
        ),
    )


__all__ = [
    "AcceptanceModel",
    "ApprovedAcceptanceModel",
    "Base",
    "DomainModel",
    "ModuleModel",
    "RequirementModel",
    "SequenceModel",
    "TagModel",
    "UTCDateTime",
    "requirement_depends",
    "requirement_domains",
]
