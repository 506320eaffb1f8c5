"""Unit tests for RequirementStore records, sequence numbers and purge."""

from __future__ import annotations

import pytest

from req_core.errors import ConflictError, NotFoundError, ValidationError
from req_core.schemas.requirement import ApprovalStatus, Priority, RequirementType, Status
from req_core.store import RequirementStore
from req_core.store.models import AcceptanceModel, TagModel, requirement_depends, requirement_domains


class TestCreate:
    """Tests for requirement creation and display ID assignment."""

    @pytest.mark.requirement("STORE-SEQ")
    def test_sequence_per_category(self, store: RequirementStore, module: str) -> None:
        """Display IDs count up per category, starting at 001."""
        ids = [store.create(module, "AUTH", "functional", f"Auth {i}").display_id for i in range(3)]
        other = store.create(module, "data", "constraint", "Data 1")

        assert ids == ["AUTH-001", "AUTH-002", "AUTH-003"]
        assert other.display_id == "DATA-001"

    @pytest.mark.requirement("STORE-SEQ")
    def test_soft_deleted_seq_not_reused(self, store: RequirementStore, module: str) -> None:
        """Deleting AUTH-002 and creating again yields AUTH-004."""
        for i in range(3):
            store.create(module, "AUTH", "functional", f"Auth {i}")
        store.soft_delete(module, "AUTH-002")

        created = store.create(module, "AUTH", "functional", "Auth 4")

        assert created.display_id == "AUTH-004"

    @pytest.mark.requirement("STORE-SEQ")
    def test_purged_seq_not_reused(self, store: RequirementStore, module: str, clock) -> None:
        """Purging the highest-numbered requirement does not release its seq."""
        store.create(module, "AUTH", "functional", "First")
        store.create(module, "AUTH", "functional", "Second")
        store.soft_delete(module, "AUTH-002")
        clock.advance(days=10)
        store.purge(5, module=module)

        created = store.create(module, "AUTH", "functional", "Third")

        assert created.display_id == "AUTH-003"

    @pytest.mark.requirement("STORE-CREATE")
    def test_defaults(self, store: RequirementStore, module: str, clock) -> None:
        """New requirements are proposed, active, should-priority."""
        req = store.create(
            module,
            "AUTH",
            "functional",
            "  Users can log in  ",
            acceptance=["Valid login succeeds", "Invalid login fails"],
            tags=["login"],
        )

        assert req.summary == "Users can log in"
        assert req.status is Status.ACTIVE
        assert req.approval_status is ApprovalStatus.PROPOSED
        assert req.priority is Priority.SHOULD
        assert req.type is RequirementType.FUNCTIONAL
        assert req.acceptance == ["Valid login succeeds", "Invalid login fails"]
        assert req.tags == ["login"]
        assert req.created_at == clock.now
        assert req.baseline is None

    @pytest.mark.requirement("STORE-CREATE")
    @pytest.mark.parametrize(
        ("category", "type_", "summary"),
        [
            ("NOPE", "functional", "x"),
            ("AUTH", "behavioural", "x"),
            ("AUTH", "functional", "   "),
        ],
    )
    def test_invalid_input(self, store: RequirementStore, module: str, category, type_, summary) -> None:
        with pytest.raises(ValidationError):
            store.create(module, category, type_, summary)

    @pytest.mark.requirement("STORE-CREATE")
    def test_invalid_priority(self, store: RequirementStore, module: str) -> None:
        with pytest.raises(ValidationError, match="priority"):
            store.create(module, "AUTH", "functional", "x", priority="urgent")

    @pytest.mark.requirement("STORE-ATOMIC")
    def test_failed_create_leaves_nothing(self, store: RequirementStore, module: str) -> None:
        """A create failing on an unknown domain writes no row and consumes no seq."""
        store.create(module, "AUTH", "functional", "Existing")

        with pytest.raises(NotFoundError):
            store.create(module, "AUTH", "functional", "Broken", acceptance=["a"], domains=["missing"])

        assert [r.display_id for r in store.list_requirements(module)] == ["AUTH-001"]
        assert store.create(module, "AUTH", "functional", "Next").display_id == "AUTH-002"

    @pytest.mark.requirement("STORE-CREATE")
    def test_depends_on_missing_target(self, store: RequirementStore, module: str) -> None:
        with pytest.raises(NotFoundError):
            store.create(module, "AUTH", "functional", "x", depends=["AUTH-042"])

    @pytest.mark.requirement("STORE-CREATE")
    def test_module_isolation(self, store: RequirementStore) -> None:
        """Each module has its own sequence counters."""
        store.create("billing", "AUTH", "functional", "Billing auth")
        created = store.create("shipping", "AUTH", "functional", "Shipping auth")

        assert created.display_id == "AUTH-001"
        assert created.module == "shipping"


class TestModules:
    @pytest.mark.requirement("STORE-MODULE")
    def test_create_duplicate_module(self, store: RequirementStore) -> None:
        store.create_module("billing", "Billing system")
        with pytest.raises(ConflictError):
            store.create_module("billing")

    @pytest.mark.requirement("STORE-MODULE")
    def test_list_modules_with_counts(self, store: RequirementStore) -> None:
        store.create("billing", "BIZ", "functional", "One")
        store.create("billing", "BIZ", "functional", "Two")
        store.soft_delete("billing", "BIZ-002")

        [info] = store.list_modules()

        assert info.name == "billing"
        assert info.counts == {Status.ACTIVE: 1, Status.DELETED: 1}

    @pytest.mark.requirement("STORE-MODULE")
    def test_unknown_module_on_read(self, store: RequirementStore) -> None:
        with pytest.raises(NotFoundError, match="module"):
            store.list_requirements("nowhere")


class TestShowAndList:
    @pytest.fixture
    def populated(self, store: RequirementStore, module: str) -> RequirementStore:
        store.add_domain(module, "checkout", "Checkout")
        store.create(module, "AUTH", "functional", "Login", priority="must", tags=["web"])
        store.create(module, "AUTH", "non-functional", "Fast login", priority="could")
        store.create(module, "DATA", "constraint", "Retention", domains=["checkout"])
        store.create(module, "UI", "interface", "Login form", tags=["web"])
        store.soft_delete(module, "UI-001")
        return store

    @pytest.mark.requirement("STORE-LIST")
    def test_show_accepts_loose_display_id(self, populated: RequirementStore, module: str) -> None:
        assert populated.show(module, "auth-1").summary == "Login"

    @pytest.mark.requirement("STORE-LIST")
    def test_show_unknown(self, populated: RequirementStore, module: str) -> None:
        with pytest.raises(NotFoundError, match="AUTH-009"):
            populated.show(module, "AUTH-009")

    @pytest.mark.requirement("STORE-LIST")
    @pytest.mark.parametrize(
        "display_id",
        ["login", "AUTH-0", "AUTH-99999999999999999999", "AUTH-" + "9" * 5000],
        ids=["no-number", "zero", "beyond-integer-range", "thousands-of-digits"],
    )
    def test_show_malformed_id(self, populated: RequirementStore, module: str, display_id: str) -> None:
        with pytest.raises(ValidationError):
            populated.show(module, display_id)

    @pytest.mark.requirement("STORE-LIST")
    def test_largest_sequence_number_is_a_lookup(self, populated: RequirementStore, module: str) -> None:
        with pytest.raises(NotFoundError):
            populated.show(module, "AUTH-9223372036854775807")

    @pytest.mark.requirement("STORE-LIST")
    def test_default_list_excludes_deleted(self, populated: RequirementStore, module: str) -> None:
        ids = [r.display_id for r in populated.list_requirements(module)]
        assert ids == ["AUTH-001", "AUTH-002", "DATA-001"]

    @pytest.mark.requirement("STORE-LIST")
    def test_include_deleted(self, populated: RequirementStore, module: str) -> None:
        ids = [r.display_id for r in populated.list_requirements(module, include_deleted=True)]
        assert "UI-001" in ids

    @pytest.mark.requirement("STORE-LIST")
    @pytest.mark.parametrize(
        ("filters", "expected"),
        [
            ({"category": "auth"}, ["AUTH-001", "AUTH-002"]),
            ({"priority": "must"}, ["AUTH-001"]),
            ({"type": "constraint"}, ["DATA-001"]),
            ({"tag": "web"}, ["AUTH-001"]),
            ({"domain": "checkout"}, ["DATA-001"]),
            ({"status": "deleted"}, ["UI-001"]),
            ({"approval_status": "approved"}, []),
        ],
    )
    def test_filters(self, populated: RequirementStore, module: str, filters, expected) -> None:
        assert [r.display_id for r in populated.list_requirements(module, **filters)] == expected


class TestEdit:
    @pytest.mark.requirement("STORE-EDIT")
    def test_edit_priority_and_type(self, store: RequirementStore, module: str) -> None:
        store.create(module, "API", "functional", "List orders")

        store.edit_field(module, "API-001", "priority", "must")
        updated = store.edit_field(module, "API-001", "type", "interface")

        assert updated.priority is Priority.MUST
        assert updated.type is RequirementType.INTERFACE

    @pytest.mark.requirement("STORE-EDIT")
    def test_category_is_not_editable(self, store: RequirementStore, module: str) -> None:
        store.create(module, "API", "functional", "List orders")
        with pytest.raises(ValidationError, match="cannot be edited"):
            store.edit_field(module, "API-001", "category", "DATA")

    @pytest.mark.requirement("STORE-EDIT")
    def test_status_deleted_requires_delete(self, store: RequirementStore, module: str) -> None:
        store.create(module, "API", "functional", "List orders")
        with pytest.raises(ValidationError):
            store.edit_field(module, "API-001", "status", "deleted")

    @pytest.mark.requirement("STORE-EDIT")
    def test_deprecate(self, store: RequirementStore, module: str) -> None:
        store.create(module, "API", "functional", "List orders")
        updated = store.edit_field(module, "API-001", "status", "deprecated")
        assert updated.status is Status.DEPRECATED

    @pytest.mark.requirement("STORE-EDIT")
    def test_update_full_replaces_acceptance(self, store: RequirementStore, module: str) -> None:
        store.create(module, "API", "functional", "List orders", acceptance=["a", "b"])

        updated = store.update_full(module, "API-001", "List all orders", "Paged", ["c"])

        assert updated.summary == "List all orders"
        assert updated.detail == "Paged"
        assert updated.acceptance == ["c"]

    @pytest.mark.requirement("STORE-EDIT")
    def test_update_rejects_empty_criterion(self, store: RequirementStore, module: str) -> None:
        store.create(module, "API", "functional", "List orders", acceptance=["a"])
        with pytest.raises(ValidationError):
            store.update_full(module, "API-001", "List orders", None, ["ok", "  "])
        assert store.show(module, "API-001").acceptance == ["a"]


class TestDeleteRestorePurge:
    @pytest.mark.requirement("STORE-DELETE")
    def test_soft_delete_keeps_associations(self, store: RequirementStore, module: str, clock) -> None:
        store.add_domain(module, "core", "Core")
        store.create(module, "AUTH", "functional", "Base")
        store.create(module, "AUTH", "functional", "Dependent", tags=["t"], domains=["core"], depends=["AUTH-001"])

        deleted = store.soft_delete(module, "AUTH-002")

        assert deleted.status is Status.DELETED
        assert deleted.deleted_at == clock.now
        assert deleted.tags == ["t"]
        assert deleted.domains == ["core"]
        assert deleted.depends == ["AUTH-001"]

    @pytest.mark.requirement("STORE-DELETE")
    def test_restore(self, store: RequirementStore, module: str) -> None:
        store.create(module, "AUTH", "functional", "Base")
        store.soft_delete(module, "AUTH-001")

        restored = store.restore(module, "AUTH-001")

        assert restored.status is Status.ACTIVE
        assert restored.deleted_at is None

    @pytest.mark.requirement("STORE-PURGE")
    def test_purge_respects_age(self, store: RequirementStore, module: str, clock) -> None:
        """Only requirements deleted more than N days ago are removed."""
        store.create(module, "AUTH", "functional", "Old")
        store.create(module, "AUTH", "functional", "Young")
        store.create(module, "AUTH", "functional", "Alive")
        store.soft_delete(module, "AUTH-001")
        clock.advance(days=20)
        store.soft_delete(module, "AUTH-002")
        clock.advance(days=5)

        purged = store.purge(10, module=module)

        assert [r.display_id for r in purged] == ["AUTH-001"]
        remaining = [r.display_id for r in store.list_requirements(module, include_deleted=True)]
        assert remaining == ["AUTH-002", "AUTH-003"]

    @pytest.mark.requirement("STORE-PURGE")
    def test_purge_cascades(self, store: RequirementStore, module: str, clock) -> None:
        """Owned rows and every edge touching the purged requirement go with it."""
        store.add_domain(module, "core", "Core")
        store.create(module, "AUTH", "functional", "Target")
        store.create(
            module, "AUTH", "functional", "Doomed",
            acceptance=["a"], tags=["t"], domains=["core"], depends=["AUTH-001"],
        )  # fmt: skip
        store.create(module, "AUTH", "functional", "Dependent", depends=["AUTH-002"])
        store.soft_delete(module, "AUTH-002")
        clock.advance(days=31)

        store.purge(30)

        db = store.database
        for table in (AcceptanceModel, TagModel, requirement_domains, requirement_depends):
            assert db.count(table) == 0
        assert store.show(module, "AUTH-003").depends == []
        assert store.list_domains(module)[0].requirement_count == 0
        with pytest.raises(NotFoundError):
            store.show(module, "AUTH-002")

    @pytest.mark.requirement("STORE-PURGE")
    def test_purge_negative_days(self, store: RequirementStore) -> None:
        with pytest.raises(ValidationError):
            store.purge(-1)

    @pytest.mark.requirement("STORE-PURGE")
    def test_restore_after_purge_fails(self, store: RequirementStore, module: str, clock) -> None:
        store.create(module, "AUTH", "functional", "Gone")
        store.soft_delete(module, "AUTH-001")
        clock.advance(days=2)
        store.purge(1)

        with pytest.raises(NotFoundError):
            store.restore(module, "AUTH-001")


class TestMissingAcceptance:
    @pytest.mark.requirement("STORE-CHECK")
    def test_lists_active_without_criteria(self, store: RequirementStore, module: str) -> None:
        store.create(module, "AUTH", "functional", "Has criteria", acceptance=["a"])
        store.create(module, "AUTH", "functional", "Draft")
        store.create(module, "AUTH", "functional", "Old draft")
        store.edit_field(module, "AUTH-003", "status", "deprecated")

        assert [r.display_id for r in store.missing_acceptance(module)] == ["AUTH-002"]
