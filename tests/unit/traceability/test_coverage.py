"""Unit tests for coverage reporting."""

from __future__ import annotations

from pathlib import Path

import pytest

from req_core.schemas.requirement import Category
from req_core.schemas.traceability import ArtifactKind, CodeReference, CoverageState, IssueKind
from req_core.store import RequirementStore
from req_core.traceability import TraceabilityScanner, calculate_coverage, classify, coverage_report

IMPL = CodeReference(location="src/a.py:1", unit="a", kind=ArtifactKind.IMPLEMENTATION)
TEST = CodeReference(location="tests/test_a.py:1", unit="test_a", kind=ArtifactKind.TEST)


class TestClassify:
    @pytest.mark.requirement("COVERAGE-STATE")
    @pytest.mark.parametrize(
        ("references", "state"),
        [
            ([], CoverageState.UNCOVERED),
            ([IMPL], CoverageState.IMPLEMENTATION_ONLY),
            ([TEST, TEST], CoverageState.TEST_ONLY),
            ([TEST, IMPL], CoverageState.FULLY_COVERED),
        ],
    )
    def test_states(self, references, state) -> None:
        assert classify(references) is state


class TestCoverageReport:
    @pytest.fixture
    def store_with_corpus(self, store: RequirementStore, module: str) -> RequirementStore:
        store.create(module, "AUTH", "functional", "Login")
        store.create(module, "AUTH", "functional", "Session refresh")
        store.create(module, "DATA", "constraint", "Retention")
        store.create(module, "UI", "interface", "Old page")
        store.add_dependency(module, "DATA-001", "UI-001")
        store.edit_field(module, "UI-001", "status", "deprecated")
        return store

    @pytest.mark.requirement("COVERAGE-REPORT")
    def test_states_and_summaries(
        self, store_with_corpus: RequirementStore, module: str, sample_corpus: Path
    ) -> None:
        scan = TraceabilityScanner(store_with_corpus).scan(sample_corpus, module)

        report = coverage_report(store_with_corpus, scan)

        states = {entry.display_id: entry.state for entry in report.requirements}
        assert states == {
            "AUTH-001": CoverageState.FULLY_COVERED,
            "AUTH-002": CoverageState.IMPLEMENTATION_ONLY,
            "DATA-001": CoverageState.UNCOVERED,
        }
        assert report.total_requirements == 3
        assert report.coverage_percentage == pytest.approx(100 / 3)
        assert report.by_state == {
            CoverageState.UNCOVERED: 1,
            CoverageState.IMPLEMENTATION_ONLY: 1,
            CoverageState.TEST_ONLY: 0,
            CoverageState.FULLY_COVERED: 1,
        }
        assert report.by_category[Category.AUTH][CoverageState.FULLY_COVERED] == 1
        assert report.by_category[Category.DATA][CoverageState.UNCOVERED] == 1
        assert [o.reference for o in report.orphan_tags] == ["AUTH-099"]
        assert [(o.kind, o.reference) for o in report.orphan_dependencies] == [
            (IssueKind.ORPHAN_DEPENDENCY, "UI-001")
        ]

    @pytest.mark.requirement("COVERAGE-REPORT")
    def test_implementation_only(self, store: RequirementStore, module: str) -> None:
        store.create(module, "API", "interface", "Orders endpoint")
        scan = TraceabilityScanner(store).scan_sources(
            {"src/orders.ts": "// @req API-001\nexport function listOrders() {}\n"}, module
        )

        report = coverage_report(store, scan)

        assert report.requirements[0].state is CoverageState.IMPLEMENTATION_ONLY
        assert report.requirements[0].implementations[0].unit == "listOrders"
        assert report.requirements[0].tests == []

    @pytest.mark.requirement("COVERAGE-REPORT")
    def test_inactive_on_request(self, store_with_corpus: RequirementStore, module: str) -> None:
        store_with_corpus.soft_delete(module, "AUTH-002")
        scan = TraceabilityScanner(store_with_corpus).scan_sources({}, module)

        default = coverage_report(store_with_corpus, scan)
        full = coverage_report(store_with_corpus, scan, include_inactive=True)

        assert [e.display_id for e in default.requirements] == ["AUTH-001", "DATA-001"]
        assert [e.display_id for e in full.requirements] == ["AUTH-001", "AUTH-002", "DATA-001", "UI-001"]

    @pytest.mark.requirement("COVERAGE-REPORT")
    def test_threshold(self, store: RequirementStore, module: str) -> None:
        store.create(module, "API", "interface", "Orders endpoint")
        scan = TraceabilityScanner(store).scan_sources(
            {
                "src/orders.ts": "// @req API-001\nexport function listOrders() {}\n",
                "tests/orders.test.ts": "// @req API-001\nit('lists orders', () => {})\n",
            },
            module,
        )

        report = coverage_report(store, scan)

        assert report.coverage_percentage == 100.0
        assert report.passes_threshold(100.0)

    @pytest.mark.requirement("COVERAGE-REPORT")
    def test_empty_module(self, store: RequirementStore, module: str) -> None:
        store.create_module(module)
        report = coverage_report(store, TraceabilityScanner(store).scan_sources({}, module))

        assert report.total_requirements == 0
        assert report.coverage_percentage == 0.0
        assert not report.passes_threshold(50)


class TestCalculateCoverage:
    @pytest.mark.requirement("COVERAGE-REPORT")
    def test_no_entries(self) -> None:
        assert calculate_coverage([]) == (0, 0, 0.0)
