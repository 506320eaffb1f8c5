"""Unit tests for the SQLite engine and session helpers."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy import select

from req_core.errors import ConflictError, ReqError
from req_core.store import Database
from req_core.store.database import SCHEMA_VERSION
from req_core.store.models import ModuleModel

NOW = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _module(name: str, when: datetime = NOW) -> ModuleModel:
    return ModuleModel(name=name, created_at=when, updated_at=when)


@pytest.fixture
def file_db(tmp_path: Path):
    db = Database.open(tmp_path / "nested" / "requirements.db", busy_timeout=0.1)
    yield db
    db.close()


class TestOpen:
    @pytest.mark.requirement("STORE-INIT")
    def test_creates_parent_directory_and_schema(self, tmp_path: Path, file_db: Database) -> None:
        assert (tmp_path / "nested" / "requirements.db").exists()
        with file_db.engine.connect() as conn:
            assert conn.exec_driver_sql("PRAGMA user_version").scalar() == SCHEMA_VERSION
            assert conn.exec_driver_sql("PRAGMA journal_mode").scalar() == "wal"
            assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1

    @pytest.mark.requirement("STORE-INIT")
    def test_reopen_is_idempotent(self, tmp_path: Path, file_db: Database) -> None:
        with file_db.transaction() as session:
            session.add(_module("default"))

        again = Database.open(tmp_path / "nested" / "requirements.db")
        try:
            assert again.count(ModuleModel) == 1
        finally:
            again.close()


class TestTransaction:
    @pytest.mark.requirement("STORE-ATOMIC")
    def test_exception_rolls_back(self, file_db: Database) -> None:
        with pytest.raises(RuntimeError):
            with file_db.transaction() as session:
                session.add(_module("default"))
                session.flush()
                raise RuntimeError("boom")

        assert file_db.count(ModuleModel) == 0

    @pytest.mark.requirement("STORE-ATOMIC")
    def test_constraint_violation_is_conflict(self, file_db: Database) -> None:
        with file_db.transaction() as session:
            session.add(_module("default"))

        with pytest.raises(ConflictError, match="Constraint"):
            with file_db.transaction() as session:
                session.add(_module("other"))
                session.add(_module("default"))

        assert file_db.count(ModuleModel) == 1

    @pytest.mark.requirement("STORE-ATOMIC")
    def test_nested_transaction_joins_outer(self, file_db: Database) -> None:
        with pytest.raises(RuntimeError):
            with file_db.transaction() as outer:
                outer.add(_module("a"))
                with file_db.transaction() as inner:
                    assert inner is outer
                    inner.add(_module("b"))
                raise RuntimeError("boom")

        assert file_db.count(ModuleModel) == 0

    @pytest.mark.requirement("STORE-ATOMIC")
    def test_competing_writer_times_out(self, tmp_path: Path, file_db: Database) -> None:
        other = Database.open(tmp_path / "nested" / "requirements.db", busy_timeout=0.1)
        try:
            with file_db.transaction():
                with pytest.raises(ReqError, match="write lock"):
                    with other.transaction():
                        pass
        finally:
            other.close()

    def test_reader_sees_committed_state_during_write(self, tmp_path: Path, file_db: Database) -> None:
        reader = Database.open(tmp_path / "nested" / "requirements.db")
        try:
            with file_db.transaction() as session:
                session.add(_module("pending"))
                session.flush()
                assert reader.count(ModuleModel) == 0
            assert reader.count(ModuleModel) == 1
        finally:
            reader.close()

    @pytest.mark.requirement("STORE-ATOMIC")
    def test_other_thread_does_not_join_open_transaction(self, file_db: Database) -> None:
        flushed = threading.Event()
        read_done = threading.Event()
        outcome: dict[str, object] = {}

        def writer() -> None:
            try:
                with file_db.transaction() as outer:
                    outer.add(_module("pending"))
                    outer.flush()
                    flushed.set()
                    read_done.wait(timeout=5)
                    with file_db.transaction() as inner:
                        outcome["joined"] = inner is outer
                    raise RuntimeError("boom")
            except RuntimeError:
                outcome["rolled_back"] = True

        thread = threading.Thread(target=writer)
        thread.start()
        try:
            assert flushed.wait(timeout=5)
            outcome["seen"] = file_db.count(ModuleModel)
        finally:
            read_done.set()
            thread.join(timeout=5)

        assert outcome == {"seen": 0, "joined": True, "rolled_back": True}
        assert file_db.count(ModuleModel) == 0


class TestTimestamps:
    def test_round_trip_is_aware_utc(self, file_db: Database) -> None:
        local = NOW.astimezone(timezone(timedelta(hours=5)))
        with file_db.transaction() as session:
            session.add(_module("default", when=local))

        with file_db.snapshot() as session:
            stored = session.scalars(select(ModuleModel)).one()

        assert stored.created_at == NOW
        assert stored.created_at.tzinfo is timezone.utc
