"""SQLite engine and session management.

The store is a single SQLite file in WAL mode accessed through SQLAlchemy.
Writers take the database write lock up front (``BEGIN IMMEDIATE``) so
structural mutations are serialized and all-or-nothing; readers use a
deferred transaction and see either the state before or after any writer,
never a partial one. A busy timeout bounds how long a writer waits for the
lock.

Example:
    >>> db = Database.open(Path("requirements.db"))
    >>> with db.transaction() as session:
    ...     session.add(ModuleModel(name="default", created_at=now, updated_at=now))
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog
from sqlalchemy import Engine, Table, create_engine, event, func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from req_core.errors import ConflictError, ReqError
from req_core.store.models import Base

logger = structlog.get_logger(__name__)

SCHEMA_VERSION = 1

_WRITE_OPTION = "req_write"


def utcnow() -> datetime:
    """Current time in UTC."""
    return datetime.now(tz=timezone.utc)


def _install_pragmas(engine: Engine, wal: bool) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        # Let SQLAlchemy's "begin" event emit BEGIN instead of the driver.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        if wal:
            cursor.execute("PRAGMA journal_mode = WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn: Any) -> None:
        if conn.get_execution_options().get(_WRITE_OPTION):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


class Database:
    """A SQLite engine with transaction helpers.

    A nested ``transaction`` or ``snapshot`` joins the session already open
    on this Database in the same thread. Other threads get their own
    sessions and see only committed state.

    Attributes:
        path: Database file path (``:memory:`` for an in-memory database).
    """

    def __init__(self, engine: Engine, path: str) -> None:
        self.engine = engine
        self.path = path
        self._writer = sessionmaker(
            bind=engine.execution_options(**{_WRITE_OPTION: True}),
            expire_on_commit=False,
        )
        self._reader = sessionmaker(bind=engine, expire_on_commit=False)
        self._local = threading.local()

    def _active(self) -> Session | None:
        return getattr(self._local, "session", None)

    @classmethod
    def open(cls, path: Path | str, busy_timeout: float = 5.0) -> Database:
        """Open (and initialize if needed) a database file.

        Args:
            path: Database file path, or ``:memory:`` (a single shared
                connection, for use from one thread).
            busy_timeout: Seconds to wait for a competing writer.

        Returns:
            A Database with the schema applied.
        """
        target = str(path)
        if target == ":memory:":
            engine = create_engine(
                "sqlite://",
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            Path(target).parent.mkdir(parents=True, exist_ok=True)
            engine = create_engine(
                f"sqlite:///{target}",
                connect_args={"timeout": busy_timeout, "check_same_thread": False},
            )
        _install_pragmas(engine, wal=target != ":memory:")
        db = cls(engine, target)
        db.init_schema()
        return db

    def init_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        Base.metadata.create_all(self.engine)
        with self.engine.begin() as conn:
            conn.exec_driver_sql(f"PRAGMA user_version = {SCHEMA_VERSION}")
        logger.debug("schema_initialized", path=self.path, version=SCHEMA_VERSION)

    def close(self) -> None:
        self.engine.dispose()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Run a write transaction holding the database write lock.

        Nested use joins the outer transaction. Any exception rolls back
        every write made inside the block.

        Raises:
            ConflictError: If a uniqueness or foreign key constraint fails.
            ReqError: If the write lock cannot be acquired in time.
        """
        active = self._active()
        if active is not None:
            yield active
            return
        session = self._writer()
        try:
            session.connection()
        except OperationalError as e:
            session.close()
            raise ReqError(f"Could not acquire write lock on {self.path}: {e.orig}") from e
        self._local.session = session
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            raise ConflictError(f"Constraint violated: {e.orig}") from e
        except BaseException:
            session.rollback()
            raise
        finally:
            self._local.session = None
            session.close()

    @contextmanager
    def snapshot(self) -> Iterator[Session]:
        """Run reads against one consistent snapshot of the database."""
        active = self._active()
        if active is not None:
            yield active
            return
        session = self._reader()
        self._local.session = session
        try:
            yield session
        finally:
            self._local.session = None
            session.rollback()
            session.close()

    def count(self, model: type[Base] | Table) -> int:
        """Number of rows in a model's table (or a Table)."""
        with self.snapshot() as session:
            return session.scalar(select(func.count()).select_from(model)) or 0


__all__ = [
    "SCHEMA_VERSION",
    "Database",
    "utcnow",
]
