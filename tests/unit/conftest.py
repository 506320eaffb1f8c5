"""Unit test fixtures.

Unit tests run against a real SQLite database (in memory or in tmp_path)
with an injectable clock, so timestamps and purge ages are deterministic.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
import structlog
from click.testing import CliRunner

from req_core.config import get_settings
from req_core.store import Database, RequirementStore

if TYPE_CHECKING:
    from collections.abc import Generator

MODULE = "default"


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Drop logging configuration made by CLI invocations (bound to their captured streams)."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(clock: FakeClock) -> Generator[RequirementStore, None, None]:
    """In-memory store with a fake clock."""
    s = RequirementStore(Database.open(":memory:"), clock=clock)
    yield s
    s.close()


@pytest.fixture
def module() -> str:
    return MODULE


@pytest.fixture
def cli_runner() -> CliRunner:
    """Provide a Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def db_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Database file for CLI tests, isolated from REQ_* environment variables."""
    for name in ("REQ_DATABASE", "REQ_MODULE", "REQ_LOG_LEVEL", "REQ_LOG_JSON"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield tmp_path / "requirements.db"
    get_settings.cache_clear()


@pytest.fixture
def sample_corpus(tmp_path: Path) -> Path:
    """Small source tree with implementation and test annotations."""
    root = tmp_path / "corpus"
    (root / "src" / "auth").mkdir(parents=True)
    (root / "tests").mkdir()
    (root / "web").mkdir()
    (root / "node_modules" / "lib").mkdir(parents=True)

    (root / "src" / "auth" / "login.py").write_text(
        '''"""Login service."""


class LoginService:
    def authenticate(self, user, password):
        """Check credentials.

        Requirements: AUTH-001, AUTH-099
        """
        return True
'''
    )
    (root / "tests" / "test_login.py").write_text(
        '''import pytest


class TestLogin:
    @pytest.mark.requirement("AUTH-001")
    def test_valid_credentials(self):
        assert True
'''
    )
    (root / "web" / "Session.java").write_text(
        """package web;

public class Session {
    // @req AUTH-002
    public void refresh() {
    }
}
"""
    )
    (root / "node_modules" / "lib" / "index.js").write_text("// @req AUTH-003\nfunction ignored() {}\n")
    return root
