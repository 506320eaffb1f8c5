"""Runtime configuration for req-core.

Settings are read from environment variables prefixed with ``REQ_`` and,
optionally, a ``.env`` file in the working directory. CLI options take
precedence over both.

Environment Variables:
    REQ_DATABASE: Path to the SQLite database file.
    REQ_MODULE: Module used when a command does not name one.
    REQ_LOG_LEVEL: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    REQ_LOG_JSON: Emit logs as JSON instead of console format.
    REQ_BUSY_TIMEOUT: Seconds a writer waits for the write lock.

Example:
    >>> settings = get_settings()
    >>> settings.database
    PosixPath('requirements.db')
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_TEST_PATTERNS: list[str] = [
    "tests/*",
    "test/*",
    "*/tests/*",
    "*/test/*",
    "test_*",
    "*_test.*",
    "*Test.*",
    "*Tests.*",
]

DEFAULT_EXCLUDE_DIRS: list[str] = [
    ".git",
    ".venv",
    "venv",
    "node_modules",
    "__pycache__",
    "build",
    "dist",
    "target",
    ".tox",
]


class ReqSettings(BaseSettings):
    """Configuration for the requirement store and traceability scanner."""

    model_config = SettingsConfigDict(
        env_prefix="REQ_",
        env_file=".env",
        extra="ignore",
    )

    database: Path = Field(
        default=Path("requirements.db"),
        description="Path to the SQLite database file",
    )
    module: str = Field(
        default="default",
        min_length=1,
        description="Module used when none is given",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Minimum log level",
    )
    log_json: bool = Field(
        default=False,
        description="Render logs as JSON",
    )
    busy_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Seconds to wait for the write lock before failing",
    )
    test_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_TEST_PATTERNS),
        description="Glob patterns (relative to the scan root) marking test artifacts",
    )
    exclude_dirs: list[str] = Field(
        default_factory=lambda: list(DEFAULT_EXCLUDE_DIRS),
        description="Directory names the scanner never descends into",
    )


@lru_cache(maxsize=1)
def get_settings() -> ReqSettings:
    """Return the process-wide settings instance."""
    return ReqSettings()


__all__ = [
    "DEFAULT_EXCLUDE_DIRS",
    "DEFAULT_TEST_PATTERNS",
    "ReqSettings",
    "get_settings",
]
