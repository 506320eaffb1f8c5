"""Structured logging setup.

Logs are written to stderr through structlog so that command output on
stdout can be piped or redirected without log noise.

Example:
    >>> configure_logging(log_level="DEBUG", json_output=True)
    >>> log = structlog.get_logger(__name__)
    >>> log.info("requirement_created", display_id="AUTH-001")
"""

from __future__ import annotations

import logging
import sys

import structlog


def configure_logging(
    log_level: str = "WARNING",
    json_output: bool = False,
) -> None:
    """Configure structlog for the req CLI and library.

    Args:
        log_level: The minimum log level to emit (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: If True, output logs as JSON. If False, use console format.
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.WARNING

    renderer: structlog.types.Processor
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


__all__ = ["configure_logging"]
