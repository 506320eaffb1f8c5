"""CLI utility functions and error handling.

This module provides shared utilities for the req CLI, including:
- Exit code constants
- Error, warning and output helpers with consistent stderr/stdout usage
- Translation of ReqError exceptions into exit codes
- Access to the settings and store carried on the click context

Errors are written as plain text to stderr; command output goes to stdout
so it can be piped. Each error class exits with its own code.

Example:
    from req_core.cli.utils import handle_errors, get_store

    with handle_errors():
        requirement = get_store(ctx).show(module, display_id)
"""

from __future__ import annotations

import json
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from enum import IntEnum
from typing import TYPE_CHECKING, Any

import click
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from req_core.errors import NotFoundError, ReqError, StateError

if TYPE_CHECKING:
    from typing import NoReturn

    from req_core.config import ReqSettings
    from req_core.store import RequirementStore


class ExitCode(IntEnum):
    """Standard exit codes for CLI commands.

    Values match the ``exit_code`` attribute of the ReqError hierarchy.
    """

    SUCCESS = 0
    """Command completed successfully."""

    GENERAL_ERROR = 1
    """General error, or a report below its threshold."""

    USAGE_ERROR = 2
    """Invalid usage (bad arguments, missing required options)."""

    NOT_FOUND = 3
    """Module, requirement, domain or dependency edge not found."""

    CONFLICT = 4
    """Uniqueness violation or dependency cycle."""

    VALIDATION_ERROR = 5
    """Input validation failed."""

    STATE_ERROR = 6
    """Approval operation not valid in the current state."""


OUTPUT_CHOICE = click.Choice(["text", "json"], case_sensitive=False)


def error(message: str, **context: str | int | bool | None) -> None:
    """Print an error message to stderr.

    Example:
        error("Requirement not found", module="default")
        # Output: Error: Requirement not found (module=default)
    """
    context_str = ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)
    if context_str:
        click.echo(f"Error: {message} ({context_str})", err=True)
    else:
        click.echo(f"Error: {message}", err=True)


def error_exit(
    message: str,
    exit_code: ExitCode = ExitCode.GENERAL_ERROR,
    **context: str | int | bool | None,
) -> NoReturn:
    """Print an error message to stderr and exit with a code.

    Raises:
        SystemExit: Always exits with the specified code.
    """
    error(message, **context)
    sys.exit(exit_code)


def warn(message: str, **context: str | int | bool | None) -> None:
    """Print a warning message to stderr."""
    context_str = ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)
    if context_str:
        click.echo(f"Warning: {message} ({context_str})", err=True)
    else:
        click.echo(f"Warning: {message}", err=True)


# Alias for warn
warning = warn


def success(message: str) -> None:
    """Print a success message to stdout."""
    click.echo(message)


def info(message: str) -> None:
    """Print an informational message to stderr."""
    click.echo(message, err=True)


def exit_code_for(exc: ReqError) -> ExitCode:
    """Map an exception to its exit code, falling back to GENERAL_ERROR."""
    try:
        return ExitCode(exc.exit_code)
    except ValueError:
        return ExitCode.GENERAL_ERROR


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn ReqError exceptions raised in the block into an error exit.

    Raises:
        SystemExit: With the code of the raised ReqError.
    """
    try:
        yield
    except NotFoundError as e:
        error_exit(str(e), exit_code=exit_code_for(e))
    except StateError as e:
        error_exit(str(e), exit_code=exit_code_for(e), state=e.state)
    except ReqError as e:
        error_exit(str(e), exit_code=exit_code_for(e))


def get_settings(ctx: click.Context) -> ReqSettings:
    """Settings resolved by the root command."""
    return ctx.find_root().obj["settings"]


def get_module(ctx: click.Context) -> str:
    return get_settings(ctx).module


def get_store(ctx: click.Context) -> RequirementStore:
    """Open the store on first use and close it when the root context ends.

    Raises:
        SystemExit: If the database cannot be opened.
    """
    from req_core.store import RequirementStore

    root = ctx.find_root()
    store = root.obj.get("store")
    if store is None:
        settings = get_settings(ctx)
        with handle_errors():
            try:
                store = RequirementStore.open(settings.database, busy_timeout=settings.busy_timeout)
            except (OSError, SQLAlchemyError) as e:
                raise ReqError(f"Cannot open database: {e}") from e
        root.obj["store"] = store
        root.call_on_close(store.close)
    return store


def echo_json(payload: BaseModel | list[BaseModel] | dict[str, Any]) -> None:
    """Print a model, a list of models or a plain mapping as indented JSON."""
    if isinstance(payload, BaseModel):
        data: Any = payload.model_dump(mode="json")
    elif isinstance(payload, list):
        data = [item.model_dump(mode="json") for item in payload]
    else:
        data = payload
    click.echo(json.dumps(data, indent=2, default=str))


__all__: list[str] = [
    "OUTPUT_CHOICE",
    "ExitCode",
    "echo_json",
    "error",
    "error_exit",
    "exit_code_for",
    "get_module",
    "get_settings",
    "get_store",
    "handle_errors",
    "info",
    "success",
    "warn",
    "warning",
]
