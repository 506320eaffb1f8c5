"""Command-line interface for req-core.

The ``req`` entry point is :func:`req_core.cli.main.main`.
"""

from __future__ import annotations

from req_core.cli.main import cli, main

__all__: list[str] = ["cli", "main"]
