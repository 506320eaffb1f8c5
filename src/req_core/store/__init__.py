"""SQLite-backed requirement store.

Components:
    Database: Engine, schema and session helpers
    RequirementStore: Requirements, approval, associations, purge
    export_module / import_document: Bulk YAML transfer

Example:
    >>> from req_core.store import RequirementStore
    >>> store = RequirementStore.open("requirements.db")
    >>> store.create("default", "AUTH", "functional", "Users can sign in").display_id
    'AUTH-001'
"""

from __future__ import annotations

from req_core.store.database import Database
from req_core.store.requirements import RequirementStore
from req_core.store.transfer import (
    ImportSummary,
    dump_document,
    export_module,
    import_document,
    load_document,
)

__all__ = [
    "Database",
    "ImportSummary",
    "RequirementStore",
    "dump_document",
    "export_module",
    "import_document",
    "load_document",
]
