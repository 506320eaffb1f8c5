"""Exception hierarchy for req-core.

All errors raised by the store, the approval state machine and the
dependency graph inherit from ReqError, so callers can catch every
domain failure with a single except clause.

Exception Hierarchy:
    ReqError (base)
    ├── ValidationError   # Malformed enum value, missing field, bad input
    ├── NotFoundError     # Unknown module, display ID, domain or target
    ├── ConflictError     # Duplicate domain reference, dependency cycle
    └── StateError        # Approval transition not valid in current state

Exit Codes:
    1 - General error (ReqError)
    3 - Not found (NotFoundError)
    4 - Conflict (ConflictError)
    5 - Validation error (ValidationError)
    6 - State error (StateError)

Integrity problems (orphan tags, orphan dependencies) are never raised.
They are reported as IntegrityIssue models in scan and coverage output.

Example:
    >>> from req_core.errors import NotFoundError
    >>> raise NotFoundError("requirement", "AUTH-009", module="default")
    Traceback (most recent call last):
        ...
    NotFoundError: requirement not found: AUTH-009 (module=default)
"""

from __future__ import annotations


class ReqError(Exception):
    """Base exception for all req-core errors.

    Attributes:
        exit_code: CLI exit code for this error type (default: 1).
    """

    exit_code: int = 1

    pass


class ValidationError(ReqError):
    """Raised when input does not satisfy the enumerated domains.

    Covers malformed enum values, missing required fields, malformed display
    IDs and bad import records.

    Attributes:
        errors: Individual field-level messages, if any.
        exit_code: CLI exit code (5).
    """

    exit_code: int = 5

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        self.errors = errors or []
        if self.errors:
            message = f"{message}: " + "; ".join(self.errors)
        super().__init__(message)


class NotFoundError(ReqError):
    """Raised when a referenced entity does not exist.

    Attributes:
        kind: Entity kind (module, requirement, domain).
        key: The key that failed to resolve.
        module: Module the lookup was scoped to, if any.
        exit_code: CLI exit code (3).
    """

    exit_code: int = 3

    def __init__(self, kind: str, key: str, module: str | None = None) -> None:
        self.kind = kind
        self.key = key
        self.module = module
        message = f"{kind} not found: {key}"
        if module is not None and kind != "module":
            message = f"{message} (module={module})"
        super().__init__(message)


class ConflictError(ReqError):
    """Raised when a write would violate a uniqueness or graph invariant.

    Attributes:
        exit_code: CLI exit code (4).
    """

    exit_code: int = 4


class StateError(ReqError):
    """Raised when an approval operation is not valid in the current state.

    Attributes:
        display_id: Requirement the operation was attempted on.
        state: Approval state the requirement was in.
        exit_code: CLI exit code (6).
    """

    exit_code: int = 6

    def __init__(self, message: str, display_id: str | None = None, state: str | None = None) -> None:
        self.display_id = display_id
        self.state = state
        super().__init__(message)


__all__ = [
    "ConflictError",
    "NotFoundError",
    "ReqError",
    "StateError",
    "ValidationError",
]
