"""Store-layer exceptions.

Business rule failures (ValidationFailedError and its UniquenessConflictError
subclass) are raised before any write and are meaningful to end users.
Transaction state errors signal a programming error in the caller. Pool and
connectivity failures are operational. Errors coming from asyncpg itself are
never translated; use ``is_unique_violation`` to recognise the raw store-level
uniqueness error.
"""

from __future__ import annotations

import typing

from asyncpg.exceptions import UniqueViolationError

__all__ = (
    "ConfigurationError",
    "IdentifierExhaustedError",
    "NoActiveTransactionError",
    "PoolExhaustedError",
    "StoreError",
    "TransactionAlreadyActiveError",
    "TransactionStateError",
    "UniquenessConflictError",
    "ValidationFailedError",
    "extract_constraint_name",
    "is_unique_violation",
)


class StoreError(Exception):
    """Base exception for store layer errors."""

    def __init__(self, message: str, **context: typing.Any) -> None:  # noqa: ANN401
        """Initialize store error.

        Args:
            message: Human-readable error message.
            **context: Additional context about the error.
        """
        self.message = message
        self.context = context
        super().__init__(message)


class ValidationFailedError(StoreError):
    """A row was rejected by its DataControl rules."""

    def __init__(self, violations: list[str], **context: typing.Any) -> None:  # noqa: ANN401
        """Initialize validation error.

        Args:
            violations: Every violated rule, in evaluation order.
            **context: Additional context (table, id, ...).
        """
        super().__init__("; ".join(violations), **context)
        self.violations = list(violations)


class UniquenessConflictError(ValidationFailedError):
    """At least one declared-unique column collides with another row."""

    def __init__(self, violations: list[str], fields: list[str], **context: typing.Any) -> None:  # noqa: ANN401
        """Initialize uniqueness conflict.

        Args:
            violations: Every violated rule, uniqueness or not.
            fields: Names of the colliding columns.
            **context: Additional context (table, id, ...).
        """
        super().__init__(violations, fields=fields, **context)
        self.fields = list(fields)


class TransactionStateError(StoreError):
    """A transaction operation was called in the wrong state."""


class TransactionAlreadyActiveError(TransactionStateError):
    """begin() was called while a transaction is active for the call chain."""

    def __init__(self) -> None:
        super().__init__("A transaction is already active for this call chain.")


class NoActiveTransactionError(TransactionStateError):
    """commit() or a transaction-only operation was called with no active transaction."""

    def __init__(self, operation: str = "commit") -> None:
        super().__init__(f"No active transaction for '{operation}'.", operation=operation)


class PoolExhaustedError(StoreError):
    """No pooled connection became available in time."""

    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"No connection available within {timeout_ms} ms.", timeout_ms=timeout_ms)
        self.timeout_ms = timeout_ms


class IdentifierExhaustedError(StoreError):
    """A random code could not be made unique within the attempt budget."""

    def __init__(self, table: str, column: str, attempts: int) -> None:
        super().__init__(
            f"Could not generate a unique '{column}' for table '{table}' after {attempts} attempts.",
            table=table,
            column=column,
            attempts=attempts,
        )


class ConfigurationError(StoreError):
    """Invalid database settings."""


def extract_constraint_name(error: Exception) -> str | None:
    """Extract constraint name from asyncpg error.

    Args:
        error: The asyncpg exception.

    Returns:
        Constraint name if found, None otherwise.
    """
    return getattr(error, "constraint_name", None)


def is_unique_violation(error: BaseException, constraint: str | None = None) -> bool:
    """Check whether an error is the store-level unique constraint violation.

    Args:
        error: Any exception raised by a repository call.
        constraint: Only match this constraint name when given.

    Returns:
        True if the error is an asyncpg UniqueViolationError (on ``constraint``).
    """
    if not isinstance(error, UniqueViolationError):
        return False
    return constraint is None or extract_constraint_name(error) == constraint
