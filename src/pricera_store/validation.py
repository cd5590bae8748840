"""Declarative per-entity validation evaluated right before every write.

Each entity declares a tuple of ``FieldRule``. ``DataControl`` evaluates every
rule in memory, then re-queries the store for every unique column whose
value passed its own rule (excluding the row's own id) and raises one
error listing all violations.
"""

from __future__ import annotations

import re
import typing
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from logging import getLogger

from asyncpg import Connection

from .errors import UniquenessConflictError, ValidationFailedError
from .geo import point_violations
from .schema import TableDefinition, quote_ident

if typing.TYPE_CHECKING:
    from .transactions import Executor

log = getLogger(__name__)

__all__ = (
    "DataControl",
    "FieldRule",
    "BIGINT_RANGE",
    "INTEGER_RANGE",
    "SMALLINT_RANGE",
    "email_format",
    "integer_value",
    "is_missing",
    "json_object_fields",
    "point_format",
    "string_list_fields",
    "string_or_string_list_fields",
)

Checker = Callable[[typing.Any], list[str]]

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

SMALLINT_RANGE = (-(2**15), 2**15 - 1)
INTEGER_RANGE = (-(2**31), 2**31 - 1)
BIGINT_RANGE = (-(2**63), 2**63 - 1)


@dataclass(frozen=True, kw_only=True)
class FieldRule:
    """Validation rule for one column.

    Attributes:
        field: Column name.
        label: Name used in messages.
        required: Value must be present (non-null, non-blank string, non-empty collection).
        max_length: Maximum string length.
        unique: Value must not exist on another row.
        pattern: Regular expression a string value must fully match.
        pattern_message: Message used when ``pattern`` does not match.
        check: Structural checker returning messages for a present value.
    """

    field: str
    label: str
    required: bool = False
    max_length: int | None = None
    unique: bool = False
    pattern: str | None = None
    pattern_message: str | None = None
    check: Checker | None = None

    def evaluate(self, value: typing.Any) -> list[str]:  # noqa: ANN401
        """Violations of the in-memory part of the rule."""
        if is_missing(value):
            return [f"{self.label} is required"] if self.required else []

        errors: list[str] = []
        if self.max_length is not None and isinstance(value, str) and len(value) > self.max_length:
            errors.append(f"{self.label} too long (max {self.max_length} characters)")
        if self.pattern is not None and isinstance(value, str) and re.fullmatch(self.pattern, value) is None:
            errors.append(self.pattern_message or f"{self.label} has an invalid format")
        if self.check is not None:
            errors.extend(self.check(value))
        return errors


def is_missing(value: typing.Any) -> bool:  # noqa: ANN401
    """Null, blank string or empty collection."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def _missing_fields_message(label: str, missing: list[str]) -> list[str]:
    if not missing:
        return []
    return [f"{label} is missing required fields: {', '.join(missing)}"]


def json_object_fields(label: str, fields: Sequence[str]) -> Checker:
    """Every field of a JSON object must be a non-empty string."""

    def check(value: typing.Any) -> list[str]:  # noqa: ANN401
        if not isinstance(value, Mapping):
            return [f"{label} must be a valid JSON object"]
        missing = [f for f in fields if not isinstance(value.get(f), str) or not value[f].strip()]
        return _missing_fields_message(label, missing)

    return check


def string_or_string_list_fields(label: str, fields: Sequence[str]) -> Checker:
    """Every field must be a non-empty string or a non-empty list of strings."""

    def valid(item: typing.Any) -> bool:  # noqa: ANN401
        if isinstance(item, str):
            return bool(item.strip())
        return isinstance(item, list) and bool(item) and all(isinstance(v, str) for v in item)

    def check(value: typing.Any) -> list[str]:  # noqa: ANN401
        if not isinstance(value, Mapping):
            return [f"{label} must be a valid JSON object"]
        return _missing_fields_message(label, [f for f in fields if not valid(value.get(f))])

    return check


def string_list_fields(label: str, fields: Sequence[str]) -> Checker:
    """Every field must be present and be a list of strings."""

    def check(value: typing.Any) -> list[str]:  # noqa: ANN401
        if not isinstance(value, Mapping):
            return [f"{label} must be a valid JSON object"]
        errors = _missing_fields_message(label, [f for f in fields if f not in value or value[f] is None])
        for f in fields:
            item = value.get(f)
            if item is None:
                continue
            if not isinstance(item, list) or not all(isinstance(v, str) for v in item):
                errors.append(f"{label}.{f} must be an array of strings")
        return errors

    return check


def integer_value(label: str, bounds: tuple[int, int] = INTEGER_RANGE) -> Checker:
    """Value must be an int (bool excluded) within the column type's range."""
    low, high = bounds

    def check(value: typing.Any) -> list[str]:  # noqa: ANN401
        if isinstance(value, bool) or not isinstance(value, int):
            return [f"{label} must be an integer"]
        if not low <= value <= high:
            return [f"{label} must be between {low} and {high}"]
        return []

    return check


def email_format(value: typing.Any) -> list[str]:  # noqa: ANN401
    if not isinstance(value, str) or _EMAIL_RE.match(value) is None:
        return ["Invalid email format"]
    return []


def point_format(value: typing.Any) -> list[str]:  # noqa: ANN401
    return point_violations(value)


class DataControl:
    """Generic pre-save validator instantiated once per entity."""

    def __init__(self, table: TableDefinition, rules: Sequence[FieldRule]) -> None:
        """Initialize validator.

        Args:
            table: Table the rules apply to.
            rules: Rule table of the entity.

        Raises:
            ValueError: If a rule names a column the table does not have.
        """
        for rule in rules:
            table.column(rule.field)
        self._table = table
        self._rules = tuple(rules)

    @property
    def rules(self) -> tuple[FieldRule, ...]:
        return self._rules

    async def _exists_elsewhere(
        self,
        conn: Executor | Connection,
        column: str,
        value: typing.Any,  # noqa: ANN401
        self_id: int | None,
    ) -> bool:
        query = (
            f"SELECT EXISTS(SELECT 1 FROM {self._table.quoted} "
            f"WHERE {quote_ident(column)} = $1 AND ($2::integer IS NULL OR id <> $2::integer));"
        )
        return bool(await conn.fetchval(query, value, self_id))

    async def violations(
        self,
        conn: Executor | Connection,
        row: Mapping[str, typing.Any],
        *,
        self_id: int | None = None,
    ) -> tuple[list[str], list[str]]:
        """Collect every violated rule.

        Args:
            conn: Connection the uniqueness queries run on.
            row: Full row as it would be stored.
            self_id: Id of the row being updated, None on create.

        Returns:
            All violation messages, and the names of the colliding unique columns.
        """
        errors: list[str] = []
        rejected: set[str] = set()
        for rule in self._rules:
            messages = rule.evaluate(row.get(rule.field))
            if messages:
                rejected.add(rule.field)
                errors.extend(messages)

        conflicts: list[str] = []
        for rule in self._rules:
            value = row.get(rule.field)
            # A value that failed its own rule is never sent to the store.
            if not rule.unique or is_missing(value) or rule.field in rejected:
                continue
            if await self._exists_elsewhere(conn, rule.field, value, self_id):
                errors.append(f"{rule.label} already exists")
                conflicts.append(rule.field)
        return errors, conflicts

    async def enforce(
        self,
        conn: Executor | Connection,
        row: Mapping[str, typing.Any],
        *,
        self_id: int | None = None,
        extra: Sequence[str] = (),
    ) -> None:
        """Raise if the row violates any rule.

        Args:
            conn: Connection the uniqueness queries run on.
            row: Full row as it would be stored.
            self_id: Id of the row being updated, None on create.
            extra: Violations found by the caller, reported first.

        Raises:
            UniquenessConflictError: If a unique column collides (lists every violation).
            ValidationFailedError: If any other rule fails.
        """
        errors, conflicts = await self.violations(conn, row, self_id=self_id)
        errors = [*extra, *errors]
        if not errors:
            return
        log.debug("DataControl rejected %s row (id=%s): %s", self._table.name, self_id, errors)
        if conflicts:
            raise UniquenessConflictError(errors, conflicts, table=self._table.name, id=self_id)
        raise ValidationFailedError(errors, table=self._table.name, id=self_id)
