"""Base repository classes."""

from __future__ import annotations

import functools
import typing
from collections.abc import Awaitable, Callable, Mapping, Sequence
from logging import getLogger

from asyncpg import Connection
from asyncpg.exceptions import IntegrityConstraintViolationError, InterfaceError, PostgresError, UniqueViolationError

from ..errors import (
    PoolExhaustedError,
    TransactionStateError,
    UniquenessConflictError,
    extract_constraint_name,
)
from ..identifiers import IdentifierGenerator
from ..models import Page, PageQuery, Pagination
from ..schema import READ_ONLY_COLUMNS, TableDefinition, quote_ident
from ..transactions import ConnectionScope, Executor
from ..validation import DataControl, FieldRule, is_missing

log = getLogger(__name__)

__all__ = ("BaseRepository", "EntityRepository", "Row", "log_store_errors")

Row: typing.TypeAlias = dict[str, typing.Any]

INFRASTRUCTURE_ERRORS = (PostgresError, InterfaceError, OSError, PoolExhaustedError, TransactionStateError)


def log_store_errors(operation: str) -> Callable[..., typing.Any]:
    """Decorator logging infrastructure failures with operation, table and arguments.

    The error is re-raised unchanged.

    Args:
        operation: Operation name used in the log line.

    Returns:
        Decorator function wrapping async repository methods.
    """

    def decorator(func: Callable[..., Awaitable[typing.Any]]) -> Callable[..., Awaitable[typing.Any]]:
        @functools.wraps(func)
        async def wrapper(self: BaseRepository, *args: object, **kwargs: object) -> object:
            try:
                return await func(self, *args, **kwargs)
            except IntegrityConstraintViolationError as e:
                log.warning(
                    "Constraint violation in %s on %s - constraint: %s, args: %s",
                    operation,
                    self.entity_name,
                    extract_constraint_name(e),
                    args,
                    exc_info=e,
                )
                raise
            except INFRASTRUCTURE_ERRORS as e:
                log.error("Store failure in %s on %s, args: %s", operation, self.entity_name, args, exc_info=e)
                raise

        return wrapper

    return decorator


class BaseRepository:
    """Base class for all repositories.

    Repositories handle data access and return plain dicts. They accept an
    optional connection parameter for transaction participation.
    """

    entity_name: typing.ClassVar[str] = "store"

    def __init__(self, scope: ConnectionScope) -> None:
        """Initialize repository.

        Args:
            scope: Connection scope resolving explicit, ambient or pooled connections.
        """
        self._scope = scope

    def _get_connection(self, conn: Connection | None = None) -> Executor:
        """Get connection for query execution.

        Args:
            conn: Optional connection from transaction context.

        Returns:
            Connection if provided or a transaction is active, otherwise the pool.
        """
        return self._scope.resolve(conn)


def _escape_like(pattern: str) -> str:
    return pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _affected(status: str | None) -> int:
    return int(status.split()[-1]) if status else 0


def _qualified(column: str, alias: str) -> str:
    return f"{alias}.{quote_ident(column)}" if alias else quote_ident(column)


class EntityRepository(BaseRepository):
    """Uniform CRUD over one managed table.

    Subclasses declare the table, the DataControl rule table and, optionally,
    a column filled with a random code when absent.
    """

    table: typing.ClassVar[TableDefinition]
    rules: typing.ClassVar[tuple[FieldRule, ...]] = ()
    guid_length: typing.ClassVar[int] = 6
    generated_code: typing.ClassVar[str | None] = None
    code_length: typing.ClassVar[int] = 6

    def __init__(self, scope: ConnectionScope, identifiers: IdentifierGenerator, *, guid_retries: int = 2) -> None:
        """Initialize repository.

        Args:
            scope: Connection scope.
            identifiers: GUID and code generator.
            guid_retries: Extra attempts when a generated GUID loses a race.
        """
        super().__init__(scope)
        self._identifiers = identifiers
        self._guid_retries = guid_retries
        self._data_control = DataControl(self.table, self.rules)

    @property
    def entity_name(self) -> str:  # type: ignore[override]
        return self.table.name

    @property
    def data_control(self) -> DataControl:
        return self._data_control

    # ------------------------------------------------------------------
    # SQL helpers
    # ------------------------------------------------------------------

    def _live(self, alias: str = "") -> str:
        """Condition excluding soft-deleted rows, empty for hard-delete tables."""
        if not self.table.soft_delete:
            return ""
        prefix = f"{alias}." if alias else ""
        return f"{prefix}deleted = false"

    def _conditions(
        self,
        criteria: Mapping[str, typing.Any],
        start: int = 1,
        alias: str = "",
    ) -> tuple[list[str], list[object]]:
        """Equality conditions with positional parameters starting at ``$start``."""
        conditions: list[str] = []
        args: list[object] = []
        for column, value in criteria.items():
            self.table.column(column)
            quoted = _qualified(column, alias)
            if value is None:
                conditions.append(f"{quoted} IS NULL")
                continue
            args.append(list(value) if isinstance(value, (list, tuple, set)) else value)
            placeholder = f"${start + len(args) - 1}"
            if isinstance(value, (list, tuple, set)):
                conditions.append(f"{quoted} = ANY({placeholder})")
            else:
                conditions.append(f"{quoted} = {placeholder}")
        return conditions, args

    def _where_sql(self, conditions: Sequence[str], alias: str = "") -> str:
        parts = [c for c in (*conditions, self._live(alias)) if c]
        return f" WHERE {' AND '.join(parts)}" if parts else ""

    def _order_sql(self, order: Sequence[tuple[str, str]], alias: str = "") -> str:
        clauses = []
        columns = set()
        for column, direction in order:
            self.table.column(column)
            direction = direction.upper()
            if direction not in {"ASC", "DESC"}:
                raise ValueError(f"Invalid order direction '{direction}'")
            clauses.append(f"{_qualified(column, alias)} {direction}")
            columns.add(column)
        if "id" not in columns:
            clauses.append(f"{_qualified('id', alias)} ASC")
        return " ORDER BY " + ", ".join(clauses)

    def _writable(self, data: Mapping[str, typing.Any]) -> Row:
        """Drop store-managed columns and reject unknown ones."""
        row: Row = {}
        for column, value in data.items():
            self.table.column(column)
            if column not in READ_ONLY_COLUMNS:
                row[column] = value
        return row

    def normalize(self, row: Row) -> Row:
        """Entity-specific normalisation applied to incoming values before validation."""
        return row

    def check_row(self, row: Row) -> list[str]:
        """Cross-column violations of a full row, empty when valid."""
        return []

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @log_store_errors("find")
    async def find(self, id: int, *, conn: Connection | None = None) -> Row | None:
        """Fetch a row by id.

        Args:
            id: Row id.
            conn: Optional connection for transaction support.

        Returns:
            Row as dict, or None if missing or soft-deleted.
        """
        _conn = self._get_connection(conn)
        query = f"SELECT * FROM {self.table.quoted}{self._where_sql(['id = $1'])};"
        row = await _conn.fetchrow(query, id)
        return dict(row) if row else None

    async def find_by_guid(self, guid: int, *, conn: Connection | None = None) -> Row | None:
        """Fetch a row by GUID."""
        return await self.find_by_attribute("guid", guid, conn=conn)

    @log_store_errors("find_by_attribute")
    async def find_by_attribute(
        self,
        attribute: str,
        value: typing.Any,  # noqa: ANN401
        *,
        conn: Connection | None = None,
    ) -> Row | None:
        """Fetch the first row whose column equals a value.

        Args:
            attribute: Column name.
            value: Value to match, None matches NULL.
            conn: Optional connection for transaction support.

        Returns:
            Row as dict, or None if no row matched.
        """
        _conn = self._get_connection(conn)
        conditions, args = self._conditions({attribute: value})
        query = f"SELECT * FROM {self.table.quoted}{self._where_sql(conditions)} ORDER BY id ASC LIMIT 1;"
        row = await _conn.fetchrow(query, *args)
        return dict(row) if row else None

    @log_store_errors("find_by_string")
    async def find_by_string(
        self,
        attribute: str,
        pattern: str,
        *,
        case_sensitive: bool = True,
        conn: Connection | None = None,
    ) -> list[Row]:
        """Fetch rows whose column contains a substring.

        Args:
            attribute: Column name. Non-text columns are compared as text.
            pattern: Substring to look for; LIKE wildcards are matched literally.
            case_sensitive: Use LIKE, otherwise ILIKE.
            conn: Optional connection for transaction support.

        Returns:
            Matching rows ordered by id, possibly empty.
        """
        column = self.table.column(attribute)
        _conn = self._get_connection(conn)
        expression = quote_ident(attribute) if column.is_text else f"{quote_ident(attribute)}::text"
        operator = "LIKE" if case_sensitive else "ILIKE"
        condition = f"{expression} {operator} '%' || $1 || '%' ESCAPE '\\'"
        query = f"SELECT * FROM {self.table.quoted}{self._where_sql([condition])} ORDER BY id ASC;"
        rows = await _conn.fetch(query, _escape_like(pattern))
        return [dict(row) for row in rows]

    @log_store_errors("find_multiple")
    async def find_multiple(
        self,
        criteria: Mapping[str, typing.Any],
        operator: typing.Literal["AND", "OR"] = "AND",
        *,
        conn: Connection | None = None,
    ) -> list[Row]:
        """Fetch rows matching several equality criteria.

        Args:
            criteria: Column to value mapping.
            operator: Combine criteria with AND or OR.
            conn: Optional connection for transaction support.

        Returns:
            Matching rows ordered by id.
        """
        if operator not in {"AND", "OR"}:
            raise ValueError(f"Invalid operator '{operator}'")
        _conn = self._get_connection(conn)
        conditions, args = self._conditions(criteria)
        if operator == "OR" and conditions:
            conditions = ["(" + " OR ".join(conditions) + ")"]
        query = f"SELECT * FROM {self.table.quoted}{self._where_sql(conditions)} ORDER BY id ASC;"
        rows = await _conn.fetch(query, *args)
        return [dict(row) for row in rows]

    @log_store_errors("count")
    async def count(self, where: Mapping[str, typing.Any] | None = None, *, conn: Connection | None = None) -> int:
        """Count rows matching equality filters (soft-deleted rows excluded)."""
        _conn = self._get_connection(conn)
        conditions, args = self._conditions(where or {})
        query = f"SELECT count(*) FROM {self.table.quoted}{self._where_sql(conditions)};"
        return await _conn.fetchval(query, *args)

    @log_store_errors("find_all")
    async def find_all(self, query: PageQuery | None = None, *, conn: Connection | None = None) -> Page:
        """Fetch one page of rows.

        Args:
            query: Page, limit, filters and ordering. Defaults to page 1 of 10 by id.
            conn: Optional connection for transaction support.

        Returns:
            The page rows and pagination block, ``pages = ceil(total / limit)``.

        Raises:
            ValueError: If page or limit is below 1.
        """
        return await self._paginate(query or PageQuery(), f"SELECT * FROM {self.table.quoted}", conn=conn)

    async def _paginate(
        self,
        query: PageQuery,
        select: str,
        *,
        source: str | None = None,
        alias: str = "",
        conn: Connection | None = None,
    ) -> Page:
        """Count and fetch one page of ``select``, filtered and ordered on this table's columns.

        Args:
            query: Page, limit, filters and ordering.
            select: SELECT and FROM clauses without WHERE.
            source: FROM clause used for counting. Defaults to this table.
            alias: Alias of this table inside ``select``.
            conn: Optional connection for transaction support.
        """
        if query.page < 1 or query.limit < 1:
            raise ValueError("page and limit must be at least 1.")

        conditions, args = self._conditions(query.where, alias=alias)
        where = self._where_sql(conditions, alias=alias)
        order = self._order_sql(query.order, alias=alias)
        limit_index = len(args) + 1
        source = source or self.table.quoted
        async with self._scope.session(conn) as _conn:
            total = await _conn.fetchval(f"SELECT count(*) FROM {source}{where};", *args)
            rows = await _conn.fetch(
                f"{select}{where}{order} LIMIT ${limit_index} OFFSET ${limit_index + 1};",
                *args,
                query.limit,
                query.offset,
            )

        return Page(
            data=[dict(row) for row in rows],
            pagination=Pagination(
                page=query.page,
                limit=query.limit,
                total=total,
                pages=-(-total // query.limit),
            ),
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def _insert(self, conn: Connection, row: Row, *, generate_guid: bool) -> Row:
        candidate = dict(row)
        if generate_guid:
            candidate["guid"] = await self._identifiers.generate_guid(
                self.table.name, length=self.guid_length, conn=conn
            )
        if self.generated_code is not None and is_missing(candidate.get(self.generated_code)):
            candidate[self.generated_code] = await self._identifiers.generate_code(
                self.table.name, column=self.generated_code, length=self.code_length, conn=conn
            )

        await self._data_control.enforce(conn, candidate, extra=self.check_row(candidate))

        columns = list(candidate)
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))
        query = (
            f"INSERT INTO {self.table.quoted} ({', '.join(quote_ident(c) for c in columns)}) "
            f"VALUES ({placeholders}) RETURNING *;"
        )
        created = await conn.fetchrow(query, *candidate.values())
        return dict(created)

    @log_store_errors("create")
    async def create(self, data: Mapping[str, typing.Any], *, conn: Connection | None = None) -> Row:
        """Validate and insert a row.

        A GUID is generated when absent. If a generated GUID loses a race
        against a concurrent create, a fresh one is generated and the insert
        retried up to ``guid_retries`` times. Store-level collisions are only
        retried when the call owns its connection, since they abort an
        enclosing transaction.

        Args:
            data: Column values. Store-managed columns are ignored.
            conn: Optional connection for transaction support.

        Returns:
            The persisted row, generated columns included.

        Raises:
            ValidationFailedError: If DataControl rejects the row.
            UniquenessConflictError: If a unique column collides.
        """
        row = self.normalize(self._writable(data))
        generated = is_missing(row.get("guid"))
        owns_connection = conn is None and not self._scope.in_transaction
        attempts = self._guid_retries + 1 if generated else 1

        # Every attempt but the last may retry; the last one propagates.
        for attempt in range(1, attempts):
            try:
                async with self._scope.session(conn) as _conn:
                    return await self._insert(_conn, row, generate_guid=generated)
            except UniquenessConflictError as e:
                if e.fields != ["guid"]:
                    raise
                log.warning("Generated GUID collided on %s, retrying (%s/%s)", self.table.name, attempt, attempts)
            except UniqueViolationError as e:
                if not owns_connection or extract_constraint_name(e) != self.table.unique_constraint("guid"):
                    raise
                log.warning(
                    "Generated GUID lost insert race on %s, retrying (%s/%s)", self.table.name, attempt, attempts
                )
        async with self._scope.session(conn) as _conn:
            return await self._insert(_conn, row, generate_guid=generated)

    async def bulk_create(
        self, items: Sequence[Mapping[str, typing.Any]], *, conn: Connection | None = None
    ) -> list[Row]:
        """Create several rows atomically.

        Joins the caller's connection or ambient transaction when there is
        one, otherwise runs in a new transaction.

        Args:
            items: Rows to create.
            conn: Optional connection for transaction support.

        Returns:
            The persisted rows, in input order.
        """

        async def _create_all(_conn: Connection) -> list[Row]:
            return [await self.create(item, conn=_conn) for item in items]

        if conn is not None or self._scope.in_transaction:
            async with self._scope.session(conn) as _conn:
                return await _create_all(_conn)
        return await self._scope.transactions.run_in_transaction(_create_all)

    @log_store_errors("update")
    async def update(self, id: int, data: Mapping[str, typing.Any], *, conn: Connection | None = None) -> Row | None:
        """Validate the merged row and update the changed columns.

        Args:
            id: Row id.
            data: Changed column values. Store-managed columns are ignored.
            conn: Optional connection for transaction support.

        Returns:
            The refreshed row, or None if no (live) row has this id.

        Raises:
            ValidationFailedError: If DataControl rejects the merged row or the GUID changes.
            UniquenessConflictError: If a unique column collides.
        """
        changes = self.normalize(self._writable(data))
        async with self._scope.session(conn) as _conn:
            existing = await self.find(id, conn=_conn)
            if existing is None:
                return None

            extra = []
            if "guid" in changes and changes["guid"] != existing["guid"]:
                extra.append("GUID cannot be changed")
            merged = {**existing, **changes}
            extra.extend(self.check_row(merged))
            await self._data_control.enforce(_conn, merged, self_id=id, extra=extra)
            if not changes:
                return existing

            assignments = [f"{quote_ident(column)} = ${i}" for i, column in enumerate(changes, start=1)]
            assignments.append("updated = now()")
            id_index = len(changes) + 1
            query = (
                f"UPDATE {self.table.quoted} SET {', '.join(assignments)}"
                f"{self._where_sql([f'id = ${id_index}'])} RETURNING *;"
            )
            row = await _conn.fetchrow(query, *changes.values(), id)
        return dict(row) if row else None

    @log_store_errors("soft_delete")
    async def soft_delete(self, id: int, *, conn: Connection | None = None) -> bool:
        """Mark a row deleted and inactive, stamping the deletion time.

        Args:
            id: Row id.
            conn: Optional connection for transaction support.

        Returns:
            True if a live row was marked, False if none matched (already deleted included).

        Raises:
            TypeError: If the entity does not support soft delete.
        """
        if not self.table.soft_delete:
            raise TypeError(f"{self.table.name} does not support soft delete")
        _conn = self._get_connection(conn)
        query = f"""
            UPDATE {self.table.quoted}
            SET deleted = true, active = false, deleted_at = now(), updated = now()
            WHERE id = $1 AND deleted = false;
        """
        return _affected(await _conn.execute(query, id)) > 0

    @log_store_errors("delete")
    async def delete(self, id: int, *, conn: Connection | None = None) -> bool:
        """Remove a row. Soft-deletable entities are soft-deleted instead.

        Args:
            id: Row id.
            conn: Optional connection for transaction support.

        Returns:
            True if a row was affected.
        """
        if self.table.soft_delete:
            return await self.soft_delete(id, conn=conn)
        _conn = self._get_connection(conn)
        query = f"DELETE FROM {self.table.quoted} WHERE id = $1;"
        return _affected(await _conn.execute(query, id)) > 0

