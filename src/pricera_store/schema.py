"""Table definitions and schema synchronisation.

Every managed table is named ``pca_<entity>``, has a serial ``id`` primary key
and ``created``/``updated`` timestamps filled by the store. Soft-deletable
tables also carry ``active``, ``deleted`` and ``deleted_at``.
"""

from __future__ import annotations

import typing
from collections.abc import Sequence
from logging import getLogger

import msgspec

if typing.TYPE_CHECKING:
    from .database import ConnectionPool

log = getLogger(__name__)

__all__ = (
    "READ_ONLY_COLUMNS",
    "TABLE_PREFIX",
    "Column",
    "Index",
    "TableDefinition",
    "quote_ident",
    "synchronize_schema",
    "table_name",
)

TABLE_PREFIX = "pca"

READ_ONLY_COLUMNS = frozenset({"id", "created", "updated", "deleted", "deleted_at"})


def table_name(entity: str) -> str:
    """Prefixed table name for an entity."""
    return f"{TABLE_PREFIX}_{entity}"


def quote_ident(name: str) -> str:
    """Quote a SQL identifier."""
    return '"' + name.replace('"', '""') + '"'


class Column(msgspec.Struct, frozen=True, kw_only=True):
    """One column of a managed table.

    Attributes:
        name: Column name.
        sql_type: PostgreSQL type.
        nullable: Whether NULL is allowed.
        unique: Whether a unique constraint is declared.
        default: SQL default expression.
        references: Referenced table name; the key is always ``id``.
    """

    name: str
    sql_type: str
    nullable: bool = True
    unique: bool = False
    default: str | None = None
    references: str | None = None

    @property
    def is_text(self) -> bool:
        return self.sql_type.lower().startswith(("text", "varchar", "character"))

    @property
    def is_json(self) -> bool:
        return self.sql_type.lower() in {"json", "jsonb"}

    def ddl(self, *, alter: bool = False) -> str:
        """Column definition. When altering, NOT NULL is kept only if a default fills existing rows."""
        parts = [quote_ident(self.name), self.sql_type]
        if not self.nullable and (not alter or self.default is not None):
            parts.append("NOT NULL")
        if self.default is not None:
            parts.append(f"DEFAULT {self.default}")
        if self.references is not None:
            parts.append(f"REFERENCES {quote_ident(self.references)} (id)")
        return " ".join(parts)


class Index(msgspec.Struct, frozen=True):
    """Secondary index, ``expression`` is inserted as-is (e.g. ``(address->>'city')``)."""

    name: str
    expression: str
    method: str = "BTREE"


_ID = Column(name="id", sql_type="serial", nullable=False)
_CREATED = Column(name="created", sql_type="timestamptz", nullable=False, default="now()")
_UPDATED = Column(name="updated", sql_type="timestamptz", nullable=False, default="now()")
_SOFT_DELETE = (
    Column(name="active", sql_type="boolean", nullable=False, default="false"),
    Column(name="deleted", sql_type="boolean", nullable=False, default="false"),
    Column(name="deleted_at", sql_type="timestamptz"),
)


class TableDefinition:
    """Columns and DDL of one managed table."""

    def __init__(
        self,
        entity: str,
        columns: Sequence[Column],
        *,
        soft_delete: bool = False,
        indexes: Sequence[Index] = (),
    ) -> None:
        """Initialize table definition.

        Args:
            entity: Entity name; the table is ``pca_<entity>``.
            columns: Business columns, ``guid`` included.
            soft_delete: Add the soft delete columns.
            indexes: Secondary indexes.
        """
        self.entity = entity
        self.name = table_name(entity)
        self.soft_delete = soft_delete
        self.indexes = tuple(indexes)
        extra = _SOFT_DELETE if soft_delete else ()
        self.columns: tuple[Column, ...] = (_ID, *columns, *extra, _CREATED, _UPDATED)
        self._by_name = {c.name: c for c in self.columns}

    def __repr__(self) -> str:
        return f"TableDefinition({self.name!r})"

    @property
    def quoted(self) -> str:
        return quote_ident(self.name)

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(c.name for c in self.columns)

    @property
    def writable_columns(self) -> tuple[str, ...]:
        return tuple(c.name for c in self.columns if c.name not in READ_ONLY_COLUMNS)

    @property
    def references(self) -> set[str]:
        return {c.references for c in self.columns if c.references is not None}

    def has_column(self, name: str) -> bool:
        return name in self._by_name

    def column(self, name: str) -> Column:
        """Look up a column.

        Raises:
            ValueError: If the table has no such column.
        """
        try:
            return self._by_name[name]
        except KeyError:
            raise ValueError(f"Unknown column '{name}' for table '{self.name}'") from None

    def unique_constraint(self, column: str) -> str:
        """Name of the unique constraint declared on ``column``."""
        return f"{self.name}_{column}_key"

    def create_sql(self) -> str:
        lines = [f"    {c.ddl()}" for c in self.columns]
        lines.append(f"    CONSTRAINT {quote_ident(self.name + '_pkey')} PRIMARY KEY (id)")
        lines.extend(
            f"    CONSTRAINT {quote_ident(self.unique_constraint(c.name))} UNIQUE ({quote_ident(c.name)})"
            for c in self.columns
            if c.unique
        )
        body = ",\n".join(lines)
        return f"CREATE TABLE IF NOT EXISTS {self.quoted} (\n{body}\n);"

    def alter_sql(self) -> list[str]:
        """Statements adding any missing column, never dropping or retyping."""
        return [
            f"ALTER TABLE {self.quoted} ADD COLUMN IF NOT EXISTS {c.ddl(alter=True)};"
            for c in self.columns
            if c.name != "id"
        ]

    def constraint_sql(self) -> list[str]:
        """Statements adding any missing named unique constraint.

        Fails when the existing rows already hold duplicates in that column.
        """
        statements = []
        for c in self.columns:
            if not c.unique:
                continue
            constraint = self.unique_constraint(c.name)
            statements.append(
                "DO $$ BEGIN "
                f"IF NOT EXISTS (SELECT 1 FROM pg_constraint WHERE conname = '{constraint}' "
                f"AND conrelid = '{self.quoted}'::regclass) THEN "
                f"ALTER TABLE {self.quoted} ADD CONSTRAINT {quote_ident(constraint)} UNIQUE ({quote_ident(c.name)}); "
                "END IF; END $$;"
            )
        return statements

    def index_sql(self) -> list[str]:
        return [
            f"CREATE INDEX IF NOT EXISTS {quote_ident(i.name)} ON {self.quoted} USING {i.method} ({i.expression});"
            for i in self.indexes
        ]

    def drop_sql(self) -> str:
        return f"DROP TABLE IF EXISTS {self.quoted} CASCADE;"


def _dependency_order(tables: Sequence[TableDefinition]) -> list[TableDefinition]:
    """Order tables so referenced tables come first."""
    by_name = {t.name: t for t in tables}
    ordered: list[TableDefinition] = []
    seen: set[str] = set()

    def visit(table: TableDefinition) -> None:
        if table.name in seen:
            return
        seen.add(table.name)
        for ref in sorted(table.references):
            if ref in by_name:
                visit(by_name[ref])
        ordered.append(table)

    for table in tables:
        visit(table)
    return ordered


async def synchronize_schema(
    pool: ConnectionPool,
    tables: Sequence[TableDefinition],
    *,
    force: bool = False,
) -> None:
    """Create or update the managed tables in one transaction.

    Args:
        pool: Connection pool.
        tables: Tables to synchronise.
        force: Drop every table first (destructive). Otherwise only missing
            tables, columns, unique constraints and indexes are added.
    """
    ordered = _dependency_order(tables)
    async with pool.connection() as conn, conn.transaction():
        if force:
            for table in reversed(ordered):
                await conn.execute(table.drop_sql())
                log.warning("Dropped table %s", table.name)
        for table in ordered:
            await conn.execute(table.create_sql())
            if not force:
                for statement in [*table.alter_sql(), *table.constraint_sql()]:
                    await conn.execute(statement)
            for statement in table.index_sql():
                await conn.execute(statement)
            log.info("Table %s synchronised", table.name)
