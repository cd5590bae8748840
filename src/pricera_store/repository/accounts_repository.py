"""Repository for accounts data access."""

from __future__ import annotations

from asyncpg import Connection

from ..schema import Column, TableDefinition, table_name
from ..validation import FieldRule, integer_value
from .base import EntityRepository, Row, log_store_errors

ACCOUNT_TABLE = TableDefinition(
    "account",
    [
        Column(name="guid", sql_type="integer", nullable=False, unique=True),
        Column(name="code", sql_type="varchar(128)", nullable=False, unique=True),
        Column(name="company", sql_type="integer", nullable=False, references=table_name("company")),
        Column(name="blocked", sql_type="boolean", nullable=False, default="false"),
        Column(name="last_login", sql_type="timestamptz"),
    ],
    soft_delete=True,
)


class AccountsRepository(EntityRepository):
    """Repository for accounts data access.

    Accounts are soft-deleted and get a random ``code`` when created without one.
    """

    table = ACCOUNT_TABLE
    generated_code = "code"
    rules = (
        FieldRule(field="guid", label="GUID", required=True, unique=True, check=integer_value("GUID")),
        FieldRule(field="code", label="Code", required=True, max_length=128, unique=True),
        FieldRule(field="company", label="Company", required=True, check=integer_value("Company")),
    )

    def normalize(self, row: Row) -> Row:
        if isinstance(row.get("code"), str):
            row["code"] = row["code"].strip()
        return row

    @log_store_errors("record_login")
    async def record_login(self, id: int, *, conn: Connection | None = None) -> Row | None:
        """Stamp the last login time of a live account.

        Args:
            id: Account id.
            conn: Optional connection for transaction support.

        Returns:
            The refreshed account, or None if missing or deleted.
        """
        _conn = self._get_connection(conn)
        query = f"""
            UPDATE {self.table.quoted}
            SET last_login = now(), updated = now()
            WHERE id = $1 AND deleted = false
            RETURNING *;
        """
        row = await _conn.fetchrow(query, id)
        return dict(row) if row else None
