"""Repository for users data access."""

from __future__ import annotations

from asyncpg import Connection

from ..models import Page, PageQuery
from ..schema import Column, TableDefinition, table_name
from ..validation import BIGINT_RANGE, FieldRule, email_format, integer_value
from .base import EntityRepository, Row, log_store_errors
from .accounts_repository import ACCOUNT_TABLE
from .profils_repository import PROFIL_TABLE

USER_TABLE = TableDefinition(
    "user",
    [
        Column(name="guid", sql_type="integer", nullable=False, unique=True),
        Column(name="name", sql_type="varchar(255)", nullable=False),
        Column(name="profil", sql_type="integer", nullable=False, references=table_name("profil")),
        Column(name="account", sql_type="integer", nullable=False, references=table_name("account")),
        Column(name="mobile", sql_type="bigint", nullable=False, unique=True),
        Column(name="email", sql_type="varchar(255)", nullable=False, unique=True),
    ],
)


class UsersRepository(EntityRepository):
    """Repository for users data access."""

    table = USER_TABLE
    rules = (
        FieldRule(field="guid", label="GUID", required=True, unique=True, check=integer_value("GUID")),
        FieldRule(field="name", label="Name", required=True, max_length=255),
        FieldRule(field="profil", label="Profil", required=True, check=integer_value("Profil")),
        FieldRule(field="account", label="Account", required=True, check=integer_value("Account")),
        FieldRule(
            field="mobile", label="Mobile", required=True, unique=True, check=integer_value("Mobile", BIGINT_RANGE)
        ),
        FieldRule(field="email", label="Email", required=True, max_length=255, unique=True, check=email_format),
    )

    def normalize(self, row: Row) -> Row:
        if isinstance(row.get("email"), str):
            row["email"] = row["email"].strip().lower()
        if isinstance(row.get("name"), str):
            row["name"] = row["name"].strip()
        mobile = row.get("mobile")
        if isinstance(mobile, str) and mobile.strip().lstrip("+").isdigit():
            row["mobile"] = int(mobile.strip().lstrip("+"))
        return row

    @log_store_errors("find_all_with_account")
    async def find_all_with_account(self, query: PageQuery | None = None, *, conn: Connection | None = None) -> Page:
        """Fetch one page of users joined with their account and profil.

        Users whose account is missing or soft-deleted are left out.

        Args:
            query: Page, limit, filters and ordering on user columns.
            conn: Optional connection for transaction support.

        Returns:
            Page of users, each with nested ``account_data`` and ``profil_data`` dicts.
        """
        source = f"""{self.table.quoted} u
            JOIN {ACCOUNT_TABLE.quoted} a ON a.id = u.account AND a.deleted = false
            JOIN {PROFIL_TABLE.quoted} p ON p.id = u.profil"""
        select = f"SELECT u.*, to_jsonb(a) AS account_data, to_jsonb(p) AS profil_data FROM {source}"
        return await self._paginate(query or PageQuery(), select, source=source, alias="u", conn=conn)
