"""Repository for subscriptions data access."""

from __future__ import annotations

import datetime as dt

from ..schema import Column, TableDefinition, table_name
from ..validation import FieldRule, integer_value
from .base import EntityRepository, Row

SUBSCRIPTION_TABLE = TableDefinition(
    "subscription",
    [
        Column(name="guid", sql_type="integer", nullable=False, unique=True),
        Column(name="token", sql_type="varchar(255)", unique=True),
        Column(name="duration", sql_type="integer"),
        Column(name="formula", sql_type="integer", nullable=False, references=table_name("formula")),
        Column(name="amount", sql_type="integer"),
        Column(name="account", sql_type="integer", nullable=False, references=table_name("account")),
        Column(name="date_start", sql_type="date", nullable=False, default="CURRENT_DATE"),
        Column(name="date_end", sql_type="date"),
        Column(name="active", sql_type="boolean", nullable=False, default="false"),
        Column(name="is_granted_access", sql_type="boolean", nullable=False, default="false"),
    ],
)


def _as_date(value: object) -> object:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, str):
        try:
            return dt.date.fromisoformat(value.strip()[:10])
        except ValueError:
            return value
    return value


def _date_format(value: object) -> list[str]:
    if not isinstance(value, dt.date):
        return ["Dates must be ISO formatted (YYYY-MM-DD)"]
    return []


class SubscriptionsRepository(EntityRepository):
    """Repository for subscriptions data access."""

    table = SUBSCRIPTION_TABLE
    rules = (
        FieldRule(field="guid", label="GUID", required=True, unique=True, check=integer_value("GUID")),
        FieldRule(field="token", label="Token", max_length=255, unique=True),
        FieldRule(field="duration", label="Duration", check=integer_value("Duration")),
        FieldRule(field="formula", label="Formula", required=True, check=integer_value("Formula")),
        FieldRule(field="account", label="Account", required=True, check=integer_value("Account")),
        FieldRule(field="amount", label="Amount", check=integer_value("Amount")),
        FieldRule(field="date_start", label="Start date", check=_date_format),
        FieldRule(field="date_end", label="End date", check=_date_format),
    )

    def normalize(self, row: Row) -> Row:
        for column in ("date_start", "date_end"):
            if column in row:
                row[column] = _as_date(row[column])
        return row

    def check_row(self, row: Row) -> list[str]:
        start, end = row.get("date_start"), row.get("date_end")
        if isinstance(start, dt.date) and isinstance(end, dt.date) and end < start:
            return ["End date must be on or after start date"]
        return []
