"""Repository for subscription formulas data access."""

from __future__ import annotations

from ..schema import Column, TableDefinition
from ..validation import FieldRule, integer_value
from .base import EntityRepository, Row


def _non_negative_amount(value: object) -> list[str]:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return ["Amount must be a non-negative integer"]
    return []


FORMULA_TABLE = TableDefinition(
    "formula",
    [
        Column(name="guid", sql_type="integer", nullable=False, unique=True),
        Column(name="name", sql_type="varchar(128)", nullable=False, unique=True),
        Column(name="code", sql_type="varchar(128)", nullable=False, unique=True),
        Column(name="amount", sql_type="integer"),
        Column(name="description", sql_type="varchar(128)"),
    ],
)


class FormulasRepository(EntityRepository):
    """Repository for subscription formulas data access."""

    table = FORMULA_TABLE
    generated_code = "code"
    rules = (
        FieldRule(field="guid", label="GUID", required=True, unique=True, check=integer_value("GUID")),
        FieldRule(field="name", label="Name", required=True, max_length=128, unique=True),
        FieldRule(field="code", label="Code", required=True, max_length=128, unique=True),
        FieldRule(field="amount", label="Amount", check=_non_negative_amount),
        FieldRule(field="description", label="Description", max_length=128),
    )

    def normalize(self, row: Row) -> Row:
        for column in ("name", "code"):
            if isinstance(row.get(column), str):
                row[column] = row[column].strip()
        return row
