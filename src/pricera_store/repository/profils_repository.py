"""Repository for profils data access."""

from __future__ import annotations

from ..schema import Column, TableDefinition
from ..validation import FieldRule, integer_value
from .base import EntityRepository, Row

PROFIL_TABLE = TableDefinition(
    "profil",
    [
        Column(name="guid", sql_type="integer", nullable=False, unique=True),
        Column(name="name", sql_type="varchar(128)", nullable=False, unique=True),
        Column(name="reference", sql_type="varchar(255)", nullable=False, unique=True),
        Column(name="description", sql_type="varchar(255)"),
    ],
)


class ProfilsRepository(EntityRepository):
    """Repository for profils data access."""

    table = PROFIL_TABLE
    rules = (
        FieldRule(field="guid", label="GUID", required=True, unique=True, check=integer_value("GUID")),
        FieldRule(field="name", label="Name", required=True, max_length=128, unique=True),
        FieldRule(
            field="reference",
            label="Reference",
            required=True,
            unique=True,
            pattern=r"[A-Za-z0-9_-]+",
            pattern_message="Reference must contain only alphanumeric characters, underscores, and hyphens",
        ),
        FieldRule(field="description", label="Description", max_length=255),
    )

    def normalize(self, row: Row) -> Row:
        for column in ("name", "reference"):
            if isinstance(row.get(column), str):
                row[column] = row[column].strip()
        return row
