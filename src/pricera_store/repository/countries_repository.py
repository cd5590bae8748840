"""Repository for countries data access."""

from __future__ import annotations

from ..schema import Column, TableDefinition
from ..validation import SMALLINT_RANGE, FieldRule, integer_value
from .base import EntityRepository, Row

COUNTRY_TABLE = TableDefinition(
    "country",
    [
        Column(name="guid", sql_type="integer", nullable=False, unique=True),
        Column(name="alpha2", sql_type="varchar(128)", nullable=False, unique=True),
        Column(name="alpha3", sql_type="varchar(128)", nullable=False, unique=True),
        Column(name="dialcode", sql_type="smallint", nullable=False),
        Column(name="fr", sql_type="varchar(128)", nullable=False),
        Column(name="en", sql_type="varchar(128)", nullable=False),
    ],
)


class CountriesRepository(EntityRepository):
    """Repository for countries data access.

    Alpha codes are stored upper-cased.
    """

    table = COUNTRY_TABLE
    rules = (
        FieldRule(field="guid", label="GUID", required=True, unique=True, check=integer_value("GUID")),
        FieldRule(
            field="alpha2",
            label="Alpha2",
            required=True,
            unique=True,
            pattern=r"[A-Z]{2}",
            pattern_message="Code alpha2 must be 2 letters",
        ),
        FieldRule(
            field="alpha3",
            label="Alpha3",
            required=True,
            unique=True,
            pattern=r"[A-Z]{3}",
            pattern_message="Code alpha3 must be 3 letters",
        ),
        FieldRule(field="dialcode", label="Dialcode", required=True, check=integer_value("Dialcode", SMALLINT_RANGE)),
        FieldRule(field="fr", label="French name", required=True, max_length=128),
        FieldRule(field="en", label="English name", required=True, max_length=128),
    )

    def normalize(self, row: Row) -> Row:
        for column in ("alpha2", "alpha3"):
            if isinstance(row.get(column), str):
                row[column] = row[column].strip().upper()
        for column in ("fr", "en"):
            if isinstance(row.get(column), str):
                row[column] = row[column].strip()
        dialcode = row.get("dialcode")
        if isinstance(dialcode, str) and dialcode.strip().lstrip("+").isdigit():
            row["dialcode"] = int(dialcode.strip().lstrip("+"))
        return row
