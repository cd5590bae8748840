"""Repository for products data access."""

from __future__ import annotations

import typing
from collections.abc import Mapping

from ..schema import Column, Index, TableDefinition
from ..validation import FieldRule, integer_value, string_list_fields
from .base import EntityRepository, Row

TAXONOMY_FIELDS = ("domain", "tag", "merchant")

PRODUCT_TABLE = TableDefinition(
    "product",
    [
        Column(name="guid", sql_type="integer", nullable=False, unique=True),
        Column(name="common_name", sql_type="varchar(128)", nullable=False, unique=True),
        Column(name="local_name", sql_type="varchar(128)", nullable=False),
        Column(name="bare_code", sql_type="varchar(128)", unique=True),
        Column(name="taxonomy", sql_type="jsonb", nullable=False),
        Column(name="survey", sql_type="jsonb", nullable=False),
    ],
    indexes=[Index("pca_product_taxonomy_gin_idx", "taxonomy", method="GIN")],
)


def survey_shape(value: typing.Any) -> list[str]:  # noqa: ANN401
    """Violations of a survey object ``{date, contain: {account, price, note, merchant, geolocation}}``."""
    if not isinstance(value, Mapping):
        return ["Survey must be a valid JSON object"]

    errors = []
    date = value.get("date")
    if date is None or date == "":
        errors.append("Survey is missing required field: date")
    elif isinstance(date, bool) or not isinstance(date, (str, int, float)):
        errors.append("Survey.date must be a valid date/timestamp")

    contain = value.get("contain")
    if not isinstance(contain, Mapping):
        errors.append("Survey.contain must be a valid object")
        return errors

    account = contain.get("account")
    if account is not None and (isinstance(account, bool) or not isinstance(account, int) or account <= 0):
        errors.append("Survey.contain.account must be a positive integer (account ID)")
    price = contain.get("price")
    if price is not None and (isinstance(price, bool) or not isinstance(price, int)):
        errors.append("Survey.contain.price must be an integer")
    if contain.get("note") is not None and not isinstance(contain["note"], str):
        errors.append("Survey.contain.note must be a string")
    merchant = contain.get("merchant")
    if merchant is not None and (not isinstance(merchant, list) or not all(isinstance(m, str) for m in merchant)):
        errors.append("Survey.contain.merchant must be an array of strings")
    if contain.get("geolocation") is not None and not isinstance(contain["geolocation"], str):
        errors.append("Survey.contain.geolocation must be a string")
    return errors


class ProductsRepository(EntityRepository):
    """Repository for products data access."""

    table = PRODUCT_TABLE
    rules = (
        FieldRule(field="guid", label="GUID", required=True, unique=True, check=integer_value("GUID")),
        FieldRule(field="common_name", label="Common name", required=True, max_length=128, unique=True),
        FieldRule(field="local_name", label="Local name", required=True, max_length=128),
        FieldRule(field="bare_code", label="Bare code", max_length=128, unique=True),
        FieldRule(
            field="taxonomy",
            label="Taxonomy",
            required=True,
            check=string_list_fields("Taxonomy", TAXONOMY_FIELDS),
        ),
        FieldRule(field="survey", label="Survey", required=True, check=survey_shape),
    )

    def normalize(self, row: Row) -> Row:
        for column in ("common_name", "local_name", "bare_code"):
            if isinstance(row.get(column), str):
                row[column] = row[column].strip()
        if row.get("bare_code") == "":
            row["bare_code"] = None
        return row
