"""Repository for lexicon entries (translated UI labels)."""

from __future__ import annotations

import re
import typing
from collections.abc import Mapping

from asyncpg import Connection

from ..schema import Column, TableDefinition
from ..validation import FieldRule, integer_value, is_missing
from .base import EntityRepository, Row

REFERENCE_SOURCE_LENGTH = 50

LEXICON_TABLE = TableDefinition(
    "lexicon",
    [
        Column(name="guid", sql_type="integer", nullable=False, unique=True),
        Column(name="portable", sql_type="boolean", default="false"),
        Column(name="reference", sql_type="varchar(128)", nullable=False, unique=True),
        Column(name="english", sql_type="text", nullable=False),
        Column(name="french", sql_type="text", nullable=False),
    ],
)

_SEPARATORS_RE = re.compile(r"[^a-zA-Z0-9']+")


def to_open_camel_case(text: str) -> str:
    """``"Sign in to your account"`` -> ``"signInToYourAccount"``."""
    words = _SEPARATORS_RE.sub(" ", text).strip().replace("'", "").lower().split()
    return "".join(w if i == 0 else w[:1].upper() + w[1:] for i, w in enumerate(words))


def _portable_flag(value: typing.Any) -> list[str]:  # noqa: ANN401
    if not isinstance(value, bool):
        return ["Portable must be a boolean"]
    return []


class LexiconsRepository(EntityRepository):
    """Repository for lexicon entries.

    References are open camel case keys. A reference is derived from the
    English label when an entry is created without one.
    """

    table = LEXICON_TABLE
    rules = (
        FieldRule(field="guid", label="GUID", required=True, unique=True, check=integer_value("GUID")),
        FieldRule(field="portable", label="Portable", check=_portable_flag),
        FieldRule(
            field="reference",
            label="Reference",
            required=True,
            max_length=128,
            unique=True,
            pattern=r"[a-z0-9][A-Za-z0-9]*",
            pattern_message="Reference must be an open camel case key",
        ),
        FieldRule(field="english", label="English", required=True),
        FieldRule(field="french", label="French", required=True),
    )

    def normalize(self, row: Row) -> Row:
        for column in ("english", "french"):
            if isinstance(row.get(column), str):
                row[column] = row[column].strip()
        if isinstance(row.get("reference"), str):
            row["reference"] = to_open_camel_case(row["reference"])
        return row

    async def create(self, data: Mapping[str, typing.Any], *, conn: Connection | None = None) -> Row:
        """Create an entry, deriving ``reference`` from ``english`` when absent."""
        english = data.get("english")
        if is_missing(data.get("reference")) and isinstance(english, str):
            data = {**data, "reference": to_open_camel_case(english.strip()[:REFERENCE_SOURCE_LENGTH])}
        return await super().create(data, conn=conn)

    async def find_by_portable(self, portable: bool = False, *, conn: Connection | None = None) -> list[Row]:
        """Entries whose ``portable`` flag equals ``portable``, ordered by id."""
        return await self.find_multiple({"portable": portable}, conn=conn)
