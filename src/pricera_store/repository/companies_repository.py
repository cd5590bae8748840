"""Repository for companies data access.

Companies carry a WKT ``point`` plus ``address`` and ``metadata`` JSON
objects. Radius and nearest lookups compute the haversine distance in-store.
"""

from __future__ import annotations

from asyncpg import Connection

from ..geo import GeoPoint, coerce_point, distance_sql, point_violations, read_point
from ..schema import Column, Index, TableDefinition, table_name
from ..validation import (
    FieldRule,
    integer_value,
    json_object_fields,
    point_format,
    string_or_string_list_fields,
)
from .base import EntityRepository, Row, log_store_errors

ADDRESS_FIELDS = ("city", "location", "district")
METADATA_FIELDS = ("domaine", "sector", "speciality")

COMPANY_TABLE = TableDefinition(
    "company",
    [
        Column(name="guid", sql_type="integer", nullable=False, unique=True),
        Column(name="name", sql_type="varchar(128)", nullable=False),
        Column(name="point", sql_type="text", nullable=False),
        Column(name="code", sql_type="varchar(128)", unique=True),
        Column(name="country", sql_type="integer", nullable=False, references=table_name("country")),
        Column(name="address", sql_type="jsonb", nullable=False),
        Column(name="metadata", sql_type="jsonb", nullable=False),
    ],
    indexes=[
        Index("pca_company_point_idx", "point"),
        Index("pca_company_address_city_idx", "(address->>'city')"),
        Index("pca_company_metadata_domaine_idx", "(metadata->>'domaine')"),
        Index("pca_company_metadata_sector_idx", "(metadata->>'sector')"),
        Index("pca_company_address_gin_idx", "address", method="GIN"),
        Index("pca_company_metadata_gin_idx", "metadata", method="GIN"),
    ],
)


def _strip_values(value: object) -> object:
    if not isinstance(value, dict):
        return value
    return {k: v.strip() if isinstance(v, str) else v for k, v in value.items()}


class CompaniesRepository(EntityRepository):
    """Repository for companies data access."""

    table = COMPANY_TABLE
    rules = (
        FieldRule(field="guid", label="GUID", required=True, unique=True, check=integer_value("GUID")),
        FieldRule(field="name", label="Name", required=True, max_length=128),
        FieldRule(field="point", label="Point", required=True, check=point_format),
        FieldRule(field="code", label="Code", max_length=128, unique=True),
        FieldRule(field="country", label="Country", required=True, check=integer_value("Country")),
        FieldRule(field="address", label="Address", required=True, check=json_object_fields("Address", ADDRESS_FIELDS)),
        FieldRule(
            field="metadata",
            label="Metadata",
            required=True,
            check=string_or_string_list_fields("Metadata", METADATA_FIELDS),
        ),
    )

    def normalize(self, row: Row) -> Row:
        # Invalid points are kept as given so DataControl reports them.
        if row.get("point") is not None and not point_violations(row["point"]):
            row["point"] = coerce_point(row["point"])
        if isinstance(row.get("code"), str):
            row["code"] = row["code"].strip() or None
        for column in ("address", "metadata"):
            if column in row:
                row[column] = _strip_values(row[column])
        return row

    def _distance_cte(self) -> str:
        distance = distance_sql("point", "$1", "$2")
        return f"WITH located AS (SELECT *, {distance} AS distance FROM {self.table.quoted})"

    @log_store_errors("find_by_radius")
    async def find_by_radius(
        self,
        center: GeoPoint | str | tuple[float, float],
        radius_km: float,
        *,
        conn: Connection | None = None,
    ) -> list[Row]:
        """Fetch companies at most ``radius_km`` from a center point.

        Args:
            center: Center point, any representation accepted by ``read_point``.
            radius_km: Inclusive radius in kilometers.
            conn: Optional connection for transaction support.

        Returns:
            Matching companies nearest first, each with a ``distance`` key (km).

        Raises:
            InvalidPointError: If the center is not a valid point.
            ValueError: If the radius is negative.
        """
        if radius_km < 0:
            raise ValueError("radius_km cannot be negative.")
        point = read_point(center)
        _conn = self._get_connection(conn)
        query = f"""
            {self._distance_cte()}
            SELECT * FROM located
            WHERE distance <= $3
            ORDER BY distance ASC, id ASC;
        """
        rows = await _conn.fetch(query, point.latitude, point.longitude, float(radius_km))
        return [dict(row) for row in rows]

    @log_store_errors("find_nearest")
    async def find_nearest(
        self,
        center: GeoPoint | str | tuple[float, float],
        limit: int = 10,
        *,
        conn: Connection | None = None,
    ) -> list[Row]:
        """Fetch the ``limit`` companies nearest to a point.

        Args:
            center: Center point, any representation accepted by ``read_point``.
            limit: Maximum number of companies.
            conn: Optional connection for transaction support.

        Returns:
            Companies nearest first, each with a ``distance`` key (km).
        """
        if limit < 1:
            raise ValueError("limit must be at least 1.")
        point = read_point(center)
        _conn = self._get_connection(conn)
        query = f"""
            {self._distance_cte()}
            SELECT * FROM located
            WHERE distance IS NOT NULL
            ORDER BY distance ASC, id ASC
            LIMIT $3;
        """
        rows = await _conn.fetch(query, point.latitude, point.longitude, limit)
        return [dict(row) for row in rows]

    async def _find_by_json(self, conditions: list[str], args: list[object], conn: Connection | None) -> list[Row]:
        _conn = self._get_connection(conn)
        query = f"SELECT * FROM {self.table.quoted} WHERE {' AND '.join(conditions)} ORDER BY id ASC;"
        rows = await _conn.fetch(query, *args)
        return [dict(row) for row in rows]

    @log_store_errors("find_by_city")
    async def find_by_city(self, city: str, *, conn: Connection | None = None) -> list[Row]:
        """Fetch companies whose address city equals ``city``."""
        return await self._find_by_json(["address->>'city' = $1"], [city], conn)

    @log_store_errors("find_by_location")
    async def find_by_location(
        self,
        city: str,
        location: str | None = None,
        *,
        conn: Connection | None = None,
    ) -> list[Row]:
        """Fetch companies by address city and, optionally, location."""
        conditions = ["address->>'city' = $1"]
        args: list[object] = [city]
        if location:
            conditions.append("address->>'location' = $2")
            args.append(location)
        return await self._find_by_json(conditions, args, conn)

    def _metadata_condition(self, key: str) -> str:
        # Metadata values are either a string or a list of strings.
        return f"(metadata->>'{key}' = $1 OR metadata->'{key}' @> to_jsonb($1::text))"

    @log_store_errors("find_by_domaine")
    async def find_by_domaine(self, domaine: str, *, conn: Connection | None = None) -> list[Row]:
        """Fetch companies whose metadata domaine is or contains ``domaine``."""
        return await self._find_by_json([self._metadata_condition("domaine")], [domaine], conn)

    @log_store_errors("find_by_sector")
    async def find_by_sector(self, sector: str, *, conn: Connection | None = None) -> list[Row]:
        """Fetch companies whose metadata sector is or contains ``sector``."""
        return await self._find_by_json([self._metadata_condition("sector")], [sector], conn)
