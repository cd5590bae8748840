"""WKT point codec and great-circle distance.

Points are stored as text ``POINT(<longitude> <latitude>)``. Distances use the
haversine formula on a sphere of radius 6371 km.
"""

from __future__ import annotations

import math
import re
import typing
from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal

from msgspec import Struct

__all__ = (
    "EARTH_RADIUS_KM",
    "GeoPoint",
    "InvalidPointError",
    "coerce_point",
    "distance_sql",
    "format_point",
    "haversine_km",
    "nearest",
    "parse_point",
    "point_violations",
    "read_point",
    "within_radius",
)

EARTH_RADIUS_KM = 6371.0

_POINT_RE = re.compile(r"^POINT\((-?\d+\.?\d*)\s+(-?\d+\.?\d*)\)$", re.IGNORECASE)
# Same number shape for PostgreSQL regular expressions; the group is non-capturing
# so substring() returns the outer one.
_SQL_NUMBER = r"-?[0-9]+(?:\.[0-9]*)?"

_FORMAT_MESSAGE = "Point must be in WKT format: POINT(longitude latitude)"
_NUMBER_MESSAGE = "Point coordinates must be valid numbers"
_PAIR_MESSAGE = "Point must contain exactly 2 coordinates [latitude, longitude]"
_LATITUDE_MESSAGE = "Latitude must be between -90 and 90"
_LONGITUDE_MESSAGE = "Longitude must be between -180 and 180"

_LATITUDE_KEYS = ("latitude", "lat")
_LONGITUDE_KEYS = ("longitude", "lon", "lng")


class InvalidPointError(ValueError):
    """A value cannot be read as a valid point."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class GeoPoint(Struct, frozen=True):
    """A latitude/longitude pair in degrees."""

    latitude: float
    longitude: float

    def violations(self) -> list[str]:
        """Range violations, empty when the point is valid."""
        errors = []
        if not -90 <= self.latitude <= 90:
            errors.append(_LATITUDE_MESSAGE)
        if not -180 <= self.longitude <= 180:
            errors.append(_LONGITUDE_MESSAGE)
        return errors

    def to_wkt(self) -> str:
        return format_point(self)


def _to_float(value: object) -> float:
    if isinstance(value, bool):
        raise InvalidPointError(_NUMBER_MESSAGE)
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise InvalidPointError(_NUMBER_MESSAGE) from None
    if not math.isfinite(number):
        raise InvalidPointError(_NUMBER_MESSAGE)
    return number


def _pick(value: Mapping[str, typing.Any], keys: Sequence[str]) -> object:
    for key in keys:
        if key in value:
            return value[key]
    raise InvalidPointError(_PAIR_MESSAGE)


def _read_point(value: object) -> GeoPoint:
    """Read any accepted representation without range checks."""
    if isinstance(value, GeoPoint):
        return value
    if isinstance(value, str):
        match = _POINT_RE.match(value.strip())
        if match is None:
            raise InvalidPointError(_FORMAT_MESSAGE)
        return GeoPoint(latitude=float(match.group(2)), longitude=float(match.group(1)))
    if isinstance(value, Mapping):
        return GeoPoint(
            latitude=_to_float(_pick(value, _LATITUDE_KEYS)),
            longitude=_to_float(_pick(value, _LONGITUDE_KEYS)),
        )
    if isinstance(value, (list, tuple)):
        if len(value) != 2:
            raise InvalidPointError(_PAIR_MESSAGE)
        latitude, longitude = value
        return GeoPoint(latitude=_to_float(latitude), longitude=_to_float(longitude))
    raise InvalidPointError(_FORMAT_MESSAGE)


def parse_point(text: str) -> GeoPoint:
    """Decode a ``POINT(<lon> <lat>)`` string.

    Args:
        text: WKT point text.

    Returns:
        The decoded point.

    Raises:
        InvalidPointError: If the text does not match the pattern or a coordinate is out of range.
    """
    if not isinstance(text, str):
        raise InvalidPointError(_FORMAT_MESSAGE)
    point = _read_point(text)
    errors = point.violations()
    if errors:
        raise InvalidPointError("; ".join(errors))
    return point


def _format_coordinate(value: float) -> str:
    # Shortest repr digits, written out without an exponent.
    text = format(Decimal(repr(float(value))), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return "0" if text in {"", "-0"} else text


def format_point(point: GeoPoint) -> str:
    """Encode a point as canonical ``POINT(<lon> <lat>)`` text."""
    return f"POINT({_format_coordinate(point.longitude)} {_format_coordinate(point.latitude)})"


def read_point(value: object) -> GeoPoint:
    """Read any accepted point representation.

    Accepts WKT text, a GeoPoint, a mapping with latitude/longitude keys, or a
    ``[latitude, longitude]`` pair.

    Raises:
        InvalidPointError: If the value is malformed or out of range.
    """
    point = _read_point(value)
    errors = point.violations()
    if errors:
        raise InvalidPointError("; ".join(errors))
    return point


def coerce_point(value: object) -> str:
    """Normalise any accepted point representation to canonical WKT."""
    return format_point(read_point(value))


def point_violations(value: object) -> list[str]:
    """DataControl messages for a point value, empty when valid."""
    try:
        point = _read_point(value)
    except InvalidPointError as e:
        return [e.message]
    return point.violations()


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in kilometers."""
    lat1 = math.radians(a.latitude)
    lat2 = math.radians(b.latitude)
    half_dlat = math.radians(b.latitude - a.latitude) / 2
    half_dlon = math.radians(b.longitude - a.longitude) / 2
    h = math.sin(half_dlat) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(half_dlon) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def _annotate(
    rows: Iterable[Mapping[str, typing.Any]], center: GeoPoint, column: str
) -> list[dict[str, typing.Any]]:
    annotated = []
    for row in rows:
        try:
            point = parse_point(row[column])
        except (InvalidPointError, KeyError):
            continue
        annotated.append({**row, "distance": haversine_km(center, point)})
    annotated.sort(key=lambda r: r["distance"])
    return annotated


def within_radius(
    rows: Iterable[Mapping[str, typing.Any]],
    center: GeoPoint,
    radius_km: float,
    *,
    column: str = "point",
) -> list[dict[str, typing.Any]]:
    """Rows whose point lies at most ``radius_km`` from ``center``, nearest first.

    Rows without a decodable point are skipped.
    """
    return [row for row in _annotate(rows, center, column) if row["distance"] <= radius_km]


def nearest(
    rows: Iterable[Mapping[str, typing.Any]],
    center: GeoPoint,
    limit: int,
    *,
    column: str = "point",
) -> list[dict[str, typing.Any]]:
    """The ``limit`` rows nearest to ``center``, each with a ``distance`` key."""
    return _annotate(rows, center, column)[:limit]


def _coordinate_sql(column: str) -> tuple[str, str]:
    source = f"upper({column})"
    longitude = rf"CAST(substring({source} from '^POINT\(({_SQL_NUMBER})\s') AS double precision)"
    latitude = rf"CAST(substring({source} from '^POINT\({_SQL_NUMBER}\s+({_SQL_NUMBER})\)$') AS double precision)"
    return latitude, longitude


def distance_sql(column: str, lat_param: str, lon_param: str) -> str:
    """In-store haversine distance from a WKT text column to a parameter point.

    Args:
        column: Quoted column reference holding WKT text.
        lat_param: Placeholder for the center latitude (e.g. ``$1``).
        lon_param: Placeholder for the center longitude (e.g. ``$2``).

    Returns:
        SQL expression yielding kilometers, NULL when the text does not decode.
    """
    latitude, longitude = _coordinate_sql(column)
    return (
        f"(2 * {EARTH_RADIUS_KM} * asin(least(1.0, sqrt("
        f"power(sin(radians({latitude} - {lat_param}::double precision) / 2), 2) + "
        f"cos(radians({lat_param}::double precision)) * cos(radians({latitude})) * "
        f"power(sin(radians({longitude} - {lon_param}::double precision) / 2), 2)"
        f"))))"
    )
