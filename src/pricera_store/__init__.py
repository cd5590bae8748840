# src/pricera_store/__init__.py
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as _pkg_version

from .config import DatabaseSettings
from .database import ConnectionPool
from .errors import (
    ConfigurationError,
    IdentifierExhaustedError,
    NoActiveTransactionError,
    PoolExhaustedError,
    StoreError,
    TransactionAlreadyActiveError,
    TransactionStateError,
    UniquenessConflictError,
    ValidationFailedError,
    is_unique_violation,
)
from .geo import GeoPoint, InvalidPointError, coerce_point, format_point, haversine_km, parse_point
from .identifiers import IdentifierGenerator
from .models import HealthReport, Page, PageQuery, Pagination, PoolStats
from .store import Store
from .transactions import ConnectionScope, TransactionManager

__all__ = [
    "ConfigurationError",
    "ConnectionPool",
    "ConnectionScope",
    "DatabaseSettings",
    "GeoPoint",
    "HealthReport",
    "IdentifierExhaustedError",
    "IdentifierGenerator",
    "InvalidPointError",
    "NoActiveTransactionError",
    "Page",
    "PageQuery",
    "Pagination",
    "PoolExhaustedError",
    "PoolStats",
    "Store",
    "StoreError",
    "TransactionAlreadyActiveError",
    "TransactionManager",
    "TransactionStateError",
    "UniquenessConflictError",
    "ValidationFailedError",
    "coerce_point",
    "format_point",
    "haversine_km",
    "is_unique_violation",
    "parse_point",
]

try:
    __version__ = _pkg_version("pricera-store")
except PackageNotFoundError:
    __version__ = "0.0.0"
