"""Data models shared by the repositories and the store facade."""

from __future__ import annotations

import typing
from typing import Literal

from msgspec import Struct, field

__all__ = (
    "HealthReport",
    "OrderDirection",
    "Page",
    "PageQuery",
    "Pagination",
    "PoolStats",
)

OrderDirection = Literal["ASC", "DESC"]


class PageQuery(Struct, kw_only=True):
    """Caller-driven query shaping for ``find_all``.

    Attributes:
        page: 1-based page number.
        limit: Rows per page.
        where: Column equality filters. ``None`` matches NULL, a list matches any of its values.
        order: ``(column, direction)`` pairs. ``id ASC`` is appended as a tie-breaker.
    """

    page: int = 1
    limit: int = 10
    where: dict[str, typing.Any] = field(default_factory=dict)
    order: list[tuple[str, OrderDirection]] = field(default_factory=lambda: [("id", "ASC")])

    @property
    def offset(self) -> int:
        """Rows skipped before this page."""
        return (self.page - 1) * self.limit


class Pagination(Struct):
    """Pagination block of a ``find_all`` result."""

    page: int
    limit: int
    total: int
    pages: int


class Page(Struct):
    """One page of plain row dicts."""

    data: list[dict[str, typing.Any]]
    pagination: Pagination


class PoolStats(Struct):
    """Connection pool counters.

    Attributes:
        total: Open connections.
        active: Connections currently checked out.
        idle: Open connections waiting in the pool.
        min: Configured minimum.
        max: Configured maximum.
    """

    total: int
    active: int
    idle: int
    min: int
    max: int


class HealthReport(Struct, kw_only=True):
    """Result of ``Store.health_check``."""

    status: Literal["healthy", "unhealthy"]
    pool: PoolStats | None = None
    counts: dict[str, int] = field(default_factory=dict)
    error: str | None = None
