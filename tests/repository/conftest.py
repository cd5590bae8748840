"""Fixtures for mocked repository tests."""

import datetime as dt

import pytest

from pricera_store.repository import (
    AccountsRepository,
    CompaniesRepository,
    CountriesRepository,
    ProductsRepository,
    SubscriptionsRepository,
    UsersRepository,
)


class FakeTable:
    """Answers the scalar queries issued around a write.

    ``max_id`` feeds the GUID seed, ``used_guids`` the GUID probe and
    ``taken`` maps ``(column, value)`` pairs reported as existing on another row.
    """

    def __init__(self) -> None:
        self.max_id = 0
        self.used_guids: set[int] = set()
        self.taken: set[tuple[str, object]] = set()

    async def fetchval(self, query, *args):
        if "MAX(id)" in query:
            return self.max_id
        if "$2::integer" in query:
            column = query.split("WHERE ", 1)[1].split(" = ", 1)[0].strip('"')
            return (column, args[0]) in self.taken
        if "guid = $1" in query:
            return args[0] in self.used_guids
        return False


@pytest.fixture
def fake_table(mock_conn) -> FakeTable:
    table = FakeTable()
    mock_conn.fetchval.side_effect = table.fetchval
    return table


@pytest.fixture
def inserted(mock_conn):
    """Make INSERT/UPDATE ... RETURNING echo the written values."""
    now = dt.datetime(2026, 1, 1, tzinfo=dt.timezone.utc)

    async def fetchrow(query, *args):
        if query.startswith("INSERT"):
            columns = query.split("(", 1)[1].split(")", 1)[0].replace('"', "").split(", ")
            return {"id": 1, **dict(zip(columns, args)), "created": now, "updated": now}
        return None

    mock_conn.fetchrow.side_effect = fetchrow
    return mock_conn


@pytest.fixture
def countries(scope, identifiers) -> CountriesRepository:
    return CountriesRepository(scope, identifiers)


@pytest.fixture
def accounts(scope, identifiers) -> AccountsRepository:
    return AccountsRepository(scope, identifiers)


@pytest.fixture
def companies(scope, identifiers) -> CompaniesRepository:
    return CompaniesRepository(scope, identifiers)


@pytest.fixture
def users(scope, identifiers) -> UsersRepository:
    return UsersRepository(scope, identifiers)


@pytest.fixture
def subscriptions(scope, identifiers) -> SubscriptionsRepository:
    return SubscriptionsRepository(scope, identifiers)


@pytest.fixture
def products(scope, identifiers) -> ProductsRepository:
    return ProductsRepository(scope, identifiers)
