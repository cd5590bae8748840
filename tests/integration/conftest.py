"""Fixtures running the store against a throwaway PostgreSQL container."""

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

import asyncpg
import pytest
from faker import Faker
from pytest_databases.docker.postgres import PostgresService

from pricera_store import Store
from pricera_store.database import ConnectionPool, init_connection

fake = Faker()


@pytest.fixture
async def store(postgres_service: PostgresService) -> AsyncIterator[Store]:
    """Store on a freshly recreated schema.

    Uses a small pool so concurrency tests actually contend for connections.
    """
    pool = await asyncpg.create_pool(
        user=postgres_service.user,
        password=postgres_service.password,
        host=postgres_service.host,
        port=postgres_service.port,
        database=postgres_service.database,
        min_size=1,
        max_size=5,
        init=init_connection,
    )
    store = Store(ConnectionPool(pool, acquire_timeout_ms=10_000))
    await store.synchronize_schema(force=True)
    yield store
    await store.close()


@pytest.fixture
async def cameroon(store: Store) -> dict[str, Any]:
    return await store.countries.create(
        {"alpha2": "CM", "alpha3": "CMR", "dialcode": 237, "fr": "Cameroun", "en": "Cameroon"}
    )


@pytest.fixture
def create_company(store: Store, cameroon: dict[str, Any]) -> Callable[..., Awaitable[dict[str, Any]]]:
    """Factory creating companies in Cameroon, overrides merged over fake defaults."""

    async def _create(**overrides: Any) -> dict[str, Any]:
        data = {
            "name": fake.company()[:128],
            "point": "POINT(9.7679 4.0511)",
            "country": cameroon["id"],
            "address": {"city": "Douala", "location": fake.street_name(), "district": "Douala I"},
            "metadata": {"domaine": "food", "sector": ["retail"], "speciality": fake.word()},
        }
        data.update(overrides)
        return await store.companies.create(data)

    return _create


@pytest.fixture
async def account(create_company: Callable[..., Awaitable[dict[str, Any]]], store: Store) -> dict[str, Any]:
    company = await create_company()
    return await store.accounts.create({"company": company["id"]})


@pytest.fixture
async def profil(store: Store) -> dict[str, Any]:
    return await store.profils.create({"name": "Surveyor", "reference": "surveyor"})
