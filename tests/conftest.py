"""Shared fixtures for unit tests.

Connections and the asyncpg pool are mocked: query methods are AsyncMocks
whose results tests configure per case. Integration tests live in
``tests/integration`` and are only collected when docker is available.
"""

import shutil

import pytest
from asyncpg import Pool

from pricera_store.database import ConnectionPool
from pricera_store.identifiers import IdentifierGenerator
from pricera_store.transactions import ConnectionScope, TransactionManager

collect_ignore = [] if shutil.which("docker") else ["integration"]


@pytest.fixture
def mock_conn(mocker):
    """Mock asyncpg connection.

    Returns:
        MagicMock with async query methods and a transaction() handle.
    """
    conn = mocker.MagicMock()
    conn.fetch = mocker.AsyncMock(return_value=[])
    conn.fetchrow = mocker.AsyncMock(return_value=None)
    conn.fetchval = mocker.AsyncMock(return_value=None)
    conn.execute = mocker.AsyncMock(return_value="UPDATE 0")

    transaction = mocker.MagicMock()
    transaction.start = mocker.AsyncMock()
    transaction.commit = mocker.AsyncMock()
    transaction.rollback = mocker.AsyncMock()
    conn.transaction.return_value = transaction
    return conn


@pytest.fixture
def mock_asyncpg_pool(mocker, mock_conn):
    """Mock AsyncPG connection pool handing out ``mock_conn``."""
    pool = mocker.MagicMock(spec=Pool)
    pool.acquire = mocker.AsyncMock(return_value=mock_conn)
    pool.release = mocker.AsyncMock()
    pool.close = mocker.AsyncMock()
    pool.get_size.return_value = 5
    pool.get_idle_size.return_value = 3
    pool.get_min_size.return_value = 5
    pool.get_max_size.return_value = 20
    return pool


@pytest.fixture
def pool(mock_asyncpg_pool) -> ConnectionPool:
    """ConnectionPool wrapping the mocked asyncpg pool."""
    return ConnectionPool(mock_asyncpg_pool, acquire_timeout_ms=1_000)


@pytest.fixture
def transactions(pool: ConnectionPool) -> TransactionManager:
    return TransactionManager(pool)


@pytest.fixture
def scope(pool: ConnectionPool, transactions: TransactionManager) -> ConnectionScope:
    return ConnectionScope(pool, transactions)


@pytest.fixture
def identifiers(scope: ConnectionScope) -> IdentifierGenerator:
    return IdentifierGenerator(scope)
