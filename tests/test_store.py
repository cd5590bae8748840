"""Tests for the Store facade."""

import pytest

from pricera_store import Store
from pricera_store.config import DatabaseSettings
from pricera_store.repository import ALL_TABLES


@pytest.fixture
def store(pool) -> Store:
    return Store(pool)


class TestWiring:
    """Test shared scope and generator."""

    def test_repositories_share_scope(self, store):
        assert len(store.repositories) == len(ALL_TABLES)
        assert {repo.table.name for repo in store.repositories} == {t.name for t in ALL_TABLES}
        assert all(repo._scope is store.scope for repo in store.repositories)

    def test_guid_retries_are_forwarded(self, pool):
        store = Store(pool, guid_retries=5)

        assert store.countries._guid_retries == 5

    async def test_repository_calls_join_store_transaction(self, store, mock_conn, mock_asyncpg_pool):
        mock_conn.execute.return_value = "UPDATE 1"

        async def work(conn):
            return await store.accounts.soft_delete(4)

        assert await store.run_in_transaction(work)
        mock_asyncpg_pool.acquire.assert_awaited_once()
        mock_conn.transaction.return_value.commit.assert_awaited_once()


class TestHealthCheck:
    """Test the health report."""

    async def test_healthy(self, store, mock_conn):
        mock_conn.fetchval.return_value = 2

        report = await store.health_check()

        assert report.status == "healthy"
        assert report.counts["country"] == 2
        assert set(report.counts) == {t.entity for t in ALL_TABLES}
        assert report.pool.active == 2

    async def test_failure_is_reported_not_raised(self, store, mock_conn, mocker):
        capture = mocker.patch("pricera_store.store.sentry_sdk.capture_exception")
        mock_conn.fetchval.side_effect = ConnectionRefusedError("db down")

        report = await store.health_check()

        assert report.status == "unhealthy"
        assert report.error == "db down"
        capture.assert_called_once()


class TestLifecycle:
    """Test connect and close."""

    @pytest.fixture
    def create_pool(self, mocker, pool):
        return mocker.patch("pricera_store.store.ConnectionPool.create", new=mocker.AsyncMock(return_value=pool))

    async def test_connect_without_sync(self, create_pool, mock_conn, mocker):
        mock_conn.fetchval.return_value = 1
        sync = mocker.patch("pricera_store.store.synchronize_schema", new=mocker.AsyncMock())

        store = await Store.connect(DatabaseSettings())

        assert isinstance(store, Store)
        sync.assert_not_awaited()

    @pytest.mark.parametrize(
        ("settings", "force"),
        [
            (DatabaseSettings(synchronize_schema=True), False),
            (DatabaseSettings(force_schema=True), True),
            (DatabaseSettings(synchronize_schema=True, force_schema=True), True),
        ],
    )
    async def test_connect_synchronizes_schema(self, create_pool, mock_conn, mocker, settings, force):
        mock_conn.fetchval.return_value = 1
        sync = mocker.patch("pricera_store.store.synchronize_schema", new=mocker.AsyncMock())

        await Store.connect(settings)

        sync.assert_awaited_once()
        assert sync.await_args.kwargs == {"force": force}

    async def test_failed_connect_closes_pool(self, create_pool, mock_conn, mock_asyncpg_pool):
        mock_conn.fetchval.side_effect = OSError("refused")

        with pytest.raises(OSError):
            await Store.connect(DatabaseSettings())

        mock_asyncpg_pool.close.assert_awaited_once()

    async def test_close_rolls_back_open_transaction(self, store, mock_conn, mock_asyncpg_pool):
        await store.transactions.begin()

        await store.close()

        mock_conn.transaction.return_value.rollback.assert_awaited_once()
        assert not store.transactions.is_active
        mock_asyncpg_pool.close.assert_awaited_once()

    async def test_close_without_transaction(self, store, mock_conn, mock_asyncpg_pool):
        await store.close()

        mock_conn.transaction.return_value.rollback.assert_not_awaited()
        mock_asyncpg_pool.close.assert_awaited_once()
