"""Bounded asyncpg connection pool."""

from __future__ import annotations

import asyncio
import typing
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from logging import getLogger

import asyncpg
import msgspec
from asyncpg import Connection, Pool

from .errors import PoolExhaustedError
from .models import PoolStats

if typing.TYPE_CHECKING:
    from .config import DatabaseSettings

log = getLogger(__name__)

__all__ = ("ConnectionPool", "init_connection")


def _encode_json(value: typing.Any) -> str:  # noqa: ANN401
    return msgspec.json.encode(value).decode("utf-8")


async def init_connection(conn: Connection) -> None:
    """Install the jsonb codec on a freshly opened connection.

    Args:
        conn: The new asyncpg connection.
    """
    await conn.set_type_codec(
        "jsonb",
        schema="pg_catalog",
        encoder=_encode_json,
        decoder=msgspec.json.decode,
        format="text",
    )


class ConnectionPool:
    """Owns the asyncpg pool and bounds how long callers wait for a connection.

    It exposes the same query surface as an asyncpg connection (``execute``,
    ``fetch``, ``fetchrow``, ``fetchval``); each call runs on a connection that
    is acquired for that single statement and released right after.
    """

    def __init__(self, pool: Pool, *, acquire_timeout_ms: int = 60_000) -> None:
        """Initialize pool wrapper.

        Args:
            pool: AsyncPG connection pool.
            acquire_timeout_ms: Maximum wait for a connection.
        """
        self._pool = pool
        self._acquire_timeout_ms = acquire_timeout_ms

    @classmethod
    async def create(cls, settings: DatabaseSettings) -> ConnectionPool:
        """Open a pool sized from the settings.

        Args:
            settings: Database settings.

        Returns:
            The ready pool.
        """
        pool = await asyncpg.create_pool(
            dsn=settings.dsn,
            min_size=settings.pool_min,
            max_size=settings.pool_max,
            max_inactive_connection_lifetime=settings.idle_timeout_ms / 1000,
            init=init_connection,
        )
        log.info(
            "Connection pool opened on %s:%s/%s (min=%s, max=%s)",
            settings.host,
            settings.port,
            settings.database,
            settings.pool_min,
            settings.pool_max,
        )
        return cls(pool, acquire_timeout_ms=settings.acquire_timeout_ms)

    @property
    def acquire_timeout_ms(self) -> int:
        """Maximum wait for a connection, in milliseconds."""
        return self._acquire_timeout_ms

    async def acquire(self) -> Connection:
        """Check out a connection.

        Returns:
            A connection that must be handed back with ``release``.

        Raises:
            PoolExhaustedError: If none is available within the acquire timeout.
        """
        try:
            return await self._pool.acquire(timeout=self._acquire_timeout_ms / 1000)
        except asyncio.TimeoutError as e:
            log.warning("Connection pool exhausted after %s ms", self._acquire_timeout_ms)
            raise PoolExhaustedError(self._acquire_timeout_ms) from e

    async def release(self, conn: Connection) -> None:
        """Hand a connection back to the pool."""
        await self._pool.release(conn)

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[Connection]:
        """Acquire a connection for the duration of the block."""
        conn = await self.acquire()
        try:
            yield conn
        finally:
            await self.release(conn)

    async def execute(self, query: str, *args: object) -> str:
        async with self.connection() as conn:
            return await conn.execute(query, *args)

    async def fetch(self, query: str, *args: object) -> list[asyncpg.Record]:
        async with self.connection() as conn:
            return await conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args: object) -> asyncpg.Record | None:
        async with self.connection() as conn:
            return await conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: object) -> typing.Any:  # noqa: ANN401
        async with self.connection() as conn:
            return await conn.fetchval(query, *args)

    async def ping(self) -> bool:
        """Run a trivial query to prove the store is reachable.

        Returns:
            True when the store answered.
        """
        return await self.fetchval("SELECT 1;") == 1

    def stats(self) -> PoolStats:
        """Current pool counters."""
        total = self._pool.get_size()
        idle = self._pool.get_idle_size()
        return PoolStats(
            total=total,
            active=total - idle,
            idle=idle,
            min=self._pool.get_min_size(),
            max=self._pool.get_max_size(),
        )

    async def close(self) -> None:
        """Close every connection. Only call at shutdown."""
        await self._pool.close()
        log.info("Connection pool closed")
