"""Transaction lifecycle and per-call connection resolution.

The active transaction is carried in a context variable, so it belongs to one
logical call chain (one asyncio task and whatever it awaits directly). Two
concurrent requests never see each other's transaction.
"""

from __future__ import annotations

import typing
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from contextvars import ContextVar
from logging import getLogger

import sentry_sdk
from asyncpg import Connection
from asyncpg.transaction import Transaction

from .database import ConnectionPool
from .errors import NoActiveTransactionError, TransactionAlreadyActiveError

if typing.TYPE_CHECKING:
    from typing import Concatenate, ParamSpec, TypeVar

    P = ParamSpec("P")
    R = TypeVar("R")

log = getLogger(__name__)

__all__ = ("ConnectionScope", "Executor", "TransactionContext", "TransactionManager")

Executor: typing.TypeAlias = Connection | ConnectionPool


class TransactionContext:
    """The transaction owned by the current call chain."""

    __slots__ = ("connection", "transaction")

    def __init__(self, connection: Connection, transaction: Transaction) -> None:
        self.connection = connection
        self.transaction = transaction


_current_transaction: ContextVar[TransactionContext | None] = ContextVar("pricera_transaction", default=None)


class TransactionManager:
    """Begins, commits and rolls back one top-level transaction per call chain."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Initialize manager.

        Args:
            pool: Pool the transaction connections are taken from.
        """
        self._pool = pool

    @property
    def current(self) -> TransactionContext | None:
        """Transaction of the current call chain, if any."""
        return _current_transaction.get()

    @property
    def is_active(self) -> bool:
        return _current_transaction.get() is not None

    async def begin(self) -> Connection:
        """Open a transaction for the current call chain.

        Returns:
            The connection the transaction runs on.

        Raises:
            TransactionAlreadyActiveError: If this call chain already has one.
        """
        if _current_transaction.get() is not None:
            raise TransactionAlreadyActiveError()

        conn = await self._pool.acquire()
        transaction = conn.transaction()
        try:
            await transaction.start()
        except BaseException:
            await self._pool.release(conn)
            raise
        _current_transaction.set(TransactionContext(conn, transaction))
        log.debug("Transaction started")
        return conn

    async def commit(self) -> None:
        """Commit the current transaction.

        A failed commit is rolled back before the error is re-raised.

        Raises:
            NoActiveTransactionError: If no transaction is active.
        """
        context = _current_transaction.get()
        if context is None:
            raise NoActiveTransactionError("commit")

        try:
            await context.transaction.commit()
        except BaseException:
            log.exception("Commit failed, rolling back")
            await self.rollback()
            raise

        _current_transaction.set(None)
        await self._pool.release(context.connection)
        log.debug("Transaction committed")

    async def rollback(self) -> None:
        """Roll back the current transaction, best effort.

        Errors raised by the rollback itself are logged and swallowed. The
        context is always cleared and the connection handed back.
        """
        context = _current_transaction.get()
        _current_transaction.set(None)
        if context is None:
            return

        try:
            await context.transaction.rollback()
            log.debug("Transaction rolled back")
        except Exception as e:
            log.exception("Rollback failed, discarding transaction")
            sentry_sdk.capture_exception(e)
        finally:
            try:
                await self._pool.release(context.connection)
            except Exception as e:
                log.exception("Could not release transaction connection")
                sentry_sdk.capture_exception(e)

    async def run_in_transaction(
        self,
        fn: Callable[Concatenate[Connection, P], Awaitable[R]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> R:
        """Run ``fn(conn, *args, **kwargs)`` inside a new transaction.

        Commits on success. Any exception, cancellation included, rolls the
        transaction back before it propagates.

        Args:
            fn: Coroutine function receiving the transaction connection first.
            *args: Extra positional arguments for ``fn``.
            **kwargs: Extra keyword arguments for ``fn``.

        Returns:
            Whatever ``fn`` returned.

        Raises:
            TransactionAlreadyActiveError: If this call chain already has one.
        """
        conn = await self.begin()
        try:
            result = await fn(conn, *args, **kwargs)
        except BaseException:
            await self.rollback()
            raise
        await self.commit()
        return result

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Connection]:
        """Context manager form of ``run_in_transaction``."""
        conn = await self.begin()
        try:
            yield conn
        except BaseException:
            await self.rollback()
            raise
        await self.commit()


class ConnectionScope:
    """Decides which connection a repository call runs on.

    Precedence: an explicit connection passed by the caller, then the ambient
    transaction of the call chain, then the pool.
    """

    def __init__(self, pool: ConnectionPool, transactions: TransactionManager) -> None:
        """Initialize scope.

        Args:
            pool: Pool used when no connection or transaction applies.
            transactions: Manager holding the ambient transaction.
        """
        self._pool = pool
        self._transactions = transactions

    @property
    def pool(self) -> ConnectionPool:
        return self._pool

    @property
    def transactions(self) -> TransactionManager:
        return self._transactions

    @property
    def in_transaction(self) -> bool:
        """Whether the current call chain has an ambient transaction."""
        return self._transactions.is_active

    def resolve(self, conn: Connection | None = None, *, require_transaction: bool = False) -> Executor:
        """Get connection for query execution.

        Args:
            conn: Optional connection from the caller.
            require_transaction: Refuse to fall back to the pool.

        Returns:
            The explicit connection, the ambient transaction connection, or the pool.

        Raises:
            NoActiveTransactionError: If a transaction is required and none applies.
        """
        if conn is not None:
            return conn
        context = self._transactions.current
        if context is not None:
            return context.connection
        if require_transaction:
            raise NoActiveTransactionError("resolve")
        return self._pool

    @asynccontextmanager
    async def session(self, conn: Connection | None = None) -> AsyncIterator[Connection]:
        """Yield a single connection for a multi-statement operation.

        Args:
            conn: Optional connection from the caller.
        """
        resolved = self.resolve(conn)
        if isinstance(resolved, ConnectionPool):
            async with resolved.connection() as pooled:
                yield pooled
        else:
            yield resolved
