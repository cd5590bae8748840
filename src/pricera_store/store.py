"""Store facade wiring the pool, transactions and every repository."""

from __future__ import annotations

import typing
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from logging import getLogger

import sentry_sdk
from asyncpg import Connection

from .config import DatabaseSettings
from .database import ConnectionPool
from .identifiers import IdentifierGenerator
from .models import HealthReport
from .repository import (
    ALL_TABLES,
    AccountsRepository,
    CompaniesRepository,
    CountriesRepository,
    EntityRepository,
    FormulasRepository,
    LexiconsRepository,
    ProductsRepository,
    ProfilsRepository,
    SubscriptionsRepository,
    UsersRepository,
)
from .schema import synchronize_schema
from .transactions import ConnectionScope, TransactionManager

if typing.TYPE_CHECKING:
    from typing import Concatenate, ParamSpec, TypeVar

    P = ParamSpec("P")
    R = TypeVar("R")

log = getLogger(__name__)

__all__ = ("Store",)


class Store:
    """Entry point of the persistence layer.

    Repository calls made inside ``run_in_transaction`` or ``transaction()``
    join that transaction without being handed the connection.
    """

    def __init__(self, pool: ConnectionPool, *, guid_retries: int = 2) -> None:
        """Initialize store.

        Args:
            pool: Open connection pool.
            guid_retries: Extra create attempts when a generated GUID loses a race.
        """
        self.pool = pool
        self.transactions = TransactionManager(pool)
        self.scope = ConnectionScope(pool, self.transactions)
        self.identifiers = IdentifierGenerator(self.scope)

        def _repository(cls: type[EntityRepository]) -> typing.Any:  # noqa: ANN401
            return cls(self.scope, self.identifiers, guid_retries=guid_retries)

        self.countries: CountriesRepository = _repository(CountriesRepository)
        self.companies: CompaniesRepository = _repository(CompaniesRepository)
        self.accounts: AccountsRepository = _repository(AccountsRepository)
        self.profils: ProfilsRepository = _repository(ProfilsRepository)
        self.users: UsersRepository = _repository(UsersRepository)
        self.formulas: FormulasRepository = _repository(FormulasRepository)
        self.subscriptions: SubscriptionsRepository = _repository(SubscriptionsRepository)
        self.products: ProductsRepository = _repository(ProductsRepository)
        self.lexicons: LexiconsRepository = _repository(LexiconsRepository)

    @property
    def repositories(self) -> tuple[EntityRepository, ...]:
        return (
            self.countries,
            self.companies,
            self.accounts,
            self.profils,
            self.users,
            self.formulas,
            self.subscriptions,
            self.products,
            self.lexicons,
        )

    @classmethod
    async def connect(cls, settings: DatabaseSettings | None = None, *, guid_retries: int = 2) -> Store:
        """Open the pool, check connectivity and synchronise the schema if configured.

        Args:
            settings: Database settings. Read from the environment when omitted.
            guid_retries: Extra create attempts when a generated GUID loses a race.

        Returns:
            The ready store.
        """
        settings = settings or DatabaseSettings.from_env()
        pool = await ConnectionPool.create(settings)
        store = cls(pool, guid_retries=guid_retries)
        try:
            await pool.ping()
            if settings.force_schema:
                await store.synchronize_schema(force=True)
            elif settings.synchronize_schema:
                await store.synchronize_schema()
        except BaseException:
            await pool.close()
            raise
        log.info("Store connected to %s", settings.database)
        return store

    async def run_in_transaction(
        self,
        fn: Callable[Concatenate[Connection, P], Awaitable[R]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> R:
        """Run ``fn(conn, *args, **kwargs)`` atomically. See ``TransactionManager.run_in_transaction``."""
        return await self.transactions.run_in_transaction(fn, *args, **kwargs)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Connection]:
        async with self.transactions.transaction() as conn:
            yield conn

    async def synchronize_schema(self, *, force: bool = False) -> None:
        """Create missing tables, columns, unique constraints and indexes.

        Args:
            force: Drop and recreate every table (destructive).
        """
        if force:
            log.warning("Forcing schema synchronisation, every table will be dropped")
        await synchronize_schema(self.pool, ALL_TABLES, force=force)

    async def health_check(self) -> HealthReport:
        """Report pool counters and row counts. Never raises."""
        try:
            counts = {repo.table.entity: await repo.count() for repo in self.repositories}
            return HealthReport(status="healthy", pool=self.pool.stats(), counts=counts)
        except Exception as e:
            log.exception("Health check failed")
            sentry_sdk.capture_exception(e)
            return HealthReport(status="unhealthy", error=str(e))

    async def close(self) -> None:
        """Roll back a transaction left open by the caller, then close the pool."""
        if self.transactions.is_active:
            log.warning("Closing store with an open transaction, rolling back")
            await self.transactions.rollback()
        await self.pool.close()
