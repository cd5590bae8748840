"""Database settings read from the environment."""

from __future__ import annotations

import os
from collections.abc import Mapping

import msgspec

from .errors import ConfigurationError

__all__ = ("DatabaseSettings",)

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(environ: Mapping[str, str], key: str) -> bool:
    return environ.get(key, "").strip().lower() in _TRUTHY


def _env_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}.", key=key) from e


class DatabaseSettings(msgspec.Struct, kw_only=True):
    """Connection, pool and schema settings.

    Attributes:
        host: Database host.
        port: Database port.
        database: Database name.
        user: Database user.
        password: Database password.
        pool_max: Maximum pooled connections.
        pool_min: Connections kept open at all times.
        acquire_timeout_ms: Maximum wait for a pooled connection.
        idle_timeout_ms: Idle time before a pooled connection is closed.
        synchronize_schema: Create missing tables and columns at startup.
        force_schema: Drop and recreate every table at startup (destructive).
    """

    host: str = "localhost"
    port: int = 5432
    database: str = "priceradb25"
    user: str = "priceradmin"
    password: str = ""
    pool_max: int = 20
    pool_min: int = 5
    acquire_timeout_ms: int = 60_000
    idle_timeout_ms: int = 10_000
    synchronize_schema: bool = False
    force_schema: bool = False

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> DatabaseSettings:
        """Build settings from ``DB_*`` environment variables.

        Args:
            environ: Mapping to read from. Defaults to ``os.environ``.

        Returns:
            Validated settings.
        """
        env = os.environ if environ is None else environ
        settings = cls(
            host=env.get("DB_HOST", "localhost"),
            port=_env_int(env, "DB_PORT", 5432),
            database=env.get("DB_NAME", "priceradb25"),
            user=env.get("DB_USER", "priceradmin"),
            password=env.get("DB_PASSWORD", ""),
            pool_max=_env_int(env, "DB_POOL_MAX", 20),
            pool_min=_env_int(env, "DB_POOL_MIN", 5),
            acquire_timeout_ms=_env_int(env, "DB_ACQUIRE_TIMEOUT_MS", 60_000),
            idle_timeout_ms=_env_int(env, "DB_IDLE_TIMEOUT_MS", 10_000),
            synchronize_schema=_env_bool(env, "DB_SYNCHRONIZE_SCHEMA"),
            force_schema=_env_bool(env, "DB_FORCE_SCHEMA"),
        )
        settings.validate()
        return settings

    @property
    def dsn(self) -> str:
        """PostgreSQL connection string."""
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.database}"

    def validate(self) -> None:
        """Check pool bounds and timeouts.

        Raises:
            ConfigurationError: If a bound or timeout is out of range.
        """
        if self.pool_max < 1:
            raise ConfigurationError("pool_max must be at least 1.", pool_max=self.pool_max)
        if self.pool_min < 0:
            raise ConfigurationError("pool_min cannot be negative.", pool_min=self.pool_min)
        if self.pool_min > self.pool_max:
            raise ConfigurationError(
                "pool_min cannot exceed pool_max.", pool_min=self.pool_min, pool_max=self.pool_max
            )
        if self.acquire_timeout_ms < 0 or self.idle_timeout_ms < 0:
            raise ConfigurationError(
                "Timeouts cannot be negative.",
                acquire_timeout_ms=self.acquire_timeout_ms,
                idle_timeout_ms=self.idle_timeout_ms,
            )
