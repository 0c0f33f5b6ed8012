"""
asyncpg pool shared by the alert store and the campaign/visit lookups.

The alerts table is the only table this package writes; the campaign,
company, user and visit tables are read through the same pool.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import asyncpg

from visit_alerts.config.settings import get_settings

logger = logging.getLogger(__name__)

# Shown in pg_stat_activity for connections opened by this package
APPLICATION_NAME = "visit-alerts"


class Database:
    """
    Thin wrapper over an asyncpg pool.

    Usage:
        db = Database()
        await db.connect()
        rows = await db.fetch("SELECT * FROM alerts WHERE user_id = $1", user_id)
        await db.close()
    """

    def __init__(
        self,
        database_url: str | None = None,
        min_size: int | None = None,
        max_size: int | None = None,
        command_timeout: float | None = None,
    ):
        settings = get_settings()
        self._dsn = database_url or str(settings.database_url)
        self._pool_bounds = (
            min_size or settings.db_pool_min_size,
            max_size or settings.db_pool_max_size,
        )
        self._command_timeout = command_timeout or settings.db_command_timeout
        self._pool: asyncpg.Pool | None = None

    async def connect(self) -> None:
        """Open the pool. Calling it on an open pool is a no-op."""
        if self._pool is not None:
            return
        low, high = self._pool_bounds
        try:
            self._pool = await asyncpg.create_pool(
                self._dsn,
                min_size=low,
                max_size=high,
                command_timeout=self._command_timeout,
                server_settings={"application_name": APPLICATION_NAME},
            )
        except (OSError, asyncpg.PostgresError) as e:
            logger.error("Could not open database pool: %s", e)
            raise
        logger.info("Database pool open (%d-%d connections)", low, high)

    async def close(self) -> None:
        if self._pool is None:
            return
        await self._pool.close()
        self._pool = None
        logger.info("Database pool closed")

    @property
    def pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._pool

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[asyncpg.Connection]:
        async with self.pool.acquire() as conn:
            yield conn

    async def execute(self, query: str, *args: Any) -> str:
        """Run a statement; returns the status tag, e.g. ``UPDATE 3``."""
        async with self.connection() as conn:
            return await conn.execute(query, *args)

    async def fetch(self, query: str, *args: Any) -> list[asyncpg.Record]:
        async with self.connection() as conn:
            return await conn.fetch(query, *args)

    async def fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        async with self.connection() as conn:
            return await conn.fetchrow(query, *args)

    async def fetchval(self, query: str, *args: Any) -> Any:
        async with self.connection() as conn:
            return await conn.fetchval(query, *args)

    async def health_check(self) -> bool:
        """True when a trivial query round-trips through the pool."""
        try:
            return await self.fetchval("SELECT 1") == 1
        except Exception as e:
            logger.warning("Database health check failed: %s", e)
            return False
