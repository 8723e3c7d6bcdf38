"""
Async PostgreSQL pool for the message store.

Only built when DATABASE_URL is set. The engine issues single-row inserts,
so connections run in autocommit and are handed out one statement at a time.
"""

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from assistant_core.config import Settings, settings as default_settings
from assistant_core.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CLOSE_TIMEOUT_SECONDS = 30.0
STATEMENT_TIMEOUT = "30s"


class DatabasePoolManager:
    """Owns one psycopg async pool with an explicit open/close lifecycle."""

    def __init__(self, config: Settings | None = None, conninfo: str | None = None):
        self.config = config or default_settings
        self.conninfo = conninfo or self.config.DATABASE_URL
        self.pool: AsyncConnectionPool | None = None
        self._state = "new"

    @property
    def initialized(self) -> bool:
        return self._state == "open"

    async def initialize(self) -> None:
        if self._state == "open":
            return
        if self._state == "closed":
            raise RuntimeError("Database pool was closed and cannot be reopened")
        if not self.conninfo:
            raise RuntimeError("DATABASE_URL not configured")

        options = self.config.get_db_pool_config()
        pool = AsyncConnectionPool(
            conninfo=self.conninfo,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=self._configure_connection,
            **options,
        )

        try:
            await pool.open(wait=True)
            self.pool = pool
            self._state = "open"
            await self._probe()
        except Exception as e:
            logger.error("Database pool failed to open", error=str(e), error_type=type(e).__name__)
            self._state = "new"
            self.pool = None
            await pool.close()
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        logger.info(
            "Database pool ready",
            min_size=options["min_size"],
            max_size=options["max_size"],
            timeout=options["timeout"],
        )

    async def _configure_connection(self, conn: psycopg.AsyncConnection) -> None:
        conn.row_factory = dict_row
        await conn.set_autocommit(True)
        app_name = f"assistant-core-{self.config.environment}"
        try:
            await conn.execute(sql.SQL("SET application_name = {}").format(sql.Literal(app_name)))
            await conn.execute("SET timezone = 'UTC'")
            await conn.execute(
                sql.SQL("SET statement_timeout = {}").format(sql.Literal(STATEMENT_TIMEOUT))
            )
        except psycopg.Error:
            logger.exception("Could not apply session settings to new connection")

    async def _probe(self) -> None:
        async with self.connection() as conn:
            cursor = await conn.execute("SELECT 1 AS ok")
            row = await cursor.fetchone()
        if not row or row.get("ok") != 1:
            raise RuntimeError(f"Unexpected probe result: {row!r}")

    async def close(self) -> None:
        if self._state != "open":
            self._state = "closed"
            return

        self._state = "closed"
        try:
            await asyncio.wait_for(self.pool.close(), timeout=CLOSE_TIMEOUT_SECONDS)
            logger.info("Database pool closed")
        except TimeoutError:
            logger.warning("Database pool close timed out", timeout=CLOSE_TIMEOUT_SECONDS)
        except Exception as e:
            logger.error("Error closing database pool", error=str(e))

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[psycopg.AsyncConnection]:
        """Borrow a pooled connection for the duration of the block."""
        if self._state != "open":
            raise RuntimeError(f"Database pool is not open (state={self._state})")

        async with self.pool.connection() as conn:
            yield conn

    async def health_check(self) -> dict[str, Any]:
        if not self.initialized:
            return {"healthy": False, "service": "database_pool", "error": "Pool not open"}

        started = time.perf_counter()
        try:
            await self._probe()
        except Exception as e:
            return {
                "healthy": False,
                "service": "database_pool",
                "error": f"Probe failed: {e}",
                "error_type": type(e).__name__,
            }

        stats = self.pool.get_stats()
        return {
            "healthy": True,
            "service": "database_pool",
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
            "pool_size": stats.get("pool_size", 0),
            "pool_available": stats.get("pool_available", 0),
            "requests_waiting": stats.get("requests_waiting", 0),
        }
