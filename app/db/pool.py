# app/db/pool.py
"""
Async Postgres pool for the page configuration store.

The discovery service only reads discovery_pages, so connections run in
autocommit with a short statement timeout. A missing DATABASE_URL is a
supported setup: the pool is simply never opened and lookups return nothing.
"""

import asyncio
import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

STATEMENT_TIMEOUT = "15s"
CLOSE_TIMEOUT_SECONDS = 30.0


async def _configure_connection(conn: psycopg.AsyncConnection) -> None:
    """Per-connection session setup run by the pool."""
    conn.row_factory = dict_row
    await conn.set_autocommit(True)
    app_name = f"discovery-events-{settings.environment}"
    await conn.execute(sql.SQL("SET application_name = {}").format(sql.Literal(app_name)))
    await conn.execute("SET timezone = 'UTC'")
    await conn.execute(
        sql.SQL("SET statement_timeout = {}").format(sql.Literal(STATEMENT_TIMEOUT))
    )


async def _select_one(conn: psycopg.AsyncConnection) -> Any:
    async with conn.cursor() as cur:
        await cur.execute("SELECT 1 AS ok")
        row = await cur.fetchone()
    return row["ok"] if isinstance(row, dict) else row[0]


class DatabasePoolManager:
    """Owns the AsyncConnectionPool lifecycle: open, probe, lend, close."""

    def __init__(self):
        self.pool: AsyncConnectionPool | None = None
        self._closed = False

    @property
    def is_ready(self) -> bool:
        return self.pool is not None and not self._closed

    async def initialize(self) -> None:
        if self.is_ready:
            logger.warning("Database pool already initialized")
            return
        if self._closed:
            raise RuntimeError("Cannot reinitialize closed pool")
        if not settings.DATABASE_URL:
            raise RuntimeError("DATABASE_URL is not configured")

        pool_config = settings.get_db_pool_config()
        pool = AsyncConnectionPool(
            conninfo=settings.DATABASE_URL,
            open=False,
            check=AsyncConnectionPool.check_connection,
            configure=_configure_connection,
            **pool_config,
        )

        try:
            await pool.open(wait=True)
            async with pool.connection() as conn:
                if await _select_one(conn) != 1:
                    raise RuntimeError("Database probe returned an unexpected result")
        except Exception as e:
            logger.error("Failed to initialize database pool", error=str(e))
            await pool.close()
            raise RuntimeError(f"Database pool initialization failed: {e}") from e

        self.pool = pool
        logger.info(
            "Database pool initialized",
            min_size=pool_config["min_size"],
            max_size=pool_config["max_size"],
        )

    async def close(self) -> None:
        if not self.is_ready:
            return
        try:
            await asyncio.wait_for(self.pool.close(), timeout=CLOSE_TIMEOUT_SECONDS)
            logger.info("Database pool closed")
        except TimeoutError:
            logger.warning("Database pool close timed out")
        finally:
            self._closed = True

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        if not self.is_ready:
            raise RuntimeError("Database pool not initialized. Call initialize() first.")
        async with self.pool.connection() as conn:
            yield conn

    async def health_check(self) -> dict[str, Any]:
        """Probe latency plus pool occupancy; a store that is not configured counts as healthy."""
        if not settings.DATABASE_URL:
            return {"healthy": True, "service": "database_pool", "configured": False}
        if not self.is_ready:
            return {"healthy": False, "service": "database_pool", "error": "Pool not initialized"}

        started = time.monotonic()
        try:
            async with self.connection() as conn:
                await _select_one(conn)
        except Exception as e:
            logger.error("Database health probe failed", error=str(e))
            return {"healthy": False, "service": "database_pool", "error": str(e)}

        stats = self.pool.get_stats()
        return {
            "healthy": True,
            "service": "database_pool",
            "connection_time_ms": round((time.monotonic() - started) * 1000, 2),
            "pool_stats": {
                name: stats.get(name, 0)
                for name in ("pool_size", "pool_available", "requests_waiting")
            },
        }


# Global pool instance
db_pool = DatabasePoolManager()


async def get_db_connection():
    """Borrow a connection: ``async with await get_db_connection() as conn``."""
    return db_pool.connection()


async def db_health_check() -> dict[str, Any]:
    return await db_pool.health_check()
