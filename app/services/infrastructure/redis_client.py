# app/services/infrastructure/redis_client.py
"""
Pooled async Redis client backing the discovery cache and warm-job markers.

Cache operations never raise: a Redis outage turns reads into misses and
writes into no-ops, and the failure is logged with the (truncated) key.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from app.config import settings
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MAX_CONNECTIONS = 20
SOCKET_TIMEOUT_SECONDS = 10
KEY_PREVIEW_LENGTH = 60


class FastRedisClient:
    """Lazily connected Redis client shared by the API process and the worker."""

    def __init__(self, url: str | None = None):
        self._url = url
        self.pool: ConnectionPool | None = None
        self.client: redis.Redis | None = None
        self._init_lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self.client is not None

    async def initialize(self) -> None:
        """Open the pool and verify it with a PING. Raises when Redis is unusable."""
        if self.is_connected:
            return
        async with self._init_lock:
            if not self.is_connected:
                await self._connect()

    async def _connect(self) -> None:
        redis_url = self._url or settings.redis_url()
        if not redis_url:
            raise RuntimeError("Redis is not configured (set REDIS_URL or Upstash credentials)")

        pool = ConnectionPool.from_url(
            redis_url,
            max_connections=MAX_CONNECTIONS,
            retry_on_timeout=True,
            retry_on_error=[redis.ConnectionError, redis.TimeoutError],
            socket_connect_timeout=SOCKET_TIMEOUT_SECONDS,
            socket_timeout=SOCKET_TIMEOUT_SECONDS,
            health_check_interval=30,
            decode_responses=True,
        )
        client = redis.Redis(connection_pool=pool)

        try:
            await client.ping()
        except Exception as e:
            await pool.disconnect()
            logger.error(
                "Redis connection failed", host=redis_url.split("@")[-1][:30], error=str(e)
            )
            raise RuntimeError("Redis initialization failed") from e

        self.pool, self.client = pool, client
        logger.info("Redis client connected", max_connections=MAX_CONNECTIONS)

    async def close(self) -> None:
        if not self.is_connected:
            return
        try:
            await self.client.aclose()
            await self.pool.disconnect()
            logger.info("Redis client closed")
        except Exception as e:
            logger.error("Error closing Redis client", error=str(e))
        finally:
            self.pool, self.client = None, None
            # Locks bind to the loop that first waits on them
            self._init_lock = asyncio.Lock()

    async def _run(
        self,
        operation: str,
        key: str | None,
        call: Callable[[redis.Redis], Awaitable[Any]],
        fallback: Any,
    ) -> Any:
        try:
            await self.initialize()
            return await call(self.client)
        except Exception as e:
            logger.error(
                "Redis operation failed",
                operation=operation,
                key=key[:KEY_PREVIEW_LENGTH] if key else None,
                error=str(e),
            )
            return fallback

    async def ping(self) -> bool:
        return bool(await self._run("PING", None, lambda c: c.ping(), False))

    async def get(self, key: str) -> str | None:
        value = await self._run("GET", key, lambda c: c.get(key), None)
        return value or None

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        """SETEX when a positive TTL is given, plain SET otherwise."""
        if ttl_s:
            result = await self._run("SETEX", key, lambda c: c.setex(key, ttl_s, value), False)
        else:
            result = await self._run("SET", key, lambda c: c.set(key, value), False)
        return bool(result)

    async def delete(self, key: str) -> bool:
        return await self._run("DEL", key, lambda c: c.delete(key), 0) > 0


# Global instance
fast_redis = FastRedisClient()
