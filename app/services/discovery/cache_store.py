"""
Cache stores for discovery payloads.

Both implementations honour TTL expiry themselves and are safe for
concurrent use from the event loop. No locking is done around writes: two
concurrent misses for one key may both fetch and both write, and the last
write wins until the TTL expires.
"""

import time
from typing import Protocol

from pydantic import ValidationError

from app.infrastructure.observability.logging import get_logger
from app.models.api.discovery_response import EventsPayload
from app.services.infrastructure.redis_client import FastRedisClient, fast_redis

logger = get_logger(__name__)


class CacheStore(Protocol):
    async def get(self, key: str) -> EventsPayload | None: ...

    async def set(self, key: str, payload: EventsPayload, ttl_seconds: int) -> None: ...


class RedisCacheStore:
    """Payloads stored as JSON strings with SETEX."""

    def __init__(self, client: FastRedisClient | None = None):
        self.client = client or fast_redis

    async def get(self, key: str) -> EventsPayload | None:
        raw = await self.client.get(key)
        if raw is None:
            return None
        try:
            return EventsPayload.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Discarding unreadable cached payload", key=key[:60], error=str(e))
            return None

    async def set(self, key: str, payload: EventsPayload, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            # SETEX rejects 0 and a plain SET would never expire
            logger.debug("Caching disabled by zero TTL", key=key[:60])
            return
        stored = await self.client.set_with_ttl(key, payload.model_dump_json(), ttl_seconds)
        if not stored:
            logger.warning("Discovery payload was not cached", key=key[:60], ttl=ttl_seconds)


class InMemoryCacheStore:
    """Process-local store for development and tests."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[float, EventsPayload]] = {}

    async def get(self, key: str) -> EventsPayload | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, payload = entry
        if expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        return payload

    async def set(self, key: str, payload: EventsPayload, ttl_seconds: int) -> None:
        now = self._clock()
        self._purge_expired(now)
        self._entries[key] = (now + max(ttl_seconds, 0), payload)

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

    def size(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
