# app/db/helpers.py
"""
Query helpers for the page configuration store.
psycopg errors surface as DatabaseError; transient ones are retried by with_db_retry.
"""

import asyncio
import functools
from typing import Any

import psycopg

from app.db.pool import get_db_connection
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class DatabaseError(Exception):
    """A failed query. ``recoverable`` marks connection-level failures worth retrying."""

    def __init__(self, message: str, operation: str = "unknown", recoverable: bool = True):
        super().__init__(message)
        self.operation = operation
        self.recoverable = recoverable


async def _execute(operation: str, query: str, params: tuple, fetch_many: bool) -> Any:
    try:
        async with await get_db_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                if fetch_many:
                    return await cur.fetchall()
                return await cur.fetchone()
    except psycopg.Error as e:
        logger.error("Database query failed", operation=operation, query=query[:100], error=str(e))
        raise DatabaseError(
            f"Query failed: {e}",
            operation=operation,
            recoverable=isinstance(e, psycopg.OperationalError),
        ) from e


async def fetch_one(query: str, params: tuple = ()) -> dict[str, Any] | None:
    """First row as a dict, or None."""
    return await _execute("fetch_one", query, params, fetch_many=False) or None


async def fetch_all(query: str, params: tuple = ()) -> list[dict[str, Any]]:
    return await _execute("fetch_all", query, params, fetch_many=True)


def with_db_retry(max_retries: int = 2, base_delay: float = 0.1):
    """Retry recoverable DatabaseErrors with exponential backoff."""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except DatabaseError as e:
                    if not e.recoverable or attempt >= max_retries:
                        raise
                    delay = base_delay * (2**attempt)
                    attempt += 1
                    logger.warning(
                        "Database operation failed, retrying",
                        operation=func.__name__,
                        attempt=attempt,
                        delay=delay,
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
