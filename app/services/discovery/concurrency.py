"""Bounded-concurrency mapping for the discovery fan-out."""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def run_with_concurrency(
    items: Sequence[T],
    limit: int,
    worker: Callable[[T], Awaitable[R]],
) -> list[R]:
    """
    Apply ``worker`` to every item with at most ``limit`` calls in flight.

    Results come back in input order regardless of completion order. Each
    lane claims the next index from a shared cursor; claiming never awaits,
    so it is atomic on the event loop and every slot is written exactly once.
    An exception from ``worker`` propagates; callers isolate failures. Lanes
    still running when the runner exits are cancelled and awaited, so no item
    starts after the exception reaches the caller.
    """
    if not items:
        return []

    results: list[R | None] = [None] * len(items)
    cursor = 0

    async def lane() -> None:
        nonlocal cursor
        while cursor < len(items):
            index = cursor
            cursor += 1
            results[index] = await worker(items[index])

    lanes = min(max(1, limit), len(items))
    tasks = [asyncio.create_task(lane()) for _ in range(lanes)]
    try:
        await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
    return results  # type: ignore[return-value]
