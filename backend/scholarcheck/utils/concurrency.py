"""
Bounded-concurrency mapping over a list of inputs.
"""

import asyncio
from typing import Awaitable, Callable, List, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def map_with_concurrency_limit(
    items: Sequence[T],
    fn: Callable[[T, int], Awaitable[R]],
    limit: int = 5,
) -> List[R]:
    """
    Apply ``fn`` to every item with at most ``limit`` calls in flight.

    Exactly ``min(limit, len(items))`` workers share a cursor into ``items``.
    Each worker claims the next unclaimed index, awaits ``fn(item, index)``
    and stores the result at that index, so ``results[i]`` always belongs to
    ``items[i]`` whatever order the calls finish in.

    Exceptions raised by ``fn`` propagate; callers that need fault isolation
    must catch inside ``fn``.
    """
    if limit < 1:
        raise ValueError("limit must be at least 1")

    results: List[R] = [None] * len(items)  # type: ignore[list-item]
    cursor = 0

    async def worker() -> None:
        nonlocal cursor
        while cursor < len(items):
            index = cursor
            cursor += 1
            results[index] = await fn(items[index], index)

    await asyncio.gather(*(worker() for _ in range(min(limit, len(items)))))
    return results
