"""Utility helpers for the Anidost catalog core."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Hashable, Sequence, TypeVar

from .errors import PartialJoinFailure
from .models import EntryKind

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

_ENTRY_PATH_SEGMENTS: dict[str, str] = {"series": "series", "film": "films"}


def entry_path(kind: EntryKind, entry_id: str) -> str:
    """Return the detail address for a catalog entry."""

    return f"/{_ENTRY_PATH_SEGMENTS[kind]}/{entry_id}"


def paginate(items: Sequence[T], page: int, size: int) -> list[T]:
    """Return the 1-based ``page`` of ``items``; out of range pages are empty."""

    if page < 1 or size < 1:
        return []
    start = (page - 1) * size
    return list(items[start : start + size])


async def map_isolated(
    items: Sequence[T],
    lookup: Callable[[T], Awaitable[R]],
    *,
    default: Callable[[], R],
    key: Callable[[T], Hashable] = lambda item: item,  # type: ignore[assignment,return-value]
    concurrency: int = 8,
) -> tuple[list[R], list[PartialJoinFailure]]:
    """Run ``lookup`` for every item concurrently, isolating failures.

    Results keep the order of ``items``. A failing lookup yields ``default()``
    for that item and is reported in the returned failure list.
    """

    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _bounded(item: T) -> R:
        async with semaphore:
            return await lookup(item)

    results = await asyncio.gather(
        *(_bounded(item) for item in items), return_exceptions=True
    )

    values: list[R] = []
    failures: list[PartialJoinFailure] = []
    for item, result in zip(items, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            failure = PartialJoinFailure(key=str(key(item)), error=result)
            logger.warning("Secondary lookup failed for %s", failure)
            failures.append(failure)
            values.append(default())
            continue
        values.append(result)
    return values, failures
