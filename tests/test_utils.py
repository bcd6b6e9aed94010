import asyncio

import pytest

from app.errors import FetchError
from app.utils import entry_path, map_isolated, paginate

pytestmark = pytest.mark.anyio


def test_entry_path_per_kind():
    assert entry_path("series", "s1") == "/series/s1"
    assert entry_path("film", "f1") == "/films/f1"


def test_paginate_is_one_based():
    items = list(range(5))

    assert paginate(items, 1, 2) == [0, 1]
    assert paginate(items, 3, 2) == [4]
    assert paginate(items, 4, 2) == []
    assert paginate(items, 0, 2) == []


async def test_map_isolated_keeps_order_and_defaults_failures():
    async def lookup(value: int) -> int:
        if value == 2:
            raise FetchError("lookup failed")
        await asyncio.sleep(0)
        return value * 10

    values, failures = await map_isolated(
        [1, 2, 3], lookup, default=lambda: -1, key=lambda value: f"item:{value}"
    )

    assert values == [10, -1, 30]
    assert [failure.key for failure in failures] == ["item:2"]
    assert isinstance(failures[0].error, FetchError)
    assert str(failures[0]) == "item:2: lookup failed"


async def test_map_isolated_bounds_concurrency():
    active = 0
    peak = 0

    async def lookup(value: int) -> int:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0)
        active -= 1
        return value

    values, failures = await map_isolated(
        list(range(10)), lookup, default=lambda: 0, concurrency=3
    )

    assert values == list(range(10))
    assert failures == []
    assert peak <= 3
