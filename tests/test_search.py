"""Debounced search behaviour driven by a virtual clock."""

from __future__ import annotations

import asyncio

import pytest

from app.services.search import SearchEngine

pytestmark = pytest.mark.anyio


@pytest.fixture
def catalog(memory_backend, entry_factory):
    memory_backend.entries["series"] = [
        entry_factory("s1", title="Naruto", rating=90),
        entry_factory("s2", title="Bleach", rating=85),
        entry_factory("s3", title="Naruto Shippuden", rating=80),
        entry_factory("s4", title="Hidden Naruto", rating=99, is_archived=True),
    ]
    return memory_backend


async def test_rapid_keystrokes_issue_a_single_query(catalog, clock) -> None:
    """Only the last keystroke of a burst should reach the backend."""

    engine = SearchEngine(catalog, debounce_seconds=0.3, sleep=clock.sleep)
    try:
        engine.update_query("n")
        await clock.advance_to(0.1)
        engine.update_query("na")
        await clock.advance_to(0.15)
        engine.update_query("nar")
        await clock.advance_to(0.2)
        engine.update_query("naru")

        await clock.advance_to(0.49)
        assert catalog.calls_to("search_entries") == []

        await clock.advance_to(0.5)
        assert catalog.calls_to("search_entries") == [("series", "naru", 10)]
        assert [entry.id for entry in engine.results] == ["s1", "s3"]

        await clock.advance_to(0.6)
        engine.update_query("narut")
        await clock.advance_to(0.89)
        assert len(catalog.calls_to("search_entries")) == 1
        await clock.advance_to(0.9)
        assert [call[1] for call in catalog.calls_to("search_entries")] == ["naru", "narut"]
    finally:
        await engine.aclose()


async def test_stale_results_are_discarded(catalog, clock) -> None:
    """A slow earlier query must not overwrite results of a newer one."""

    gate = asyncio.Event()
    catalog.search_gates["naruto"] = gate
    engine = SearchEngine(catalog, debounce_seconds=0.3, sleep=clock.sleep)
    try:
        engine.update_query("naruto")
        await clock.advance(0.3)
        assert engine.loading is True

        engine.update_query("bleach")
        await clock.advance(0.3)
        assert [entry.title for entry in engine.results] == ["Bleach"]

        gate.set()
        await clock.settle()

        assert [entry.title for entry in engine.results] == ["Bleach"]
        assert engine.query == "bleach"
        assert [call[1] for call in catalog.calls_to("search_entries")] == ["naruto", "bleach"]
    finally:
        await engine.aclose()


async def test_blank_query_clears_without_fetching(catalog, clock) -> None:
    engine = SearchEngine(catalog, debounce_seconds=0.3, sleep=clock.sleep)
    try:
        engine.update_query("bl")
        await clock.advance(0.3)
        assert engine.show_results is True
        assert [entry.id for entry in engine.results] == ["s2"]

        engine.update_query("nar")
        engine.update_query("   ")
        await clock.advance(1.0)

        assert engine.results == []
        assert engine.show_results is False
        assert engine.loading is False
        assert len(catalog.calls_to("search_entries")) == 1
    finally:
        await engine.aclose()


async def test_search_trims_the_term_and_skips_archived(catalog, clock) -> None:
    engine = SearchEngine(catalog, debounce_seconds=0.3, limit=5, sleep=clock.sleep)
    try:
        engine.update_query("  NARUTO ")
        await clock.advance(0.3)

        assert catalog.calls_to("search_entries") == [("series", "NARUTO", 5)]
        assert [entry.id for entry in engine.results] == ["s1", "s3"]
    finally:
        await engine.aclose()


async def test_fetch_error_is_reported_for_current_query(catalog, clock) -> None:
    catalog.failing.add("search_entries")
    engine = SearchEngine(catalog, debounce_seconds=0.3, sleep=clock.sleep)
    try:
        engine.update_query("naruto")
        await clock.advance(0.3)

        assert engine.error is not None
        assert engine.error.retryable is True
        assert engine.loading is False
        assert engine.results == []
    finally:
        await engine.aclose()


async def test_immediate_search_skips_the_debounce(catalog) -> None:
    engine = SearchEngine(catalog, limit=5)
    try:
        assert await engine.search("   ") == []
        assert catalog.calls_to("search_entries") == []

        results = await engine.search(" naruto ")

        assert [entry.id for entry in results] == ["s1", "s3"]
        assert catalog.calls_to("search_entries") == [("series", "naruto", 5)]
        assert engine.results == []
    finally:
        await engine.aclose()
