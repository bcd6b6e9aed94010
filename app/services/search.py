"""Debounced title search with a staleness guard."""

from __future__ import annotations

import asyncio
import logging

from ..errors import FetchError
from ..models import CatalogEntry, EntryKind
from .backend import CatalogBackend
from .scheduling import Debouncer, SleepFn

logger = logging.getLogger(__name__)


class SearchEngine:
    """Search-as-you-type state for the catalog search box.

    Each keystroke bumps a generation counter. A query only applies its
    results while its generation is still the latest one.
    """

    def __init__(
        self,
        backend: CatalogBackend,
        *,
        kind: EntryKind = "series",
        debounce_seconds: float = 0.3,
        limit: int = 10,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._backend = backend
        self._kind = kind
        self._limit = limit
        self._debouncer = Debouncer(debounce_seconds, sleep=sleep)
        self._generation = 0
        self.query = ""
        self.results: list[CatalogEntry] = []
        self.loading = False
        self.show_results = False
        self.error: FetchError | None = None

    @property
    def generation(self) -> int:
        return self._generation

    def update_query(self, text: str) -> None:
        """Record a keystroke and (re)schedule the search."""

        self.query = text
        self._generation += 1
        if not text.strip():
            self._debouncer.cancel()
            self.results = []
            self.show_results = False
            self.loading = False
            self.error = None
            return

        self.show_results = True
        generation = self._generation
        self._debouncer.schedule(lambda: self._execute(text.strip(), generation))

    def clear(self) -> None:
        self.update_query("")

    async def search(self, text: str) -> list[CatalogEntry]:
        """Run a query immediately, bypassing the debounce timer."""

        term = text.strip()
        if not term:
            return []
        return await self._backend.search_entries(self._kind, term, limit=self._limit)

    async def _execute(self, term: str, generation: int) -> None:
        self.loading = True
        try:
            results = await self.search(term)
        except FetchError as exc:
            if generation == self._generation:
                self.error = exc
                self.loading = False
            return

        if generation != self._generation:
            logger.debug("Discarding stale results for %r", term)
            return
        self.results = results
        self.error = None
        self.loading = False

    async def aclose(self) -> None:
        await self._debouncer.aclose()
