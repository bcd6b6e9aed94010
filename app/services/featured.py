"""Rotating featured-content carousel."""

from __future__ import annotations

import asyncio
import logging

from ..errors import FetchError
from ..models import CatalogEntry, ENTRY_KINDS
from .backend import CatalogBackend
from .scheduling import PeriodicTask, SleepFn

logger = logging.getLogger(__name__)


class FeaturedRotator:
    """Cycles through the top-rated series and films of the catalog."""

    def __init__(
        self,
        backend: CatalogBackend,
        *,
        per_kind: int = 3,
        interval_seconds: float = 8.0,
        sleep: SleepFn = asyncio.sleep,
    ):
        self._backend = backend
        self._per_kind = per_kind
        self.interval_seconds = interval_seconds
        self._timer = PeriodicTask(interval_seconds, self._tick, sleep=sleep)
        self.items: list[CatalogEntry] = []
        self.index = 0
        self.loading = True

    async def load(self) -> list[CatalogEntry]:
        """Fill the pool: series first, then films; a failing kind is skipped."""

        results = await asyncio.gather(
            *(
                self._backend.list_entries(kind, limit=self._per_kind)
                for kind in ENTRY_KINDS
            ),
            return_exceptions=True,
        )
        pool: list[CatalogEntry] = []
        for kind, result in zip(ENTRY_KINDS, results):
            if isinstance(result, FetchError):
                logger.warning("Featured %s entries unavailable: %s", kind, result)
                continue
            if isinstance(result, BaseException):
                raise result
            pool.extend(result)
        self.items = pool
        self.index = 0
        self.loading = False
        return pool

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def current(self) -> CatalogEntry | None:
        if not self.items:
            return None
        return self.items[self.index]

    @property
    def running(self) -> bool:
        return self._timer.running

    def start(self) -> None:
        """Begin automatic rotation; an empty pool never rotates."""

        if self.is_empty:
            return
        self._timer.start()

    async def stop(self) -> None:
        await self._timer.stop()

    def _tick(self) -> None:
        if not self.items:
            return
        self.index = (self.index + 1) % len(self.items)

    def next(self) -> None:
        self._tick()

    def previous(self) -> None:
        if not self.items:
            return
        self.index = (self.index - 1) % len(self.items)

    def jump_to(self, index: int) -> None:
        if not 0 <= index < len(self.items):
            raise IndexError(f"Featured index {index} out of range")
        self.index = index

    def to_payload(self) -> dict[str, object]:
        return {
            "loading": self.loading,
            "index": self.index,
            "interval_ms": round(self.interval_seconds * 1000),
            "items": [entry.model_dump(mode="json") for entry in self.items],
        }
