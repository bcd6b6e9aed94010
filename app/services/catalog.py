"""Catalog aggregation and genre filtering."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from ..errors import PartialJoinFailure
from ..models import CatalogEntry, EntryKind
from ..utils import map_isolated
from .backend import CatalogBackend

logger = logging.getLogger(__name__)

ALL_GENRES = "All"

SERIES_SHELVES: tuple[tuple[str, int, int], ...] = (
    ("popular", 0, 6),
    ("trending", 6, 12),
    ("top_rated", 12, 18),
)
FILM_SHELVES: tuple[tuple[str, int, int], ...] = (
    ("popular", 0, 6),
    ("trending", 6, 12),
)


@dataclass(slots=True)
class AggregatedSlice:
    """Entries of one kind plus the genre lookups that degraded."""

    kind: EntryKind
    entries: list[CatalogEntry]
    failures: list[PartialJoinFailure] = field(default_factory=list)


class CatalogAggregator:
    """Merges catalog entries with their genre associations."""

    def __init__(self, backend: CatalogBackend, *, concurrency: int = 8):
        self._backend = backend
        self._concurrency = concurrency

    async def aggregate(
        self, kind: EntryKind, limit: int | None = None
    ) -> AggregatedSlice:
        """Return rated entries of ``kind`` with their genres resolved."""

        entries = await self._backend.list_entries(kind, limit=limit)

        async def _lookup(entry: CatalogEntry) -> set[str]:
            return await self._backend.list_genres(kind, entry.id)

        genre_sets, failures = await map_isolated(
            entries,
            _lookup,
            default=set,
            key=lambda entry: f"{kind}:{entry.id}",
            concurrency=self._concurrency,
        )
        if failures:
            logger.warning(
                "Genre lookup degraded for %d of %d %s entries",
                len(failures),
                len(entries),
                kind,
            )
        merged = [
            entry.model_copy(update={"genres": genres})
            for entry, genres in zip(entries, genre_sets)
        ]
        return AggregatedSlice(kind=kind, entries=merged, failures=failures)

    async def list_entries(
        self, kind: EntryKind, limit: int | None = None
    ) -> list[CatalogEntry]:
        return (await self.aggregate(kind, limit)).entries

    async def related(
        self, kind: EntryKind, entry_id: str, *, limit: int = 6
    ) -> list[CatalogEntry]:
        """Top-rated entries of the same kind, excluding ``entry_id``."""

        if limit <= 0:
            return []
        return await self._backend.list_entries(kind, limit=limit, exclude_id=entry_id)


def filter_by_genre(
    items: Sequence[CatalogEntry], genre: str = ALL_GENRES
) -> list[CatalogEntry]:
    """Keep entries tagged with ``genre``; ``"All"`` keeps everything."""

    if genre == ALL_GENRES:
        return list(items)
    return [item for item in items if genre in item.genres]


def genre_facet(*slices: Iterable[CatalogEntry]) -> list[str]:
    """Return the selectable genres, ``"All"`` first, the rest sorted."""

    names: set[str] = set()
    for entries in slices:
        for entry in entries:
            names.update(entry.genres)
    names.discard(ALL_GENRES)
    return [ALL_GENRES, *sorted(names)]


def build_shelves(
    entries: Sequence[CatalogEntry], layout: Sequence[tuple[str, int, int]]
) -> dict[str, list[CatalogEntry]]:
    """Cut a rating-ordered slice into the named home page shelves."""

    return {name: list(entries[start:end]) for name, start, end in layout}
