"""Page-level view state for the home, series and film screens."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Generic, TypeVar

from ..errors import FetchError, NotFoundError
from ..models import CatalogEntry, EntryKind, ENTRY_KINDS
from .backend import CatalogBackend
from .catalog import (
    ALL_GENRES,
    FILM_SHELVES,
    SERIES_SHELVES,
    AggregatedSlice,
    CatalogAggregator,
    build_shelves,
    filter_by_genre,
    genre_facet,
)
from .episodes import EpisodeListing, load_listing
from .film_links import FilmLinkSelection, load_film_links

logger = logging.getLogger(__name__)

KeyT = TypeVar("KeyT")


class _GuardedPage(Generic[KeyT]):
    """Tracks which load is the latest so late responses can be dropped."""

    def __init__(self) -> None:
        self._generation = 0
        self.key: KeyT | None = None
        self.loading = False
        self.error: FetchError | None = None
        self.not_found = False

    def _begin(self, key: KeyT) -> int:
        if key != self.key:
            self._reset()
        self.key = key
        self._generation += 1
        self.loading = True
        self.not_found = False
        return self._generation

    def _is_current(self, generation: int) -> bool:
        if generation != self._generation:
            logger.debug("Dropping stale %s response for %s", type(self).__name__, self.key)
            return False
        return True

    def _finish(self, *, error: FetchError | None = None, not_found: bool = False) -> None:
        self.loading = False
        self.error = error
        self.not_found = not_found

    def _reset(self) -> None:
        """Forget data belonging to the previous key."""


class HomePage(_GuardedPage[str]):
    """Rating-ordered series and film shelves filtered by genre."""

    def __init__(self, aggregator: CatalogAggregator, *, limit: int = 100):
        super().__init__()
        self._aggregator = aggregator
        self._limit = limit
        self.series: list[CatalogEntry] = []
        self.films: list[CatalogEntry] = []
        self.genre = ALL_GENRES

    async def load(self) -> None:
        generation = self._begin("home")
        results = await asyncio.gather(
            *(self._aggregator.aggregate(kind, self._limit) for kind in ENTRY_KINDS),
            return_exceptions=True,
        )
        if not self._is_current(generation):
            return

        error: FetchError | None = None
        for kind, result in zip(ENTRY_KINDS, results):
            if isinstance(result, FetchError):
                logger.warning("Home %s shelf unavailable: %s", kind, result)
                error = error or result
                continue
            if isinstance(result, BaseException):
                raise result
            assert isinstance(result, AggregatedSlice)
            if kind == "series":
                self.series = result.entries
            else:
                self.films = result.entries
        self._finish(error=error)

    def select_genre(self, genre: str) -> None:
        self.genre = genre or ALL_GENRES

    @property
    def genres(self) -> list[str]:
        return genre_facet(self.series, self.films)

    def shelves(self) -> dict[str, dict[str, list[CatalogEntry]]]:
        return {
            "series": build_shelves(filter_by_genre(self.series, self.genre), SERIES_SHELVES),
            "films": build_shelves(filter_by_genre(self.films, self.genre), FILM_SHELVES),
        }

    def to_payload(self) -> dict[str, Any]:
        return {
            "genre": self.genre,
            "genres": self.genres,
            "error": str(self.error) if self.error else None,
            "shelves": {
                kind: {name: [entry.to_card() for entry in entries] for name, entries in shelves.items()}
                for kind, shelves in self.shelves().items()
            },
        }


class FilmsPage(_GuardedPage[str]):
    """Alphabetical film catalog with a local title/description filter."""

    def __init__(self, backend: CatalogBackend):
        super().__init__()
        self._backend = backend
        self.films: list[CatalogEntry] = []
        self.query = ""

    async def load(self) -> None:
        generation = self._begin("films")
        try:
            films = await self._backend.list_entries("film", order_by="title")
        except FetchError as exc:
            if self._is_current(generation):
                logger.warning("Film catalog unavailable: %s", exc)
                self._finish(error=exc)
            return
        if not self._is_current(generation):
            return
        self.films = films
        self._finish()

    def filter(self, query: str) -> list[CatalogEntry]:
        self.query = query
        return self.visible

    @property
    def visible(self) -> list[CatalogEntry]:
        needle = self.query.strip().casefold()
        if not needle:
            return list(self.films)
        return [
            entry
            for entry in self.films
            if needle in entry.title.casefold()
            or needle in (entry.description or "").casefold()
        ]

    @property
    def total(self) -> int:
        return len(self.films)

    def to_payload(self) -> dict[str, Any]:
        visible = self.visible
        return {
            "query": self.query,
            "showing": len(visible),
            "total": self.total,
            "error": str(self.error) if self.error else None,
            "films": [entry.to_card() for entry in visible],
        }


class _DetailPage(_GuardedPage[str], ABC):
    kind: EntryKind

    def __init__(
        self,
        backend: CatalogBackend,
        aggregator: CatalogAggregator,
        *,
        related_limit: int = 6,
    ):
        super().__init__()
        self._backend = backend
        self._aggregator = aggregator
        self._related_limit = related_limit
        self.entry: CatalogEntry | None = None
        self.related: list[CatalogEntry] = []

    def _reset(self) -> None:
        self.entry = None
        self.related = []

    async def _load_related(self, entry_id: str) -> list[CatalogEntry]:
        try:
            return await self._aggregator.related(
                self.kind, entry_id, limit=self._related_limit
            )
        except FetchError as exc:
            logger.warning("Related %s entries unavailable: %s", self.kind, exc)
            return []

    async def load(self, entry_id: str) -> None:
        generation = self._begin(entry_id)
        try:
            entry = await self._backend.get_entry(self.kind, entry_id)
            extras, related = await asyncio.gather(
                self._load_extras(entry), self._load_related(entry_id)
            )
        except NotFoundError:
            if self._is_current(generation):
                self._reset()
                self._finish(not_found=True)
            return
        except FetchError as exc:
            if self._is_current(generation):
                self._finish(error=exc)
            return

        if not self._is_current(generation):
            return
        self.entry = entry
        self.related = related
        self._apply_extras(extras)
        self._finish()

    @abstractmethod
    async def _load_extras(self, entry: CatalogEntry) -> Any:
        """Fetch the kind-specific data shown beside the entry."""

    @abstractmethod
    def _apply_extras(self, extras: Any) -> None:
        """Store what ``_load_extras`` returned."""

    def _base_payload(self) -> dict[str, Any]:
        return {
            "loading": self.loading,
            "not_found": self.not_found,
            "error": str(self.error) if self.error else None,
            "entry": self.entry.model_dump(mode="json") if self.entry else None,
            "related": [entry.to_card() for entry in self.related],
        }


class SeriesDetailPage(_DetailPage):
    kind: EntryKind = "series"

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.listing: EpisodeListing | None = None

    def _reset(self) -> None:
        super()._reset()
        self.listing = None

    async def _load_extras(self, entry: CatalogEntry) -> EpisodeListing:
        return await load_listing(self._backend, entry)

    def _apply_extras(self, extras: EpisodeListing) -> None:
        self.listing = extras

    def to_payload(self, language: str | None = None, season: int | None = None) -> dict[str, Any]:
        payload = self._base_payload()
        payload["episodes"] = self.listing.to_payload(language, season) if self.listing else None
        return payload


class FilmDetailPage(_DetailPage):
    kind: EntryKind = "film"

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.links: FilmLinkSelection | None = None

    def _reset(self) -> None:
        super()._reset()
        self.links = None

    async def _load_extras(self, entry: CatalogEntry) -> FilmLinkSelection:
        return await load_film_links(self._backend, entry.id)

    def _apply_extras(self, extras: FilmLinkSelection) -> None:
        self.links = extras

    def select_language(self, language: str) -> None:
        if self.links is not None:
            self.links.select(language)

    def to_payload(self) -> dict[str, Any]:
        payload = self._base_payload()
        payload["links"] = self.links.to_payload() if self.links else None
        return payload
