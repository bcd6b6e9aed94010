"""Grouping of film playback links by language."""

from __future__ import annotations

from typing import Iterable

from ..models import FilmLink
from .backend import CatalogBackend

DEFAULT_FILM_LANGUAGE = "English"


def group_film_links(links: Iterable[FilmLink]) -> dict[str, list[FilmLink]]:
    """Group links by language, keeping backend order inside each group."""

    grouped: dict[str, list[FilmLink]] = {}
    for link in links:
        grouped.setdefault(link.language or DEFAULT_FILM_LANGUAGE, []).append(link)
    return grouped


class FilmLinkSelection:
    """Language-partitioned film links with a locally switchable selection."""

    def __init__(self, links: Iterable[FilmLink]):
        self._groups = group_film_links(links)
        self.languages: list[str] = sorted(self._groups)
        self.selected: str = self.languages[0] if self.languages else ""

    @property
    def groups(self) -> dict[str, list[FilmLink]]:
        return self._groups

    def select(self, language: str) -> list[FilmLink]:
        """Switch the selected language without fetching again."""

        if language not in self._groups:
            raise KeyError(f"No links available in {language}")
        self.selected = language
        return self.visible

    @property
    def visible(self) -> list[FilmLink]:
        return list(self._groups.get(self.selected, []))

    def to_payload(self) -> dict[str, object]:
        return {
            "languages": self.languages,
            "selected_language": self.selected,
            "links": [link.model_dump() for link in self.visible],
        }


async def load_film_links(backend: CatalogBackend, film_id: str) -> FilmLinkSelection:
    return FilmLinkSelection(await backend.list_film_links(film_id))
