"""Episode list construction for series pages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from ..models import CatalogEntry, Episode, EpisodeLink, EpisodeRow
from .backend import CatalogBackend

UNKNOWN_LANGUAGE = "Unknown"
DEFAULT_EPISODE_MINUTES = 24


def flatten_links(links: Iterable[EpisodeLink]) -> dict[str, str]:
    """Map platform to URL; a later link for the same platform wins."""

    by_platform: dict[str, str] = {}
    for link in links:
        by_platform[link.platform] = link.url
    return by_platform


def build_episode_rows(entry: CatalogEntry, episodes: Sequence[Episode]) -> list[EpisodeRow]:
    """Return exactly ``entry.episode_count`` rows numbered from 1."""

    first_by_number: dict[int, Episode] = {}
    for episode in episodes:
        first_by_number.setdefault(episode.episode_number, episode)

    rows: list[EpisodeRow] = []
    for number in range(1, entry.episode_count + 1):
        episode = first_by_number.get(number)
        if episode is None:
            rows.append(
                EpisodeRow(
                    number=number,
                    title=f"Episode {number}",
                    thumbnail=entry.thumbnail_url,
                    duration=DEFAULT_EPISODE_MINUTES,
                    language=UNKNOWN_LANGUAGE,
                    season=1,
                    placeholder=True,
                )
            )
            continue
        rows.append(
            EpisodeRow(
                number=number,
                title=episode.title or f"Episode {number}",
                thumbnail=entry.thumbnail_url,
                duration=episode.duration or DEFAULT_EPISODE_MINUTES,
                links=flatten_links(episode.links),
                language=episode.language or UNKNOWN_LANGUAGE,
                season=episode.season,
            )
        )
    return rows


def derive_languages(episodes: Iterable[Episode]) -> list[str]:
    """Distinct non-empty language tags in first-seen order."""

    return list(dict.fromkeys(episode.language for episode in episodes if episode.language))


def derive_seasons(episodes: Iterable[Episode]) -> list[int]:
    return sorted({episode.season or 1 for episode in episodes})


def filter_episodes(
    rows: Iterable[EpisodeRow], language: str | None, season: int | None
) -> list[EpisodeRow]:
    """Rows matching the selected language and season; empty selections match all."""

    visible = list(rows)
    if language:
        wanted = language.casefold()
        visible = [row for row in visible if row.language.casefold() == wanted]
    if season:
        visible = [row for row in visible if row.season == season]
    return visible


@dataclass(slots=True)
class EpisodeListing:
    """Episode rows of a series with their language and season facets."""

    rows: list[EpisodeRow]
    languages: list[str] = field(default_factory=list)
    seasons: list[int] = field(default_factory=list)

    @property
    def default_language(self) -> str:
        return self.languages[0] if self.languages else ""

    @property
    def default_season(self) -> int:
        return self.seasons[0] if self.seasons else 1

    def visible(self, language: str | None = None, season: int | None = None) -> list[EpisodeRow]:
        """Rows for the selection, falling back to the default facets."""

        return filter_episodes(
            self.rows,
            self.default_language if language is None else language,
            self.default_season if season is None else season,
        )

    def to_payload(self, language: str | None = None, season: int | None = None) -> dict[str, object]:
        selected_language = self.default_language if language is None else language
        selected_season = self.default_season if season is None else season
        return {
            "languages": self.languages,
            "seasons": self.seasons or [1],
            "selected_language": selected_language,
            "selected_season": selected_season,
            "episodes": [
                row.model_dump()
                for row in filter_episodes(self.rows, selected_language, selected_season)
            ],
        }


def build_listing(entry: CatalogEntry, episodes: Sequence[Episode]) -> EpisodeListing:
    return EpisodeListing(
        rows=build_episode_rows(entry, episodes),
        languages=derive_languages(episodes),
        seasons=derive_seasons(episodes),
    )


async def load_listing(backend: CatalogBackend, entry: CatalogEntry) -> EpisodeListing:
    """Fetch the stored episodes of ``entry`` and group them for display."""

    episodes = await backend.list_episodes(entry.id)
    return build_listing(entry, episodes)
