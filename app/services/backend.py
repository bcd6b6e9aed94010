"""Query and mutation contract shared by the catalog backends."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from ..models import (
    CatalogEntry,
    Comment,
    EntryKind,
    EntryOrder,
    Episode,
    EpisodeLink,
    FilmLink,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class CatalogBackend(Protocol):
    """Relational query interface consumed by the view-model builders."""

    async def list_entries(
        self,
        kind: EntryKind,
        *,
        limit: int | None = None,
        exclude_id: str | None = None,
        order_by: EntryOrder = "rating",
    ) -> list[CatalogEntry]:
        """Non-archived entries ordered by rating desc (or title asc), then id asc."""
        ...

    async def get_entry(self, kind: EntryKind, entry_id: str) -> CatalogEntry:
        """Return the non-archived entry or raise ``NotFoundError``."""
        ...

    async def list_episodes(self, series_id: str) -> list[Episode]:
        """Episodes with their links, ordered by number, season and id."""
        ...

    async def list_episode_links(self, episode_id: str) -> list[EpisodeLink]: ...

    async def list_film_links(self, film_id: str) -> list[FilmLink]:
        """Film links ordered by language then platform."""
        ...

    async def list_genres(self, kind: EntryKind, entry_id: str) -> set[str]: ...

    async def search_entries(
        self, kind: EntryKind, substring: str, *, limit: int
    ) -> list[CatalogEntry]:
        """Case-insensitive title match over non-archived entries."""
        ...

    async def list_comments(self, entry_id: str, kind: EntryKind) -> list[Comment]:
        """Comments for the entry, newest first."""
        ...

    async def get_comment(self, comment_id: str) -> Comment: ...

    async def get_display_name(self, user_id: str) -> str | None: ...

    async def insert_comment(
        self, entry_id: str, kind: EntryKind, author_id: str, content: str
    ) -> Comment: ...

    async def delete_comment(self, comment_id: str, *, requesting_user_id: str) -> None:
        """Delete a comment owned by ``requesting_user_id``.

        Raises ``PermissionDeniedError`` when the comment belongs to someone else.
        """
        ...

    async def upsert_watch_history(
        self,
        user_id: str,
        entry_id: str,
        kind: EntryKind,
        *,
        episode_number: int | None,
        progress_seconds: int,
    ) -> None: ...


def parse_rows(
    model: type[ModelT], rows: Iterable[dict[str, Any]], **extra: Any
) -> list[ModelT]:
    """Validate raw rows, dropping the ones that do not fit ``model``."""

    parsed: list[ModelT] = []
    for row in rows:
        try:
            parsed.append(model.model_validate({**row, **extra}))
        except ValidationError as exc:
            logger.warning(
                "Skipping malformed %s row %s: %s",
                model.__name__,
                row.get("id"),
                exc.errors(include_url=False),
            )
    return parsed


def parse_entries(rows: Iterable[dict[str, Any]], kind: EntryKind) -> list[CatalogEntry]:
    """Validate entry rows and drop any archived entry that slipped through."""

    return [
        entry
        for entry in parse_rows(CatalogEntry, rows, kind=kind)
        if not entry.is_archived
    ]
