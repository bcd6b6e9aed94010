"""Catalog backend speaking to a PostgREST-compatible HTTP API."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from ..config import Settings
from ..errors import FetchError, NotFoundError, PermissionDeniedError
from ..models import (
    CatalogEntry,
    Comment,
    EntryKind,
    EntryOrder,
    Episode,
    EpisodeLink,
    FilmLink,
)
from .backend import parse_entries, parse_rows

logger = logging.getLogger(__name__)

_ENTRY_TABLES = {"series": "anime", "film": "movies"}
_GENRE_TABLES = {"series": ("anime_genres", "anime_id"), "film": ("movie_genres", "movie_id")}
_COMMENT_COLUMNS = {"series": "anime_id", "film": "movie_id"}

_ENTRY_COLUMNS = (
    "id,title,description,synopsis,thumbnail_url,rating,release_year,status,"
    "studio_name,is_archived"
)
_ENTRY_SELECT = {
    "series": f"{_ENTRY_COLUMNS},episode_count",
    "film": f"{_ENTRY_COLUMNS},duration,language",
}
_ENTRY_ORDERS = {
    "rating": "rating.desc.nullslast,id.asc",
    "title": "title.asc,id.asc",
}


def _ilike_pattern(substring: str) -> str:
    """Build a PostgREST ilike filter matching ``substring`` literally."""

    escaped = (
        substring.replace("\\", "\\\\")
        .replace("%", "\\%")
        .replace("_", "\\_")
        .replace("*", " ")
        .strip()
    )
    return f"ilike.*{escaped}*"


class RestCatalogBackend:
    """Thin wrapper around the catalog's REST endpoints."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        *,
        access_token: str | None = None,
    ):
        self._settings = settings
        self._client = http_client
        self._access_token = access_token

    def with_access_token(self, access_token: str | None) -> "RestCatalogBackend":
        """Return a backend whose requests carry the visitor's token."""

        return RestCatalogBackend(
            self._settings, self._client, access_token=access_token
        )

    def _headers(self, *, prefer: str | None = None) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": f"{self._settings.app_name} (anidost)",
        }
        api_key = self._settings.rest_api_key
        if api_key:
            headers["apikey"] = api_key
        bearer = self._access_token or api_key
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        table: str,
        *,
        operation: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> list[dict[str, Any]]:
        try:
            response = await self._client.request(
                method,
                f"/rest/v1/{table}",
                params=params,
                json=json,
                headers=self._headers(prefer=prefer),
            )
        except httpx.HTTPError as exc:
            logger.warning("Catalog request %s failed: %s", operation, exc)
            raise FetchError(f"{operation} failed", operation=operation) from exc

        if response.status_code == 403 and method != "GET":
            raise PermissionDeniedError(f"{operation} was rejected by the backend")
        if response.status_code >= 400:
            logger.warning(
                "Catalog request %s returned %s: %s",
                operation,
                response.status_code,
                response.text,
            )
            raise FetchError(
                f"{operation} failed with status {response.status_code}",
                operation=operation,
            )
        if not response.content:
            return []
        payload = response.json()
        if isinstance(payload, dict):
            return [payload]
        if not isinstance(payload, list):
            raise FetchError(f"{operation} returned an unexpected payload", operation=operation)
        return [row for row in payload if isinstance(row, dict)]

    async def list_entries(
        self,
        kind: EntryKind,
        *,
        limit: int | None = None,
        exclude_id: str | None = None,
        order_by: EntryOrder = "rating",
    ) -> list[CatalogEntry]:
        params: dict[str, Any] = {
            "select": _ENTRY_SELECT[kind],
            "is_archived": "eq.false",
            "order": _ENTRY_ORDERS[order_by],
        }
        if exclude_id is not None:
            params["id"] = f"neq.{exclude_id}"
        if limit is not None:
            params["limit"] = limit
        rows = await self._request(
            "GET", _ENTRY_TABLES[kind], operation="list_entries", params=params
        )
        return parse_entries(rows, kind)

    async def get_entry(self, kind: EntryKind, entry_id: str) -> CatalogEntry:
        params = {
            "select": _ENTRY_SELECT[kind],
            "id": f"eq.{entry_id}",
            "is_archived": "eq.false",
            "limit": 1,
        }
        rows = await self._request(
            "GET", _ENTRY_TABLES[kind], operation="get_entry", params=params
        )
        entries = parse_entries(rows, kind)
        if not entries:
            raise NotFoundError(f"{kind} {entry_id} not found")
        return entries[0]

    async def list_episodes(self, series_id: str) -> list[Episode]:
        params = {
            "select": (
                "id,episode_number,title,duration,language,season,"
                "episode_links(platform,url,created_at)"
            ),
            "anime_id": f"eq.{series_id}",
            "order": "episode_number.asc,season.asc.nullsfirst,id.asc",
            "episode_links.order": "created_at.asc",
        }
        rows = await self._request(
            "GET", "episodes", operation="list_episodes", params=params
        )
        return parse_rows(Episode, rows)

    async def list_episode_links(self, episode_id: str) -> list[EpisodeLink]:
        params = {
            "select": "platform,url,created_at",
            "episode_id": f"eq.{episode_id}",
            "order": "created_at.asc",
        }
        rows = await self._request(
            "GET", "episode_links", operation="list_episode_links", params=params
        )
        return parse_rows(EpisodeLink, rows)

    async def list_film_links(self, film_id: str) -> list[FilmLink]:
        params = {
            "select": "id,platform,url,quality,language",
            "movie_id": f"eq.{film_id}",
            "order": "language.asc,platform.asc",
        }
        rows = await self._request(
            "GET", "movie_links", operation="list_film_links", params=params
        )
        return parse_rows(FilmLink, rows)

    async def list_genres(self, kind: EntryKind, entry_id: str) -> set[str]:
        table, column = _GENRE_TABLES[kind]
        params = {"select": "genres(name)", column: f"eq.{entry_id}"}
        rows = await self._request("GET", table, operation="list_genres", params=params)
        names: set[str] = set()
        for row in rows:
            genre = row.get("genres")
            if isinstance(genre, dict) and genre.get("name"):
                names.add(str(genre["name"]))
        return names

    async def search_entries(
        self, kind: EntryKind, substring: str, *, limit: int
    ) -> list[CatalogEntry]:
        params = {
            "select": _ENTRY_SELECT[kind],
            "title": _ilike_pattern(substring),
            "is_archived": "eq.false",
            "order": _ENTRY_ORDERS["rating"],
            "limit": limit,
        }
        rows = await self._request(
            "GET", _ENTRY_TABLES[kind], operation="search_entries", params=params
        )
        return parse_entries(rows, kind)

    async def list_comments(self, entry_id: str, kind: EntryKind) -> list[Comment]:
        params = {
            "select": "*",
            _COMMENT_COLUMNS[kind]: f"eq.{entry_id}",
            "order": "created_at.desc",
        }
        rows = await self._request(
            "GET", "comments", operation="list_comments", params=params
        )
        return parse_rows(Comment, rows)

    async def get_comment(self, comment_id: str) -> Comment:
        params = {"select": "*", "id": f"eq.{comment_id}", "limit": 1}
        rows = await self._request("GET", "comments", operation="get_comment", params=params)
        comments = parse_rows(Comment, rows)
        if not comments:
            raise NotFoundError(f"Comment {comment_id} not found")
        return comments[0]

    async def get_display_name(self, user_id: str) -> str | None:
        params = {"select": "username", "id": f"eq.{user_id}", "limit": 1}
        rows = await self._request(
            "GET", "profiles", operation="get_display_name", params=params
        )
        if not rows:
            return None
        username = rows[0].get("username")
        return str(username) if username else None

    async def insert_comment(
        self, entry_id: str, kind: EntryKind, author_id: str, content: str
    ) -> Comment:
        payload = {
            "user_id": author_id,
            "content": content,
            _COMMENT_COLUMNS[kind]: entry_id,
        }
        rows = await self._request(
            "POST",
            "comments",
            operation="insert_comment",
            json=payload,
            prefer="return=representation",
        )
        comments = parse_rows(Comment, rows)
        if not comments:
            raise FetchError("insert_comment returned no row", operation="insert_comment")
        return comments[0]

    async def delete_comment(self, comment_id: str, *, requesting_user_id: str) -> None:
        params = {"id": f"eq.{comment_id}", "user_id": f"eq.{requesting_user_id}"}
        deleted = await self._request(
            "DELETE",
            "comments",
            operation="delete_comment",
            params=params,
            prefer="return=representation",
        )
        if deleted:
            return
        # Nothing matched both filters: either the comment is gone or it is not ours.
        existing = await self.get_comment(comment_id)
        if existing.user_id != requesting_user_id:
            raise PermissionDeniedError("Only the author may delete this comment")
        raise FetchError("delete_comment removed no rows", operation="delete_comment")

    async def upsert_watch_history(
        self,
        user_id: str,
        entry_id: str,
        kind: EntryKind,
        *,
        episode_number: int | None,
        progress_seconds: int,
    ) -> None:
        entry_column = _COMMENT_COLUMNS[kind]
        payload = {
            "user_id": user_id,
            entry_column: entry_id,
            "episode_number": episode_number,
            "progress_seconds": progress_seconds,
            "last_watched_at": datetime.now(timezone.utc).isoformat(),
        }
        await self._request(
            "POST",
            "watch_history",
            operation="upsert_watch_history",
            params={"on_conflict": f"user_id,{entry_column},episode_number"},
            json=payload,
            prefer="resolution=merge-duplicates",
        )
