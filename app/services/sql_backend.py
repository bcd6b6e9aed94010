"""SQLAlchemy implementation of the catalog backend."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator

from sqlalchemy import inspect, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from ..db_models import (
    CommentRecord,
    EpisodeLinkRecord,
    EpisodeRecord,
    FilmGenreRecord,
    FilmLinkRecord,
    FilmRecord,
    GenreRecord,
    ProfileRecord,
    SeriesGenreRecord,
    SeriesRecord,
    WatchHistoryRecord,
)
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

_ENTRY_MODELS = {"series": SeriesRecord, "film": FilmRecord}


def _columns(record: Any) -> dict[str, Any]:
    return {attr.key: getattr(record, attr.key) for attr in inspect(record).mapper.column_attrs}


class SqlCatalogBackend:
    """Reads and writes catalog rows through an async SQLAlchemy session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                yield session
        except SQLAlchemyError as exc:
            logger.warning("Catalog query %s failed: %s", operation, exc)
            raise FetchError(f"{operation} failed", operation=operation) from exc

    @staticmethod
    def _ordered_entries(kind: EntryKind, order_by: EntryOrder = "rating"):
        model = _ENTRY_MODELS[kind]
        stmt = select(model).where(model.is_archived.is_(False))
        if order_by == "title":
            return stmt.order_by(model.title, model.id)
        return stmt.order_by(model.rating.is_(None), model.rating.desc(), model.id)

    async def list_entries(
        self,
        kind: EntryKind,
        *,
        limit: int | None = None,
        exclude_id: str | None = None,
        order_by: EntryOrder = "rating",
    ) -> list[CatalogEntry]:
        model = _ENTRY_MODELS[kind]
        stmt = self._ordered_entries(kind, order_by)
        if exclude_id is not None:
            stmt = stmt.where(model.id != exclude_id)
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self._session("list_entries") as session:
            records = (await session.execute(stmt)).scalars().all()
        return parse_entries((_columns(record) for record in records), kind)

    async def get_entry(self, kind: EntryKind, entry_id: str) -> CatalogEntry:
        model = _ENTRY_MODELS[kind]
        stmt = select(model).where(model.id == entry_id, model.is_archived.is_(False))
        async with self._session("get_entry") as session:
            record = (await session.execute(stmt)).scalar_one_or_none()
        entries = parse_entries([_columns(record)], kind) if record is not None else []
        if not entries:
            raise NotFoundError(f"{kind} {entry_id} not found")
        return entries[0]

    async def list_episodes(self, series_id: str) -> list[Episode]:
        stmt = (
            select(EpisodeRecord)
            .where(EpisodeRecord.anime_id == series_id)
            .options(selectinload(EpisodeRecord.links))
            .order_by(
                EpisodeRecord.episode_number,
                EpisodeRecord.season,
                EpisodeRecord.id,
            )
        )
        async with self._session("list_episodes") as session:
            records = (await session.execute(stmt)).scalars().all()
            rows = [
                {
                    **_columns(record),
                    "links": [_columns(link) for link in record.links],
                }
                for record in records
            ]
        return parse_rows(Episode, rows)

    async def list_episode_links(self, episode_id: str) -> list[EpisodeLink]:
        stmt = (
            select(EpisodeLinkRecord)
            .where(EpisodeLinkRecord.episode_id == episode_id)
            .order_by(EpisodeLinkRecord.id)
        )
        async with self._session("list_episode_links") as session:
            records = (await session.execute(stmt)).scalars().all()
        return parse_rows(EpisodeLink, (_columns(record) for record in records))

    async def list_film_links(self, film_id: str) -> list[FilmLink]:
        stmt = (
            select(FilmLinkRecord)
            .where(FilmLinkRecord.movie_id == film_id)
            .order_by(FilmLinkRecord.language, FilmLinkRecord.platform, FilmLinkRecord.id)
        )
        async with self._session("list_film_links") as session:
            records = (await session.execute(stmt)).scalars().all()
        return parse_rows(FilmLink, (_columns(record) for record in records))

    async def list_genres(self, kind: EntryKind, entry_id: str) -> set[str]:
        if kind == "series":
            association, entry_column = SeriesGenreRecord, SeriesGenreRecord.anime_id
        else:
            association, entry_column = FilmGenreRecord, FilmGenreRecord.movie_id
        stmt = (
            select(GenreRecord.name)
            .join(association, association.genre_id == GenreRecord.id)
            .where(entry_column == entry_id)
        )
        async with self._session("list_genres") as session:
            names = (await session.execute(stmt)).scalars().all()
        return {name for name in names if name}

    async def search_entries(
        self, kind: EntryKind, substring: str, *, limit: int
    ) -> list[CatalogEntry]:
        model = _ENTRY_MODELS[kind]
        stmt = (
            self._ordered_entries(kind)
            .where(model.title.icontains(substring, autoescape=True))
            .limit(limit)
        )
        async with self._session("search_entries") as session:
            records = (await session.execute(stmt)).scalars().all()
        return parse_entries((_columns(record) for record in records), kind)

    async def list_comments(self, entry_id: str, kind: EntryKind) -> list[Comment]:
        column = CommentRecord.anime_id if kind == "series" else CommentRecord.movie_id
        stmt = (
            select(CommentRecord)
            .where(column == entry_id)
            .order_by(CommentRecord.created_at.desc(), CommentRecord.id.desc())
        )
        async with self._session("list_comments") as session:
            records = (await session.execute(stmt)).scalars().all()
        return parse_rows(Comment, (_columns(record) for record in records))

    async def get_comment(self, comment_id: str) -> Comment:
        async with self._session("get_comment") as session:
            record = await session.get(CommentRecord, comment_id)
        if record is None:
            raise NotFoundError(f"Comment {comment_id} not found")
        return Comment.model_validate(_columns(record))

    async def get_display_name(self, user_id: str) -> str | None:
        stmt = select(ProfileRecord.username).where(ProfileRecord.id == user_id)
        async with self._session("get_display_name") as session:
            return (await session.execute(stmt)).scalar_one_or_none()

    async def insert_comment(
        self, entry_id: str, kind: EntryKind, author_id: str, content: str
    ) -> Comment:
        model = _ENTRY_MODELS[kind]
        async with self._session("insert_comment") as session:
            target = await session.get(model, entry_id)
            if target is None or target.is_archived:
                raise NotFoundError(f"{kind} {entry_id} not found")
            record = CommentRecord(
                content=content,
                user_id=author_id,
                anime_id=entry_id if kind == "series" else None,
                movie_id=entry_id if kind == "film" else None,
                created_at=datetime.utcnow(),
            )
            session.add(record)
            await session.commit()
            return Comment.model_validate(_columns(record))

    async def delete_comment(self, comment_id: str, *, requesting_user_id: str) -> None:
        async with self._session("delete_comment") as session:
            record = await session.get(CommentRecord, comment_id)
            if record is None:
                raise NotFoundError(f"Comment {comment_id} not found")
            if record.user_id != requesting_user_id:
                raise PermissionDeniedError("Only the author may delete this comment")
            await session.delete(record)
            await session.commit()

    async def upsert_watch_history(
        self,
        user_id: str,
        entry_id: str,
        kind: EntryKind,
        *,
        episode_number: int | None,
        progress_seconds: int,
    ) -> None:
        entry_column = (
            WatchHistoryRecord.anime_id if kind == "series" else WatchHistoryRecord.movie_id
        )
        episode_clause = (
            WatchHistoryRecord.episode_number.is_(None)
            if episode_number is None
            else WatchHistoryRecord.episode_number == episode_number
        )
        stmt = select(WatchHistoryRecord).where(
            WatchHistoryRecord.user_id == user_id,
            entry_column == entry_id,
            episode_clause,
        )
        now = datetime.utcnow()
        async with self._session("upsert_watch_history") as session:
            record = (await session.execute(stmt)).scalar_one_or_none()
            if record is None:
                session.add(
                    WatchHistoryRecord(
                        user_id=user_id,
                        anime_id=entry_id if kind == "series" else None,
                        movie_id=entry_id if kind == "film" else None,
                        episode_number=episode_number,
                        progress_seconds=progress_seconds,
                        last_watched_at=now,
                    )
                )
            else:
                record.progress_seconds = progress_seconds
                record.last_watched_at = now
            await session.commit()
