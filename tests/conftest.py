"""Pytest configuration and test helpers."""

from __future__ import annotations

import asyncio
import heapq
import itertools
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest


# Ensure the application package is importable when running tests without an
# editable install. This mirrors the expected runtime layout where ``app`` sits
# at the project root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


from app.database import Database  # noqa: E402
from app.db_models import (  # noqa: E402
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
)
from app.errors import FetchError, NotFoundError, PermissionDeniedError  # noqa: E402
from app.models import CatalogEntry, Comment, Episode, FilmLink  # noqa: E402
from app.services.sql_backend import SqlCatalogBackend  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"


class VirtualClock:
    """Deterministic stand-in for ``asyncio.sleep`` driven by the test."""

    def __init__(self) -> None:
        self.now = 0.0
        self._waiters: list[tuple[float, int, asyncio.Future[None]]] = []
        self._counter = itertools.count()

    async def sleep(self, delay: float) -> None:
        future = asyncio.get_running_loop().create_future()
        deadline = round(self.now + delay, 6)
        heapq.heappush(self._waiters, (deadline, next(self._counter), future))
        await future

    @staticmethod
    async def settle() -> None:
        for _ in range(10):
            await asyncio.sleep(0)

    async def advance_to(self, target: float) -> None:
        target = round(target, 6)
        await self.settle()
        while self._waiters and self._waiters[0][0] <= target:
            deadline, _, future = heapq.heappop(self._waiters)
            if future.done():
                continue
            self.now = deadline
            future.set_result(None)
            await self.settle()
        self.now = target
        await self.settle()

    async def advance(self, delta: float) -> None:
        await self.advance_to(self.now + delta)


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


def make_entry(entry_id: str, kind: str = "series", **fields: object) -> CatalogEntry:
    data: dict[str, object] = {"id": entry_id, "title": f"Title {entry_id}"}
    data.update(fields)
    return CatalogEntry.from_row(data, kind=kind)  # type: ignore[arg-type]


class InMemoryBackend:
    """Catalog backend double holding rows in plain Python structures."""

    def __init__(self) -> None:
        self.entries: dict[str, list[CatalogEntry]] = {"series": [], "film": []}
        self.genres: dict[tuple[str, str], set[str] | Exception] = {}
        self.episodes: dict[str, list[Episode]] = {}
        self.film_links: dict[str, list[FilmLink]] = {}
        self.comments: list[Comment] = []
        self.profiles: dict[str, str | Exception] = {}
        self.history: list[dict[str, object]] = []
        self.failing: set[str] = set()
        self.search_gates: dict[str, asyncio.Event] = {}
        self.insert_gates: dict[str, asyncio.Event] = {}
        self.calls: list[tuple[str, tuple[object, ...]]] = []
        self._comment_ids = itertools.count(1)
        self._clock = datetime(2024, 1, 1)

    def _record(self, operation: str, *args: object) -> None:
        self.calls.append((operation, args))
        if operation in self.failing:
            raise FetchError(f"{operation} failed", operation=operation)

    def calls_to(self, operation: str) -> list[tuple[object, ...]]:
        return [args for name, args in self.calls if name == operation]

    def _visible(self, kind: str) -> list[CatalogEntry]:
        entries = [entry for entry in self.entries[kind] if not entry.is_archived]
        return sorted(
            entries,
            key=lambda entry: (entry.rating is None, -(entry.rating or 0), entry.id),
        )

    async def list_entries(self, kind, *, limit=None, exclude_id=None, order_by="rating"):
        self._record("list_entries", kind, limit, exclude_id)
        entries = [entry for entry in self._visible(kind) if entry.id != exclude_id]
        if order_by == "title":
            entries.sort(key=lambda entry: (entry.title, entry.id))
        return entries[:limit] if limit is not None else entries

    async def get_entry(self, kind, entry_id):
        self._record("get_entry", kind, entry_id)
        for entry in self._visible(kind):
            if entry.id == entry_id:
                return entry
        raise NotFoundError(f"{kind} {entry_id} not found")

    async def list_episodes(self, series_id):
        self._record("list_episodes", series_id)
        return list(self.episodes.get(series_id, []))

    async def list_episode_links(self, episode_id):
        self._record("list_episode_links", episode_id)
        for episodes in self.episodes.values():
            for episode in episodes:
                if episode.id == episode_id:
                    return list(episode.links)
        return []

    async def list_film_links(self, film_id):
        self._record("list_film_links", film_id)
        return list(self.film_links.get(film_id, []))

    async def list_genres(self, kind, entry_id):
        self._record("list_genres", kind, entry_id)
        value = self.genres.get((kind, entry_id), set())
        if isinstance(value, Exception):
            raise value
        return set(value)

    async def search_entries(self, kind, substring, *, limit):
        self._record("search_entries", kind, substring, limit)
        gate = self.search_gates.get(substring)
        if gate is not None:
            await gate.wait()
        needle = substring.casefold()
        matches = [
            entry for entry in self._visible(kind) if needle in entry.title.casefold()
        ]
        return matches[:limit]

    async def list_comments(self, entry_id, kind):
        self._record("list_comments", entry_id, kind)
        attribute = "series_id" if kind == "series" else "film_id"
        matching = [c for c in self.comments if getattr(c, attribute) == entry_id]
        return sorted(matching, key=lambda comment: comment.created_at, reverse=True)

    async def get_comment(self, comment_id):
        self._record("get_comment", comment_id)
        for comment in self.comments:
            if comment.id == comment_id:
                return comment
        raise NotFoundError(f"Comment {comment_id} not found")

    async def get_display_name(self, user_id):
        self._record("get_display_name", user_id)
        value = self.profiles.get(user_id)
        if isinstance(value, Exception):
            raise value
        return value

    def add_comment(self, entry_id: str, kind: str, author_id: str, content: str) -> Comment:
        self._clock += timedelta(minutes=1)
        comment = Comment(
            id=f"c{next(self._comment_ids)}",
            content=content,
            created_at=self._clock,
            user_id=author_id,
            series_id=entry_id if kind == "series" else None,
            film_id=entry_id if kind == "film" else None,
        )
        self.comments.append(comment)
        return comment

    async def insert_comment(self, entry_id, kind, author_id, content):
        self._record("insert_comment", entry_id, kind, author_id, content)
        gate = self.insert_gates.get(content)
        if gate is not None:
            await gate.wait()
        return self.add_comment(entry_id, kind, author_id, content)

    async def delete_comment(self, comment_id, *, requesting_user_id):
        self._record("delete_comment", comment_id, requesting_user_id)
        comment = await self.get_comment(comment_id)
        if comment.user_id != requesting_user_id:
            raise PermissionDeniedError("Only the author may delete this comment")
        self.comments = [c for c in self.comments if c.id != comment_id]

    async def upsert_watch_history(
        self, user_id, entry_id, kind, *, episode_number, progress_seconds
    ):
        self._record("upsert_watch_history", user_id, entry_id, kind)
        self.history = [
            row
            for row in self.history
            if (row["user_id"], row["entry_id"], row["episode_number"])
            != (user_id, entry_id, episode_number)
        ]
        self.history.append(
            {
                "user_id": user_id,
                "entry_id": entry_id,
                "kind": kind,
                "episode_number": episode_number,
                "progress_seconds": progress_seconds,
            }
        )


@pytest.fixture
def memory_backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture
def entry_factory():
    return make_entry


@pytest.fixture
async def database(tmp_path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
    await database.create_all()
    try:
        yield database
    finally:
        await database.dispose()


async def seed_catalog(database: Database) -> None:
    """Populate a small catalog covering archived rows and rating ties."""

    async with database.session_factory() as session:
        session.add_all(
            [
                SeriesRecord(id="s1", title="Naruto", rating=90, episode_count=3,
                             thumbnail_url="https://img.example/naruto.jpg", status="Ongoing"),
                SeriesRecord(id="s2", title="Bleach", rating=85, episode_count=2),
                SeriesRecord(id="s3", title="Naruto Shippuden", rating=85, episode_count=0),
                SeriesRecord(id="s4", title="Archived Ninja", rating=99, is_archived=True),
                SeriesRecord(id="s5", title="Unrated 100% Show", rating=None),
                FilmRecord(id="f1", title="Spirited Away", rating=97, language="Japanese"),
                FilmRecord(id="f2", title="Old Reel", rating=99, is_archived=True),
                GenreRecord(id=1, name="Action"),
                GenreRecord(id=2, name="Fantasy"),
                GenreRecord(id=3, name=None),
                ProfileRecord(id="u1", username="kakashi"),
            ]
        )
        await session.flush()
        session.add_all(
            [
                SeriesGenreRecord(anime_id="s1", genre_id=1),
                SeriesGenreRecord(anime_id="s1", genre_id=3),
                SeriesGenreRecord(anime_id="s2", genre_id=1),
                FilmGenreRecord(movie_id="f1", genre_id=2),
                EpisodeRecord(id="e1", anime_id="s1", episode_number=1, language="Japanese", season=1),
                EpisodeRecord(id="e2", anime_id="s1", episode_number=2, language="English", season=None),
                FilmLinkRecord(movie_id="f1", platform="Zeta", url="https://z.example/f1", language="Japanese"),
                FilmLinkRecord(movie_id="f1", platform="Alpha", url="https://a.example/f1", language=None),
                FilmLinkRecord(movie_id="f1", platform="Beta", url="https://b.example/f1", language="Japanese"),
                CommentRecord(id="c1", content="First!", user_id="u1", anime_id="s1",
                              created_at=datetime(2024, 1, 1, 12)),
                CommentRecord(id="c2", content="Great arc", user_id="u2", anime_id="s1",
                              created_at=datetime(2024, 1, 2, 12)),
                CommentRecord(id="c3", content="Beautiful", user_id="u1", movie_id="f1",
                              created_at=datetime(2024, 1, 3, 12)),
            ]
        )
        await session.flush()
        session.add_all(
            [
                EpisodeLinkRecord(episode_id="e1", platform="StreamerX", url="https://x.example/old"),
                EpisodeLinkRecord(episode_id="e1", platform="Crunchy", url="https://c.example/e1"),
                EpisodeLinkRecord(episode_id="e1", platform="StreamerX", url="https://x.example/new"),
            ]
        )
        await session.commit()


@pytest.fixture
async def sql_backend(database) -> SqlCatalogBackend:
    await seed_catalog(database)
    return SqlCatalogBackend(database.session_factory)
