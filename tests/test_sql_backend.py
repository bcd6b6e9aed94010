"""Behaviour of the SQLAlchemy catalog backend against SQLite."""

from __future__ import annotations

import pytest
from sqlalchemy import select

from app.db_models import WatchHistoryRecord
from app.errors import FetchError, NotFoundError, PermissionDeniedError
from app.services.sql_backend import SqlCatalogBackend

pytestmark = pytest.mark.anyio


async def test_list_entries_excludes_archived_and_breaks_ties_by_id(sql_backend) -> None:
    series = await sql_backend.list_entries("series")

    assert [entry.id for entry in series] == ["s1", "s2", "s3", "s5"]
    assert all(not entry.is_archived for entry in series)
    assert series[0].status is not None and series[0].status.value == "ongoing"

    films = await sql_backend.list_entries("film")
    assert [entry.id for entry in films] == ["f1"]


async def test_list_entries_honours_limit_and_exclusion(sql_backend) -> None:
    entries = await sql_backend.list_entries("series", limit=2, exclude_id="s1")

    assert [entry.id for entry in entries] == ["s2", "s3"]


async def test_list_entries_by_title(sql_backend) -> None:
    entries = await sql_backend.list_entries("series", order_by="title")

    assert [entry.id for entry in entries] == ["s2", "s1", "s3", "s5"]
    assert [entry.id for entry in await sql_backend.list_entries("film", order_by="title")] == ["f1"]


async def test_get_entry_rejects_archived_rows(sql_backend) -> None:
    entry = await sql_backend.get_entry("series", "s1")
    assert entry.title == "Naruto"
    assert entry.episode_count == 3

    with pytest.raises(NotFoundError):
        await sql_backend.get_entry("series", "s4")
    with pytest.raises(NotFoundError):
        await sql_backend.get_entry("film", "missing")


async def test_list_genres_drops_unnamed_genres(sql_backend) -> None:
    assert await sql_backend.list_genres("series", "s1") == {"Action"}
    assert await sql_backend.list_genres("film", "f1") == {"Fantasy"}
    assert await sql_backend.list_genres("series", "s3") == set()


async def test_list_episodes_embeds_links_oldest_first(sql_backend) -> None:
    episodes = await sql_backend.list_episodes("s1")

    assert [episode.episode_number for episode in episodes] == [1, 2]
    assert episodes[1].season == 1
    assert [link.url for link in episodes[0].links] == [
        "https://x.example/old",
        "https://c.example/e1",
        "https://x.example/new",
    ]
    links = await sql_backend.list_episode_links("e1")
    assert [link.platform for link in links] == ["StreamerX", "Crunchy", "StreamerX"]


async def test_list_film_links_orders_by_language_then_platform(sql_backend) -> None:
    links = await sql_backend.list_film_links("f1")

    assert [(link.language, link.platform) for link in links] == [
        (None, "Alpha"),
        ("Japanese", "Beta"),
        ("Japanese", "Zeta"),
    ]


async def test_search_is_case_insensitive_and_skips_archived(sql_backend) -> None:
    results = await sql_backend.search_entries("series", "NARUTO", limit=10)
    assert [entry.id for entry in results] == ["s1", "s3"]

    assert await sql_backend.search_entries("series", "ninja", limit=10) == []
    limited = await sql_backend.search_entries("series", "naruto", limit=1)
    assert [entry.id for entry in limited] == ["s1"]


async def test_search_treats_wildcards_literally(sql_backend) -> None:
    results = await sql_backend.search_entries("series", "100%", limit=10)
    assert [entry.id for entry in results] == ["s5"]

    assert await sql_backend.search_entries("series", "%", limit=10) != []
    assert await sql_backend.search_entries("series", "_x_", limit=10) == []


async def test_list_comments_newest_first_per_target(sql_backend) -> None:
    comments = await sql_backend.list_comments("s1", "series")
    assert [comment.id for comment in comments] == ["c2", "c1"]
    assert comments[0].series_id == "s1" and comments[0].film_id is None

    film_comments = await sql_backend.list_comments("f1", "film")
    assert [comment.id for comment in film_comments] == ["c3"]


async def test_display_name_lookup(sql_backend) -> None:
    assert await sql_backend.get_display_name("u1") == "kakashi"
    assert await sql_backend.get_display_name("nobody") is None


async def test_insert_and_delete_comment_enforce_authorship(sql_backend) -> None:
    created = await sql_backend.insert_comment("s2", "series", "u9", "Hello")
    assert created.series_id == "s2"
    assert created.user_id == "u9"

    with pytest.raises(PermissionDeniedError):
        await sql_backend.delete_comment(created.id, requesting_user_id="u1")
    assert [c.id for c in await sql_backend.list_comments("s2", "series")] == [created.id]

    await sql_backend.delete_comment(created.id, requesting_user_id="u9")
    assert await sql_backend.list_comments("s2", "series") == []

    with pytest.raises(NotFoundError):
        await sql_backend.delete_comment(created.id, requesting_user_id="u9")


async def test_insert_comment_requires_visible_entry(sql_backend) -> None:
    with pytest.raises(NotFoundError):
        await sql_backend.insert_comment("s4", "series", "u1", "Archived?")


async def test_upsert_watch_history_updates_existing_row(sql_backend, database) -> None:
    await sql_backend.upsert_watch_history("u1", "s1", "series", episode_number=1, progress_seconds=0)
    await sql_backend.upsert_watch_history("u1", "s1", "series", episode_number=1, progress_seconds=120)
    await sql_backend.upsert_watch_history("u1", "f1", "film", episode_number=None, progress_seconds=5)

    async with database.session_factory() as session:
        rows = (await session.execute(select(WatchHistoryRecord))).scalars().all()

    assert len(rows) == 2
    series_row = next(row for row in rows if row.anime_id == "s1")
    assert series_row.progress_seconds == 120
    film_row = next(row for row in rows if row.movie_id == "f1")
    assert film_row.episode_number is None


async def test_database_errors_become_fetch_errors(database) -> None:
    backend = SqlCatalogBackend(database.session_factory)
    async with database.engine.begin() as connection:
        await connection.exec_driver_sql("DROP TABLE anime")

    with pytest.raises(FetchError):
        await backend.list_entries("series")
