"""SQLAlchemy ORM models mirroring the catalog tables."""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


def _new_id() -> str:
    return str(uuid4())


class EntryColumns:
    """Column shape shared by the series and film collections."""

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    synopsis: Mapped[str | None] = mapped_column(Text, nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    rating: Mapped[float | None] = mapped_column(Float, nullable=True)
    release_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str | None] = mapped_column(String(32), nullable=True)
    studio_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class SeriesRecord(EntryColumns, Base):
    """A series-kind catalog entry."""

    __tablename__ = "anime"

    episode_count: Mapped[int] = mapped_column(Integer, default=0)

    episodes: Mapped[list["EpisodeRecord"]] = relationship(
        back_populates="series", cascade="all, delete-orphan"
    )


class FilmRecord(EntryColumns, Base):
    """A film-kind catalog entry."""

    __tablename__ = "movies"

    duration: Mapped[str | None] = mapped_column(String(32), nullable=True)
    language: Mapped[str | None] = mapped_column(String(64), nullable=True)

    links: Mapped[list["FilmLinkRecord"]] = relationship(
        back_populates="film", cascade="all, delete-orphan"
    )


class EpisodeRecord(Base):
    __tablename__ = "episodes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    anime_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("anime.id", ondelete="CASCADE")
    )
    episode_number: Mapped[int] = mapped_column(Integer)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    duration: Mapped[int | None] = mapped_column(Integer, nullable=True)
    season: Mapped[int | None] = mapped_column(Integer, nullable=True)
    language: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    series: Mapped[SeriesRecord] = relationship(back_populates="episodes")
    links: Mapped[list["EpisodeLinkRecord"]] = relationship(
        back_populates="episode",
        cascade="all, delete-orphan",
        order_by="EpisodeLinkRecord.id",
    )


class EpisodeLinkRecord(Base):
    __tablename__ = "episode_links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    episode_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("episodes.id", ondelete="CASCADE")
    )
    platform: Mapped[str] = mapped_column(String(120))
    url: Mapped[str] = mapped_column(String(2048))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    episode: Mapped[EpisodeRecord] = relationship(back_populates="links")


class FilmLinkRecord(Base):
    __tablename__ = "movie_links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    movie_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("movies.id", ondelete="CASCADE")
    )
    platform: Mapped[str] = mapped_column(String(120))
    url: Mapped[str] = mapped_column(String(2048))
    quality: Mapped[str | None] = mapped_column(String(32), nullable=True)
    language: Mapped[str | None] = mapped_column(String(64), nullable=True)

    film: Mapped[FilmRecord] = relationship(back_populates="links")


class GenreRecord(Base):
    __tablename__ = "genres"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str | None] = mapped_column(String(120), nullable=True)


class SeriesGenreRecord(Base):
    __tablename__ = "anime_genres"

    anime_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("anime.id", ondelete="CASCADE"), primary_key=True
    )
    genre_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("genres.id", ondelete="CASCADE"), primary_key=True
    )


class FilmGenreRecord(Base):
    __tablename__ = "movie_genres"

    movie_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("movies.id", ondelete="CASCADE"), primary_key=True
    )
    genre_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("genres.id", ondelete="CASCADE"), primary_key=True
    )


class ProfileRecord(Base):
    """Public profile data used to resolve comment author names."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str | None] = mapped_column(String(120), nullable=True)


class CommentRecord(Base):
    """Discussion comment attached to exactly one series or film."""

    __tablename__ = "comments"
    __table_args__ = (
        CheckConstraint(
            "(anime_id IS NULL) <> (movie_id IS NULL)",
            name="single_target",
        ),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    content: Mapped[str] = mapped_column(Text)
    user_id: Mapped[str] = mapped_column(String(64))
    anime_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("anime.id", ondelete="CASCADE"), nullable=True
    )
    movie_id: Mapped[str | None] = mapped_column(
        String(64), ForeignKey("movies.id", ondelete="CASCADE"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class WatchHistoryRecord(Base):
    __tablename__ = "watch_history"
    __table_args__ = (
        UniqueConstraint(
            "user_id", "anime_id", "movie_id", "episode_number",
            name="uq_watch_history_target",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64))
    anime_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    movie_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    episode_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    progress_seconds: Mapped[int] = mapped_column(Integer, default=0)
    last_watched_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
