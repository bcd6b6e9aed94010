"""Pydantic models describing catalog entities and view rows."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)

EntryKind = Literal["series", "film"]
ENTRY_KINDS: tuple[EntryKind, ...] = ("series", "film")
EntryOrder = Literal["rating", "title"]

PLACEHOLDER_IMAGE = "/placeholder.svg"
ANONYMOUS_AUTHOR = "Anonymous"


class EntryStatus(str, Enum):
    ONGOING = "ongoing"
    COMPLETED = "completed"
    UPCOMING = "upcoming"


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        return value.strip() or None
    return value


class CatalogEntry(BaseModel):
    """A series or film as read from the catalog tables."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    kind: EntryKind
    title: str = Field(min_length=1)
    description: str | None = None
    synopsis: str | None = None
    thumbnail_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("thumbnail_url", "thumbnail", "image"),
    )
    rating: float | None = Field(default=None, ge=0, le=100)
    release_year: int | None = None
    status: EntryStatus | None = None
    is_archived: bool = False
    episode_count: int = Field(default=0, ge=0)
    duration: str | None = None
    language: str | None = None
    studio_name: str | None = None
    genres: set[str] = Field(default_factory=set)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator(
        "description",
        "synopsis",
        "thumbnail_url",
        "duration",
        "language",
        "studio_name",
        mode="before",
    )
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return _blank_to_none(value)

    @field_validator("rating", mode="before")
    @classmethod
    def _parse_rating(cls, value: object) -> object:
        if value is None or value == "":
            return None
        try:
            rating = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
        if not 0 <= rating <= 100:
            return None
        return rating

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: object) -> object:
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        if normalized in {status.value for status in EntryStatus}:
            return normalized
        return None

    @field_validator("episode_count", mode="before")
    @classmethod
    def _default_episode_count(cls, value: object) -> object:
        return 0 if value is None else value

    @field_validator("genres", mode="before")
    @classmethod
    def _parse_genres(cls, value: object) -> object:
        if value is None:
            return set()
        if isinstance(value, (list, tuple, set, frozenset)):
            return {str(name) for name in value if name}
        return value

    @field_serializer("genres")
    def _serialize_genres(self, genres: set[str]) -> list[str]:
        return sorted(genres)

    @classmethod
    def from_row(cls, row: dict[str, Any], *, kind: EntryKind) -> "CatalogEntry":
        """Validate a raw backend row for the given collection."""

        return cls.model_validate({**row, "kind": kind})

    @property
    def image(self) -> str:
        return self.thumbnail_url or PLACEHOLDER_IMAGE

    def to_card(self) -> dict[str, object]:
        """Return the compact payload used by shelves and carousels."""

        card: dict[str, object] = {
            "id": self.id,
            "type": self.kind,
            "title": self.title,
            "image": self.image,
        }
        if self.rating is not None:
            card["rating"] = self.rating
        if self.release_year:
            card["release_year"] = self.release_year
        if self.genres:
            card["genres"] = sorted(self.genres)
        return card


class EpisodeLink(BaseModel):
    platform: str = Field(min_length=1)
    url: str = Field(min_length=1)
    created_at: datetime | None = None


class Episode(BaseModel):
    """A stored episode row joined with its playback links."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    episode_number: int = Field(ge=1, validation_alias=AliasChoices("episode_number", "number"))
    title: str | None = None
    duration: int | None = Field(default=None, ge=0)
    season: int = 1
    language: str | None = None
    links: list[EpisodeLink] = Field(
        default_factory=list,
        validation_alias=AliasChoices("links", "episode_links"),
    )

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("title", "language", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        return _blank_to_none(value)

    @field_validator("season", mode="before")
    @classmethod
    def _default_season(cls, value: object) -> object:
        return value or 1

    @field_validator("links", mode="before")
    @classmethod
    def _default_links(cls, value: object) -> object:
        return value or []


class FilmLink(BaseModel):
    platform: str = Field(min_length=1)
    url: str = Field(min_length=1)
    quality: str | None = None
    language: str | None = None

    @field_validator("quality", "language", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        return _blank_to_none(value)


class Comment(BaseModel):
    """A discussion comment attached to a single series or film."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    content: str
    created_at: datetime
    user_id: str
    series_id: str | None = Field(
        default=None, validation_alias=AliasChoices("series_id", "anime_id")
    )
    film_id: str | None = Field(
        default=None, validation_alias=AliasChoices("film_id", "movie_id")
    )
    author_name: str | None = None

    @field_validator("id", "series_id", "film_id", mode="before")
    @classmethod
    def _coerce_id(cls, value: object) -> object:
        if isinstance(value, int):
            return str(value)
        return value

    @model_validator(mode="after")
    def _single_target(self) -> "Comment":
        if (self.series_id is None) == (self.film_id is None):
            raise ValueError("A comment must reference exactly one series or film")
        return self


class EpisodeRow(BaseModel):
    """One row of the episode list shown on a series page."""

    number: int
    title: str
    thumbnail: str | None = None
    duration: int
    links: dict[str, str] = Field(default_factory=dict)
    language: str
    season: int
    placeholder: bool = False


class ThreadKey(BaseModel):
    """Identifies a discussion thread by exactly one entry reference."""

    series_id: str | None = None
    film_id: str | None = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "ThreadKey":
        if (self.series_id is None) == (self.film_id is None):
            raise ValueError("Thread key needs exactly one of series_id or film_id")
        return self

    @classmethod
    def for_entry(cls, kind: EntryKind, entry_id: str) -> "ThreadKey":
        if kind == "series":
            return cls(series_id=entry_id)
        return cls(film_id=entry_id)

    @property
    def kind(self) -> EntryKind:
        return "series" if self.series_id is not None else "film"

    @property
    def entry_id(self) -> str:
        return self.series_id if self.series_id is not None else self.film_id  # type: ignore[return-value]


@dataclass(frozen=True, slots=True)
class SessionContext:
    """Current visitor identity, passed explicitly from the app boundary."""

    user_id: str | None = None
    access_token: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)
