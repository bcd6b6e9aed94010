"""Application configuration models."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, HttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a .env file."""

    app_name: str = Field(default="Anidost", alias="APP_NAME")
    server_host: str = Field(default="0.0.0.0", alias="HOST")
    server_port: int = Field(default=3000, alias="PORT")
    public_base_url: HttpUrl = Field(
        default="http://localhost:3000", alias="PUBLIC_BASE_URL"
    )

    backend: Literal["sql", "rest"] = Field(default="sql", alias="BACKEND")
    database_url: str = Field(
        default="sqlite+aiosqlite:///./anidost.db", alias="DATABASE_URL"
    )
    rest_api_url: HttpUrl | None = Field(
        default=None,
        alias="REST_API_URL",
        validation_alias=AliasChoices("REST_API_URL", "SUPABASE_URL"),
    )
    rest_api_key: str | None = Field(
        default=None,
        alias="REST_API_KEY",
        validation_alias=AliasChoices("REST_API_KEY", "SUPABASE_ANON_KEY"),
    )

    catalog_limit: int = Field(default=100, alias="CATALOG_LIMIT", ge=1, le=1_000)
    related_limit: int = Field(default=6, alias="RELATED_LIMIT", ge=0, le=50)
    featured_per_kind: int = Field(default=3, alias="FEATURED_PER_KIND", ge=1, le=10)
    search_limit: int = Field(default=10, alias="SEARCH_LIMIT", ge=1, le=100)
    search_debounce_ms: int = Field(
        default=300, alias="SEARCH_DEBOUNCE_MS", ge=0, le=10_000
    )
    featured_rotation_ms: int = Field(
        default=8_000, alias="FEATURED_ROTATION_MS", ge=100
    )
    lookup_concurrency: int = Field(
        default=8, alias="LOOKUP_CONCURRENCY", ge=1, le=64
    )
    comment_page_size: int = Field(
        default=20, alias="COMMENT_PAGE_SIZE", ge=1, le=200
    )

    environment: Literal["development", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )

    @field_validator("rest_api_key", mode="before")
    @classmethod
    def _strip_blank(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip() or None
        return value

    @model_validator(mode="after")
    def _require_rest_url(self) -> "Settings":
        """The REST backend cannot run without a base URL."""

        if self.backend == "rest" and self.rest_api_url is None:
            raise ValueError("REST_API_URL is required when BACKEND=rest")
        return self

    @property
    def search_debounce_seconds(self) -> float:
        return self.search_debounce_ms / 1000

    @property
    def featured_rotation_seconds(self) -> float:
        return self.featured_rotation_ms / 1000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()  # type: ignore[call-arg]


settings = get_settings()
