"""Async engine and schema management for the catalog tables."""

from __future__ import annotations

import logging

from sqlalchemy import MetaData, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

logger = logging.getLogger(__name__)

NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Columns added after the first catalog release; older databases get them on startup.
_BACKFILLED_COLUMNS: tuple[tuple[str, str, str, str | None], ...] = (
    ("anime", "is_archived", "BOOLEAN DEFAULT 0", "UPDATE anime SET is_archived = 0 WHERE is_archived IS NULL"),
    ("movies", "is_archived", "BOOLEAN DEFAULT 0", "UPDATE movies SET is_archived = 0 WHERE is_archived IS NULL"),
    ("episodes", "season", "INTEGER", None),
    ("movie_links", "language", "VARCHAR(64)", None),
)


class Base(DeclarativeBase):
    """Declarative base with consistent constraint names."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)


class Database:
    """Owns the async engine and the session factory handed to the SQL backend."""

    def __init__(self, database_url: str):
        self._engine: AsyncEngine = create_async_engine(database_url, future=True)
        self.session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self._engine, expire_on_commit=False
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_all(self) -> None:
        """Create missing tables, then backfill columns on existing ones."""

        async with self._engine.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
            await connection.run_sync(self._backfill_columns)

    @staticmethod
    def _backfill_columns(sync_connection) -> None:
        inspector = inspect(sync_connection)
        tables = set(inspector.get_table_names())
        for table, column, ddl_type, init_sql in _BACKFILLED_COLUMNS:
            if table not in tables:
                continue
            existing = {info["name"] for info in inspector.get_columns(table)}
            if column in existing:
                continue
            logger.info("Adding column %s.%s", table, column)
            sync_connection.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl_type}"))
            if init_sql:
                sync_connection.execute(text(init_sql))

    async def ping(self) -> bool:
        """Return whether the database answers a trivial query."""

        try:
            async with self._engine.connect() as connection:
                await connection.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.warning("Database ping failed: %s", exc)
            return False
        return True

    async def dispose(self) -> None:
        await self._engine.dispose()
