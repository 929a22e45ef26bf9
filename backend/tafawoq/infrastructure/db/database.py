"""
Database Configuration for Tafawoq

Async SQLAlchemy engine and session management. The manager is built once
in the application lifespan and its session factory is handed to the
repositories; there is no module-level connection pool.
"""

import re
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional
from urllib.parse import quote_plus

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from tafawoq.config.settings import Settings
from tafawoq.infrastructure.exceptions import ConfigurationError


def resolve_database_url(settings: Settings) -> str:
    """
    Get the async PostgreSQL connection URL.

    Uses DATABASE_URL if provided, otherwise derives it from
    SUPABASE_URL + SUPABASE_PASSWORD.
    """
    if settings.database_url:
        database_url = settings.database_url
        if database_url.startswith("postgresql://"):
            database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql+asyncpg://", 1)
        return database_url

    if not settings.supabase_url or not settings.supabase_password:
        raise ConfigurationError(
            "Either DATABASE_URL or (SUPABASE_URL + SUPABASE_PASSWORD) is required",
            missing_keys=["DATABASE_URL"],
        )

    # https://[project-ref].supabase.co -> db.[project-ref].supabase.co
    match = re.match(r"https?://([^.]+)\.supabase\.co", settings.supabase_url)
    if not match:
        raise ConfigurationError(f"Invalid SUPABASE_URL format: {settings.supabase_url}")

    project_ref = match.group(1)
    password = quote_plus(settings.supabase_password)
    return (
        f"postgresql+asyncpg://postgres:{password}"
        f"@db.{project_ref}.supabase.co:5432/postgres"
    )


class DatabaseManager:
    """
    Owns the async engine and session factory for one process.

    Engine options are passed straight to ``create_async_engine``.
    """

    def __init__(self, database_url: str, **engine_options: Any):
        self._database_url = database_url
        self._engine_options = engine_options
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "DatabaseManager":
        """Build a pooled Postgres manager from application settings."""
        return cls(
            resolve_database_url(settings),
            echo=settings.database_echo,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_timeout=settings.database_pool_timeout,
            pool_pre_ping=True,  # Verify connections before use
        )

    @property
    def engine(self) -> AsyncEngine:
        """Get or create async engine."""
        if self._engine is None:
            self._initialize_engine()
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get or create session factory."""
        if self._session_factory is None:
            self._initialize_engine()
        return self._session_factory

    def _initialize_engine(self) -> None:
        self._engine = create_async_engine(self._database_url, **self._engine_options)
        self._session_factory = async_sessionmaker(
            bind=self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    async def verify(self) -> None:
        """Run a trivial query to make sure the database is reachable."""
        async with self.session_factory() as session:
            await session.execute(text("SELECT 1"))

    async def create_tables(self) -> None:
        """Create all tables from SQLModel metadata."""
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    async def drop_tables(self) -> None:
        """Drop all tables (use with caution, mainly for testing)."""
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.drop_all)

    async def close(self) -> None:
        """Close engine and dispose of connection pool."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """
    Transactional session: commits on success, rolls back on error.

    Usage:
        async with session_scope(factory) as session:
            result = await session.execute(query)
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
