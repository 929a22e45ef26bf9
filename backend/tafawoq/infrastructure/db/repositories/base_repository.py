"""
Base Repository for Tafawoq

Repositories receive the session factory through their constructor and
open one transactional session per operation.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional, Union
from uuid import UUID

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tafawoq.infrastructure.db.database import session_scope
from tafawoq.infrastructure.exceptions import DatabaseError


def to_uuid(value: Union[str, UUID]) -> UUID:
    """Convert string ids to UUID for PostgreSQL compatibility."""
    return value if isinstance(value, UUID) else UUID(str(value))


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Backends without timezone support hand back naive UTC values."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BaseRepository:
    """Shared session handling for all repositories."""

    table_name: str = ""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        """
        Transactional session for one repository operation.

        Connection-level failures surface as DatabaseError; constraint
        violations propagate unchanged so callers can react to them.
        """
        try:
            async with session_scope(self._session_factory) as session:
                yield session
        except (OperationalError, InterfaceError) as e:
            raise DatabaseError(
                f"Database unavailable during {operation}",
                operation=operation,
                table=self.table_name or None,
                original_error=e,
            ) from e
