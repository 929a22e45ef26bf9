"""
Database Infrastructure Package for Tafawoq

Exports database utilities.
"""

from tafawoq.infrastructure.db.database import (
    DatabaseManager,
    resolve_database_url,
    session_scope,
)


__all__ = [
    "DatabaseManager",
    "resolve_database_url",
    "session_scope",
]
