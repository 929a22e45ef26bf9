"""
Alembic environment for the Tafawoq schema.

Migrations run through the async engine; the URL comes from the same
settings the API uses. Only tables registered by tafawoq models are
managed, Supabase-owned schemas are left alone.
"""

import asyncio
import os
import sys
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel import SQLModel

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tafawoq.config.settings import settings  # noqa: E402
from tafawoq.infrastructure.db import models  # noqa: E402,F401  (registers tables)
from tafawoq.infrastructure.db.database import resolve_database_url  # noqa: E402

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata

SUPABASE_SCHEMAS = {"auth", "storage", "realtime", "extensions", "graphql", "graphql_public"}


def include_object(obj, name, type_, reflected, compare_to):
    if type_ != "table":
        return True
    if getattr(obj, "schema", None) in SUPABASE_SCHEMAS:
        return False
    # Reflected tables we never declared (user_profiles, Supabase internals)
    return not (reflected and compare_to is None)


def _configure(**options) -> None:
    context.configure(
        target_metadata=target_metadata,
        include_object=include_object,
        compare_type=True,
        **options,
    )


def run_migrations_offline() -> None:
    """Emit SQL without connecting."""
    _configure(
        url=resolve_database_url(settings),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_sync(connection) -> None:
    _configure(connection=connection, compare_server_default=True)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = create_async_engine(resolve_database_url(settings), poolclass=pool.NullPool)
    async with engine.connect() as connection:
        await connection.run_sync(_run_sync)
    await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
