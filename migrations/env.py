"""
Alembic environment for the reminder store.

Migrates ``tasks``, ``processed_updates`` and ``sent_reminders`` from the
metadata in *db/models.py*. The connection string comes from the same
``DATABASE_URL`` the app uses (rewritten to asyncpg for Postgres), with
``sqlalchemy.url`` in alembic.ini as a last resort. SQLite URLs pass
through untouched and run in batch mode, since SQLite cannot ALTER the
unique constraints on the ledger tables in place.
"""

from __future__ import annotations

import asyncio
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from db.db import _build_url
from db.models import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _database_url() -> str:
    if os.getenv("DATABASE_URL") or os.getenv("DATABASE_PUBLIC_URL"):
        return _build_url()
    url = config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("DATABASE_URL not set and sqlalchemy.url missing from alembic.ini")
    return url


def _configure(url: str, **kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        render_as_batch=url.startswith("sqlite"),
        compare_type=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit the DDL as a script instead of touching a database."""
    url = _database_url()
    _configure(url, url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})
    with context.begin_transaction():
        context.run_migrations()


def _run_sync(connection, url: str) -> None:
    _configure(url, connection=connection)
    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    url = _database_url()
    engine = create_async_engine(url, poolclass=pool.NullPool)
    async with engine.connect() as conn:
        await conn.run_sync(_run_sync, url)
    await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
