"""Alembic environment for TutorAssist migrations.

The connection URL comes from Settings (DATABASE_URL), so migrations and the
API always target the same database and share the asyncpg URL rewrite.
There is no alembic.ini sqlalchemy.url to keep in sync.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.ext.asyncio import create_async_engine

from tutorassist.config import get_settings
from tutorassist.db.base import Base
import tutorassist.models  # noqa: F401  (registers every table on Base.metadata)

if context.config.config_file_name is not None:
    fileConfig(context.config.config_file_name)

DATABASE_URL = get_settings().database_url


def _configure(**kwargs) -> None:
    context.configure(target_metadata=Base.metadata, compare_type=True, **kwargs)
    with context.begin_transaction():
        context.run_migrations()


async def _migrate_online() -> None:
    engine = create_async_engine(DATABASE_URL, poolclass=pool.NullPool)
    try:
        async with engine.connect() as connection:
            await connection.run_sync(lambda sync_conn: _configure(connection=sync_conn))
    finally:
        await engine.dispose()


if context.is_offline_mode():
    # Emits SQL to stdout for review against production
    _configure(url=DATABASE_URL, literal_binds=True, dialect_opts={"paramstyle": "named"})
else:
    asyncio.run(_migrate_online())
