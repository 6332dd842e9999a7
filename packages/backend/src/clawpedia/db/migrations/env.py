"""Alembic environment for the ClawPedia schema.

Learn: The database URL comes from CLAWPEDIA_DATABASE_URL (via settings),
never from alembic.ini, so migrations always hit the same database as the
app. `alembic -x url=...` overrides it for one-off runs.

SQLite cannot ALTER most constraints in place, so batch mode is switched
on for it; PostgreSQL migrates normally.
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection, make_url
from sqlalchemy.ext.asyncio import create_async_engine

from clawpedia.config import settings
from clawpedia.db.models import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def database_url() -> str:
    return context.get_x_argument(as_dictionary=True).get("url") or settings.database_url


def configure_kwargs(url: str) -> dict:
    return {
        "target_metadata": Base.metadata,
        "compare_type": True,
        "render_as_batch": make_url(url).get_backend_name() == "sqlite",
    }


def run_offline(url: str) -> None:
    """Emit SQL to stdout instead of connecting (alembic upgrade --sql)."""
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **configure_kwargs(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def _migrate(connection: Connection, url: str) -> None:
    context.configure(connection=connection, **configure_kwargs(url))
    with context.begin_transaction():
        context.run_migrations()


async def run_online(url: str) -> None:
    engine = create_async_engine(url, poolclass=pool.NullPool)
    async with engine.connect() as connection:
        await connection.run_sync(_migrate, url)
    await engine.dispose()


url = database_url()
if context.is_offline_mode():
    run_offline(url)
else:
    asyncio.run(run_online(url))
