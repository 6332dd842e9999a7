"""Async SQLAlchemy engine and per-request sessions.

Learn: PostgreSQL (asyncpg) gets a sized connection pool. A sqlite+aiosqlite
URL is accepted for local hacking; SQLite has no server-side pool to size,
so pool arguments are only passed for server databases.

Sessions never expire attributes on commit: services return ORM rows
after committing, and an expired attribute would trigger a lazy load,
which async sessions cannot do implicitly.
"""

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from clawpedia.config import settings


def engine_options(database_url: str) -> dict:
    options = {"echo": settings.debug, "pool_pre_ping": True}
    if make_url(database_url).get_backend_name() != "sqlite":
        options.update(pool_size=5, max_overflow=15)
    return options


engine = create_async_engine(
    settings.database_url, **engine_options(settings.database_url)
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db():
    """One session per request, closed when the response is sent."""
    async with async_session_factory() as session:
        yield session
