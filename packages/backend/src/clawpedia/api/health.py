"""Health check — database probe plus identity readiness.

Learn: `degraded` means the database is unreachable. A missing signing
secret or Moltbook key does not degrade health (the app still serves
reads) but is reported so operators can see which identity paths work.
"""

from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from clawpedia import __version__
from clawpedia.cache import get_redis
from clawpedia.config import settings
from clawpedia.db.engine import get_db

router = APIRouter()


async def _redis_status() -> str:
    try:
        await get_redis().ping()
    except RuntimeError:
        return "disabled"
    except (RedisError, OSError):
        return "unreachable"
    return "ok"


@router.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    try:
        await db.execute(text("SELECT 1"))
        database = "ok"
    except (SQLAlchemyError, OSError) as e:
        database = f"error: {e.__class__.__name__}"

    return {
        "status": "healthy" if database == "ok" else "degraded",
        "version": __version__,
        "database": database,
        "redis": await _redis_status(),
        "identity": {
            "tweet": bool(settings.auth_token_secret),
            "moltbook": bool(settings.moltbook_app_key),
        },
    }
