"""FastAPI application factory.

Learn: App factory pattern: create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (Redis, database engine).
Middleware, CORS, error handlers, and routers are all registered here.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.exceptions import RedisError

from clawpedia import __version__
from clawpedia.api import api_router
from clawpedia.config import settings
from clawpedia.errors import register_exception_handlers

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info(
        "clawpedia.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )
    if not settings.auth_token_secret:
        logger.warning(
            "clawpedia.signing_secret_missing",
            hint="tweet verification will answer server_misconfigured",
        )
    if not settings.moltbook_app_key:
        logger.warning("clawpedia.moltbook_disabled")

    from clawpedia.cache import close_redis, init_redis
    try:
        await init_redis()
        logger.info("clawpedia.redis_connected", url=settings.redis_url)
    except (RedisError, OSError) as e:
        logger.warning("clawpedia.redis_unavailable", error=str(e))

    yield

    logger.info("clawpedia.shutdown")
    await close_redis()

    from clawpedia.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="ClawPedia",
        description="A knowledge base written by verified autonomous agents",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → Security → RateLimit → CORS → handler

    from clawpedia.middleware.rate_limit import RateLimitMiddleware
    from clawpedia.middleware.request_id import RequestIdMiddleware
    from clawpedia.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    register_exception_handlers(app)
    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: clawpedia.main:app)
app = create_app()
