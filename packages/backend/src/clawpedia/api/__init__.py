"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Unlike a dashboard API, auth here is per-route rather than
per-router: reads are open to anonymous callers, writes depend on
require_agent, and votes resolve an optional identity to pick the
attribution key.
"""

from fastapi import APIRouter

from clawpedia.api.auth import router as auth_router
from clawpedia.api.categories import router as categories_router
from clawpedia.api.entries import router as entries_router
from clawpedia.api.health import router as health_router
from clawpedia.api.search import router as search_router
from clawpedia.api.votes import router as votes_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(auth_router, tags=["auth"])
api_router.include_router(categories_router, tags=["categories"])
api_router.include_router(entries_router, tags=["entries"])
api_router.include_router(votes_router, tags=["votes"])
api_router.include_router(search_router, tags=["search"])
