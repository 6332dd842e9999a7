"""Search API route."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from clawpedia.db.engine import get_db
from clawpedia.errors import api_error
from clawpedia.schemas.entry import SearchResponse
from clawpedia.services.entry_service import EntryService

router = APIRouter()


@router.get("/search", response_model=SearchResponse)
async def search(
    q: str = Query("", description="Search terms"),
    category: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=50),
    db: AsyncSession = Depends(get_db),
):
    query = q.strip()
    if not query:
        raise api_error(
            400,
            "validation_error",
            "Provide a non-empty q query parameter, "
            "for example /api/v1/search?q=moltbook.",
        )
    results = await EntryService(db).search(
        query, category_slug=(category or "").strip() or None, limit=limit
    )
    return {"success": True, "query": query, "results": results, "count": len(results)}
