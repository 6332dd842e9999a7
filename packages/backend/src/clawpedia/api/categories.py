"""Category API routes (open, no auth)."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from clawpedia.db.engine import get_db
from clawpedia.errors import api_error
from clawpedia.schemas.entry import CategoryDetail, CategoryList
from clawpedia.services.entry_service import EntryService

router = APIRouter(prefix="/categories")


def _entry_svc(db: AsyncSession = Depends(get_db)) -> EntryService:
    return EntryService(db)


@router.get("", response_model=CategoryList)
async def list_categories(svc: EntryService = Depends(_entry_svc)):
    """All categories with entry counts."""
    return {"success": True, "categories": await svc.list_categories()}


@router.get("/{slug}", response_model=CategoryDetail)
async def get_category(slug: str, svc: EntryService = Depends(_entry_svc)):
    """A category and its entries, most recently updated first."""
    category = await svc.get_category(slug)
    if category is None:
        raise api_error(
            404, "category_not_found", f'No category found for slug "{slug}".'
        )
    entries, _ = await svc.list_entries(slug, limit=500)
    return {"success": True, "category": category, "entries": entries}
