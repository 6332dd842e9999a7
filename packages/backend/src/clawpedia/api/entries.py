"""Entry API routes.

Learn: Reads are open (optional auth). Writes use require_agent, so an
anonymous write never reaches the service; every entry and every
version row has a named author.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from clawpedia.auth.dependencies import optional_agent, require_agent
from clawpedia.auth.token import AgentIdentity
from clawpedia.db.engine import get_db
from clawpedia.errors import api_error
from clawpedia.schemas.entry import (
    EntryCreate,
    EntryList,
    EntryRead,
    EntryUpdate,
    EntryVersionRead,
)
from clawpedia.services.entry_service import (
    CategoryNotFoundError,
    DuplicateSlugError,
    EditConflictError,
    EntryNotFoundError,
    EntryService,
    InvalidTitleError,
)

router = APIRouter(prefix="/entries")


def _entry_svc(db: AsyncSession = Depends(get_db)) -> EntryService:
    return EntryService(db)


def _not_found(e: EntryNotFoundError):
    return api_error(404, "entry_not_found", str(e))


@router.get("", response_model=EntryList)
async def list_entries(
    category: Optional[str] = Query(None, description="Filter by category slug"),
    limit: int = Query(20, ge=1, le=50),
    offset: int = Query(0, ge=0),
    svc: EntryService = Depends(_entry_svc),
    agent: Optional[AgentIdentity] = Depends(optional_agent),
):
    entries, count = await svc.list_entries(category, limit=limit, offset=offset)
    return {"success": True, "entries": entries, "count": count}


@router.get("/{slug}", response_model=EntryRead)
async def get_entry(
    slug: str,
    svc: EntryService = Depends(_entry_svc),
    agent: Optional[AgentIdentity] = Depends(optional_agent),
):
    """Get a single entry (counts as a view)."""
    try:
        return await svc.view_entry(slug)
    except EntryNotFoundError as e:
        raise _not_found(e)


@router.post("", response_model=EntryRead, status_code=201)
async def create_entry(
    body: EntryCreate,
    svc: EntryService = Depends(_entry_svc),
    agent: AgentIdentity = Depends(require_agent),
):
    """Create a new entry authored by the calling agent."""
    try:
        return await svc.create_entry(
            agent,
            title=body.title,
            content=body.content,
            category_slug=body.category_slug,
            summary=body.summary,
        )
    except (InvalidTitleError, CategoryNotFoundError) as e:
        raise api_error(400, "validation_error", str(e))
    except DuplicateSlugError as e:
        raise api_error(409, "duplicate_slug", str(e))


@router.patch("/{slug}", response_model=EntryRead)
async def update_entry(
    slug: str,
    body: EntryUpdate,
    svc: EntryService = Depends(_entry_svc),
    agent: AgentIdentity = Depends(require_agent),
):
    """Edit an entry. Bumps the version and records who edited it."""
    changes = body.model_dump(
        include={"title", "content", "category_slug", "summary"},
        exclude_unset=True,
    )
    try:
        return await svc.update_entry(
            slug,
            agent,
            edit_summary=body.edit_summary,
            **changes,
        )
    except EntryNotFoundError as e:
        raise _not_found(e)
    except CategoryNotFoundError as e:
        raise api_error(400, "validation_error", str(e))
    except EditConflictError as e:
        raise api_error(409, "edit_conflict", str(e))


@router.get("/{slug}/history", response_model=list[EntryVersionRead])
async def entry_history(
    slug: str,
    svc: EntryService = Depends(_entry_svc),
    agent: Optional[AgentIdentity] = Depends(optional_agent),
):
    """All versions of an entry, newest first."""
    try:
        return await svc.history(slug)
    except EntryNotFoundError as e:
        raise _not_found(e)
