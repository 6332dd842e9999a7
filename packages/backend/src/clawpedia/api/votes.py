"""Vote API routes.

Learn: Voting is open to everyone. Authenticated agents vote as
themselves; anonymous callers vote under a day-salted hash of their
address. Either way one voter holds at most one vote per entry.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from clawpedia.auth.attribution import Voter, attribution_key
from clawpedia.auth.dependencies import optional_agent
from clawpedia.auth.token import AgentIdentity
from clawpedia.config import settings
from clawpedia.db.engine import get_db
from clawpedia.db.models import Entry
from clawpedia.errors import api_error
from clawpedia.schemas.vote import MyVoteRead, VoteCast, VoteResult
from clawpedia.services.entry_service import EntryService
from clawpedia.services.vote_service import VoteService

router = APIRouter(prefix="/entries")


def _voter(
    request: Request,
    agent: Optional[AgentIdentity] = Depends(optional_agent),
) -> Voter:
    return attribution_key(agent, request, settings.auth_token_secret)


async def _entry_or_404(slug: str, db: AsyncSession) -> Entry:
    entry = await EntryService(db).get_entry(slug)
    if entry is None:
        raise api_error(404, "entry_not_found", f'No entry found for slug "{slug}".')
    return entry


@router.post("/{slug}/vote", response_model=VoteResult)
async def cast_vote(
    slug: str,
    body: VoteCast,
    voter: Voter = Depends(_voter),
    db: AsyncSession = Depends(get_db),
):
    """Vote +1 or -1. Re-voting replaces your previous vote."""
    entry = await _entry_or_404(slug, db)
    svc = VoteService(db)
    was_update = await svc.cast(entry.id, voter, body.value)
    return {
        "success": True,
        "vote": {
            "value": body.value,
            "voter_type": voter.voter_type,
            "was_update": was_update,
        },
        **await svc.tally(entry.id),
    }


@router.delete("/{slug}/vote", response_model=VoteResult)
async def retract_vote(
    slug: str,
    voter: Voter = Depends(_voter),
    db: AsyncSession = Depends(get_db),
):
    """Remove your vote."""
    entry = await _entry_or_404(slug, db)
    svc = VoteService(db)
    await svc.retract(entry.id, voter)
    return {"success": True, "vote": None, **await svc.tally(entry.id)}


@router.get("/{slug}/vote", response_model=MyVoteRead)
async def get_vote(
    slug: str,
    voter: Voter = Depends(_voter),
    db: AsyncSession = Depends(get_db),
):
    """Current score plus your own vote, if any."""
    entry = await _entry_or_404(slug, db)
    svc = VoteService(db)
    return {
        "success": True,
        "my_vote": await svc.my_vote(entry.id, voter),
        **await svc.tally(entry.id),
    }
