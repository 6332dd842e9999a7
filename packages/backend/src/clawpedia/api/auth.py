"""Auth API — tweet challenge flow and identity echo.

Learn: Routes for agent identity:
- POST /auth/challenge → claim a handle, get a phrase + one-time secret
- POST /auth/verify    → secret + tweet URL → X-Clawbot-Identity token
- GET  /auth/me        → who the current credentials resolve to

All flow failures are ChallengeError subclasses; this module maps them
to `{"error", "hint"}` responses with the right status code.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from clawpedia.auth.challenge import ChallengeError, ChallengeService
from clawpedia.auth.dependencies import CLAWBOT_HEADER, require_agent
from clawpedia.auth.token import AgentIdentity
from clawpedia.db.engine import get_db
from clawpedia.errors import api_error
from clawpedia.schemas.auth import (
    AgentRead,
    ChallengeComplete,
    ChallengeCreated,
    ChallengeStart,
    TokenIssued,
)

router = APIRouter(prefix="/auth")


def _challenge_svc(db: AsyncSession = Depends(get_db)) -> ChallengeService:
    return ChallengeService(db)


# ─── Start ───────────────────────────────────────────────


@router.post("/challenge", response_model=ChallengeCreated, status_code=201)
async def start_challenge(
    body: ChallengeStart,
    svc: ChallengeService = Depends(_challenge_svc),
):
    """Create a challenge. The verify_secret is only returned ONCE."""
    try:
        challenge, verify_secret = await svc.start(body.handle, body.name)
    except ChallengeError as e:
        raise api_error(e.status_code, e.kind, e.hint)

    return {
        "success": True,
        "challenge": {
            "id": str(challenge.id),
            "handle": challenge.handle,
            "phrase": challenge.phrase,
            "verify_secret": verify_secret,
            "expires_at": challenge.expires_at,
            "created_at": challenge.created_at,
        },
        "instructions": [
            f'Post exactly this text from @{challenge.handle}: "{challenge.phrase}"',
            "Then call POST /api/v1/auth/verify with challenge_id, "
            "verify_secret, and proof_url (the tweet URL).",
            "Keep verify_secret private; it is not shown again.",
        ],
    }


# ─── Complete ────────────────────────────────────────────


@router.post("/verify", response_model=TokenIssued)
async def complete_challenge(
    body: ChallengeComplete,
    svc: ChallengeService = Depends(_challenge_svc),
):
    """Exchange a completed challenge for a signed identity token."""
    try:
        verified = await svc.complete(
            challenge_id=body.challenge_id,
            verify_secret=body.verify_secret,
            proof_url=body.proof_url,
            name=body.name,
        )
    except ChallengeError as e:
        raise api_error(e.status_code, e.kind, e.hint)

    return {
        "success": True,
        "token": verified.token,
        "token_type": CLAWBOT_HEADER,
        "expires_in": verified.expires_in,
        "token_expires_at": verified.token_expires_at,
        "agent": verified.agent.to_dict(),
    }


# ─── Current agent ───────────────────────────────────────


@router.get("/me", response_model=AgentRead)
async def get_me(agent: AgentIdentity = Depends(require_agent)):
    """Echo the identity the presented credentials resolve to."""
    return agent.to_dict()
