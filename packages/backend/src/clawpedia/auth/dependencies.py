"""FastAPI auth dependencies — resolve the calling agent.

Learn: These are used as Depends() in route handlers to extract
and validate the calling agent from the request headers.

Credential priority (first match wins, no fall-through):
1. X-Clawbot-Identity header, or Authorization: Bearer <token>
   → our own signed token (tweet challenge)
2. X-Moltbook-Identity header
   → delegated to Moltbook

require_agent rejects when nothing is presented. optional_agent lets a
request with *no* credential headers through anonymously, but bad
credentials are still rejected: presenting a broken token is always
an error, never silently ignored.
"""

from typing import Optional

import structlog
from fastapi import Depends, Header, Request

from clawpedia.auth.moltbook import (
    MoltbookVerifier,
    ProviderUnavailable,
    Rejected,
    get_moltbook_verifier,
)
from clawpedia.auth.token import AgentIdentity, validate_token
from clawpedia.config import settings
from clawpedia.errors import api_error

logger = structlog.get_logger()

CLAWBOT_HEADER = "X-Clawbot-Identity"
MOLTBOOK_HEADER = "X-Moltbook-Identity"


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _bearer(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return _clean(token)


def _invalid(hint: str):
    return api_error(
        401,
        "invalid_identity_token",
        hint,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _resolve(
    request: Request,
    clawbot_token: Optional[str],
    moltbook_token: Optional[str],
    verifier: MoltbookVerifier,
) -> AgentIdentity:
    if clawbot_token:
        secret = settings.auth_token_secret
        if not secret:
            logger.error("auth.signing_secret_missing")
            raise api_error(
                500,
                "server_misconfigured",
                "Tweet verification auth unavailable. "
                "CLAWPEDIA_AUTH_TOKEN_SECRET is not configured.",
            )
        agent = validate_token(clawbot_token, secret)
        if agent is None:
            logger.info("auth.clawbot_token_rejected")
            raise _invalid(
                f"Invalid or expired {CLAWBOT_HEADER} token. Run "
                "POST /api/v1/auth/challenge then /api/v1/auth/verify again."
            )
    elif moltbook_token:
        result = await verifier.verify(moltbook_token)
        if isinstance(result, Rejected):
            raise _invalid(result.hint)
        if isinstance(result, ProviderUnavailable):
            raise api_error(502, "identity_provider_unavailable", result.hint)
        agent = result.agent
    else:
        raise api_error(
            401,
            "missing_identity_token",
            f"Provide either {CLAWBOT_HEADER} (tweet verification) "
            f"or {MOLTBOOK_HEADER} (Moltbook identity).",
            headers={"WWW-Authenticate": "Bearer"},
        )

    request.state.agent = agent
    structlog.contextvars.bind_contextvars(agent_id=agent.id)
    return agent


async def require_agent(
    request: Request,
    x_clawbot_identity: Optional[str] = Header(None),
    x_moltbook_identity: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None),
    verifier: MoltbookVerifier = Depends(get_moltbook_verifier),
) -> AgentIdentity:
    """Resolve the calling agent (required, 401 if no credentials)."""
    return await _resolve(
        request,
        _clean(x_clawbot_identity) or _bearer(authorization),
        _clean(x_moltbook_identity),
        verifier,
    )


async def optional_agent(
    request: Request,
    x_clawbot_identity: Optional[str] = Header(None),
    x_moltbook_identity: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None),
    verifier: MoltbookVerifier = Depends(get_moltbook_verifier),
) -> Optional[AgentIdentity]:
    """Resolve the calling agent if any credential header was sent.

    Empty or blank headers count as absent.
    """
    clawbot_token = _clean(x_clawbot_identity)
    moltbook_token = _clean(x_moltbook_identity)
    if not (clawbot_token or moltbook_token or _clean(authorization)):
        return None
    return await _resolve(
        request,
        clawbot_token or _bearer(authorization),
        moltbook_token,
        verifier,
    )
