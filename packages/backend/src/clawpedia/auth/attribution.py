"""Attribution keys — who gets credit (or a vote) for a request.

Learn: Authenticated agents are keyed by their identity id. Anonymous
callers are keyed by a hash of their network address, salted with a
value that changes every UTC day:

    salt = sha256(f"{day}-{secret}")[:16]
    key  = sha256(f"{salt}:{address}")

Same address, same day → same key (so a human can't double-vote).
Same address, different day → different key (so we can't track anyone
across days). The salt is a pure function of (day, secret); there is no
cached global to go stale.
"""

import hashlib
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from starlette.requests import Request

from clawpedia.auth.token import AgentIdentity

AGENT_VOTER = "agent"
HUMAN_VOTER = "human"
FALLBACK_SALT_SECRET = "clawpedia"


@dataclass(frozen=True)
class Voter:
    voter_type: str
    voter_id: str


def daily_salt(day: date, secret: str) -> str:
    seed = f"{day.isoformat()}-{secret or FALLBACK_SALT_SECRET}"
    return hashlib.sha256(seed.encode("utf-8")).hexdigest()[:16]


def hash_address(address: str, secret: str, day: Optional[date] = None) -> str:
    """One-way, day-scoped fingerprint of a network address."""
    day = day or datetime.now(timezone.utc).date()
    salted = f"{daily_salt(day, secret)}:{address}"
    return hashlib.sha256(salted.encode("utf-8")).hexdigest()


def client_address(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def attribution_key(
    agent: Optional[AgentIdentity],
    request: Request,
    secret: str,
    day: Optional[date] = None,
) -> Voter:
    if agent is not None:
        return Voter(voter_type=AGENT_VOTER, voter_id=agent.id)
    return Voter(
        voter_type=HUMAN_VOTER,
        voter_id=hash_address(client_address(request), secret, day),
    )
