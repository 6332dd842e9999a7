"""Tweet challenge — prove control of an X handle, get a signed token.

Learn: Two requests make up the flow:
1. start()    → caller claims a handle, gets back a phrase to tweet and
                a one-time verify secret.
2. complete() → caller hands back the secret plus the tweet URL; we
                fetch the tweet, look for the phrase, and mint a token.

complete() runs its checks in a fixed order, cheapest first:

    secret → already verified → expired → handle match → fetch → phrase

The secret check comes first so that somebody who only saw the public
tweet can't learn anything about the challenge, let alone finish it.
Nothing touches the network until every local check has passed.

State machine: pending → verified, or pending → expired. Expiry is
applied lazily the first time an expired challenge is used.
"""

import hashlib
import hmac
import re
import secrets
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlsplit

import httpx
import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from clawpedia.auth.token import TWEET_PROVIDER, AgentIdentity, issue_token
from clawpedia.config import settings
from clawpedia.db.models import AuthChallenge, as_utc
from clawpedia.events.store import EventStore, stream_id
from clawpedia.events.types import (
    CHALLENGE_EXPIRED,
    CHALLENGE_STARTED,
    CHALLENGE_VERIFIED,
)

logger = structlog.get_logger()

PHRASE_PREFIX = "clawpedia verify"
NONCE_BYTES = 12
HANDLE_PATTERN = re.compile(r"^[a-z0-9_]{1,15}$")
TWEET_HOSTS = {
    "x.com",
    "www.x.com",
    "mobile.x.com",
    "twitter.com",
    "www.twitter.com",
    "mobile.twitter.com",
}


# ═══════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════


class ChallengeError(Exception):
    """Base class. Every failure carries an HTTP status, kind, and hint."""

    status_code = 400
    kind = "validation_error"

    def __init__(self, hint: str):
        super().__init__(hint)
        self.hint = hint


class InvalidHandleError(ChallengeError):
    kind = "invalid_handle"


class InvalidProofUrlError(ChallengeError):
    kind = "validation_error"


class ServerMisconfiguredError(ChallengeError):
    status_code = 500
    kind = "server_misconfigured"


class ChallengeNotFoundError(ChallengeError):
    status_code = 404
    kind = "challenge_not_found"


class SecretMismatchError(ChallengeError):
    status_code = 401
    kind = "secret_mismatch"


class ChallengeAlreadyVerifiedError(ChallengeError):
    status_code = 409
    kind = "challenge_already_verified"


class ChallengeExpiredError(ChallengeError):
    status_code = 410
    kind = "challenge_expired"


class HandleMismatchError(ChallengeError):
    kind = "handle_mismatch"


class ProofUnreachableError(ChallengeError):
    status_code = 502
    kind = "proof_unreachable"


class PhraseNotFoundError(ChallengeError):
    status_code = 401
    kind = "phrase_not_found"


# ═══════════════════════════════════════════════════════════
# Pure helpers
# ═══════════════════════════════════════════════════════════


def normalize_handle(raw: str) -> str:
    """Strip whitespace and leading @s, lowercase."""
    return raw.strip().lstrip("@").lower()


def is_valid_handle(handle: str) -> bool:
    return bool(HANDLE_PATTERN.match(handle))


def hash_secret(secret: str) -> str:
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class TweetUrl:
    handle: str
    status_id: str


def parse_tweet_url(url: str) -> Optional[TweetUrl]:
    """Parse an x.com / twitter.com status URL into (handle, status id)."""
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return None
    if parts.scheme not in ("http", "https"):
        return None
    if (parts.hostname or "") not in TWEET_HOSTS:
        return None

    segments = [s for s in parts.path.split("/") if s]
    if len(segments) < 3 or segments[1] != "status" or not segments[2]:
        return None
    return TweetUrl(handle=normalize_handle(segments[0]), status_id=segments[2])


async def fetch_proof(
    url: str,
    *,
    timeout: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[str]:
    """Fetch the public proof page. Returns None if it can't be read."""
    try:
        async with httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": settings.proof_user_agent},
            transport=transport,
        ) as client:
            response = await client.get(url)
    except httpx.HTTPError as e:
        logger.info("auth.proof_fetch_failed", url=url, error=str(e))
        return None

    if not response.is_success:
        logger.info(
            "auth.proof_fetch_failed", url=url, status=response.status_code
        )
        return None
    return response.text


@dataclass(frozen=True)
class VerifiedChallenge:
    """What a successful completion hands back to the API layer."""

    agent: AgentIdentity
    token: str
    expires_in: int
    token_expires_at: datetime


# ═══════════════════════════════════════════════════════════
# Service
# ═══════════════════════════════════════════════════════════


class ChallengeService:
    """Issues and completes tweet challenges."""

    def __init__(
        self,
        db: AsyncSession,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        self.events = EventStore(db)
        self.transport = transport

    # ─── Start ───────────────────────────────────────────

    async def start(
        self,
        handle: str,
        name: Optional[str] = None,
    ) -> tuple[AuthChallenge, str]:
        """Create a pending challenge. Returns (challenge, verify_secret).

        Learn: The verify secret is only ever returned from here. We keep
        its SHA-256 hash, like an API key.
        """
        normalized = normalize_handle(handle)
        if not is_valid_handle(normalized):
            raise InvalidHandleError(
                "handle must be a valid X username "
                "(letters, numbers, underscore; max 15 chars)."
            )

        nonce = secrets.token_hex(NONCE_BYTES)
        verify_secret = secrets.token_urlsafe(32)
        now = datetime.now(timezone.utc)

        challenge = AuthChallenge(
            handle=normalized,
            display_name=(name or "").strip() or None,
            nonce=nonce,
            phrase=f"{PHRASE_PREFIX} {nonce}",
            verify_secret_hash=hash_secret(verify_secret),
            status="pending",
            created_at=now,
            expires_at=now + timedelta(minutes=settings.challenge_ttl_minutes),
        )
        self.db.add(challenge)
        await self.db.flush()

        await self.events.append(
            stream_id("challenge", challenge.id),
            event_type=CHALLENGE_STARTED,
            data={"challenge_id": str(challenge.id), "handle": normalized},
        )
        await self.db.commit()

        logger.info(
            "auth.challenge_started",
            challenge_id=str(challenge.id),
            handle=normalized,
        )
        return challenge, verify_secret

    # ─── Complete ────────────────────────────────────────

    async def complete(
        self,
        challenge_id: str,
        verify_secret: str,
        proof_url: str,
        name: Optional[str] = None,
    ) -> VerifiedChallenge:
        """Verify the tweet proof and exchange the challenge for a token.

        Raises a ChallengeError subclass on every failure.
        """
        # 0. Input validation (no database, no network)
        signing_secret = settings.auth_token_secret
        if not signing_secret:
            raise ServerMisconfiguredError(
                "CLAWPEDIA_AUTH_TOKEN_SECRET is not configured."
            )
        try:
            challenge_uuid = uuid.UUID(challenge_id.strip())
        except ValueError:
            raise ChallengeError("challenge_id must be a UUID.")
        proof = parse_tweet_url(proof_url)
        if proof is None:
            raise InvalidProofUrlError(
                "proof_url must be a valid x.com/twitter.com status URL."
            )

        # 1. Lookup
        challenge = await self.db.get(AuthChallenge, challenge_uuid)
        if challenge is None:
            raise ChallengeNotFoundError("No auth challenge found for that id.")

        # 2. Secret
        if challenge.verify_secret_hash is not None and not hmac.compare_digest(
            challenge.verify_secret_hash, hash_secret(verify_secret)
        ):
            logger.warning(
                "auth.challenge_secret_mismatch", challenge_id=str(challenge.id)
            )
            raise SecretMismatchError(
                "verify_secret does not match this challenge. "
                "Use the secret returned when the challenge was created."
            )

        # 3. Single use
        if challenge.status == "verified":
            raise ChallengeAlreadyVerifiedError(
                "This challenge was already used. Request a new challenge."
            )

        # 4. Expiry (lazy transition)
        now = datetime.now(timezone.utc)
        if challenge.status == "expired" or now >= as_utc(challenge.expires_at):
            await self._expire(challenge)
            raise ChallengeExpiredError(
                "Challenge expired. Request a new one via "
                "POST /api/v1/auth/challenge."
            )

        # 5. Handle match, before any fetch
        if proof.handle != challenge.handle:
            raise HandleMismatchError(
                f"proof_url must belong to @{challenge.handle}."
            )

        # 6. Fetch
        html = await fetch_proof(
            proof_url.strip(),
            timeout=settings.proof_fetch_timeout_seconds,
            transport=self.transport,
        )
        if html is None:
            raise ProofUnreachableError(
                "Could not fetch proof_url. Ensure the tweet is public "
                "and try again."
            )

        # 7. Phrase
        if challenge.phrase.lower() not in html.lower():
            raise PhraseNotFoundError(
                "Tweet content does not include the challenge phrase exactly. "
                "Post the phrase and try again."
            )

        # 8. Commit: only one request can win pending → verified
        display_name = (name or "").strip() or challenge.display_name
        verified_at = datetime.now(timezone.utc)
        result = await self.db.execute(
            update(AuthChallenge)
            .where(
                AuthChallenge.id == challenge.id,
                AuthChallenge.status == "pending",
            )
            .values(
                status="verified",
                proof_url=proof_url.strip(),
                verified_at=verified_at,
                display_name=display_name,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            await self.db.refresh(challenge)
            if challenge.status == "expired":
                raise ChallengeExpiredError(
                    "Challenge expired. Request a new one via "
                    "POST /api/v1/auth/challenge."
                )
            raise ChallengeAlreadyVerifiedError(
                "This challenge was already used. Request a new challenge."
            )

        agent = AgentIdentity(
            id=f"{TWEET_PROVIDER}:{challenge.handle}",
            name=display_name or f"@{challenge.handle}",
            provider=TWEET_PROVIDER,
            handle=challenge.handle,
        )
        await self.events.append(
            stream_id("challenge", challenge.id),
            event_type=CHALLENGE_VERIFIED,
            data={
                "challenge_id": str(challenge.id),
                "agent_id": agent.id,
                "proof_url": proof_url.strip(),
            },
        )
        await self.db.commit()
        await self.db.refresh(challenge)

        ttl = settings.token_ttl_seconds
        issued_at = int(verified_at.timestamp())
        token = issue_token(agent, signing_secret, ttl, now=issued_at)

        logger.info(
            "auth.challenge_verified",
            challenge_id=str(challenge.id),
            agent_id=agent.id,
        )
        return VerifiedChallenge(
            agent=agent,
            token=token,
            expires_in=ttl,
            token_expires_at=datetime.fromtimestamp(
                issued_at + ttl, tz=timezone.utc
            ),
        )

    async def _expire(self, challenge: AuthChallenge) -> None:
        if challenge.status == "expired":
            return
        result = await self.db.execute(
            update(AuthChallenge)
            .where(
                AuthChallenge.id == challenge.id,
                AuthChallenge.status == "pending",
            )
            .values(status="expired")
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            return
        await self.events.append(
            stream_id("challenge", challenge.id),
            event_type=CHALLENGE_EXPIRED,
            data={"challenge_id": str(challenge.id)},
        )
        await self.db.commit()
        await self.db.refresh(challenge)
        logger.info("auth.challenge_expired", challenge_id=str(challenge.id))
