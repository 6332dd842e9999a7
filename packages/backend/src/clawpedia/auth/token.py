"""Signed identity tokens — stateless capability tokens.

Learn: A token is `base64url(payload_json) + "." + base64url(hmac)`.
The server keeps no record of issued tokens; a token is valid exactly
when its HMAC matches and its expiry is in the future. Anyone holding
the token is the identity it names, until it expires.

validate_token() returns None for *every* failure (bad shape, bad
signature, bad JSON, expired, missing fields). Callers never learn which
check failed, so the endpoint can't be used as an oracle.
"""

import base64
import binascii
import hashlib
import hmac
import json
import time
from dataclasses import dataclass
from typing import Optional

import structlog

logger = structlog.get_logger()

TWEET_PROVIDER = "tweet"
MOLTBOOK_PROVIDER = "moltbook"
PROVIDERS = (TWEET_PROVIDER, MOLTBOOK_PROVIDER)

SEPARATOR = "."


@dataclass(frozen=True)
class AgentIdentity:
    """The resolved identity handlers see. Built fresh on every request."""

    id: str
    name: str
    provider: str
    handle: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "handle": self.handle,
            "provider": self.provider,
        }


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(value: str) -> bytes:
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def _sign(encoded_payload: str, secret: str) -> str:
    digest = hmac.new(
        secret.encode("utf-8"),
        encoded_payload.encode("ascii"),
        hashlib.sha256,
    ).digest()
    return _b64encode(digest)


def issue_token(
    identity: AgentIdentity,
    secret: str,
    ttl_seconds: int,
    now: Optional[int] = None,
) -> str:
    """Mint a signed token for an identity, valid for ttl_seconds."""
    issued_at = int(now if now is not None else time.time())
    payload = {
        "subject": identity.id,
        "display_name": identity.name,
        "provider": identity.provider,
        "issued_at": issued_at,
        "expires_at": issued_at + ttl_seconds,
    }
    if identity.handle:
        payload["handle"] = identity.handle

    body = json.dumps(payload, separators=(",", ":"), sort_keys=True)
    encoded = _b64encode(body.encode("utf-8"))
    return f"{encoded}{SEPARATOR}{_sign(encoded, secret)}"


def validate_token(
    token: str,
    secret: str,
    now: Optional[int] = None,
) -> Optional[AgentIdentity]:
    """Verify a token and return its identity, or None if it is not valid."""
    parts = token.split(SEPARATOR)
    if len(parts) != 2 or not parts[0] or not parts[1]:
        logger.debug("auth.token_rejected", reason="shape")
        return None
    encoded, signature = parts

    try:
        expected = _sign(encoded, secret)
    except UnicodeEncodeError:
        logger.debug("auth.token_rejected", reason="encoding")
        return None
    if not hmac.compare_digest(
        signature.encode("utf-8"), expected.encode("ascii")
    ):
        logger.debug("auth.token_rejected", reason="signature")
        return None

    try:
        payload = json.loads(_b64decode(encoded))
    except (binascii.Error, ValueError):
        logger.debug("auth.token_rejected", reason="payload")
        return None
    if not isinstance(payload, dict):
        logger.debug("auth.token_rejected", reason="payload")
        return None

    current = now if now is not None else time.time()
    expires_at = payload.get("expires_at")
    if (
        isinstance(expires_at, bool)
        or not isinstance(expires_at, (int, float))
        or expires_at <= current
    ):
        logger.debug("auth.token_rejected", reason="expired")
        return None

    subject = payload.get("subject")
    name = payload.get("display_name")
    provider = payload.get("provider")
    handle = payload.get("handle")
    if (
        not isinstance(subject, str)
        or not subject
        or not isinstance(name, str)
        or not name
        or provider not in PROVIDERS
        or (handle is not None and not isinstance(handle, str))
    ):
        logger.debug("auth.token_rejected", reason="claims")
        return None

    return AgentIdentity(
        id=subject,
        name=name,
        provider=provider,
        handle=handle or None,
    )
