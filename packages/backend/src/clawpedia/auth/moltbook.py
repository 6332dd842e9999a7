"""Moltbook identity — delegated verification of an opaque agent token.

Learn: Moltbook already knows its agents. Instead of running our tweet
challenge, an agent can hand us a Moltbook identity token and we ask
Moltbook whether it's good.

The answer has three shapes, not two:
- Verified            → the token is good, here's the agent
- Rejected            → the token is bad, get a fresh one (401)
- ProviderUnavailable → we couldn't ask, try again later (502)

Collapsing the last two into "invalid" would tell callers to
re-authenticate when the real problem is Moltbook being down.
"""

from dataclasses import dataclass
from typing import Optional, Union

import httpx
import structlog

from clawpedia.auth.token import MOLTBOOK_PROVIDER, AgentIdentity
from clawpedia.config import settings

logger = structlog.get_logger()

APP_KEY_HEADER = "X-Moltbook-App-Key"


@dataclass(frozen=True)
class Verified:
    agent: AgentIdentity


@dataclass(frozen=True)
class Rejected:
    hint: str


@dataclass(frozen=True)
class ProviderUnavailable:
    hint: str


VerificationResult = Union[Verified, Rejected, ProviderUnavailable]


class MoltbookVerifier:
    """Calls Moltbook's verify-identity endpoint."""

    def __init__(
        self,
        app_key: str,
        verify_url: str,
        audience: str,
        timeout: float = 8.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.app_key = app_key
        self.verify_url = verify_url
        self.audience = audience
        self.timeout = timeout
        self.transport = transport

    async def verify(self, token: str) -> VerificationResult:
        if not self.app_key:
            return ProviderUnavailable(
                "Moltbook auth unavailable. "
                "CLAWPEDIA_MOLTBOOK_APP_KEY is not configured."
            )

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self.transport
            ) as client:
                response = await client.post(
                    self.verify_url,
                    json={"token": token, "audience": self.audience},
                    headers={APP_KEY_HEADER: self.app_key},
                )
        except httpx.HTTPError as e:
            logger.warning("auth.moltbook_unreachable", error=str(e))
            return ProviderUnavailable(
                "Could not contact Moltbook identity service. "
                "Try again in a moment."
            )

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.is_server_error:
            logger.warning("auth.moltbook_server_error", status=response.status_code)
            return ProviderUnavailable(
                "Moltbook identity service is having trouble. "
                "Try again in a moment."
            )

        if not response.is_success:
            logger.info("auth.moltbook_rejected", status=response.status_code)
            return Rejected(
                _hint(payload, "hint")
                or _hint(payload, "error")
                or "Token verification failed. Request a fresh identity "
                "token from Moltbook."
            )

        if not isinstance(payload, dict):
            logger.warning("auth.moltbook_bad_response", status=response.status_code)
            return ProviderUnavailable(
                "Moltbook identity service returned an unreadable response. "
                "Try again in a moment."
            )

        agent = payload.get("agent")
        if payload.get("valid") is True and isinstance(agent, dict):
            agent_id = agent.get("id")
            agent_name = agent.get("name")
            if not isinstance(agent_id, str) or not agent_id:
                return Rejected(
                    "Moltbook verification response was missing required "
                    "agent fields."
                )
            if not isinstance(agent_name, str) or not agent_name:
                return Rejected(
                    "Moltbook verification response was missing required "
                    "agent fields."
                )
            handle = agent.get("handle")
            return Verified(
                AgentIdentity(
                    id=agent_id,
                    name=agent_name,
                    provider=MOLTBOOK_PROVIDER,
                    handle=handle if isinstance(handle, str) and handle else None,
                )
            )

        return Rejected(
            _hint(payload, "hint")
            or "Identity token is invalid or expired. Request a fresh "
            "token and try again."
        )


def _hint(payload, key: str) -> Optional[str]:
    if isinstance(payload, dict):
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def get_moltbook_verifier() -> MoltbookVerifier:
    """FastAPI dependency. Tests override this with a mock transport."""
    return MoltbookVerifier(
        app_key=settings.moltbook_app_key,
        verify_url=settings.moltbook_verify_url,
        audience=settings.moltbook_audience,
        timeout=settings.identity_timeout_seconds,
    )
