"""Test fixtures — a throwaway database per test, fake upstream services.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own SQLite file (aiosqlite) with the schema built
   from Base.metadata, so tests never see each other's rows.
2. Requests get their own session from the same engine, exactly like
   production's one-session-per-request. The test's db_session is a
   separate session used to seed rows and inspect results.
3. Outbound HTTP (tweet fetches, Moltbook) goes through httpx.MockTransport,
   so no test touches the network.
"""

from typing import Optional

import httpx
import pytest
import pytest_asyncio
from fastapi import Depends
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from clawpedia.api.auth import _challenge_svc
from clawpedia.auth.challenge import ChallengeService
from clawpedia.auth.moltbook import MoltbookVerifier, get_moltbook_verifier
from clawpedia.auth.token import TWEET_PROVIDER, AgentIdentity, issue_token
from clawpedia.config import settings
from clawpedia.db.engine import get_db
from clawpedia.db.models import Base, Category
from clawpedia.main import app

TEST_SECRET = "test-signing-secret"
MOLTBOOK_URL = "https://moltbook.test/api/v1/agents/verify-identity"


# ═══════════════════════════════════════════════════════════
# Fake upstreams
# ═══════════════════════════════════════════════════════════


class FakeTweets:
    """Serves tweet pages by URL. Unknown URLs answer 404."""

    def __init__(self):
        self.pages: dict[str, str] = {}
        self.calls: list[str] = []
        self.fail = False
        self.transport = httpx.MockTransport(self.handler)

    def publish(self, url: str, text: str) -> None:
        self.pages[url] = f"<html><body><p>{text}</p></body></html>"

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls.append(url)
        if self.fail:
            raise httpx.ConnectError("connection refused", request=request)
        if url in self.pages:
            return httpx.Response(200, text=self.pages[url])
        return httpx.Response(404, text="not found")


class FakeMoltbook:
    """Answers verify-identity calls with a configurable response."""

    def __init__(self):
        self.app_key = "test-app-key"
        self.status = 401
        self.body: Optional[object] = {"valid": False, "hint": "Unknown token."}
        self.fail = False
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self.handler)

    def accept(self, agent_id: str, name: str, handle: Optional[str] = None):
        agent = {"id": agent_id, "name": name}
        if handle:
            agent["handle"] = handle
        self.status = 200
        self.body = {"valid": True, "agent": agent}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail:
            raise httpx.ReadTimeout("timed out", request=request)
        if isinstance(self.body, (dict, list)):
            return httpx.Response(self.status, json=self.body)
        return httpx.Response(self.status, text=str(self.body or ""))

    def verifier(self) -> MoltbookVerifier:
        return MoltbookVerifier(
            app_key=self.app_key,
            verify_url=MOLTBOOK_URL,
            audience="claw-pedia.com",
            timeout=1.0,
            transport=self.transport,
        )


# ═══════════════════════════════════════════════════════════
# Settings
# ═══════════════════════════════════════════════════════════


@pytest.fixture(autouse=True)
def signing_secret(monkeypatch):
    """Every test runs with a known signing secret unless it clears it."""
    monkeypatch.setattr(settings, "auth_token_secret", TEST_SECRET)
    return TEST_SECRET


# ═══════════════════════════════════════════════════════════
# Database
# ═══════════════════════════════════════════════════════════


@pytest_asyncio.fixture()
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture()
async def db_session(session_factory):
    """Session for seeding and inspecting rows from test code."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def category(db_session):
    category = Category(
        slug="protocols",
        name="Protocols",
        description="Wire formats and agent-to-agent protocols.",
        icon="🔌",
    )
    db_session.add(category)
    await db_session.commit()
    return category


# ═══════════════════════════════════════════════════════════
# HTTP client
# ═══════════════════════════════════════════════════════════


@pytest.fixture()
def tweets():
    return FakeTweets()


@pytest.fixture()
def moltbook():
    return FakeMoltbook()


@pytest_asyncio.fixture()
async def client(session_factory, tweets, moltbook):
    """HTTP client with the database and upstream services overridden.

    Learn: Auth is NOT mocked here. Tests present real signed tokens
    (see agent_headers) so the full identity pipeline runs.
    """

    async def override_get_db():
        async with session_factory() as session:
            yield session

    def override_challenge_svc(db: AsyncSession = Depends(get_db)):
        return ChallengeService(db, transport=tweets.transport)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[_challenge_svc] = override_challenge_svc
    app.dependency_overrides[get_moltbook_verifier] = moltbook.verifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ═══════════════════════════════════════════════════════════
# Identities
# ═══════════════════════════════════════════════════════════


def make_token(handle: str = "alice", name: Optional[str] = None, ttl: int = 3600) -> str:
    identity = AgentIdentity(
        id=f"{TWEET_PROVIDER}:{handle}",
        name=name or f"@{handle}",
        provider=TWEET_PROVIDER,
        handle=handle,
    )
    return issue_token(identity, TEST_SECRET, ttl)


@pytest.fixture()
def agent_headers():
    """Build X-Clawbot-Identity headers for a tweet-verified handle."""

    def _headers(handle: str = "alice", name: Optional[str] = None) -> dict[str, str]:
        return {"X-Clawbot-Identity": make_token(handle, name)}

    return _headers
