"""Identity resolution tests — header priority, Moltbook delegation, optional mode."""

import json

import pytest

from clawpedia.auth.moltbook import (
    APP_KEY_HEADER,
    ProviderUnavailable,
    Rejected,
    Verified,
)
from clawpedia.auth.token import MOLTBOOK_PROVIDER
from clawpedia.config import settings

ME = "/api/v1/auth/me"


# ═══════════════════════════════════════════════════════════
# Self-issued tokens
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_no_credentials_is_401(client):
    resp = await client.get(ME)
    assert resp.status_code == 401
    body = resp.json()
    assert body["error"] == "missing_identity_token"
    assert "X-Clawbot-Identity" in body["hint"]
    assert "X-Moltbook-Identity" in body["hint"]


@pytest.mark.asyncio
async def test_clawbot_header_resolves_identity(client, agent_headers):
    resp = await client.get(ME, headers=agent_headers("alice", "Alice Bot"))
    assert resp.status_code == 200
    assert resp.json() == {
        "id": "tweet:alice",
        "name": "Alice Bot",
        "handle": "alice",
        "provider": "tweet",
    }


@pytest.mark.asyncio
async def test_bearer_scheme_is_accepted(client, agent_headers):
    token = agent_headers("alice")["X-Clawbot-Identity"]
    resp = await client.get(ME, headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json()["id"] == "tweet:alice"


@pytest.mark.asyncio
async def test_garbage_token_is_401(client):
    resp = await client.get(ME, headers={"X-Clawbot-Identity": "garbage.token"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "invalid_identity_token"


@pytest.mark.asyncio
async def test_token_signed_with_other_secret_is_401(
    client, agent_headers, monkeypatch
):
    headers = agent_headers("alice")
    monkeypatch.setattr(settings, "auth_token_secret", "rotated-secret")
    resp = await client.get(ME, headers=headers)
    assert resp.status_code == 401
    assert resp.json()["error"] == "invalid_identity_token"


@pytest.mark.asyncio
async def test_missing_signing_secret_is_500(client, agent_headers, monkeypatch):
    headers = agent_headers("alice")
    monkeypatch.setattr(settings, "auth_token_secret", "")
    resp = await client.get(ME, headers=headers)
    assert resp.status_code == 500
    assert resp.json()["error"] == "server_misconfigured"


# ═══════════════════════════════════════════════════════════
# Priority
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_clawbot_header_wins_over_moltbook(client, agent_headers, moltbook):
    moltbook.accept("molt_1", "Molty")
    headers = {**agent_headers("alice"), "X-Moltbook-Identity": "molt-token"}

    resp = await client.get(ME, headers=headers)
    assert resp.status_code == 200
    assert resp.json()["id"] == "tweet:alice"
    assert moltbook.requests == []


@pytest.mark.asyncio
async def test_invalid_clawbot_token_does_not_fall_through(client, moltbook):
    moltbook.accept("molt_1", "Molty")
    headers = {"X-Clawbot-Identity": "bad.token", "X-Moltbook-Identity": "molt-token"}

    resp = await client.get(ME, headers=headers)
    assert resp.status_code == 401
    assert resp.json()["error"] == "invalid_identity_token"
    assert moltbook.requests == []


# ═══════════════════════════════════════════════════════════
# Moltbook delegation
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_moltbook_identity_resolves(client, moltbook):
    moltbook.accept("molt_1", "Molty", handle="molty")

    resp = await client.get(ME, headers={"X-Moltbook-Identity": "molt-token"})
    assert resp.status_code == 200
    assert resp.json() == {
        "id": "molt_1",
        "name": "Molty",
        "handle": "molty",
        "provider": "moltbook",
    }

    sent = moltbook.requests[0]
    assert sent.headers[APP_KEY_HEADER] == "test-app-key"
    assert json.loads(sent.content) == {
        "token": "molt-token",
        "audience": "claw-pedia.com",
    }


@pytest.mark.asyncio
async def test_moltbook_rejection_is_401_with_provider_hint(client, moltbook):
    moltbook.status = 401
    moltbook.body = {"error": "invalid_token", "hint": "Token revoked."}

    resp = await client.get(ME, headers={"X-Moltbook-Identity": "molt-token"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "invalid_identity_token", "hint": "Token revoked."}


@pytest.mark.asyncio
async def test_moltbook_network_failure_is_502(client, moltbook):
    moltbook.fail = True
    resp = await client.get(ME, headers={"X-Moltbook-Identity": "molt-token"})
    assert resp.status_code == 502
    assert resp.json()["error"] == "identity_provider_unavailable"


@pytest.mark.asyncio
async def test_moltbook_without_app_key_is_502(client, moltbook):
    moltbook.app_key = ""
    resp = await client.get(ME, headers={"X-Moltbook-Identity": "molt-token"})
    assert resp.status_code == 502
    assert resp.json()["error"] == "identity_provider_unavailable"
    assert moltbook.requests == []


@pytest.mark.asyncio
async def test_verifier_outcomes(moltbook):
    verifier = moltbook.verifier()

    moltbook.accept("molt_1", "Molty")
    result = await verifier.verify("t")
    assert isinstance(result, Verified)
    assert result.agent.provider == MOLTBOOK_PROVIDER
    assert result.agent.handle is None

    moltbook.status, moltbook.body = 200, {"valid": False}
    assert isinstance(await verifier.verify("t"), Rejected)

    moltbook.status, moltbook.body = 200, {"valid": True, "agent": {"id": "molt_1"}}
    assert isinstance(await verifier.verify("t"), Rejected)

    moltbook.status, moltbook.body = 200, "<html>maintenance</html>"
    assert isinstance(await verifier.verify("t"), ProviderUnavailable)

    moltbook.status, moltbook.body = 503, "<html>maintenance</html>"
    assert isinstance(await verifier.verify("t"), ProviderUnavailable)

    moltbook.status, moltbook.body = 403, {"error": "audience_mismatch"}
    result = await verifier.verify("t")
    assert isinstance(result, Rejected)
    assert result.hint == "audience_mismatch"


# ═══════════════════════════════════════════════════════════
# Optional mode
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_optional_routes_allow_anonymous(client):
    resp = await client.get("/api/v1/entries")
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_optional_routes_still_reject_bad_tokens(client):
    resp = await client.get(
        "/api/v1/entries", headers={"X-Clawbot-Identity": "bad.token"}
    )
    assert resp.status_code == 401
    assert resp.json()["error"] == "invalid_identity_token"


@pytest.mark.asyncio
async def test_optional_routes_treat_blank_headers_as_absent(client):
    for headers in [
        {"X-Clawbot-Identity": ""},
        {"X-Moltbook-Identity": "  "},
        {"Authorization": ""},
    ]:
        resp = await client.get("/api/v1/entries", headers=headers)
        assert resp.status_code == 200, headers


@pytest.mark.asyncio
async def test_required_routes_treat_blank_headers_as_missing(client):
    resp = await client.get(ME, headers={"X-Clawbot-Identity": ""})
    assert resp.status_code == 401
    assert resp.json()["error"] == "missing_identity_token"
