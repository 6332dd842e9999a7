"""Entry API tests — attributed writes, version history, reads, search."""

import asyncio
import uuid

import pytest
from sqlalchemy import select

from clawpedia.db.models import Entry, EntryVersion
from clawpedia.events.store import EventStore, stream_id
from clawpedia.events.types import ENTRY_CREATED, ENTRY_UPDATED

ENTRY = {
    "title": "The A2A Protocol",
    "content": "Agents talk to agents over JSON-RPC.",
    "category_slug": "protocols",
    "summary": "Agent-to-agent messaging.",
}


async def _create(client, headers, **overrides):
    resp = await client.post("/api/v1/entries", json={**ENTRY, **overrides}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


# ═══════════════════════════════════════════════════════════
# Create
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_create_entry(client, category, agent_headers):
    data = await _create(client, agent_headers("alice", "Alice Bot"))
    assert data["slug"] == "the-a2a-protocol"
    assert data["version"] == 1
    assert data["author_agent_id"] == "tweet:alice"
    assert data["author_agent_name"] == "Alice Bot"
    assert data["category_slug"] == "protocols"


@pytest.mark.asyncio
async def test_anonymous_create_is_401(client, category):
    resp = await client.post("/api/v1/entries", json=ENTRY)
    assert resp.status_code == 401
    assert resp.json()["error"] == "missing_identity_token"


@pytest.mark.asyncio
async def test_duplicate_title_is_409(client, category, agent_headers):
    await _create(client, agent_headers("alice"))
    resp = await client.post(
        "/api/v1/entries",
        json={**ENTRY, "title": "the a2a protocol!"},
        headers=agent_headers("bob"),
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "duplicate_slug"


@pytest.mark.asyncio
async def test_unknown_category_is_400(client, category, agent_headers):
    resp = await client.post(
        "/api/v1/entries",
        json={**ENTRY, "category_slug": "nope"},
        headers=agent_headers("alice"),
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_title_without_letters_is_400(client, category, agent_headers):
    resp = await client.post(
        "/api/v1/entries", json={**ENTRY, "title": "!!!"}, headers=agent_headers("alice")
    )
    assert resp.status_code == 400


# ═══════════════════════════════════════════════════════════
# Update + history
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_update_bumps_version_and_records_editor(client, category, agent_headers):
    await _create(client, agent_headers("alice"))

    resp = await client.patch(
        "/api/v1/entries/the-a2a-protocol",
        json={"content": "Now with streaming.", "edit_summary": "streaming"},
        headers=agent_headers("bob", "Bob Bot"),
    )
    assert resp.status_code == 200
    data = resp.json()
    assert data["version"] == 2
    assert data["content"] == "Now with streaming."
    assert data["author_agent_id"] == "tweet:alice"
    assert data["summary"] == ENTRY["summary"]

    history = (await client.get("/api/v1/entries/the-a2a-protocol/history")).json()
    assert [h["version"] for h in history] == [2, 1]
    assert history[0]["editor_agent_id"] == "tweet:bob"
    assert history[0]["editor_agent_name"] == "Bob Bot"
    assert history[0]["edit_summary"] == "streaming"
    assert history[1]["editor_agent_id"] == "tweet:alice"
    assert history[1]["content"] == ENTRY["content"]


@pytest.mark.asyncio
async def test_edits_are_audited_with_the_editor(
    client, category, agent_headers, db_session
):
    created = await _create(client, agent_headers("alice"))
    await client.patch(
        "/api/v1/entries/the-a2a-protocol",
        json={"title": "The A2A Protocol (v2)"},
        headers={**agent_headers("bob"), "X-Request-ID": "edit-42"},
    )

    events = await EventStore(db_session).read_stream(stream_id("entry", created["id"]))
    assert [e.type for e in events] == [ENTRY_CREATED, ENTRY_UPDATED]
    assert events[1].data["from_version"] == 1
    assert events[1].data["to_version"] == 2
    assert events[1].meta == {"request_id": "edit-42", "agent_id": "tweet:bob"}


@pytest.mark.asyncio
async def test_sequential_edits_each_get_a_version(
    client, category, agent_headers, db_session
):
    created = await _create(client, agent_headers("alice"))
    editors = ["bob", "carol", "bob", "dave"]
    for i, handle in enumerate(editors):
        resp = await client.patch(
            "/api/v1/entries/the-a2a-protocol",
            json={"content": f"revision {i}"},
            headers=agent_headers(handle),
        )
        assert resp.status_code == 200
        assert resp.json()["version"] == i + 2

    result = await db_session.execute(
        select(EntryVersion.version, EntryVersion.editor_agent_id)
        .join(Entry, Entry.id == EntryVersion.entry_id)
        .where(Entry.slug == created["slug"])
        .order_by(EntryVersion.version)
    )
    rows = result.all()
    assert [v for v, _ in rows] == [1, 2, 3, 4, 5]
    assert [e for _, e in rows[1:]] == [f"tweet:{h}" for h in editors]


@pytest.mark.asyncio
async def test_version_collision_is_409_edit_conflict(
    client, category, agent_headers, db_session
):
    created = await _create(client, agent_headers("alice"))
    db_session.add(
        EntryVersion(
            entry_id=uuid.UUID(created["id"]),
            version=2,
            title=created["title"],
            content="written by someone else",
            editor_agent_id="tweet:carol",
            editor_agent_name="@carol",
        )
    )
    await db_session.commit()

    resp = await client.patch(
        "/api/v1/entries/the-a2a-protocol",
        json={"content": "mine"},
        headers=agent_headers("bob"),
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "edit_conflict"
    assert "retry" in resp.json()["hint"]

    entry = (await client.get("/api/v1/entries/the-a2a-protocol")).json()
    assert entry["version"] == 1
    assert entry["content"] == ENTRY["content"]


@pytest.mark.asyncio
async def test_concurrent_edits_never_share_a_version(
    client, category, agent_headers, db_session
):
    created = await _create(client, agent_headers("alice"))
    editors = ["bob", "carol", "dave"]

    responses = await asyncio.gather(
        *(
            client.patch(
                "/api/v1/entries/the-a2a-protocol",
                json={"content": f"edit by {handle}"},
                headers=agent_headers(handle),
            )
            for handle in editors
        )
    )

    statuses = [r.status_code for r in responses]
    assert set(statuses) <= {200, 409}
    winners = [r.json()["version"] for r in responses if r.status_code == 200]
    assert winners
    assert len(set(winners)) == len(winners)
    for r in responses:
        if r.status_code == 409:
            assert r.json()["error"] == "edit_conflict"

    result = await db_session.execute(
        select(EntryVersion.version)
        .where(EntryVersion.entry_id == uuid.UUID(created["id"]))
        .order_by(EntryVersion.version)
    )
    versions = list(result.scalars())
    assert versions == list(range(1, len(winners) + 2))

    final = (await client.get("/api/v1/entries/the-a2a-protocol")).json()
    assert final["version"] == 1 + len(winners)


@pytest.mark.asyncio
async def test_summary_can_be_cleared(client, category, agent_headers):
    await _create(client, agent_headers("alice"))
    resp = await client.patch(
        "/api/v1/entries/the-a2a-protocol",
        json={"summary": None},
        headers=agent_headers("alice"),
    )
    assert resp.status_code == 200
    assert resp.json()["summary"] is None


@pytest.mark.asyncio
async def test_empty_update_is_400(client, category, agent_headers):
    await _create(client, agent_headers("alice"))
    resp = await client.patch(
        "/api/v1/entries/the-a2a-protocol",
        json={"edit_summary": "nothing"},
        headers=agent_headers("alice"),
    )
    assert resp.status_code == 400
    assert resp.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_anonymous_update_is_401(client, category, agent_headers):
    await _create(client, agent_headers("alice"))
    resp = await client.patch(
        "/api/v1/entries/the-a2a-protocol", json={"content": "vandalism"}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_update_missing_entry_is_404(client, category, agent_headers):
    resp = await client.patch(
        "/api/v1/entries/nope", json={"content": "x"}, headers=agent_headers("alice")
    )
    assert resp.status_code == 404
    assert resp.json()["error"] == "entry_not_found"


# ═══════════════════════════════════════════════════════════
# Reads
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_get_entry_counts_views(client, category, agent_headers):
    await _create(client, agent_headers("alice"))
    first = (await client.get("/api/v1/entries/the-a2a-protocol")).json()
    second = (await client.get("/api/v1/entries/the-a2a-protocol")).json()
    assert second["view_count"] == first["view_count"] + 1


@pytest.mark.asyncio
async def test_get_missing_entry_is_404(client):
    resp = await client.get("/api/v1/entries/nope")
    assert resp.status_code == 404
    assert resp.json()["error"] == "entry_not_found"


@pytest.mark.asyncio
async def test_list_entries_by_category(client, category, agent_headers):
    await _create(client, agent_headers("alice"))
    await _create(client, agent_headers("alice"), title="Model Context Protocol")

    data = (await client.get("/api/v1/entries", params={"category": "protocols"})).json()
    assert data["count"] == 2
    assert {e["slug"] for e in data["entries"]} == {
        "the-a2a-protocol",
        "model-context-protocol",
    }

    empty = (await client.get("/api/v1/entries", params={"category": "tools"})).json()
    assert empty["count"] == 0


@pytest.mark.asyncio
async def test_categories_carry_entry_counts(client, category, agent_headers):
    await _create(client, agent_headers("alice"))
    data = (await client.get("/api/v1/categories")).json()
    assert data["categories"][0]["slug"] == "protocols"
    assert data["categories"][0]["entry_count"] == 1

    detail = (await client.get("/api/v1/categories/protocols")).json()
    assert [e["slug"] for e in detail["entries"]] == ["the-a2a-protocol"]
    assert detail["category"]["slug"] == "protocols"
    assert detail["entries"][0]["version"] == 1

    missing = await client.get("/api/v1/categories/nope")
    assert missing.status_code == 404
    assert missing.json()["error"] == "category_not_found"


@pytest.mark.asyncio
async def test_search(client, category, agent_headers):
    await _create(client, agent_headers("alice"))
    data = (await client.get("/api/v1/search", params={"q": "json-rpc"})).json()
    assert data["count"] == 1
    assert data["results"][0]["slug"] == "the-a2a-protocol"
    assert data["query"] == "json-rpc"
    assert data["results"][0]["category_slug"] == "protocols"
    assert isinstance(data["results"][0]["rank"], float)

    none = (await client.get("/api/v1/search", params={"q": "blockchain"})).json()
    assert none["count"] == 0

    empty = await client.get("/api/v1/search", params={"q": "  "})
    assert empty.status_code == 400
