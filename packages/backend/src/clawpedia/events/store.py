"""Audit log — append-only record of trust decisions and attributed writes.

Learn: Every trust decision and every write leaves an immutable event
behind: who verified which handle, who edited which entry, who changed a
vote. Events are flushed inside the caller's transaction, so they commit
or roll back together with the change they describe.

Each event's `meta` is stamped with whatever the request has bound into
structlog's contextvars (request_id, agent_id), so an audit row can be
matched to the log lines of the request that produced it.
"""

import uuid
from typing import Optional, Union

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from clawpedia.db.models import Event

# contextvars copied into event meta when present
AUDIT_CONTEXT_KEYS = ("request_id", "agent_id")


def stream_id(kind: str, key: Union[str, uuid.UUID]) -> str:
    """'challenge', <uuid> → 'challenge:<uuid>'"""
    return f"{kind}:{key}"


def request_context() -> dict:
    bound = structlog.contextvars.get_contextvars()
    return {k: bound[k] for k in AUDIT_CONTEXT_KEYS if bound.get(k)}


class EventStore:
    """Append-only audit store backed by the events table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        stream: str,
        event_type: str,
        data: dict,
        meta: Optional[dict] = None,
    ) -> Event:
        event = Event(
            stream_id=stream,
            type=event_type,
            data=data,
            meta={**request_context(), **(meta or {})},
        )
        self.db.add(event)
        await self.db.flush()
        return event

    async def read_stream(self, stream: str, limit: int = 100) -> list[Event]:
        """Events for one challenge or entry, oldest first."""
        result = await self.db.execute(
            select(Event)
            .where(Event.stream_id == stream)
            .order_by(Event.id)
            .limit(limit)
        )
        return list(result.scalars().all())
