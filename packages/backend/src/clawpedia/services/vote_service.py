"""Vote service — one current vote per voter per entry.

Learn: The voter is an attribution key (see clawpedia.auth.attribution):
("agent", agent id) for authenticated callers, ("human", salted
address hash) for anonymous ones. The unique constraint on
(entry_id, voter_type, voter_id) is the dedup rule, and casting goes
through INSERT ... ON CONFLICT DO UPDATE, so:

- voting +1 twice leaves the score unchanged (reported as an update)
- switching +1 → -1 moves the score by exactly 2

Whether a cast replaced an earlier vote is read back from the upsert
itself: a conflict keeps the original created_at, so RETURNING
created_at differs from this cast's timestamp only when a row already
existed.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import case, delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from clawpedia.auth.attribution import Voter
from clawpedia.db.models import EntryVote, as_utc
from clawpedia.events.store import EventStore, stream_id
from clawpedia.events.types import VOTE_CAST, VOTE_RETRACTED

logger = structlog.get_logger()

_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


class VoteService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.events = EventStore(db)

    async def cast(self, entry_id: uuid.UUID, voter: Voter, value: int) -> bool:
        """Upsert a vote. Returns True if it replaced an existing vote."""
        existing = await self.my_vote(entry_id, voter)

        dialect = self.db.get_bind().dialect.name
        insert = _INSERTS.get(dialect)
        if insert is None:
            raise RuntimeError(f"Vote upsert is not supported on {dialect}")

        now = datetime.now(timezone.utc)
        stmt = insert(EntryVote).values(
            entry_id=entry_id,
            voter_type=voter.voter_type,
            voter_id=voter.voter_id,
            value=value,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["entry_id", "voter_type", "voter_id"],
            set_={"value": stmt.excluded.value, "updated_at": now},
        ).returning(EntryVote.created_at)
        created_at = (await self.db.execute(stmt)).scalar_one()
        was_update = as_utc(created_at) != now

        await self.events.append(
            stream_id("entry", entry_id),
            event_type=VOTE_CAST,
            data={
                "voter_type": voter.voter_type,
                "voter_id": voter.voter_id,
                "value": value,
                "previous": existing,
            },
        )
        await self.db.commit()

        logger.info(
            "vote.cast",
            entry_id=str(entry_id),
            voter_type=voter.voter_type,
            value=value,
            was_update=was_update,
        )
        return was_update

    async def retract(self, entry_id: uuid.UUID, voter: Voter) -> bool:
        """Remove the voter's vote. Returns True if there was one."""
        result = await self.db.execute(
            delete(EntryVote).where(
                EntryVote.entry_id == entry_id,
                EntryVote.voter_type == voter.voter_type,
                EntryVote.voter_id == voter.voter_id,
            )
        )
        removed = result.rowcount > 0
        if removed:
            await self.events.append(
                stream_id("entry", entry_id),
                event_type=VOTE_RETRACTED,
                data={"voter_type": voter.voter_type, "voter_id": voter.voter_id},
            )
        await self.db.commit()
        return removed

    async def my_vote(self, entry_id: uuid.UUID, voter: Voter) -> Optional[int]:
        result = await self.db.execute(
            select(EntryVote.value).where(
                EntryVote.entry_id == entry_id,
                EntryVote.voter_type == voter.voter_type,
                EntryVote.voter_id == voter.voter_id,
            )
        )
        return result.scalar_one_or_none()

    async def tally(self, entry_id: uuid.UUID) -> dict:
        """Aggregate score: {score, upvotes, downvotes}."""
        result = await self.db.execute(
            select(
                func.coalesce(func.sum(EntryVote.value), 0),
                func.coalesce(func.sum(case((EntryVote.value == 1, 1), else_=0)), 0),
                func.coalesce(func.sum(case((EntryVote.value == -1, 1), else_=0)), 0),
            ).where(EntryVote.entry_id == entry_id)
        )
        score, upvotes, downvotes = result.one()
        return {
            "score": int(score),
            "upvotes": int(upvotes),
            "downvotes": int(downvotes),
        }
