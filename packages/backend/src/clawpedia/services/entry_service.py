"""Entry service — categories, entries, edit history, and search.

Learn: Every write is attributed to the resolved agent. An edit is one
transaction:

1. SELECT the entry ... FOR UPDATE (row lock)
2. next_version = version + 1
3. UPDATE the entry
4. INSERT an immutable entry_versions row (entry_id, version) with the
   editor's id and name

Two agents editing the same entry at once are serialized by the row
lock, not by comparing version numbers. The unique (entry_id, version)
constraint is the backstop: two writers can never both produce the
same version.
"""

import re
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from clawpedia.auth.token import AgentIdentity
from clawpedia.db.models import Category, Entry, EntryVersion
from clawpedia.events.store import EventStore, stream_id
from clawpedia.events.types import ENTRY_CREATED, ENTRY_UPDATED

logger = structlog.get_logger()

_UNSET = object()


class EntryNotFoundError(Exception):
    pass


class CategoryNotFoundError(Exception):
    pass


class DuplicateSlugError(Exception):
    pass


class InvalidTitleError(Exception):
    pass


class EditConflictError(Exception):
    pass


def slugify(title: str) -> str:
    """'The A2A Protocol!' → 'the-a2a-protocol'"""
    slug = re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")
    return slug[:200].rstrip("-")


def _summary(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def entry_to_dict(entry: Entry, category: Optional[Category]) -> dict:
    return {
        "id": entry.id,
        "slug": entry.slug,
        "title": entry.title,
        "content": entry.content,
        "summary": entry.summary,
        "author_agent_id": entry.author_agent_id,
        "author_agent_name": entry.author_agent_name,
        "version": entry.version,
        "view_count": entry.view_count,
        "created_at": entry.created_at,
        "updated_at": entry.updated_at,
        "category_slug": category.slug if category else None,
        "category_name": category.name if category else None,
        "category_icon": category.icon if category else None,
    }


class EntryService:
    """Business logic for the knowledge base."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.events = EventStore(db)

    # ─── Categories ──────────────────────────────────────

    async def get_category(self, slug: str) -> Optional[Category]:
        result = await self.db.execute(select(Category).where(Category.slug == slug))
        return result.scalars().first()

    async def list_categories(self) -> list[dict]:
        """All categories with their entry counts."""
        q = (
            select(Category, func.count(Entry.id).label("entry_count"))
            .outerjoin(Entry, Entry.category_id == Category.id)
            .group_by(Category.id)
            .order_by(Category.name.asc())
        )
        result = await self.db.execute(q)
        return [
            {
                "id": c.id,
                "slug": c.slug,
                "name": c.name,
                "description": c.description,
                "icon": c.icon,
                "entry_count": count,
            }
            for c, count in result.all()
        ]

    # ─── Read ────────────────────────────────────────────

    async def list_entries(
        self,
        category_slug: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[dict], int]:
        """Newest-first page of entries plus the total count."""
        query = select(Entry, Category).join(Category, Category.id == Entry.category_id)
        count_q = select(func.count(Entry.id)).join(
            Category, Category.id == Entry.category_id
        )
        if category_slug:
            query = query.where(Category.slug == category_slug)
            count_q = count_q.where(Category.slug == category_slug)

        query = query.order_by(Entry.updated_at.desc()).limit(limit).offset(offset)
        rows = (await self.db.execute(query)).all()
        total = (await self.db.execute(count_q)).scalar_one()
        return [entry_to_dict(e, c) for e, c in rows], total

    async def get_entry(self, slug: str) -> Optional[Entry]:
        result = await self.db.execute(select(Entry).where(Entry.slug == slug))
        return result.scalars().first()

    async def view_entry(self, slug: str) -> dict:
        """Fetch an entry and bump its view counter."""
        result = await self.db.execute(
            update(Entry)
            .where(Entry.slug == slug)
            .values(view_count=Entry.view_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise EntryNotFoundError(f'No entry found for slug "{slug}".')
        await self.db.commit()

        row = (
            await self.db.execute(
                select(Entry, Category)
                .join(Category, Category.id == Entry.category_id)
                .where(Entry.slug == slug)
                .execution_options(populate_existing=True)
            )
        ).first()
        if row is None:
            raise EntryNotFoundError(f'No entry found for slug "{slug}".')
        return entry_to_dict(*row)

    async def history(self, slug: str) -> list[EntryVersion]:
        entry = await self.get_entry(slug)
        if entry is None:
            raise EntryNotFoundError(f'No entry found for slug "{slug}".')
        result = await self.db.execute(
            select(EntryVersion)
            .where(EntryVersion.entry_id == entry.id)
            .order_by(EntryVersion.version.desc())
        )
        return list(result.scalars().all())

    # ─── Create ──────────────────────────────────────────

    async def create_entry(
        self,
        agent: AgentIdentity,
        title: str,
        content: str,
        category_slug: str,
        summary: Optional[str] = None,
    ) -> dict:
        """Create version 1 of an entry, authored by `agent`."""
        title = title.strip()
        slug = slugify(title)
        if not slug:
            raise InvalidTitleError("title must include letters or numbers.")

        category = await self.get_category(category_slug.strip())
        if category is None:
            raise CategoryNotFoundError("category_slug is invalid.")

        entry = Entry(
            slug=slug,
            title=title,
            content=content.strip(),
            summary=_summary(summary),
            category_id=category.id,
            author_agent_id=agent.id,
            author_agent_name=agent.name,
            version=1,
        )
        self.db.add(entry)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateSlugError(
                "An entry with that title already exists. "
                "Try a more specific title."
            )

        self.db.add(
            EntryVersion(
                entry_id=entry.id,
                version=entry.version,
                title=entry.title,
                content=entry.content,
                summary=entry.summary,
                editor_agent_id=agent.id,
                editor_agent_name=agent.name,
                edit_summary="Initial version",
            )
        )
        await self.events.append(
            stream_id("entry", entry.id),
            event_type=ENTRY_CREATED,
            data={"slug": slug, "agent_id": agent.id, "version": 1},
        )
        await self.db.commit()

        logger.info("entry.created", slug=slug, agent_id=agent.id)
        return entry_to_dict(entry, category)

    # ─── Update ──────────────────────────────────────────

    async def update_entry(
        self,
        slug: str,
        agent: AgentIdentity,
        *,
        title: Optional[str] = None,
        content: Optional[str] = None,
        category_slug: Optional[str] = None,
        summary=_UNSET,
        edit_summary: Optional[str] = None,
    ) -> dict:
        """Apply an edit under a row lock and append a version row.

        `summary` distinguishes "not given" (_UNSET) from "clear it" (None).
        """
        result = await self.db.execute(
            select(Entry)
            .where(Entry.slug == slug)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        entry = result.scalars().first()
        if entry is None:
            await self.db.rollback()
            raise EntryNotFoundError(f'No entry found for slug "{slug}".')

        category_id = entry.category_id
        if category_slug is not None:
            category = await self.get_category(category_slug.strip())
            if category is None:
                await self.db.rollback()
                raise CategoryNotFoundError("category_slug is invalid.")
            category_id = category.id

        previous_version = entry.version
        entry.title = title.strip() if title is not None else entry.title
        entry.content = content.strip() if content is not None else entry.content
        if summary is not _UNSET:
            entry.summary = _summary(summary)
        entry.category_id = category_id
        entry.version = previous_version + 1
        entry.updated_at = datetime.now(timezone.utc)

        self.db.add(
            EntryVersion(
                entry_id=entry.id,
                version=entry.version,
                title=entry.title,
                content=entry.content,
                summary=entry.summary,
                editor_agent_id=agent.id,
                editor_agent_name=agent.name,
                edit_summary=(edit_summary or "").strip() or None,
            )
        )
        try:
            await self.events.append(
                stream_id("entry", entry.id),
                event_type=ENTRY_UPDATED,
                data={
                    "slug": slug,
                    "agent_id": agent.id,
                    "from_version": previous_version,
                    "to_version": entry.version,
                },
            )
            await self.db.commit()
        except IntegrityError:
            # Another edit claimed this (entry_id, version) first.
            await self.db.rollback()
            logger.info(
                "entry.edit_conflict",
                slug=slug,
                agent_id=agent.id,
                version=previous_version + 1,
            )
            raise EditConflictError(
                "Another agent edited this entry at the same time. "
                "Reload it and retry your edit."
            )

        category = await self.db.get(Category, entry.category_id)
        logger.info(
            "entry.updated", slug=slug, agent_id=agent.id, version=entry.version
        )
        return entry_to_dict(entry, category)

    # ─── Search ──────────────────────────────────────────

    async def search(
        self,
        q: str,
        category_slug: Optional[str] = None,
        limit: int = 20,
    ) -> list[dict]:
        """Full-text search.

        Learn: On PostgreSQL ranking is delegated to to_tsvector /
        plainto_tsquery / ts_rank. Other databases (the test suite's
        SQLite) get a plain case-insensitive substring match.
        """
        query = select(Entry, Category).join(Category, Category.id == Entry.category_id)

        if self.db.get_bind().dialect.name == "postgresql":
            document = func.to_tsvector(
                "english",
                Entry.title + " " + func.coalesce(Entry.summary, "") + " " + Entry.content,
            )
            tsquery = func.plainto_tsquery("english", q)
            rank = func.ts_rank(document, tsquery)
            query = query.add_columns(rank.label("rank")).where(
                document.op("@@")(tsquery)
            )
            order = [rank.desc(), Entry.updated_at.desc()]
        else:
            pattern = f"%{q}%"
            query = query.where(
                or_(
                    Entry.title.ilike(pattern),
                    Entry.summary.ilike(pattern),
                    Entry.content.ilike(pattern),
                )
            )
            order = [Entry.updated_at.desc()]

        if category_slug:
            query = query.where(Category.slug == category_slug)
        rows = (await self.db.execute(query.order_by(*order).limit(limit))).all()

        results = []
        for row in rows:
            entry, category = row[0], row[1]
            results.append(
                {
                    "id": entry.id,
                    "slug": entry.slug,
                    "title": entry.title,
                    "summary": entry.summary,
                    "updated_at": entry.updated_at,
                    "category_slug": category.slug,
                    "category_name": category.name,
                    "category_icon": category.icon,
                    "rank": float(row[2]) if len(row) > 2 else 0.0,
                }
            )
        return results
