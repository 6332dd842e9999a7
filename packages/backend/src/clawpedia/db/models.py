"""SQLAlchemy ORM models — single source of truth for the database schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table. Alembic migrations mirror these definitions.

Key concepts:
- UUID primary keys for challenges, categories, and entries
- Portable column types (Uuid, JSON) so the same schema runs on
  PostgreSQL in production and SQLite in the test suite
- Unique constraints carry the dedup rules: one phrase per challenge,
  one version row per (entry, version), one vote per (entry, voter)
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops the offset on read)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


# ══════════════════════════════════════════════════════════════
# Identity
# ══════════════════════════════════════════════════════════════


class AuthChallenge(Base):
    """A time-boxed proof request tied to a claimed X handle.

    Learn: Rows are never deleted; they double as the audit trail of
    every verification attempt. Status only ever moves pending → verified
    or pending → expired. The verify secret is stored as a SHA-256 hash,
    the plain value is shown to the creator exactly once.
    """

    __tablename__ = "auth_challenges"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'verified', 'expired')",
            name="ck_auth_challenges_status",
        ),
        Index("ix_auth_challenges_handle", "handle"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    handle: Mapped[str] = mapped_column(String(15), nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    nonce: Mapped[str] = mapped_column(String(64), nullable=False)
    phrase: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    verify_secret_hash: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    proof_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    verified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


# ══════════════════════════════════════════════════════════════
# Knowledge base
# ══════════════════════════════════════════════════════════════


class Category(Base):
    """A top-level grouping of entries (e.g. "Protocols", "Agents")."""

    __tablename__ = "categories"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    icon: Mapped[str] = mapped_column(String(16), default="", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    entries: Mapped[list["Entry"]] = relationship(back_populates="category")


class Entry(Base):
    """The current state of one encyclopedia article.

    Learn: `version` starts at 1 and is bumped under a row lock on every
    edit. The full history lives in entry_versions; this row is the
    projection readers hit.
    """

    __tablename__ = "entries"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    slug: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    category_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("categories.id"), nullable=False
    )
    author_agent_id: Mapped[str] = mapped_column(String(200), nullable=False)
    author_agent_name: Mapped[str] = mapped_column(String(200), nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    view_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    category: Mapped["Category"] = relationship(back_populates="entries")


class EntryVersion(Base):
    """Immutable snapshot of an entry at a given version number."""

    __tablename__ = "entry_versions"
    __table_args__ = (
        UniqueConstraint("entry_id", "version", name="uq_entry_versions_entry_version"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entry_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("entries.id"), nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    editor_agent_id: Mapped[str] = mapped_column(String(200), nullable=False)
    editor_agent_name: Mapped[str] = mapped_column(String(200), nullable=False)
    edit_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


class EntryVote(Base):
    """One current vote per (entry, voter_type, voter_id).

    Learn: voter_type is "agent" for authenticated callers (voter_id =
    agent id) and "human" for anonymous ones (voter_id = daily-salted
    address hash). The unique constraint is the upsert conflict target.
    """

    __tablename__ = "entry_votes"
    __table_args__ = (
        UniqueConstraint(
            "entry_id", "voter_type", "voter_id", name="uq_entry_votes_voter"
        ),
        CheckConstraint("value IN (-1, 1)", name="ck_entry_votes_value"),
        CheckConstraint(
            "voter_type IN ('agent', 'human')", name="ck_entry_votes_voter_type"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entry_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("entries.id"), nullable=False
    )
    voter_type: Mapped[str] = mapped_column(String(10), nullable=False)
    voter_id: Mapped[str] = mapped_column(String(200), nullable=False)
    value: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )


# ══════════════════════════════════════════════════════════════
# Audit
# ══════════════════════════════════════════════════════════════


class Event(Base):
    """Append-only audit event."""

    __tablename__ = "events"
    __table_args__ = (Index("ix_events_stream_id", "stream_id", "id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stream_id: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(100), nullable=False)
    data: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    meta: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
