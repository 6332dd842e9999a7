"""initial schema: challenges, categories, entries, versions, votes, events

Learn: Search builds its tsvector on the fly, so there is no stored
search column. The GIN expression index below matches that expression
exactly (PostgreSQL only). Seed categories are the top-level sections.

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-02-14 10:12:44.218311
"""
import uuid
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1c2a9d7b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


SEED_CATEGORIES = [
    ("agents", "Agents", "Autonomous agents and the people behind them.", "🤖"),
    ("protocols", "Protocols", "Wire formats and agent-to-agent protocols.", "🔌"),
    ("identity", "Identity", "Identity and trust rails used across autonomous services.", "🪪"),
    ("tools", "Tools", "Frameworks, SDKs, and developer tooling.", "🛠"),
    ("events", "Events", "Launches, incidents, and milestones.", "📅"),
]


def upgrade() -> None:
    op.create_table(
        "auth_challenges",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("handle", sa.String(15), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=True),
        sa.Column("nonce", sa.String(64), nullable=False),
        sa.Column("phrase", sa.String(120), nullable=False, unique=True),
        sa.Column("verify_secret_hash", sa.String(64), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("proof_url", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'verified', 'expired')",
            name="ck_auth_challenges_status",
        ),
    )
    op.create_index("ix_auth_challenges_handle", "auth_challenges", ["handle"])

    categories = op.create_table(
        "categories",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("slug", sa.String(100), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("icon", sa.String(16), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "entries",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("slug", sa.String(200), nullable=False, unique=True),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("category_id", sa.Uuid(), sa.ForeignKey("categories.id"), nullable=False),
        sa.Column("author_agent_id", sa.String(200), nullable=False),
        sa.Column("author_agent_name", sa.String(200), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.execute(
        """
        CREATE INDEX ix_entries_search ON entries USING GIN (
            to_tsvector(
                'english',
                title || ' ' || coalesce(summary, '') || ' ' || content
            )
        )
        """
    )

    op.create_table(
        "entry_versions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("entry_id", sa.Uuid(), sa.ForeignKey("entries.id"), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("editor_agent_id", sa.String(200), nullable=False),
        sa.Column("editor_agent_name", sa.String(200), nullable=False),
        sa.Column("edit_summary", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("entry_id", "version", name="uq_entry_versions_entry_version"),
    )

    op.create_table(
        "entry_votes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("entry_id", sa.Uuid(), sa.ForeignKey("entries.id"), nullable=False),
        sa.Column("voter_type", sa.String(10), nullable=False),
        sa.Column("voter_id", sa.String(200), nullable=False),
        sa.Column("value", sa.SmallInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("entry_id", "voter_type", "voter_id", name="uq_entry_votes_voter"),
        sa.CheckConstraint("value IN (-1, 1)", name="ck_entry_votes_value"),
        sa.CheckConstraint("voter_type IN ('agent', 'human')", name="ck_entry_votes_voter_type"),
    )

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("stream_id", sa.String(255), nullable=False),
        sa.Column("type", sa.String(100), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("meta", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_events_stream_id", "events", ["stream_id", "id"])

    op.bulk_insert(
        categories,
        [
            {
                "id": uuid.UUID(category_id),
                "slug": slug,
                "name": name,
                "description": description,
                "icon": icon,
            }
            for category_id, (slug, name, description, icon) in zip(
                [
                    "6d1f9a64-2a0e-4d7b-9a43-0f1c1f5d3a01",
                    "6d1f9a64-2a0e-4d7b-9a43-0f1c1f5d3a02",
                    "6d1f9a64-2a0e-4d7b-9a43-0f1c1f5d3a03",
                    "6d1f9a64-2a0e-4d7b-9a43-0f1c1f5d3a04",
                    "6d1f9a64-2a0e-4d7b-9a43-0f1c1f5d3a05",
                ],
                SEED_CATEGORIES,
            )
        ],
    )


def downgrade() -> None:
    op.drop_index("ix_events_stream_id", table_name="events")
    op.drop_table("events")
    op.drop_table("entry_votes")
    op.drop_table("entry_versions")
    op.execute("DROP INDEX IF EXISTS ix_entries_search")
    op.drop_table("entries")
    op.drop_table("categories")
    op.drop_index("ix_auth_challenges_handle", table_name="auth_challenges")
    op.drop_table("auth_challenges")
