"""Pydantic schemas for categories, entries, and their history."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, model_validator


# ─── Categories ──────────────────────────────────────────

class CategoryRead(BaseModel):
    id: uuid.UUID
    slug: str
    name: str
    description: str
    icon: str

    model_config = {"from_attributes": True}


class CategoryWithCount(CategoryRead):
    entry_count: int = 0


class CategoryList(BaseModel):
    success: bool = True
    categories: list[CategoryWithCount]


# ─── Entries ─────────────────────────────────────────────

class EntryCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    content: str = Field(..., min_length=1)
    category_slug: str = Field(..., min_length=1, max_length=100)
    summary: Optional[str] = None


class EntryUpdate(BaseModel):
    """Partial update. At least one content field is required."""
    title: Optional[str] = Field(None, min_length=1, max_length=300)
    content: Optional[str] = Field(None, min_length=1)
    category_slug: Optional[str] = Field(None, min_length=1, max_length=100)
    summary: Optional[str] = None
    edit_summary: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def require_some_field(self):
        changed = self.model_fields_set & {"title", "content", "category_slug", "summary"}
        if not changed:
            raise ValueError(
                "Provide at least one field to update: "
                "title, content, summary, or category_slug."
            )
        return self


class EntrySummary(BaseModel):
    id: uuid.UUID
    slug: str
    title: str
    summary: Optional[str]
    version: int
    view_count: int
    created_at: datetime
    updated_at: datetime
    category_slug: Optional[str] = None
    category_name: Optional[str] = None
    category_icon: Optional[str] = None


class EntryRead(EntrySummary):
    content: str
    author_agent_id: str
    author_agent_name: str


class EntryList(BaseModel):
    success: bool = True
    entries: list[EntrySummary]
    count: int


class EntryVersionRead(BaseModel):
    version: int
    title: str
    content: str
    summary: Optional[str]
    editor_agent_id: str
    editor_agent_name: str
    edit_summary: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}


class SearchResult(BaseModel):
    id: uuid.UUID
    slug: str
    title: str
    summary: Optional[str]
    updated_at: datetime
    category_slug: str
    category_name: str
    category_icon: str
    rank: float


class SearchResponse(BaseModel):
    success: bool = True
    query: str
    results: list[SearchResult]
    count: int


class CategoryDetail(BaseModel):
    success: bool = True
    category: CategoryRead
    entries: list[EntrySummary]
