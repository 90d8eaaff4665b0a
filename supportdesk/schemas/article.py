from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

ArticleStatus = Literal["draft", "pending_approval", "approved", "rejected", "archived"]
ArticleCategory = Literal["general", "product", "service", "troubleshooting", "faq", "policy", "other"]


class ArticleCreateIn(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    content: str = ""
    category: ArticleCategory = "general"
    is_faq: bool = False
    tags: list[str] = Field(default_factory=list, max_length=30)


class ArticleDraftIn(BaseModel):
    title: str | None = Field(default=None, max_length=255)
    description: str | None = Field(default=None, max_length=2000)
    content: str | None = None
    category: ArticleCategory | None = None
    is_faq: bool | None = None
    tags: list[str] | None = Field(default=None, max_length=30)


class ArticleSubmitIn(BaseModel):
    change_summary: str | None = Field(default=None, max_length=500)


class ReviewIn(BaseModel):
    feedback: str | None = Field(default=None, max_length=6000)


class RejectIn(BaseModel):
    feedback: str = Field(min_length=1, max_length=6000)


class NoteIn(BaseModel):
    content: str = Field(min_length=1, max_length=6000)


class ArticleOut(BaseModel):
    id: str
    title: str
    description: str | None = None
    content: str
    status: ArticleStatus
    category: ArticleCategory
    is_faq: bool = False
    slug: str
    view_count: int = 0
    tags: list[str] = Field(default_factory=list)
    created_by: str
    created_at: datetime
    updated_at: datetime
    published_at: datetime | None = None


class ArticleVersionOut(BaseModel):
    id: str
    article_id: str
    title: str
    description: str | None = None
    content: str
    version_number: int
    change_summary: str | None = None
    created_by: str
    created_at: datetime


class ApprovalRequestOut(BaseModel):
    id: str
    article_id: str
    version_id: str
    submitted_by: str
    submitted_at: datetime
    status: Literal["pending", "approved", "rejected"]
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    feedback: str | None = None


class ArticleNoteOut(BaseModel):
    id: str
    article_id: str
    content: str
    created_by: str
    created_at: datetime
