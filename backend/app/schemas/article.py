"""Article schemas for API request/response validation."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from app.models.article import EnrichmentState
from app.schemas.common import PaginationMeta


class ArticleUpsert(BaseModel):
    """An externally sourced item as delivered by the ingestion pipeline."""

    external_url: str = Field(..., min_length=1, max_length=2048, description="Canonical URL of the source page")
    title: str = Field(..., min_length=1, max_length=500)
    external_id: str | None = Field(default=None, min_length=1, max_length=100, description="Upstream page id")
    body: str | None = Field(default=None, description="Raw extract used for enrichment")
    summary: str | None = None
    tags: list[str] | None = None
    image_url: str | None = Field(default=None, max_length=2048)
    published_at: datetime | None = None
    category_id: UUID | None = None


class ArticleBulkUpsert(BaseModel):
    """Schema for upserting a batch of items."""

    articles: list[ArticleUpsert] = Field(..., min_length=1, max_length=100)


class ArticleUpdate(BaseModel):
    """Admin edit; counters and enrichment state are not editable."""

    title: str | None = Field(default=None, min_length=1, max_length=500)
    summary: str | None = None
    tags: list[str] | None = None
    image_url: str | None = Field(default=None, max_length=2048)
    published_at: datetime | None = None
    category_id: UUID | None = None
    is_active: bool | None = None


class ArticleResponse(BaseModel):
    """Schema for article responses."""

    id: UUID
    external_id: str | None = None
    external_url: str
    title: str
    summary: str | None = None
    tags: list[str] = Field(default_factory=list)
    image_url: str | None = None
    audio_url: str | None = None
    audio_duration: float | None = None
    category_id: UUID | None = None
    published_at: datetime | None = None
    created_at: datetime
    is_active: bool
    is_processed: bool
    enrichment_state: EnrichmentState
    view_count: int
    like_count: int
    save_count: int

    class Config:
        from_attributes = True


class ArticleListResponse(BaseModel):
    """Schema for paginated article list response."""

    articles: list[ArticleResponse]
    pagination: PaginationMeta


class UpsertResponse(BaseModel):
    article: ArticleResponse
    created: bool


class SkippedItem(BaseModel):
    """A batch entry that could not be stored."""

    external_url: str
    reason: str


class BulkUpsertResponse(BaseModel):
    """Partial-failure tolerant batch result."""

    created_count: int
    existing_count: int
    skipped_count: int
    articles: list[ArticleResponse]
    skipped: list[SkippedItem] = Field(default_factory=list)
