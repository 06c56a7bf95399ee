"""Schemas for the AI enrichment endpoints."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.article import ArticleResponse


class ProcessArticleRequest(BaseModel):
    """Raw content plus the metadata needed to create the catalog item."""

    content: str = Field(..., min_length=1, description="Article text to summarize and tag")
    title: str = Field(..., min_length=1, max_length=500)
    external_url: str = Field(..., min_length=1, max_length=2048)
    external_id: str | None = Field(default=None, min_length=1, max_length=100)
    image_url: str | None = Field(default=None, max_length=2048)
    published_at: datetime | None = None
    category_id: UUID | None = None


class RegenerateSummaryRequest(BaseModel):
    content: str = Field(..., min_length=1)


class EnrichmentResponse(BaseModel):
    """Article after a synchronous enrichment step."""

    article: ArticleResponse
    audio_scheduled: bool = Field(
        ..., description="False when audio is disabled or a synthesis is already running"
    )


class ProcessPendingResponse(BaseModel):
    scheduled: int
    article_ids: list[UUID]
