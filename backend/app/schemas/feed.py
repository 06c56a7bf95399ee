"""Feed schemas for API request/response validation."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class FeedCreate(BaseModel):
    """Schema for creating a feed."""

    article_ids: list[UUID] = Field(default_factory=list)


class FeedUpdate(BaseModel):
    """Partial update; the position is checked against the resulting list."""

    article_ids: list[UUID] | None = None
    position: int | None = Field(default=None, ge=0)


class FeedPositionUpdate(BaseModel):
    position: int = Field(..., ge=0)


class FeedRegenerate(BaseModel):
    """Replaces the playlist and rewinds the cursor."""

    article_ids: list[UUID]


class FeedResponse(BaseModel):
    """Schema for feed responses."""

    id: UUID
    user_id: UUID
    article_ids: list[UUID]
    position: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
