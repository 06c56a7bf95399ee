"""Interaction schemas for API request/response validation."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from app.models.interaction import InteractionKind
from app.schemas.article import ArticleResponse
from app.schemas.common import PaginationMeta


class InteractionRequest(BaseModel):
    """Body for creating or deleting an interaction."""

    article_id: UUID
    kind: InteractionKind


class InteractionResponse(BaseModel):
    id: UUID
    user_id: UUID
    article_id: UUID
    kind: InteractionKind
    created_at: datetime

    class Config:
        from_attributes = True


class UserInteractionResponse(InteractionResponse):
    """An interaction with the article it points at."""

    article: ArticleResponse


class InteractionCheckResponse(BaseModel):
    has_interaction: bool


class InteractionStatusResponse(BaseModel):
    """Both toggle states for one article, fetched in a single query."""

    liked: bool
    saved: bool


class InteractedArticle(ArticleResponse):
    """Article as listed in a user's liked/saved collection."""

    interacted_at: datetime


class InteractedArticleListResponse(BaseModel):
    articles: list[InteractedArticle]
    pagination: PaginationMeta
