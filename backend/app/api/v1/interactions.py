"""Interactions API endpoints (view/like/save)."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import (
    Pagination,
    get_catalog_service,
    get_interaction_service,
    get_pagination,
    get_recommender_sync,
)
from app.auth import CurrentUser, get_current_user, require_admin
from app.models import InteractionKind
from app.schemas.article import ArticleResponse
from app.schemas.common import PaginationMeta
from app.schemas.interaction import (
    InteractedArticle,
    InteractedArticleListResponse,
    InteractionCheckResponse,
    InteractionRequest,
    InteractionResponse,
    InteractionStatusResponse,
    UserInteractionResponse,
)
from app.services.catalog_service import CatalogService
from app.services.interaction_service import InteractionService
from app.services.recommender_service import RecommendationSync

router = APIRouter()


def _interacted_page(rows: list, pagination: Pagination, total: int) -> InteractedArticleListResponse:
    return InteractedArticleListResponse(
        articles=[
            InteractedArticle(**ArticleResponse.model_validate(article).model_dump(), interacted_at=interacted_at)
            for article, interacted_at in rows
        ],
        pagination=PaginationMeta.build(pagination.page, pagination.limit, total),
    )


@router.post("", response_model=InteractionResponse, status_code=status.HTTP_201_CREATED)
async def create_interaction(
    request: InteractionRequest,
    user: CurrentUser = Depends(get_current_user),
    interactions: InteractionService = Depends(get_interaction_service),
    catalog: CatalogService = Depends(get_catalog_service),
    recommender: RecommendationSync = Depends(get_recommender_sync),
) -> InteractionResponse:
    """Like, save or view an article. Duplicate likes/saves return 409."""
    interaction = await interactions.create(user.id, request.article_id, request.kind)

    article = await catalog.find(request.article_id)
    if article and article.external_id:
        recommender.sync_feedback(user.id, article.external_id, request.kind)

    return InteractionResponse.model_validate(interaction)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def delete_interaction(
    request: InteractionRequest,
    user: CurrentUser = Depends(get_current_user),
    interactions: InteractionService = Depends(get_interaction_service),
    catalog: CatalogService = Depends(get_catalog_service),
    recommender: RecommendationSync = Depends(get_recommender_sync),
) -> None:
    """Unlike or unsave an article. Views cannot be deleted (400)."""
    await interactions.delete(user.id, request.article_id, request.kind)

    article = await catalog.find(request.article_id)
    if article and article.external_id:
        recommender.sync_remove_feedback(user.id, article.external_id, request.kind)


@router.get("/me", response_model=list[UserInteractionResponse])
async def list_my_interactions(
    kind: InteractionKind | None = Query(default=None, alias="type"),
    pagination: Pagination = Depends(get_pagination),
    user: CurrentUser = Depends(get_current_user),
    interactions: InteractionService = Depends(get_interaction_service),
) -> list[UserInteractionResponse]:
    """The caller's interactions, newest first."""
    rows, _ = await interactions.list_for_user(user.id, kind, pagination.page, pagination.limit)
    return [
        UserInteractionResponse(
            **InteractionResponse.model_validate(interaction).model_dump(),
            article=ArticleResponse.model_validate(article),
        )
        for interaction, article in rows
    ]


@router.get("/me/liked", response_model=InteractedArticleListResponse)
async def list_my_liked(
    pagination: Pagination = Depends(get_pagination),
    user: CurrentUser = Depends(get_current_user),
    interactions: InteractionService = Depends(get_interaction_service),
) -> InteractedArticleListResponse:
    """Articles the caller liked, most recent first."""
    rows, total = await interactions.list_liked(user.id, pagination.page, pagination.limit)
    return _interacted_page(rows, pagination, total)


@router.get("/me/saved", response_model=InteractedArticleListResponse)
async def list_my_saved(
    pagination: Pagination = Depends(get_pagination),
    user: CurrentUser = Depends(get_current_user),
    interactions: InteractionService = Depends(get_interaction_service),
) -> InteractedArticleListResponse:
    """Articles the caller saved, most recent first."""
    rows, total = await interactions.list_saved(user.id, pagination.page, pagination.limit)
    return _interacted_page(rows, pagination, total)


@router.get("/users/{user_id}/liked", response_model=InteractedArticleListResponse)
async def list_user_liked(
    user_id: UUID,
    pagination: Pagination = Depends(get_pagination),
    _: CurrentUser = Depends(get_current_user),
    interactions: InteractionService = Depends(get_interaction_service),
) -> InteractedArticleListResponse:
    """Another user's liked articles (public)."""
    rows, total = await interactions.list_liked(user_id, pagination.page, pagination.limit)
    return _interacted_page(rows, pagination, total)


@router.get("/check/{article_id}", response_model=InteractionCheckResponse)
async def check_interaction(
    article_id: UUID,
    kind: InteractionKind = Query(..., alias="type"),
    user: CurrentUser = Depends(get_current_user),
    interactions: InteractionService = Depends(get_interaction_service),
) -> InteractionCheckResponse:
    """Whether the caller has an interaction of the given type with an article."""
    return InteractionCheckResponse(has_interaction=await interactions.check(user.id, article_id, kind))


@router.get("/status/{article_id}", response_model=InteractionStatusResponse)
async def interaction_status(
    article_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    interactions: InteractionService = Depends(get_interaction_service),
) -> InteractionStatusResponse:
    """Liked and saved state of an article for the caller."""
    return InteractionStatusResponse(**await interactions.check_all(user.id, article_id))


@router.get("/article/{article_id}", response_model=list[InteractionResponse])
async def list_article_interactions(
    article_id: UUID,
    _: CurrentUser = Depends(require_admin),
    interactions: InteractionService = Depends(get_interaction_service),
) -> list[InteractionResponse]:
    """Every interaction on an article (admin only)."""
    return [InteractionResponse.model_validate(i) for i in await interactions.list_for_article(article_id)]
