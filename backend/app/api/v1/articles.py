"""Articles API endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import (
    Pagination,
    get_catalog_service,
    get_interaction_service,
    get_pagination,
    get_recommender_sync,
    get_worker,
)
from app.auth import CurrentUser, get_current_user, require_admin
from app.config import get_settings
from app.errors import BadRequestError, DependencyError, NotFoundError
from app.models import InteractionKind
from app.schemas.article import (
    ArticleBulkUpsert,
    ArticleListResponse,
    ArticleResponse,
    ArticleUpdate,
    ArticleUpsert,
    BulkUpsertResponse,
    SkippedItem,
    UpsertResponse,
)
from app.schemas.common import PaginationMeta
from app.schemas.interaction import InteractionResponse
from app.services.catalog_service import CatalogService
from app.services.enrichment_worker import EnrichmentWorker
from app.services.interaction_service import InteractionService
from app.services.recommender_service import RecommendationSync

logger = logging.getLogger(__name__)

router = APIRouter()


def _page(articles: list, pagination: Pagination, total: int) -> ArticleListResponse:
    return ArticleListResponse(
        articles=[ArticleResponse.model_validate(a) for a in articles],
        pagination=PaginationMeta.build(pagination.page, pagination.limit, total),
    )


@router.get("", response_model=ArticleListResponse)
async def list_articles(
    pagination: Pagination = Depends(get_pagination),
    sort_by: str = Query(default="createdAt"),
    sort_order: str = Query(default="desc"),
    catalog: CatalogService = Depends(get_catalog_service),
    _: CurrentUser = Depends(get_current_user),
) -> ArticleListResponse:
    """List all articles, paginated and sorted."""
    articles, total = await catalog.list_articles(pagination.page, pagination.limit, sort_by, sort_order)
    return _page(articles, pagination, total)


@router.get("/search", response_model=ArticleListResponse)
async def search_articles(
    q: str = Query(..., min_length=1, max_length=200, description="Text to look for in title, summary or tags"),
    pagination: Pagination = Depends(get_pagination),
    sort_by: str = Query(default="createdAt"),
    sort_order: str = Query(default="desc"),
    catalog: CatalogService = Depends(get_catalog_service),
    _: CurrentUser = Depends(get_current_user),
) -> ArticleListResponse:
    """Case-insensitive search over active articles."""
    articles, total = await catalog.search(q, pagination.page, pagination.limit, sort_by, sort_order)
    return _page(articles, pagination, total)


@router.get("/recommended", response_model=list[ArticleResponse])
async def recommended_articles(
    count: int = Query(default=10, ge=1, le=50),
    user: CurrentUser = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
    recommender: RecommendationSync = Depends(get_recommender_sync),
) -> list[ArticleResponse]:
    """
    Personalized articles for the caller.

    Falls back to random active articles when the recommender is down or
    returns fewer items than requested.
    """
    external_ids = await recommender.get_recommendations(user.id, count)
    articles = await catalog.get_by_external_ids(external_ids)
    if len(articles) < count:
        articles += await catalog.random_active(count - len(articles), exclude_ids=[a.id for a in articles])
    return [ArticleResponse.model_validate(a) for a in articles]


@router.get("/external/url", response_model=ArticleResponse)
async def get_by_external_url(
    url: str = Query(..., min_length=1),
    catalog: CatalogService = Depends(get_catalog_service),
    _: CurrentUser = Depends(get_current_user),
) -> ArticleResponse:
    """Look an article up by its source URL."""
    article = await catalog.get_by_external_url(url)
    if not article:
        raise NotFoundError("Article not found")
    return ArticleResponse.model_validate(article)


@router.get("/external/{external_id}", response_model=ArticleResponse)
async def get_by_external_id(
    external_id: str,
    catalog: CatalogService = Depends(get_catalog_service),
    _: CurrentUser = Depends(get_current_user),
) -> ArticleResponse:
    """Look an article up by its upstream id."""
    article = await catalog.get_by_external_id(external_id)
    if not article:
        raise NotFoundError("Article not found")
    return ArticleResponse.model_validate(article)


@router.post("/upsert", response_model=UpsertResponse)
async def upsert_article(
    article_in: ArticleUpsert,
    catalog: CatalogService = Depends(get_catalog_service),
    _: CurrentUser = Depends(get_current_user),
) -> UpsertResponse:
    """Create the article for an external identity, or return the existing one."""
    article, created = await catalog.upsert(article_in)
    return UpsertResponse(article=ArticleResponse.model_validate(article), created=created)


@router.post("/upsert-batch", response_model=BulkUpsertResponse)
async def upsert_articles_batch(
    batch: ArticleBulkUpsert,
    catalog: CatalogService = Depends(get_catalog_service),
    _: CurrentUser = Depends(get_current_user),
) -> BulkUpsertResponse:
    """Upsert up to 100 articles; failures are reported per item."""
    if len(batch.articles) > get_settings().bulk_upsert_max:
        raise BadRequestError(f"At most {get_settings().bulk_upsert_max} articles per batch")

    result = await catalog.bulk_upsert(batch.articles)
    return BulkUpsertResponse(
        created_count=result.created_count,
        existing_count=result.existing_count,
        skipped_count=len(result.skipped),
        articles=[ArticleResponse.model_validate(a) for a in result.articles],
        skipped=[SkippedItem(**s) for s in result.skipped],
    )


@router.get("/{article_id}", response_model=ArticleResponse)
async def get_article(
    article_id: UUID,
    catalog: CatalogService = Depends(get_catalog_service),
    _: CurrentUser = Depends(get_current_user),
) -> ArticleResponse:
    """Get a specific article by ID."""
    return ArticleResponse.model_validate(await catalog.get(article_id))


@router.post("/{article_id}/view", response_model=InteractionResponse, status_code=status.HTTP_201_CREATED)
async def record_view(
    article_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    interactions: InteractionService = Depends(get_interaction_service),
    catalog: CatalogService = Depends(get_catalog_service),
    recommender: RecommendationSync = Depends(get_recommender_sync),
) -> InteractionResponse:
    """Record a view; shorthand for creating a VIEW interaction."""
    interaction = await interactions.create(user.id, article_id, InteractionKind.VIEW)
    article = await catalog.find(article_id)
    if article and article.external_id:
        recommender.sync_feedback(user.id, article.external_id, InteractionKind.VIEW)
    return InteractionResponse.model_validate(interaction)


@router.put("/{article_id}", response_model=ArticleResponse)
async def update_article(
    article_id: UUID,
    article_in: ArticleUpdate,
    catalog: CatalogService = Depends(get_catalog_service),
    _: CurrentUser = Depends(require_admin),
) -> ArticleResponse:
    """Edit an article (admin only)."""
    return ArticleResponse.model_validate(await catalog.update(article_id, article_in))


@router.delete("/{article_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_article(
    article_id: UUID,
    catalog: CatalogService = Depends(get_catalog_service),
    worker: EnrichmentWorker = Depends(get_worker),
    _: CurrentUser = Depends(require_admin),
) -> None:
    """Delete an article and its stored audio (admin only)."""
    article = await catalog.delete(article_id)
    if article.audio_url:
        try:
            await worker.storage.delete(article.audio_url)
        except DependencyError as e:
            logger.error("Could not remove audio %s of deleted article %s: %s", article.audio_url, article_id, e.message)
