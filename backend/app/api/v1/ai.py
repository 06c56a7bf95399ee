"""AI enrichment endpoints (admin only)."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_enrichment_service
from app.auth import CurrentUser, require_admin
from app.schemas.article import ArticleResponse
from app.schemas.enrichment import (
    EnrichmentResponse,
    ProcessArticleRequest,
    ProcessPendingResponse,
    RegenerateSummaryRequest,
)
from app.services.enrichment_service import EnrichmentService

router = APIRouter(dependencies=[Depends(require_admin)])


@router.post("/process-article", response_model=EnrichmentResponse, status_code=status.HTTP_201_CREATED)
async def process_article(
    request: ProcessArticleRequest,
    enrichment: EnrichmentService = Depends(get_enrichment_service),
) -> EnrichmentResponse:
    """
    Create (or find) an article and enrich it.

    The response carries the summary and tags; audio is synthesized in the
    background and shows up on the article once ready.
    """
    article, _, audio_scheduled = await enrichment.process_and_create(request)
    return EnrichmentResponse(article=ArticleResponse.model_validate(article), audio_scheduled=audio_scheduled)


@router.post("/regenerate-summary/{article_id}", response_model=ArticleResponse)
async def regenerate_summary(
    article_id: UUID,
    request: RegenerateSummaryRequest,
    enrichment: EnrichmentService = Depends(get_enrichment_service),
) -> ArticleResponse:
    """Recompute an article's summary from fresh content."""
    return ArticleResponse.model_validate(await enrichment.regenerate_summary(article_id, request.content))


@router.post("/regenerate-audio/{article_id}", response_model=EnrichmentResponse, status_code=status.HTTP_202_ACCEPTED)
async def regenerate_audio(
    article_id: UUID,
    enrichment: EnrichmentService = Depends(get_enrichment_service),
) -> EnrichmentResponse:
    """Re-narrate an article; a no-op while a synthesis for it is already running."""
    article, scheduled = await enrichment.regenerate_audio(article_id)
    return EnrichmentResponse(article=ArticleResponse.model_validate(article), audio_scheduled=scheduled)


@router.post("/process-pending", response_model=ProcessPendingResponse, status_code=status.HTTP_202_ACCEPTED)
async def process_pending(
    limit: int = Query(default=10, ge=1, le=100),
    enrichment: EnrichmentService = Depends(get_enrichment_service),
) -> ProcessPendingResponse:
    """Schedule enrichment for the oldest unprocessed articles."""
    article_ids = await enrichment.process_pending(limit)
    return ProcessPendingResponse(scheduled=len(article_ids), article_ids=article_ids)
