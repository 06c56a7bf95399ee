"""Shared FastAPI dependencies: sessions, collaborators and services."""

from dataclasses import dataclass

from fastapi import Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.db.postgres import get_session as get_db
from app.services.catalog_service import CatalogService
from app.services.enrichment_service import EnrichmentService
from app.services.enrichment_worker import EnrichmentWorker, get_enrichment_worker
from app.services.feed_service import FeedService
from app.services.interaction_service import InteractionService
from app.services.recommender_service import RecommendationSync, get_recommender

settings = get_settings()


@dataclass
class Pagination:
    page: int
    limit: int


def get_pagination(
    page: int = Query(default=1, ge=1, description="Page number, starting at 1"),
    limit: int = Query(
        default=settings.default_page_size,
        ge=1,
        le=settings.max_page_size,
        description=f"Items per page (max {settings.max_page_size})",
    ),
) -> Pagination:
    """Standard page/limit query parameters."""
    return Pagination(page=page, limit=limit)


def get_recommender_sync() -> RecommendationSync:
    return get_recommender()


def get_worker() -> EnrichmentWorker:
    return get_enrichment_worker()


def get_catalog_service(
    db: AsyncSession = Depends(get_db),
    recommender: RecommendationSync = Depends(get_recommender_sync),
) -> CatalogService:
    return CatalogService(db, recommender)


def get_interaction_service(db: AsyncSession = Depends(get_db)) -> InteractionService:
    return InteractionService(db)


def get_feed_service(db: AsyncSession = Depends(get_db)) -> FeedService:
    return FeedService(db)


def get_enrichment_service(
    db: AsyncSession = Depends(get_db),
    worker: EnrichmentWorker = Depends(get_worker),
    recommender: RecommendationSync = Depends(get_recommender_sync),
) -> EnrichmentService:
    return EnrichmentService(db, worker, recommender)
