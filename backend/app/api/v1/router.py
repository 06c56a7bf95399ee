"""API v1 main router - aggregates all endpoint routers."""

from fastapi import APIRouter

from app.api.v1 import ai, articles, feeds, interactions
from app.schemas.common import ErrorResponse

# Every AppError reaches the client as an ErrorResponse body
api_router = APIRouter(
    responses={code: {"model": ErrorResponse} for code in (400, 401, 403, 404, 409, 502)},
)

# Main endpoints
api_router.include_router(articles.router, prefix="/articles", tags=["articles"])
api_router.include_router(interactions.router, prefix="/interactions", tags=["interactions"])
api_router.include_router(feeds.router, prefix="/feeds", tags=["feeds"])
api_router.include_router(ai.router, prefix="/ai", tags=["ai"])
