"""Feeds API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from app.api.deps import get_feed_service
from app.auth import CurrentUser, get_current_user, require_admin
from app.schemas.feed import (
    FeedCreate,
    FeedPositionUpdate,
    FeedRegenerate,
    FeedResponse,
    FeedUpdate,
)
from app.services.feed_service import FeedService

router = APIRouter()


@router.get("/me", response_model=FeedResponse)
async def get_my_feed(
    user: CurrentUser = Depends(get_current_user),
    feeds: FeedService = Depends(get_feed_service),
) -> FeedResponse:
    """The caller's feed, created empty on first access."""
    return FeedResponse.model_validate(await feeds.get(user.id, user))


@router.post("/me", response_model=FeedResponse, status_code=status.HTTP_201_CREATED)
async def create_my_feed(
    feed_in: FeedCreate,
    user: CurrentUser = Depends(get_current_user),
    feeds: FeedService = Depends(get_feed_service),
) -> FeedResponse:
    """Create the caller's feed; 409 if it already exists."""
    return FeedResponse.model_validate(await feeds.create(user.id, feed_in.article_ids, user))


@router.put("/me", response_model=FeedResponse)
async def update_my_feed(
    feed_in: FeedUpdate,
    user: CurrentUser = Depends(get_current_user),
    feeds: FeedService = Depends(get_feed_service),
) -> FeedResponse:
    """Partially update the caller's feed."""
    feed = await feeds.update(user.id, user, article_ids=feed_in.article_ids, position=feed_in.position)
    return FeedResponse.model_validate(feed)


@router.put("/me/position", response_model=FeedResponse)
async def update_my_feed_position(
    position_in: FeedPositionUpdate,
    user: CurrentUser = Depends(get_current_user),
    feeds: FeedService = Depends(get_feed_service),
) -> FeedResponse:
    """Move the caller's read cursor."""
    return FeedResponse.model_validate(await feeds.set_position(user.id, position_in.position, user))


@router.post("/me/regenerate", response_model=FeedResponse)
async def regenerate_my_feed(
    feed_in: FeedRegenerate,
    user: CurrentUser = Depends(get_current_user),
    feeds: FeedService = Depends(get_feed_service),
) -> FeedResponse:
    """Replace the caller's playlist and rewind the cursor to 0."""
    return FeedResponse.model_validate(await feeds.regenerate(user.id, feed_in.article_ids, user))


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
async def delete_my_feed(
    user: CurrentUser = Depends(get_current_user),
    feeds: FeedService = Depends(get_feed_service),
) -> None:
    """Delete the caller's feed."""
    await feeds.delete(user.id, user)


@router.get("", response_model=list[FeedResponse])
async def list_feeds(
    _: CurrentUser = Depends(require_admin),
    feeds: FeedService = Depends(get_feed_service),
) -> list[FeedResponse]:
    """List every feed (admin only)."""
    return [FeedResponse.model_validate(f) for f in await feeds.list_all()]


@router.get("/{user_id}", response_model=FeedResponse)
async def get_user_feed(
    user_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    feeds: FeedService = Depends(get_feed_service),
) -> FeedResponse:
    """Get a user's feed (owner or admin)."""
    return FeedResponse.model_validate(await feeds.get(user_id, user))


@router.put("/{user_id}", response_model=FeedResponse)
async def update_user_feed(
    user_id: UUID,
    feed_in: FeedUpdate,
    user: CurrentUser = Depends(get_current_user),
    feeds: FeedService = Depends(get_feed_service),
) -> FeedResponse:
    """Update a user's feed (owner or admin)."""
    feed = await feeds.update(user_id, user, article_ids=feed_in.article_ids, position=feed_in.position)
    return FeedResponse.model_validate(feed)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user_feed(
    user_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    feeds: FeedService = Depends(get_feed_service),
) -> None:
    """Delete a user's feed (owner or admin)."""
    await feeds.delete(user_id, user)
