"""Feed service - Business logic for per-user feeds."""

import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.auth import CurrentUser
from app.errors import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from app.models import Feed

logger = logging.getLogger(__name__)


def _check_position(position: int, article_ids: list[str]) -> None:
    # position == len(article_ids) means the user has consumed the whole feed
    if position < 0 or position > len(article_ids):
        raise BadRequestError(
            f"Position {position} is out of bounds for a feed of {len(article_ids)} articles"
        )


class FeedService:
    """Service for managing user feeds."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _authorize(self, user_id: UUID, requester: CurrentUser, action: str) -> None:
        if not requester.can_access(user_id):
            raise ForbiddenError(f"You can only {action} your own feed")

    async def _find(self, user_id: UUID, for_update: bool = False) -> Feed | None:
        query = select(Feed).where(Feed.user_id == user_id)
        if for_update:
            # Serializes writers on the single feed row (no-op on SQLite)
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def _find_for_update(self, user_id: UUID) -> Feed:
        feed = await self._find(user_id, for_update=True)
        if not feed:
            raise NotFoundError(f"Feed for user {user_id} not found")
        return feed

    async def _insert(self, user_id: UUID, article_ids: list[UUID]) -> Feed:
        """Insert a feed; raises IntegrityError if the user already has one."""
        feed = Feed(user_id=user_id, article_ids=[str(a) for a in article_ids], position=0)
        self.session.add(feed)
        await self.session.commit()
        await self.session.refresh(feed)
        logger.info("Created feed for user %s with %d articles", user_id, len(article_ids))
        return feed

    async def get_or_create(self, user_id: UUID) -> Feed:
        """The user's feed, created empty on first access."""
        feed = await self._find(user_id)
        if feed:
            return feed
        try:
            return await self._insert(user_id, [])
        except IntegrityError:
            # A concurrent first read created it
            await self.session.rollback()
            feed = await self._find(user_id)
            if feed is None:
                raise
            return feed

    async def get(self, user_id: UUID, requester: CurrentUser) -> Feed:
        """Get a user's feed; one's own feed always exists."""
        if user_id == requester.id:
            return await self.get_or_create(user_id)

        self._authorize(user_id, requester, "view")
        feed = await self._find(user_id)
        if not feed:
            raise NotFoundError(f"Feed for user {user_id} not found")
        return feed

    async def list_all(self) -> list[Feed]:
        """Get all feeds (admin only)."""
        result = await self.session.execute(select(Feed).order_by(Feed.updated_at.desc()))
        return list(result.scalars().all())

    async def create(self, user_id: UUID, article_ids: list[UUID], requester: CurrentUser) -> Feed:
        """Create a feed; a user has at most one."""
        self._authorize(user_id, requester, "create")
        if await self._find(user_id):
            raise ConflictError("Feed already exists for this user")
        try:
            return await self._insert(user_id, article_ids)
        except IntegrityError:
            await self.session.rollback()
            raise ConflictError("Feed already exists for this user")

    async def update(
        self,
        user_id: UUID,
        requester: CurrentUser,
        article_ids: list[UUID] | None = None,
        position: int | None = None,
    ) -> Feed:
        """Partial update; the resulting position must stay within the resulting list."""
        self._authorize(user_id, requester, "update")
        feed = await self._find_for_update(user_id)

        new_ids = [str(a) for a in article_ids] if article_ids is not None else list(feed.article_ids)
        new_position = position if position is not None else feed.position
        try:
            _check_position(new_position, new_ids)
        except BadRequestError:
            await self.session.rollback()
            raise

        feed.article_ids = new_ids
        feed.position = new_position
        feed.updated_at = datetime.now(UTC)
        await self.session.commit()
        await self.session.refresh(feed)
        logger.info("Updated feed for user %s", user_id)
        return feed

    async def set_position(self, user_id: UUID, position: int, requester: CurrentUser) -> Feed:
        """Move the read cursor."""
        self._authorize(user_id, requester, "update")
        feed = await self._find_for_update(user_id)
        try:
            _check_position(position, feed.article_ids)
        except BadRequestError:
            await self.session.rollback()
            raise

        feed.position = position
        feed.updated_at = datetime.now(UTC)
        await self.session.commit()
        await self.session.refresh(feed)
        logger.info("Moved feed cursor for user %s to %d", user_id, position)
        return feed

    async def regenerate(self, user_id: UUID, article_ids: list[UUID], requester: CurrentUser) -> Feed:
        """Replace the playlist and rewind to the start; creates the feed if needed."""
        self._authorize(user_id, requester, "regenerate")
        feed = await self._find(user_id, for_update=True)
        if not feed:
            try:
                return await self._insert(user_id, article_ids)
            except IntegrityError:
                await self.session.rollback()
                feed = await self._find_for_update(user_id)

        feed.article_ids = [str(a) for a in article_ids]
        feed.position = 0
        feed.updated_at = datetime.now(UTC)
        await self.session.commit()
        await self.session.refresh(feed)
        logger.info("Regenerated feed for user %s with %d articles", user_id, len(article_ids))
        return feed

    async def delete(self, user_id: UUID, requester: CurrentUser) -> None:
        """Delete a user's feed."""
        self._authorize(user_id, requester, "delete")
        feed = await self._find(user_id)
        if not feed:
            raise NotFoundError(f"Feed for user {user_id} not found")
        await self.session.delete(feed)
        await self.session.commit()
        logger.info("Deleted feed for user %s", user_id)
