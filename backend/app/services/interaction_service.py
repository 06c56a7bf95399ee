"""Interaction service - engagement records and the article counter ledger.

Every create/delete writes the interaction row and the matching article
counter in one transaction, with the counter changed by a SQL-side delta so
concurrent writers never lose updates. Nothing else writes the counters.
"""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import and_, case, delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.constants.catalog import COUNTER_FIELDS
from app.errors import BadRequestError, ConflictError, NotFoundError
from app.models import Article, Interaction, InteractionKind

logger = logging.getLogger(__name__)

_PAST_TENSE = {InteractionKind.LIKE: "liked", InteractionKind.SAVE: "saved", InteractionKind.VIEW: "viewed"}


def _counter_delta(article_id: UUID, kind: InteractionKind, delta: int) -> Any:
    """UPDATE statement applying ``delta`` to the counter for ``kind``, floored at zero."""
    column = getattr(Article, COUNTER_FIELDS[kind])
    value = column + delta if delta > 0 else case((column + delta > 0, column + delta), else_=0)
    return (
        update(Article)
        .where(Article.id == article_id)
        .values({COUNTER_FIELDS[kind]: value})
        .execution_options(synchronize_session=False)
    )


class InteractionService:
    """Service for recording user engagement with articles."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _require_article(self, article_id: UUID) -> Article:
        article = await self.session.get(Article, article_id)
        if not article:
            raise NotFoundError("Article not found")
        return article

    async def create(self, user_id: UUID, article_id: UUID, kind: InteractionKind) -> Interaction:
        """
        Record an interaction and bump the article counter atomically.

        LIKE/SAVE are unique per user and article; a duplicate raises
        ConflictError, whether it is caught by the pre-check or by the unique
        index when two requests race.
        """
        logger.info("Creating interaction user=%s article=%s kind=%s", user_id, article_id, kind.value)
        await self._require_article(article_id)

        if kind.is_toggle and await self.check(user_id, article_id, kind):
            raise ConflictError(f"You have already {_PAST_TENSE[kind]} this article")

        interaction = Interaction(user_id=user_id, article_id=article_id, kind=kind)
        self.session.add(interaction)
        try:
            await self.session.flush()
            await self.session.execute(_counter_delta(article_id, kind, +1))
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            # The foreign key fails too when the article was deleted meanwhile
            if await self.session.get(Article, article_id) is None:
                raise NotFoundError("Article not found")
            logger.info("Duplicate %s for user=%s article=%s", kind.value, user_id, article_id)
            raise ConflictError(f"You have already {_PAST_TENSE[kind]} this article")

        await self.session.refresh(interaction)
        return interaction

    async def delete(self, user_id: UUID, article_id: UUID, kind: InteractionKind) -> None:
        """Remove a LIKE/SAVE and decrement the counter atomically. Views are permanent."""
        logger.info("Deleting interaction user=%s article=%s kind=%s", user_id, article_id, kind.value)
        if not kind.is_toggle:
            raise BadRequestError("Cannot delete VIEW interactions")

        result = await self.session.execute(
            delete(Interaction).where(
                Interaction.user_id == user_id,
                Interaction.article_id == article_id,
                Interaction.kind == kind,
            )
        )
        if result.rowcount == 0:
            await self.session.rollback()
            raise NotFoundError("Interaction not found")

        await self.session.execute(_counter_delta(article_id, kind, -1))
        await self.session.commit()

    async def check(self, user_id: UUID, article_id: UUID, kind: InteractionKind) -> bool:
        """Whether the user has at least one interaction of ``kind`` with the article."""
        result = await self.session.execute(
            select(Interaction.id)
            .where(
                Interaction.user_id == user_id,
                Interaction.article_id == article_id,
                Interaction.kind == kind,
            )
            .limit(1)
        )
        return result.first() is not None

    async def check_all(self, user_id: UUID, article_id: UUID) -> dict[str, bool]:
        """Liked and saved state in a single query."""
        result = await self.session.execute(
            select(Interaction.kind).where(
                Interaction.user_id == user_id,
                Interaction.article_id == article_id,
                Interaction.kind.in_([InteractionKind.LIKE, InteractionKind.SAVE]),
            )
        )
        kinds = set(result.scalars().all())
        return {"liked": InteractionKind.LIKE in kinds, "saved": InteractionKind.SAVE in kinds}

    async def list_for_user(
        self,
        user_id: UUID,
        kind: InteractionKind | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[tuple[Interaction, Article]], int]:
        """A user's interactions, newest first, each with its article."""
        conditions = [Interaction.user_id == user_id]
        if kind:
            conditions.append(Interaction.kind == kind)

        total = (
            await self.session.execute(select(func.count()).select_from(Interaction).where(*conditions))
        ).scalar() or 0

        result = await self.session.execute(
            select(Interaction, Article)
            .join(Article, Article.id == Interaction.article_id)
            .where(*conditions)
            .order_by(Interaction.created_at.desc(), Interaction.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return [(row[0], row[1]) for row in result.all()], total

    async def list_for_article(self, article_id: UUID) -> list[Interaction]:
        """Every interaction on an article, newest first (admin view)."""
        await self._require_article(article_id)
        result = await self.session.execute(
            select(Interaction)
            .where(Interaction.article_id == article_id)
            .order_by(Interaction.created_at.desc(), Interaction.id)
        )
        return list(result.scalars().all())

    async def _list_articles(
        self, user_id: UUID, kind: InteractionKind, page: int, limit: int
    ) -> tuple[list[tuple[Article, Any]], int]:
        condition = and_(Interaction.user_id == user_id, Interaction.kind == kind)

        total = (
            await self.session.execute(select(func.count()).select_from(Interaction).where(condition))
        ).scalar() or 0

        result = await self.session.execute(
            select(Article, Interaction.created_at)
            .join(Interaction, Interaction.article_id == Article.id)
            .where(condition)
            .order_by(Interaction.created_at.desc(), Interaction.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return [(row[0], row[1]) for row in result.all()], total

    async def list_liked(self, user_id: UUID, page: int = 1, limit: int = 20) -> tuple[list[tuple[Article, Any]], int]:
        """Articles the user liked, most recently liked first."""
        return await self._list_articles(user_id, InteractionKind.LIKE, page, limit)

    async def list_saved(self, user_id: UUID, page: int = 1, limit: int = 20) -> tuple[list[tuple[Article, Any]], int]:
        """Articles the user saved, most recently saved first."""
        return await self._list_articles(user_id, InteractionKind.SAVE, page, limit)
