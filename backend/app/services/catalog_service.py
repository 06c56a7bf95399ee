"""Catalog service - article identity, dedup and lookup."""

import logging
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy import String, cast, delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.constants.catalog import SORT_FIELDS
from app.errors import BadRequestError, ConflictError, NotFoundError
from app.models import Article, Interaction
from app.schemas.article import ArticleUpdate, ArticleUpsert
from app.services.recommender_service import RecommendationSync

logger = logging.getLogger(__name__)


@dataclass
class BulkUpsertResult:
    """Outcome of a batch upsert; skipped entries never abort the batch."""

    articles: list[Article] = field(default_factory=list)
    created_count: int = 0
    existing_count: int = 0
    skipped: list[dict[str, str]] = field(default_factory=list)


class CatalogService:
    """Service for managing catalog items."""

    def __init__(self, session: AsyncSession, recommender: RecommendationSync | None = None):
        self.session = session
        self.recommender = recommender

    # Lookups ---------------------------------------------------------------

    async def find(self, article_id: UUID) -> Article | None:
        return await self.session.get(Article, article_id)

    async def get(self, article_id: UUID) -> Article:
        """Get an article by ID or raise NotFoundError."""
        article = await self.find(article_id)
        if not article:
            raise NotFoundError(f"Article with id {article_id} not found")
        return article

    async def get_by_external_id(self, external_id: str) -> Article | None:
        result = await self.session.execute(select(Article).where(Article.external_id == external_id))
        return result.scalar_one_or_none()

    async def get_by_external_url(self, external_url: str) -> Article | None:
        result = await self.session.execute(select(Article).where(Article.external_url == external_url))
        return result.scalar_one_or_none()

    async def _find_existing(self, external_id: str | None, external_url: str) -> Article | None:
        """Match on either external key; the oldest row wins if both keys hit different rows."""
        condition = Article.external_url == external_url
        if external_id:
            condition = or_(condition, Article.external_id == external_id)
        result = await self.session.execute(
            select(Article).where(condition).order_by(Article.created_at).limit(1)
        )
        return result.scalar_one_or_none()

    # Upserts ---------------------------------------------------------------

    async def upsert(self, data: ArticleUpsert) -> tuple[Article, bool]:
        """
        Return the article for an external identity, creating it on first sighting.

        Existing articles are returned unchanged. The unique constraints on
        ``external_url`` / ``external_id`` decide concurrent races: the loser
        rolls back, re-reads and returns the winner's row.
        """
        existing = await self._find_existing(data.external_id, data.external_url)
        if existing:
            return existing, False

        article = Article(
            external_id=data.external_id,
            external_url=data.external_url,
            title=data.title,
            body=data.body,
            summary=data.summary,
            tags=data.tags or [],
            image_url=data.image_url,
            published_at=data.published_at,
            category_id=data.category_id,
        )
        self.session.add(article)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            winner = await self._find_existing(data.external_id, data.external_url)
            if winner is None:
                raise ConflictError("Article could not be stored due to a conflicting record")
            logger.info("Lost upsert race for %s, returning %s", data.external_url, winner.id)
            return winner, False

        await self.session.refresh(article)
        logger.info("Created article %s (%s)", article.id, article.external_url)

        if self.recommender and article.external_id:
            self.recommender.sync_item(article.external_id, article.title, list(article.tags))

        return article, True

    async def bulk_upsert(self, items: list[ArticleUpsert]) -> BulkUpsertResult:
        """Upsert items sequentially; a failing item is logged and skipped."""
        result = BulkUpsertResult()
        article_ids: list[UUID] = []

        for item in items:
            try:
                article, created = await self.upsert(item)
            except Exception as e:
                logger.exception("Failed to upsert article %s", item.external_url)
                await self.session.rollback()
                reason = e.message if isinstance(e, ConflictError) else "Article could not be stored"
                result.skipped.append({"external_url": item.external_url, "reason": reason})
                continue

            article_ids.append(article.id)
            if created:
                result.created_count += 1
            else:
                result.existing_count += 1

        # A rollback mid-batch expires rows loaded earlier, so reload them in one query
        if article_ids:
            rows = await self.session.execute(select(Article).where(Article.id.in_(article_ids)))
            by_id = {a.id: a for a in rows.scalars().all()}
            result.articles = [by_id[aid] for aid in article_ids if aid in by_id]

        logger.info(
            "Bulk upsert: %d created, %d existing, %d skipped",
            result.created_count,
            result.existing_count,
            len(result.skipped),
        )
        return result

    # Listing ---------------------------------------------------------------

    def _order_by(self, sort_by: str, sort_order: str) -> list[Any]:
        if sort_by not in SORT_FIELDS:
            raise BadRequestError(f"Cannot sort by '{sort_by}'")
        if sort_order not in ("asc", "desc"):
            raise BadRequestError("Sort order must be either 'asc' or 'desc'")
        column = getattr(Article, SORT_FIELDS[sort_by])
        return [column.asc() if sort_order == "asc" else column.desc(), Article.id]

    async def _paginate(
        self, conditions: list[Any], page: int, limit: int, sort_by: str, sort_order: str
    ) -> tuple[list[Article], int]:
        order_by = self._order_by(sort_by, sort_order)

        count_result = await self.session.execute(
            select(func.count()).select_from(Article).where(*conditions)
        )
        total = count_result.scalar() or 0

        result = await self.session.execute(
            select(Article)
            .where(*conditions)
            .order_by(*order_by)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def list_articles(
        self,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
    ) -> tuple[list[Article], int]:
        """Paginated listing of every article."""
        return await self._paginate([], page, limit, sort_by, sort_order)

    async def search(
        self,
        query: str,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
    ) -> tuple[list[Article], int]:
        """Case-insensitive substring search over title, summary and tags of active articles."""
        # Treat % and _ typed by the user as literals
        escaped = query.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        conditions = [
            Article.is_active == True,  # noqa: E712
            or_(
                Article.title.ilike(pattern, escape="\\"),
                Article.summary.ilike(pattern, escape="\\"),
                cast(Article.tags, String).ilike(pattern, escape="\\"),
            ),
        ]
        return await self._paginate(conditions, page, limit, sort_by, sort_order)

    async def get_unprocessed(self, limit: int = 10) -> list[Article]:
        """Oldest articles still waiting for enrichment."""
        result = await self.session.execute(
            select(Article)
            .where(Article.is_processed == False)  # noqa: E712
            .order_by(Article.created_at, Article.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_by_external_ids(self, external_ids: list[str]) -> list[Article]:
        """Active articles for the given external ids, in the order given."""
        if not external_ids:
            return []
        result = await self.session.execute(
            select(Article).where(Article.external_id.in_(external_ids), Article.is_active == True)  # noqa: E712
        )
        by_external_id = {a.external_id: a for a in result.scalars().all()}
        return [by_external_id[eid] for eid in external_ids if eid in by_external_id]

    async def random_active(self, limit: int, exclude_ids: list[UUID] | None = None) -> list[Article]:
        """Random active articles, used to top up recommendations."""
        query = select(Article).where(Article.is_active == True)  # noqa: E712
        if exclude_ids:
            query = query.where(Article.id.not_in(exclude_ids))
        result = await self.session.execute(query.order_by(func.random()).limit(limit))
        return list(result.scalars().all())

    # Admin -----------------------------------------------------------------

    async def update(self, article_id: UUID, data: ArticleUpdate) -> Article:
        """Apply an admin edit. Counters are never touched here."""
        article = await self.get(article_id)
        for key, value in data.model_dump(exclude_unset=True).items():
            if key == "tags" and value is None:
                value = []
            setattr(article, key, value)

        await self.session.commit()
        await self.session.refresh(article)
        logger.info("Updated article %s", article_id)
        return article

    async def delete(self, article_id: UUID) -> Article:
        """Hard-delete an article and its interactions; returns the removed row."""
        article = await self.get(article_id)
        await self.session.execute(delete(Interaction).where(Interaction.article_id == article_id))
        await self.session.delete(article)
        await self.session.commit()
        logger.info("Deleted article %s", article_id)
        return article
