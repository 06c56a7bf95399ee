"""Enrichment service - summaries, tags and narrated audio for catalog items.

State per article: UNPROCESSED -> SUMMARY_READY -> AUDIO_PENDING ->
AUDIO_READY | AUDIO_FAILED.

``is_processed`` becomes true only once audio succeeded, or right after the
summary when audio is disabled by configuration. A failed synthesis keeps the
article unprocessed so ``process_pending`` picks it up again.
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import BadRequestError
from app.models import Article, EnrichmentState
from app.schemas.article import ArticleUpsert
from app.schemas.enrichment import ProcessArticleRequest
from app.services.catalog_service import CatalogService
from app.services.enrichment_worker import EnrichmentWorker, apply_enrichment
from app.services.recommender_service import RecommendationSync

logger = logging.getLogger(__name__)


class EnrichmentService:
    """Synchronous half of the enrichment pipeline; audio is handed to the worker."""

    def __init__(
        self,
        session: AsyncSession,
        worker: EnrichmentWorker,
        recommender: RecommendationSync | None = None,
    ):
        self.session = session
        self.worker = worker
        self.settings = worker.settings
        self.catalog = CatalogService(session, recommender)

    async def _reload(self, article_id: UUID) -> Article:
        article = await self.catalog.get(article_id)
        await self.session.refresh(article)
        return article

    def _claim_audio(self, article_id: UUID) -> bool:
        """Take the single-flight slot for this article's audio, if audio is on."""
        if not self.settings.audio_enabled:
            return False
        if not self.worker.audio_guard.try_acquire(article_id):
            logger.info("Audio already in progress for article %s", article_id)
            return False
        return True

    async def process(self, article: Article, raw_content: str) -> tuple[Article, bool]:
        """
        Summarize and tag an article now, then narrate it in the background.

        Text generation failures propagate as DependencyError. The summary is
        committed before audio starts, so readers see it while audio is pending.

        Returns:
            The refreshed article and whether an audio job was scheduled
        """
        article_id = article.id
        logger.info("Processing article %s (%d chars)", article_id, len(raw_content))

        summary = await self.worker.text_agent.summarize(raw_content)
        tags = await self.worker.text_agent.generate_tags(raw_content)

        audio_claimed = self._claim_audio(article_id)
        try:
            if audio_claimed:
                values = {"enrichment_state": EnrichmentState.AUDIO_PENDING}
            elif not self.settings.audio_enabled:
                values = {"enrichment_state": EnrichmentState.SUMMARY_READY, "is_processed": True}
            else:
                # A running job is narrating the old summary and will discard its
                # result; leave this one unprocessed so the sweep narrates it
                values = {"enrichment_state": EnrichmentState.SUMMARY_READY, "is_processed": False}
            await apply_enrichment(self.session, article_id, summary=summary, tags=tags, **values)
        except Exception:
            if audio_claimed:
                self.worker.audio_guard.release(article_id)
            raise

        if audio_claimed:
            self.worker.submit_audio(article_id)

        return await self._reload(article_id), audio_claimed

    async def process_and_create(self, request: ProcessArticleRequest) -> tuple[Article, bool, bool]:
        """
        Upsert the catalog item described by ``request`` and process its content.

        Returns:
            (article, created, audio_scheduled)
        """
        article, created = await self.catalog.upsert(
            ArticleUpsert(
                external_url=request.external_url,
                external_id=request.external_id,
                title=request.title,
                body=request.content,
                image_url=request.image_url,
                published_at=request.published_at,
                category_id=request.category_id,
            )
        )
        article, audio_scheduled = await self.process(article, request.content)
        return article, created, audio_scheduled

    async def regenerate_summary(self, article_id: UUID, content: str) -> Article:
        """Recompute the summary only; tags and audio are left alone."""
        article = await self.catalog.get(article_id)
        summary = await self.worker.text_agent.summarize(content)

        values = {}
        if article.enrichment_state == EnrichmentState.UNPROCESSED:
            values["enrichment_state"] = EnrichmentState.SUMMARY_READY
        await apply_enrichment(self.session, article_id, summary=summary, **values)

        logger.info("Regenerated summary for article %s", article_id)
        return await self._reload(article_id)

    async def regenerate_audio(self, article_id: UUID) -> tuple[Article, bool]:
        """
        Re-narrate an article in the background.

        Single-flight per article: while a job is running a second call returns
        immediately without scheduling anything. The previous audio object is
        deleted before the new job starts.
        """
        article = await self.catalog.get(article_id)
        if not article.summary:
            raise BadRequestError("Article has no summary to narrate")
        if not self.settings.audio_enabled:
            raise BadRequestError("Audio synthesis is disabled")

        if not self._claim_audio(article_id):
            return article, False

        try:
            if article.audio_url:
                await self.worker.storage.delete(article.audio_url)
            await apply_enrichment(
                self.session,
                article_id,
                audio_url=None,
                audio_duration=None,
                enrichment_state=EnrichmentState.AUDIO_PENDING,
                is_processed=False,
            )
        except Exception:
            self.worker.audio_guard.release(article_id)
            raise

        self.worker.submit_audio(article_id)
        logger.info("Scheduled audio regeneration for article %s", article_id)
        return await self._reload(article_id), True

    async def process_pending(self, limit: int = 10) -> list[UUID]:
        """
        Schedule work for the oldest unprocessed articles.

        Articles with a summary get audio (or are marked processed when audio
        is disabled); articles with only a body get full background processing.
        """
        scheduled: list[UUID] = []

        for article in await self.catalog.get_unprocessed(limit):
            article_id = article.id
            if article.summary:
                if not self.settings.audio_enabled:
                    await apply_enrichment(
                        self.session,
                        article_id,
                        enrichment_state=EnrichmentState.SUMMARY_READY,
                        is_processed=True,
                    )
                    continue
                if not self._claim_audio(article_id):
                    continue
                try:
                    await apply_enrichment(
                        self.session, article_id, enrichment_state=EnrichmentState.AUDIO_PENDING
                    )
                except Exception:
                    self.worker.audio_guard.release(article_id)
                    raise
                self.worker.submit_audio(article_id)
                scheduled.append(article_id)
            elif article.body:
                if self.worker.submit_processing(article_id):
                    scheduled.append(article_id)
            else:
                logger.warning("Article %s has neither summary nor body, skipping", article_id)

        logger.info("Scheduled enrichment for %d pending articles", len(scheduled))
        return scheduled
