"""
Background enrichment worker.

Audio synthesis (and sweep-triggered full processing) runs as detached
asyncio tasks owned by this worker, decoupled from the request that asked for
it. Jobs open their own database sessions and write back only enrichment
columns through ``apply_enrichment``.
"""

import asyncio
import logging
from collections.abc import Hashable
from typing import Any
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.agents.speech_agent import SpeechAgent
from app.agents.text_agent import TextAgent
from app.config import Settings, get_settings
from app.db.object_storage import ObjectStorageClient
from app.errors import DependencyError
from app.models import Article, EnrichmentState

logger = logging.getLogger(__name__)

# The only Article columns the enrichment pipeline may write
ENRICHMENT_FIELDS = frozenset(
    {"summary", "tags", "audio_url", "audio_duration", "enrichment_state", "is_processed"}
)


async def apply_enrichment(
    session: AsyncSession,
    article_id: UUID,
    *,
    only_if_summary: str | None = None,
    **values: Any,
) -> bool:
    """
    Write enrichment columns in one committed UPDATE.

    With ``only_if_summary`` the row is only touched while its summary still
    equals that text. Returns False when no row matched.
    """
    unknown = set(values) - ENRICHMENT_FIELDS
    if unknown:
        raise ValueError(f"Not an enrichment field: {sorted(unknown)}")

    statement = update(Article).where(Article.id == article_id)
    if only_if_summary is not None:
        statement = statement.where(Article.summary == only_if_summary)

    result = await session.execute(
        statement.values(**values).execution_options(synchronize_session=False)
    )
    await session.commit()
    return result.rowcount > 0


class SingleFlight:
    """
    At most one in-flight job per key within this process.

    Acquire/release never await, so on a single event loop the check-and-set
    is atomic. Multi-instance deployments need a row or advisory lock instead.
    """

    def __init__(self) -> None:
        self._keys: set[Hashable] = set()

    def try_acquire(self, key: Hashable) -> bool:
        if key in self._keys:
            return False
        self._keys.add(key)
        return True

    def release(self, key: Hashable) -> None:
        self._keys.discard(key)

    def is_running(self, key: Hashable) -> bool:
        return key in self._keys


class EnrichmentWorker:
    """Owns the collaborators and the detached tasks of the enrichment pipeline."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        text_agent: TextAgent,
        speech_agent: SpeechAgent,
        storage: ObjectStorageClient,
        settings: Settings | None = None,
    ):
        self.session_factory = session_factory
        self.text_agent = text_agent
        self.speech_agent = speech_agent
        self.storage = storage
        self.settings = settings or get_settings()
        self.audio_guard = SingleFlight()
        self.processing_guard = SingleFlight()
        self.tasks: set[asyncio.Task] = set()

    def _spawn(self, coro: Any, name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)

    # Audio -----------------------------------------------------------------

    def submit_audio(self, article_id: UUID) -> None:
        """Start synthesis for an article whose audio guard the caller already holds."""
        if not self.audio_guard.is_running(article_id):
            raise RuntimeError(f"Audio guard for article {article_id} is not held")
        self._spawn(self._run_audio(article_id), name=f"audio-{article_id}")

    async def _run_audio(self, article_id: UUID) -> None:
        try:
            await self.synthesize_audio(article_id)
        except Exception:
            logger.exception("Audio job crashed for article %s", article_id)
        finally:
            self.audio_guard.release(article_id)

    async def synthesize_audio(self, article_id: UUID) -> None:
        """
        Narrate the current summary, store the blob and record the outcome.

        No database connection is held while the speech and storage calls run.
        The result is only recorded if the summary is still the one narrated;
        otherwise the new blob is discarded and the article stays unprocessed.
        """
        async with self.session_factory() as session:
            article = await session.get(Article, article_id)
            summary = article.summary if article else None
        if article is None:
            logger.warning("Audio job skipped, article %s no longer exists", article_id)
            return
        if not summary:
            logger.warning("Audio job skipped, article %s has no summary", article_id)
            return

        try:
            audio = await self.speech_agent.synthesize(summary)
            key = self.storage.audio_key(article_id, audio.extension)
            audio_url = await self.storage.store(key, audio.data, audio.content_type)
        except DependencyError as e:
            logger.error("Audio synthesis failed for article %s: %s", article_id, e.message)
            async with self.session_factory() as session:
                await apply_enrichment(
                    session,
                    article_id,
                    only_if_summary=summary,
                    enrichment_state=EnrichmentState.AUDIO_FAILED,
                    is_processed=False,
                )
            return

        async with self.session_factory() as session:
            stored = await apply_enrichment(
                session,
                article_id,
                only_if_summary=summary,
                audio_url=audio_url,
                audio_duration=audio.duration_seconds,
                enrichment_state=EnrichmentState.AUDIO_READY,
                is_processed=True,
            )

        if not stored:
            # Deleted or re-summarized while we were synthesizing
            logger.warning("Article %s changed during synthesis, discarding %s", article_id, audio_url)
            try:
                await self.storage.delete(audio_url)
            except DependencyError as e:
                logger.error("Could not remove orphaned audio %s: %s", audio_url, e.message)
            return

        logger.info("Audio ready for article %s (%.1fs)", article_id, audio.duration_seconds)

    # Full processing -------------------------------------------------------

    def submit_processing(self, article_id: UUID) -> bool:
        """
        Summarize, tag and narrate an article from its stored body, detached.

        Single-flight per article; returns False when a job is already running.
        """
        if not self.processing_guard.try_acquire(article_id):
            logger.info("Processing already in progress for article %s", article_id)
            return False
        self._spawn(self._run_processing(article_id), name=f"process-{article_id}")
        return True

    async def _run_processing(self, article_id: UUID) -> None:
        from app.services.enrichment_service import EnrichmentService

        try:
            async with self.session_factory() as session:
                article = await session.get(Article, article_id)
                if article is None or not article.body:
                    logger.warning("Processing skipped for article %s (missing or no body)", article_id)
                    return
                # Release the connection before the text-generation calls
                await session.commit()
                await EnrichmentService(session, self).process(article, article.body)
        except DependencyError as e:
            logger.error("Background processing failed for article %s: %s", article_id, e.message)
        except Exception:
            logger.exception("Background processing crashed for article %s", article_id)
        finally:
            self.processing_guard.release(article_id)

    # Lifecycle -------------------------------------------------------------

    async def drain(self) -> None:
        """Wait for every detached job, including ones spawned while waiting."""
        while self.tasks:
            await asyncio.gather(*list(self.tasks), return_exceptions=True)

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Give running jobs a grace period, then cancel the rest."""
        try:
            await asyncio.wait_for(self.drain(), timeout=timeout)
        except asyncio.TimeoutError:
            pending = list(self.tasks)
            logger.warning("Cancelling %d unfinished enrichment jobs", len(pending))
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)


_worker: EnrichmentWorker | None = None


def get_enrichment_worker() -> EnrichmentWorker:
    """Get or create the process-wide enrichment worker."""
    global _worker
    if _worker is None:
        from app.agents import get_speech_agent, get_text_agent
        from app.db.object_storage import object_storage
        from app.db.postgres import async_session

        _worker = EnrichmentWorker(
            session_factory=async_session,
            text_agent=get_text_agent(),
            speech_agent=get_speech_agent(),
            storage=object_storage,
        )
    return _worker
