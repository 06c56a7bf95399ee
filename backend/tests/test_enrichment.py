"""Tests for the enrichment service and its background worker."""

import asyncio

import pytest

from app.config import Settings
from app.errors import BadRequestError, DependencyError
from app.models import Article, EnrichmentState
from app.schemas.enrichment import ProcessArticleRequest
from app.services.catalog_service import CatalogService
from app.services.enrichment_service import EnrichmentService
from app.services.enrichment_worker import EnrichmentWorker, SingleFlight, apply_enrichment


async def _load(session_factory, article_id) -> Article:
    async with session_factory() as s:
        return await s.get(Article, article_id)


def _request(**overrides) -> ProcessArticleRequest:
    values = {
        "content": "The Eiffel Tower is a wrought-iron lattice tower in Paris.",
        "title": "Eiffel Tower",
        "external_url": "https://en.wikipedia.org/wiki/Eiffel_Tower",
        "external_id": "9232",
    }
    values.update(overrides)
    return ProcessArticleRequest(**values)


class TestSingleFlight:
    def test_second_acquire_fails_until_release(self) -> None:
        guard = SingleFlight()

        assert guard.try_acquire("a") is True
        assert guard.try_acquire("a") is False
        assert guard.try_acquire("b") is True

        guard.release("a")
        assert guard.try_acquire("a") is True


async def test_apply_enrichment_rejects_other_columns(session, make_article) -> None:
    article = await make_article()

    with pytest.raises(ValueError):
        await apply_enrichment(session, article.id, like_count=10)


class TestProcess:
    async def test_summary_first_audio_later(self, session, session_factory, worker, recommender) -> None:
        service = EnrichmentService(session, worker, recommender)

        article, created, scheduled = await service.process_and_create(_request())

        assert created is True
        assert scheduled is True
        assert article.summary.startswith("Summary:")
        assert article.tags == ["history", "science"]
        assert article.enrichment_state == EnrichmentState.AUDIO_PENDING
        assert article.is_processed is False

        await worker.drain()

        stored = await _load(session_factory, article.id)
        assert stored.enrichment_state == EnrichmentState.AUDIO_READY
        assert stored.audio_url.startswith("https://cdn.test/audio/")
        assert stored.audio_duration == 12.5
        assert stored.is_processed is True

    async def test_existing_article_is_reprocessed(self, session, worker) -> None:
        service = EnrichmentService(session, worker)
        first, _, _ = await service.process_and_create(_request())
        await worker.drain()

        second, created, _ = await service.process_and_create(_request(content="Updated text"))

        assert created is False
        assert second.id == first.id
        assert second.summary == "Summary: Updated text"

    async def test_text_failure_propagates(self, session, session_factory, worker, text_agent) -> None:
        text_agent.fail = True

        with pytest.raises(DependencyError):
            await EnrichmentService(session, worker).process_and_create(_request())

        article = await CatalogService(session).get_by_external_url(_request().external_url)
        assert article.summary is None
        assert article.enrichment_state == EnrichmentState.UNPROCESSED
        assert not worker.audio_guard.is_running(article.id)

    async def test_audio_failure_keeps_article_unprocessed(
        self, session, session_factory, worker, speech_agent
    ) -> None:
        speech_agent.fail = True
        service = EnrichmentService(session, worker)

        article, _, _ = await service.process_and_create(_request())
        await worker.drain()

        stored = await _load(session_factory, article.id)
        assert stored.summary is not None
        assert stored.enrichment_state == EnrichmentState.AUDIO_FAILED
        assert stored.is_processed is False
        assert stored.audio_url is None

        # The sweep retries it
        speech_agent.fail = False
        assert await service.process_pending() == [article.id]
        await worker.drain()
        assert (await _load(session_factory, article.id)).enrichment_state == EnrichmentState.AUDIO_READY

    async def test_audio_disabled_marks_processed_after_summary(
        self, session, session_factory, text_agent, speech_agent, storage
    ) -> None:
        worker = EnrichmentWorker(
            session_factory, text_agent, speech_agent, storage, Settings(audio_enabled=False)
        )

        article, _, scheduled = await EnrichmentService(session, worker).process_and_create(_request())

        assert scheduled is False
        assert article.enrichment_state == EnrichmentState.SUMMARY_READY
        assert article.is_processed is True
        assert speech_agent.calls == 0


class TestRegenerate:
    async def test_regenerate_summary(self, session, make_article, worker) -> None:
        article = await make_article(summary="Old")

        updated = await EnrichmentService(session, worker).regenerate_summary(article.id, "Fresh content")

        assert updated.summary == "Summary: Fresh content"
        assert updated.enrichment_state == EnrichmentState.SUMMARY_READY

    async def test_regenerate_audio_needs_summary(self, session, make_article, worker) -> None:
        article = await make_article()

        with pytest.raises(BadRequestError):
            await EnrichmentService(session, worker).regenerate_audio(article.id)

    async def test_regenerate_audio_is_single_flight(
        self, session, session_factory, make_article, worker, speech_agent, storage
    ) -> None:
        article = await make_article(summary="Narrate me", audio_url="https://cdn.test/audio/old.wav")
        speech_agent.gate.clear()
        service = EnrichmentService(session, worker)

        async def regenerate_in_own_session() -> tuple:
            async with session_factory() as s:
                return await EnrichmentService(s, worker).regenerate_audio(article.id)

        _, first = await service.regenerate_audio(article.id)
        _, second = await service.regenerate_audio(article.id)
        results = await asyncio.gather(*(regenerate_in_own_session() for _ in range(3)))

        assert first is True
        assert second is False
        assert [scheduled for _, scheduled in results] == [False, False, False]
        assert storage.deleted == ["https://cdn.test/audio/old.wav"]

        speech_agent.gate.set()
        await worker.drain()

        assert speech_agent.calls == 1
        stored = await _load(session_factory, article.id)
        assert stored.enrichment_state == EnrichmentState.AUDIO_READY
        assert stored.audio_url != "https://cdn.test/audio/old.wav"

        # Once finished, a new regeneration is accepted again
        _, again = await service.regenerate_audio(article.id)
        assert again is True

    async def test_article_deleted_during_synthesis(
        self, session, make_article, worker, speech_agent, storage
    ) -> None:
        article = await make_article(summary="Short lived")
        speech_agent.gate.clear()

        await EnrichmentService(session, worker).regenerate_audio(article.id)
        while speech_agent.calls == 0:
            await asyncio.sleep(0.01)
        await CatalogService(session).delete(article.id)
        speech_agent.gate.set()
        await worker.drain()

        assert storage.objects == {}
        assert len(storage.deleted) == 1

    async def test_synthesis_holds_no_connection(
        self, engine, session_factory, make_article, worker, speech_agent
    ) -> None:
        article = await make_article(summary="Narrate me slowly")
        speech_agent.gate.clear()

        async with session_factory() as s:
            _, scheduled = await EnrichmentService(s, worker).regenerate_audio(article.id)
        while speech_agent.calls == 0:
            await asyncio.sleep(0.01)

        assert scheduled is True
        assert engine.pool.checkedout() == 0

        speech_agent.gate.set()
        await worker.drain()
        assert (await _load(session_factory, article.id)).enrichment_state == EnrichmentState.AUDIO_READY

    async def test_resummarized_during_synthesis_discards_stale_audio(
        self, session, session_factory, make_article, worker, speech_agent, storage
    ) -> None:
        article = await make_article(summary="Old", body="New content")
        speech_agent.gate.clear()
        service = EnrichmentService(session, worker)

        await service.regenerate_audio(article.id)
        while speech_agent.calls == 0:
            await asyncio.sleep(0.01)
        updated, scheduled = await service.process(article, "New content")

        assert scheduled is False
        assert updated.enrichment_state == EnrichmentState.SUMMARY_READY
        assert updated.is_processed is False

        speech_agent.gate.set()
        await worker.drain()

        stored = await _load(session_factory, article.id)
        assert stored.summary == "Summary: New content"
        assert stored.enrichment_state == EnrichmentState.SUMMARY_READY
        assert stored.is_processed is False
        assert stored.audio_url is None
        assert storage.objects == {}
        assert len(storage.deleted) == 1

        # The sweep narrates the new summary
        assert await service.process_pending() == [article.id]
        await worker.drain()
        stored = await _load(session_factory, article.id)
        assert stored.enrichment_state == EnrichmentState.AUDIO_READY
        assert stored.is_processed is True
        assert len(storage.objects) == 1


async def test_process_pending_runs_body_only_articles(
    session, session_factory, make_article, worker
) -> None:
    article = await make_article(body="Raw extract about tides and the moon")

    scheduled = await EnrichmentService(session, worker).process_pending(limit=5)
    await worker.drain()

    assert scheduled == [article.id]
    stored = await _load(session_factory, article.id)
    assert stored.summary == "Summary: Raw extract about tides and the moon"
    assert stored.is_processed is True


async def test_overlapping_sweeps_process_an_article_once(
    session, session_factory, make_article, worker, text_agent
) -> None:
    article = await make_article(body="Raw extract about glaciers")
    text_agent.gate.clear()
    service = EnrichmentService(session, worker)

    first = await service.process_pending(limit=5)
    second = await service.process_pending(limit=5)
    text_agent.gate.set()
    await worker.drain()

    assert first == [article.id]
    assert second == []
    assert text_agent.summary_calls == 1
    assert (await _load(session_factory, article.id)).is_processed is True
