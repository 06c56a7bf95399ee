"""Tests for interactions and the counter ledger."""

import asyncio
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from app.errors import BadRequestError, ConflictError, NotFoundError
from app.models import Article, Interaction, InteractionKind
from app.services.interaction_service import InteractionService


async def _counts(session_factory, article_id) -> tuple[int, int, int]:
    async with session_factory() as s:
        article = await s.get(Article, article_id)
        return article.view_count, article.like_count, article.save_count


async def _rows(session_factory, article_id, kind: InteractionKind) -> int:
    async with session_factory() as s:
        result = await s.execute(
            select(func.count())
            .select_from(Interaction)
            .where(Interaction.article_id == article_id, Interaction.kind == kind)
        )
        return result.scalar()


class TestCreate:
    async def test_like_bumps_counter(self, session, session_factory, make_article) -> None:
        article = await make_article()
        interaction = await InteractionService(session).create(uuid4(), article.id, InteractionKind.LIKE)

        assert interaction.kind == InteractionKind.LIKE
        assert await _counts(session_factory, article.id) == (0, 1, 0)

    async def test_duplicate_like_conflicts(self, session, session_factory, make_article) -> None:
        article = await make_article()
        user_id = uuid4()
        service = InteractionService(session)
        await service.create(user_id, article.id, InteractionKind.LIKE)

        with pytest.raises(ConflictError, match="already liked"):
            await service.create(user_id, article.id, InteractionKind.LIKE)

        assert await _counts(session_factory, article.id) == (0, 1, 0)

    async def test_views_accumulate(self, session, session_factory, make_article) -> None:
        article = await make_article()
        user_id = uuid4()
        service = InteractionService(session)
        for _ in range(3):
            await service.create(user_id, article.id, InteractionKind.VIEW)

        assert await _counts(session_factory, article.id) == (3, 0, 0)
        assert await _rows(session_factory, article.id, InteractionKind.VIEW) == 3

    async def test_missing_article(self, session) -> None:
        with pytest.raises(NotFoundError):
            await InteractionService(session).create(uuid4(), uuid4(), InteractionKind.VIEW)

    async def test_concurrent_likes_from_one_user(self, session_factory, make_article) -> None:
        article = await make_article()
        user_id = uuid4()

        async def like() -> bool:
            async with session_factory() as s:
                try:
                    await InteractionService(s).create(user_id, article.id, InteractionKind.LIKE)
                    return True
                except ConflictError:
                    return False

        results = await asyncio.gather(*(like() for _ in range(5)))

        assert sum(results) == 1
        assert await _rows(session_factory, article.id, InteractionKind.LIKE) == 1
        assert await _counts(session_factory, article.id) == (0, 1, 0)

    async def test_concurrent_views_are_all_counted(self, session_factory, make_article) -> None:
        article = await make_article()

        async def view() -> None:
            async with session_factory() as s:
                await InteractionService(s).create(uuid4(), article.id, InteractionKind.VIEW)

        await asyncio.gather(*(view() for _ in range(10)))

        assert await _counts(session_factory, article.id) == (10, 0, 0)

    async def test_article_deleted_after_check_is_not_found(self, session, monkeypatch) -> None:
        # The existence check passes, then the insert hits the foreign key
        async def article_still_there(self, article_id):
            return None

        monkeypatch.setattr(InteractionService, "_require_article", article_still_there)

        with pytest.raises(NotFoundError, match="Article not found"):
            await InteractionService(session).create(uuid4(), uuid4(), InteractionKind.LIKE)


class TestDelete:
    async def test_unlike_decrements(self, session, session_factory, make_article) -> None:
        article = await make_article()
        user_id = uuid4()
        service = InteractionService(session)
        await service.create(user_id, article.id, InteractionKind.LIKE)

        await service.delete(user_id, article.id, InteractionKind.LIKE)

        assert await _counts(session_factory, article.id) == (0, 0, 0)
        assert await service.check(user_id, article.id, InteractionKind.LIKE) is False

    async def test_delete_view_rejected(self, session, make_article) -> None:
        article = await make_article()
        with pytest.raises(BadRequestError, match="VIEW"):
            await InteractionService(session).delete(uuid4(), article.id, InteractionKind.VIEW)

    async def test_delete_missing(self, session, make_article) -> None:
        article = await make_article()
        with pytest.raises(NotFoundError):
            await InteractionService(session).delete(uuid4(), article.id, InteractionKind.SAVE)

    async def test_counter_never_goes_negative(self, session, session_factory, make_article) -> None:
        # A counter that drifted below its rows must clamp, not underflow
        article = await make_article()
        user_id = uuid4()
        async with session_factory() as s:
            s.add(Interaction(user_id=user_id, article_id=article.id, kind=InteractionKind.SAVE))
            await s.commit()

        await InteractionService(session).delete(user_id, article.id, InteractionKind.SAVE)

        assert await _counts(session_factory, article.id) == (0, 0, 0)

    async def test_concurrent_unlikes_keep_counter_in_step(self, session_factory, make_article) -> None:
        article = await make_article()
        likers = [uuid4() for _ in range(6)]
        newcomers = [uuid4() for _ in range(3)]
        for user_id in likers:
            async with session_factory() as s:
                await InteractionService(s).create(user_id, article.id, InteractionKind.LIKE)

        async def unlike(user_id) -> bool:
            async with session_factory() as s:
                try:
                    await InteractionService(s).delete(user_id, article.id, InteractionKind.LIKE)
                    return True
                except NotFoundError:
                    return False

        async def like(user_id) -> None:
            async with session_factory() as s:
                await InteractionService(s).create(user_id, article.id, InteractionKind.LIKE)

        results = await asyncio.gather(
            *(unlike(user_id) for user_id in likers),
            unlike(likers[0]),
            *(like(user_id) for user_id in newcomers),
        )

        # likers[0] was unliked twice; exactly one of those calls found the row
        unliked = results[: len(likers) + 1]
        assert sorted([unliked[0], unliked[-1]]) == [False, True]
        assert all(unliked[1:-1])
        assert await _rows(session_factory, article.id, InteractionKind.LIKE) == len(newcomers)
        assert await _counts(session_factory, article.id) == (0, len(newcomers), 0)


class TestQueries:
    async def test_check_all(self, session, make_article) -> None:
        article = await make_article()
        user_id = uuid4()
        service = InteractionService(session)
        await service.create(user_id, article.id, InteractionKind.SAVE)

        assert await service.check_all(user_id, article.id) == {"liked": False, "saved": True}

    async def test_list_liked_newest_first(self, session, make_article) -> None:
        first = await make_article(title="First")
        second = await make_article(title="Second")
        user_id = uuid4()
        service = InteractionService(session)
        await service.create(user_id, first.id, InteractionKind.LIKE)
        await service.create(user_id, second.id, InteractionKind.LIKE)
        await service.create(user_id, second.id, InteractionKind.SAVE)

        rows, total = await service.list_liked(user_id)

        assert total == 2
        assert [article.title for article, _ in rows] == ["Second", "First"]

    async def test_list_for_user_filters_kind(self, session, make_article) -> None:
        article = await make_article()
        user_id = uuid4()
        service = InteractionService(session)
        await service.create(user_id, article.id, InteractionKind.VIEW)
        await service.create(user_id, article.id, InteractionKind.LIKE)

        rows, total = await service.list_for_user(user_id, InteractionKind.VIEW)

        assert total == 1
        assert rows[0][0].kind == InteractionKind.VIEW
        assert rows[0][1].id == article.id


async def test_like_view_unlike_scenario(session, session_factory, make_article) -> None:
    """Two users, mixed interactions: counters always equal the row counts."""
    article = await make_article()
    alice, bob = uuid4(), uuid4()
    service = InteractionService(session)

    await service.create(alice, article.id, InteractionKind.VIEW)
    await service.create(alice, article.id, InteractionKind.LIKE)
    await service.create(bob, article.id, InteractionKind.VIEW)
    await service.create(bob, article.id, InteractionKind.LIKE)
    await service.create(bob, article.id, InteractionKind.SAVE)
    await service.delete(alice, article.id, InteractionKind.LIKE)

    assert await _counts(session_factory, article.id) == (2, 1, 1)
    assert await _rows(session_factory, article.id, InteractionKind.VIEW) == 2
    assert await _rows(session_factory, article.id, InteractionKind.LIKE) == 1
    assert await _rows(session_factory, article.id, InteractionKind.SAVE) == 1
