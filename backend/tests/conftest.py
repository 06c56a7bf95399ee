"""Shared fixtures: a file-backed SQLite database, fake collaborators and an API client."""

import asyncio
from collections.abc import AsyncGenerator
from uuid import UUID, uuid4

import httpx
import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

import app.models  # noqa: F401
from app.agents.speech_agent import SynthesizedAudio
from app.api.deps import get_recommender_sync, get_worker
from app.auth import CurrentUser, create_access_token
from app.config import Settings
from app.db.postgres import get_session
from app.errors import DependencyError
from app.models import Article
from app.models.interaction import InteractionKind
from app.services.enrichment_worker import EnrichmentWorker


class FakeTextAgent:
    """Deterministic summarizer; flip ``fail`` to simulate a provider outage."""

    def __init__(self) -> None:
        self.fail = False
        self.summary_calls = 0
        self.gate = asyncio.Event()
        self.gate.set()

    async def summarize(self, content: str, max_words: int | None = None) -> str:
        self.summary_calls += 1
        await self.gate.wait()
        if self.fail:
            raise DependencyError("Text generation failed (summary)")
        return f"Summary: {content[:40]}"

    async def generate_tags(self, content: str, max_tags: int | None = None) -> list[str]:
        if self.fail:
            raise DependencyError("Text generation failed (tags)")
        return ["history", "science"]


class FakeSpeechAgent:
    """Counts calls; ``gate`` lets a test hold a synthesis in flight."""

    def __init__(self) -> None:
        self.fail = False
        self.calls = 0
        self.gate = asyncio.Event()
        self.gate.set()

    async def synthesize(self, text: str) -> SynthesizedAudio:
        self.calls += 1
        await self.gate.wait()
        if self.fail:
            raise DependencyError("Speech synthesis failed")
        return SynthesizedAudio(data=b"RIFF" + text.encode(), duration_seconds=12.5)


class FakeStorage:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self._counter = 0

    def audio_key(self, article_id: UUID, extension: str = "wav") -> str:
        self._counter += 1
        return f"audio/article-{article_id}-{self._counter}.{extension}"

    async def store(self, key: str, data: bytes, content_type: str) -> str:
        self.objects[key] = data
        return f"https://cdn.test/{key}"

    async def delete(self, url: str) -> None:
        self.deleted.append(url)
        self.objects.pop(url.removeprefix("https://cdn.test/"), None)


class FakeRecommender:
    """Records every sync call instead of talking to the recommender."""

    enabled = True

    def __init__(self) -> None:
        self.events: list[tuple] = []
        self.recommendations: list[str] = []

    def sync_feedback(self, user_id: UUID, external_article_id: str, kind: InteractionKind) -> bool:
        self.events.append(("feedback", user_id, external_article_id, kind))
        return True

    def sync_remove_feedback(self, user_id: UUID, external_article_id: str, kind: InteractionKind) -> bool:
        self.events.append(("remove_feedback", user_id, external_article_id, kind))
        return True

    def sync_item(self, external_article_id: str, title: str, labels: list[str] | None = None) -> bool:
        self.events.append(("item", external_article_id, title, labels))
        return True

    def sync_user(self, user_id: UUID, interests: list[str] | None = None) -> bool:
        self.events.append(("user", user_id, interests))
        return True

    async def get_recommendations(self, user_id: UUID, count: int = 10) -> list[str]:
        return self.recommendations[:count]


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator:
    # A file database so concurrent sessions really contend for the write lock
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_connection, _) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings() -> Settings:
    return Settings(audio_enabled=True, recommender_url="")


@pytest.fixture
def text_agent() -> FakeTextAgent:
    return FakeTextAgent()


@pytest.fixture
def speech_agent() -> FakeSpeechAgent:
    return FakeSpeechAgent()


@pytest.fixture
def storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def recommender() -> FakeRecommender:
    return FakeRecommender()


@pytest.fixture
async def worker(session_factory, text_agent, speech_agent, storage, settings) -> AsyncGenerator:
    worker = EnrichmentWorker(
        session_factory=session_factory,
        text_agent=text_agent,
        speech_agent=speech_agent,
        storage=storage,
        settings=settings,
    )
    yield worker
    await worker.shutdown(timeout=5)


@pytest.fixture
async def make_article(session_factory):
    """Insert an article directly, bypassing the catalog service."""

    async def _make(**overrides) -> Article:
        suffix = uuid4().hex[:8]
        values = {
            "external_url": f"https://en.wikipedia.org/wiki/Page_{suffix}",
            "external_id": suffix,
            "title": f"Page {suffix}",
        }
        values.update(overrides)
        async with session_factory() as s:
            article = Article(**values)
            s.add(article)
            await s.commit()
            await s.refresh(article)
            return article

    return _make


@pytest.fixture
def user() -> CurrentUser:
    return CurrentUser(id=uuid4())


@pytest.fixture
def admin() -> CurrentUser:
    return CurrentUser(id=uuid4(), is_admin=True)


@pytest.fixture
def user_headers(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def admin_headers(admin) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(admin.id, is_admin=True)}"}


@pytest.fixture
async def client(session_factory, worker, recommender) -> AsyncGenerator[httpx.AsyncClient, None]:
    from app.main import create_app

    app = create_app()

    async def override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_worker] = lambda: worker
    app.dependency_overrides[get_recommender_sync] = lambda: recommender

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
