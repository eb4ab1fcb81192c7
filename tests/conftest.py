import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ.setdefault("MISTRAL_API_KEY", "test-key")

import asyncio
from datetime import datetime

import pytest
from fakeredis import aioredis as fake_aioredis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.api.deps import get_redis, get_translation_client
from app.config import settings
from app.core.security import create_access_token
from app.database import Base, build_engine, get_db
from app.main import app
from app.models.generation_session import GenerationSession, GenerationStatus
from app.models.user import User


class FakeTranslationClient:
    """Scripted stand-in for the Mistral client.

    ``script`` maps a sentence to a translation, an exception, or a list of
    those consumed one per call (the last entry repeats). Unscripted sentences
    translate to ``"PL: <sentence>"``. ``delays`` maps a sentence to seconds
    slept before answering.
    """

    def __init__(self, script=None, delays=None):
        self.script = dict(script or {})
        self.delays = dict(delays or {})
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def translate(self, sentence: str) -> str:
        self.calls.append(sentence)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.delays.get(sentence, 0)
            if delay:
                await asyncio.sleep(delay)
            step = self.script.get(sentence, f"PL: {sentence}")
            if isinstance(step, list):
                step = step.pop(0) if len(step) > 1 else step[0]
            if isinstance(step, BaseException):
                raise step
            return step
        finally:
            self.in_flight -= 1


@pytest.fixture(autouse=True)
def fast_generation_settings(monkeypatch):
    monkeypatch.setattr(settings, "GENERATION_RETRY_BACKOFF_SECONDS", 0)
    monkeypatch.setattr(settings, "GENERATION_CALL_TIMEOUT_SECONDS", 2.0)
    monkeypatch.setattr(settings, "GENERATION_BATCH_DEADLINE_SECONDS", 5.0)
    monkeypatch.setattr(settings, "GENERATION_SUPERVISOR_GRACE_SECONDS", 5.0)
    monkeypatch.setattr(settings, "GENERATION_QUOTA_TIMEZONE", "UTC")
    monkeypatch.setattr(settings, "GENERATION_DEDUPLICATE_SENTENCES", False)
    monkeypatch.setattr(settings, "AI_RATE_LIMIT_PER_MINUTE", 10)


@pytest.fixture
async def engine():
    engine = build_engine("sqlite+aiosqlite://")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def redis():
    client = fake_aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()


async def create_user(session_factory, email: str) -> User:
    async with session_factory() as session:
        user = User(email=email)
        session.add(user)
        await session.commit()
    return user


@pytest.fixture
def seed_generation_session(session_factory):
    async def _seed(
        user: User,
        input_count: int,
        created_at: datetime | None = None,
        status: GenerationStatus = GenerationStatus.completed,
    ) -> GenerationSession:
        async with session_factory() as session:
            record = GenerationSession(
                user_id=user.id,
                input_count=input_count,
                generated_count=input_count if status is GenerationStatus.completed else 0,
                status=status,
                duration_ms=1000,
            )
            if created_at is not None:
                record.created_at = created_at
            session.add(record)
            await session.commit()
        return record

    return _seed


@pytest.fixture
async def user(session_factory):
    return await create_user(session_factory, "learner@example.com")


@pytest.fixture
async def other_user(session_factory):
    return await create_user(session_factory, "someone-else@example.com")


@pytest.fixture
def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture
def make_translation_client():
    return FakeTranslationClient


@pytest.fixture
def translation_client():
    return FakeTranslationClient()


@pytest.fixture
async def client(session_factory, redis, translation_client):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_redis] = lambda: redis
    app.dependency_overrides[get_translation_client] = lambda: translation_client

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
