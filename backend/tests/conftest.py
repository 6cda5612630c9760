"""Pytest configuration and fixtures."""

import os

# Settings require a JWT secret; set one before askhub modules are imported
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from collections.abc import AsyncGenerator, Awaitable, Callable

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from askhub.api.deps import create_access_token
from askhub.config import Settings, get_settings
from askhub.db.base import Base
from askhub.db.models import Profile, Question, User
from askhub.db.session import get_db
from askhub.main import app
from askhub.services.accounts import hash_password
from askhub.services.realtime import ChangeFeed


@pytest.fixture
async def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
async def client(session_factory, feed) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints against the test database."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    # ASGITransport does not run the lifespan, so install the feed directly
    app.state.change_feed = feed
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


ProfileFactory = Callable[..., Awaitable[Profile]]


@pytest.fixture
def make_profile(db: AsyncSession) -> ProfileFactory:
    """Create an identity plus profile with the given balance."""

    async def _make(username: str, tokens: int = 100, display_name: str | None = None) -> Profile:
        user = User(email=f"{username}@example.com", password_hash=hash_password("secret123"))
        db.add(user)
        await db.flush()
        profile = Profile(
            id=user.id,
            username=username,
            display_name=display_name or username,
            tokens=tokens,
        )
        db.add(profile)
        await db.commit()
        return profile

    return _make


@pytest.fixture
def make_question(db: AsyncSession):
    async def _make(author: Profile, title: str = "How do I profile asyncio code?") -> Question:
        question = Question(
            title=title,
            content="<p>I want to find the slow coroutine in my service.</p>",
            author_id=author.id,
        )
        db.add(question)
        await db.commit()
        return question

    return _make


@pytest.fixture
def auth_headers():
    """Bearer header for a profile or user id."""

    def _headers(profile_or_user_id) -> dict[str, str]:
        user_id = getattr(profile_or_user_id, "id", profile_or_user_id)
        return {"Authorization": f"Bearer {create_access_token(user_id)}"}

    return _headers
