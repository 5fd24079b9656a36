"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
from datetime import datetime, timedelta
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool
from typing import AsyncGenerator
import uuid

from models.base import Base, AttemptStatus
from models.article import Article
from models.enrichment_attempt import EnrichmentAttempt
from enrichment.state_machine import RetryPolicy


class FakeClock:
    """Controllable replacement for core.clock.utcnow"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 15, 10, 0, 0))


@pytest.fixture
def policy():
    return RetryPolicy(max_retries=3, backoff=timedelta(minutes=5))


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create test database engine (file-backed SQLite, one connection per session)"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'enrichment_test.db'}",
        echo=False,
        poolclass=NullPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def article(session_factory) -> Article:
    """A freshly created article without metadata"""
    async with session_factory() as session:
        item = Article(id=uuid.uuid4(), url="https://example.com/article")
        session.add(item)
        await session.commit()
        return item


def _make_attempt(**overrides) -> EnrichmentAttempt:
    values = {
        "id": 1,
        "article_id": uuid.uuid4(),
        "url": "https://example.com/article",
        "retry_count": 0,
        "last_attempt_at": None,
        "next_attempt_at": None,
        "status": AttemptStatus.PENDING,
        "error_message": "",
    }
    values.update(overrides)
    return EnrichmentAttempt(**values)


@pytest.fixture
def make_attempt():
    """Build transient attempt rows for unit tests"""
    return _make_attempt


@pytest.fixture
def mock_page_html():
    """Article page with title, description and repeated og:image"""
    return """<!DOCTYPE html>
<html>
<head>
    <title>  Example Article  </title>
    <meta name="description" content="An example article about examples">
    <meta property="og:title" content="Example Article (OG)">
    <meta property="og:image" content="https://example.com/cover.png">
    <meta property="og:IMAGE" content="https://example.com/second.png">
    <meta property="og:type" content="article">
    <meta property="og:locale" content="  ">
</head>
<body><p>Hello</p></body>
</html>"""
