"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
from datetime import datetime
from typing import AsyncGenerator, Dict, List, Optional, Set
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from models import Base, CollectionConfiguration, Entity, SubscriptionTier, WorkItem
from collection.insights import InsightGatherer
from collection.providers.base import ProviderAdapter
from collection.scopes import entity_scope_key
from schemas.collection import ProviderResult
from core.exceptions import ProviderError, ProviderServerError

# Test database URL (in-memory, one connection shared by all sessions)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeProvider(ProviderAdapter):
    """In-process provider that records every prompt it receives"""

    def __init__(
        self,
        key: str,
        display_name: Optional[str] = None,
        fail_prompts: Optional[Set[str]] = None,
        fail_always: bool = False
    ):
        super().__init__(key=key, display_name=display_name or key.title())
        self.fail_prompts = fail_prompts or set()
        self.fail_always = fail_always
        self.calls: List[str] = []

    async def invoke(self, prompt: str) -> ProviderResult:
        self.calls.append(prompt)
        if self.fail_always or prompt in self.fail_prompts:
            raise ProviderServerError(f"{self.key} is unavailable", context={"provider_key": self.key})
        return ProviderResult(
            response_text=f"{self.key} answer #{len(self.calls)}",
            citations=[{"url": f"https://{self.key}.example.com/a", "domain": f"{self.key}.example.com"}]
        )


class FakeInsights(InsightGatherer):
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: List[Dict] = []

    async def gather(self, entity_id: int, entity_name: str) -> None:
        self.calls.append({"entity_id": entity_id, "entity_name": entity_name})
        if self.fail:
            raise ProviderError("search-insights returned HTTP 500", context={"entity_id": entity_id})


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
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


@pytest.fixture
def make_provider():
    """Factory for fake providers"""
    return FakeProvider


@pytest.fixture
def providers() -> List[FakeProvider]:
    """The three providers used for queue jobs"""
    return [
        FakeProvider("openai", "ChatGPT"),
        FakeProvider("perplexity", "Perplexity"),
        FakeProvider("google-ai-overviews", "Google AI"),
    ]


@pytest.fixture
def insights() -> FakeInsights:
    return FakeInsights()


@pytest.fixture
def failing_insights() -> FakeInsights:
    return FakeInsights(fail=True)


@pytest_asyncio.fixture
async def make_config(db_session):
    """Create a collection configuration"""

    async def _make(
        scope_dimensions: Optional[Dict[str, List[str]]] = None,
        schedule_day: int = 15,
        schedule_hour: int = 9,
        is_active: bool = True,
        last_run_at: Optional[datetime] = None
    ) -> CollectionConfiguration:
        config = CollectionConfiguration(
            owner_id="user-1",
            schedule_day=schedule_day,
            schedule_hour=schedule_hour,
            scope_dimensions=scope_dimensions if scope_dimensions is not None else {
                "industry": ["Fintech", "Retail"],
                "country": ["United States", "United Kingdom"],
            },
            is_active=is_active,
            last_run_at=last_run_at,
        )
        db_session.add(config)
        await db_session.commit()
        await db_session.refresh(config)
        return config

    return _make


@pytest_asyncio.fixture
async def make_entity(db_session):
    """Create an entity with confirmed prompts"""

    async def _make(
        name: str = "Acme Corp",
        prompt_count: int = 4,
        tier: SubscriptionTier = SubscriptionTier.FREE
    ) -> Entity:
        entity = Entity(name=name, industry="Fintech", subscription_tier=tier)
        db_session.add(entity)
        await db_session.commit()
        await db_session.refresh(entity)

        for i in range(prompt_count):
            db_session.add(WorkItem(
                scope_key=entity_scope_key(entity.id),
                entity_id=entity.id,
                prompt_text=f"How do employees describe working at {name}? ({i + 1})",
                prompt_type="sentiment",
                theme=f"Theme {i + 1}",
                is_active=True,
            ))
        await db_session.commit()
        return entity

    return _make
