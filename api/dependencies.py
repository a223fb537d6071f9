"""
FastAPI dependencies shared by the routers
"""

from typing import AsyncGenerator, Callable, List
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from core.database import async_session_maker
from collection.dispatcher import DrainWorker
from collection.insights import InsightGatherer, HTTPInsightGatherer
from collection.progress import ProgressChannel
from collection.providers.base import ProviderAdapter
from collection.providers.registry import FREE_PROVIDERS, build_providers, build_providers_for_tier
from collection.session import ProviderFactory

ProviderBuilder = Callable[[List[str]], List[ProviderAdapter]]


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Database session per request"""
    async with async_session_maker() as session:
        yield session


def get_queue_providers() -> List[ProviderAdapter]:
    return build_providers(FREE_PROVIDERS)


def get_provider_builder() -> ProviderBuilder:
    return build_providers


def get_provider_factory() -> ProviderFactory:
    return build_providers_for_tier


def get_insight_gatherer() -> InsightGatherer:
    return HTTPInsightGatherer()


def get_progress_channel(request: Request) -> ProgressChannel:
    return request.app.state.progress_channel


def get_drain_worker() -> DrainWorker:
    """Drain worker for follow-up drains; it opens its own sessions"""
    return DrainWorker(async_session_maker, build_providers(FREE_PROVIDERS))
