"""
Phase-1 collaborator: external search-insight gathering for an entity
"""

from abc import ABC, abstractmethod
from typing import Optional
import httpx
from core.config import settings
from core.exceptions import ProviderError, ProviderTimeoutError
import logging

logger = logging.getLogger(__name__)


class InsightGatherer(ABC):
    """Runs once per collection session, before any provider fan-out"""

    @abstractmethod
    async def gather(self, entity_id: int, entity_name: str) -> None:
        """
        Raises:
            ProviderError: If gathering failed
        """
        pass


class HTTPInsightGatherer(InsightGatherer):
    """POSTs {companyName, company_id} to the search-insights endpoint"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.base_url = (base_url or settings.PROVIDER_PROXY_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.PROVIDER_API_KEY
        self.timeout = timeout or settings.PROVIDER_TIMEOUT_SECONDS
        self.client = client

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/search-insights"

    async def gather(self, entity_id: int, entity_name: str) -> None:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        payload = {"companyName": entity_name, "company_id": entity_id}
        context = {"entity_id": entity_id, "endpoint": self.endpoint}

        try:
            if self.client is not None:
                response = await self.client.post(self.endpoint, json=payload, headers=headers, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.endpoint, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError("Search insights timed out", context=context, original_exception=e)
        except httpx.HTTPError as e:
            raise ProviderError("Search insights request failed", context=context, original_exception=e)

        if response.status_code >= 400:
            raise ProviderError(
                f"Search insights returned HTTP {response.status_code}",
                context={**context, "status_code": response.status_code}
            )

        logger.info(f"[Session] Search insights gathered for entity {entity_id}")
