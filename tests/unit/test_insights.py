"""
Unit tests for the search-insights gatherer
"""

import json
import httpx
import pytest
from collection.insights import HTTPInsightGatherer
from core.exceptions import ProviderError, ProviderTimeoutError


def make_gatherer(handler) -> HTTPInsightGatherer:
    return HTTPInsightGatherer(
        base_url="https://proxy.example.com/functions/v1",
        api_key="test_key",
        timeout=5.0,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )


class TestHTTPInsightGatherer:

    @pytest.mark.asyncio
    async def test_posts_company_name_and_id(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        await make_gatherer(handler).gather(7, "Acme Corp")

        assert seen["url"] == "https://proxy.example.com/functions/v1/search-insights"
        assert seen["body"] == {"companyName": "Acme Corp", "company_id": 7}

    @pytest.mark.asyncio
    async def test_http_error_status_raises(self):
        with pytest.raises(ProviderError) as exc_info:
            await make_gatherer(lambda request: httpx.Response(500)).gather(7, "Acme Corp")

        assert exc_info.value.context["status_code"] == 500

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(ProviderTimeoutError):
            await make_gatherer(handler).gather(7, "Acme Corp")
