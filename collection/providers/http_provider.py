"""
HTTP provider adapter for the per-provider prompt proxies.

Each provider sits behind a thin proxy endpoint that accepts
`{"prompt": ...}` and answers `{"response": ..., "citations": [...]}`.
This adapter adds:
- Bearer authentication
- Timeout handling with configurable limits
- In-call retry with exponential backoff for 5xx and timeouts
- Mapping of HTTP failures onto the provider exception hierarchy
"""

import httpx
import asyncio
from typing import List, Dict, Any, Optional
from urllib.parse import urlparse
from collection.providers.base import ProviderAdapter
from schemas.collection import ProviderResult
from core.config import settings
from core.exceptions import (
    ProviderError,
    ProviderTimeoutError,
    ProviderRateLimitError,
    ProviderServerError,
    ProviderAuthenticationError,
    EmptyResponseError,
)
import logging

logger = logging.getLogger(__name__)


def extract_domain(url: str) -> str:
    """Return the host of a URL without a leading www."""
    try:
        host = urlparse(url).netloc or ""
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def normalize_citations(raw: Any) -> List[Dict[str, Any]]:
    """Coerce proxy citations (strings or dicts) into {url, domain, ...} records."""
    if not isinstance(raw, list):
        return []

    citations = []
    for entry in raw:
        if isinstance(entry, str):
            citations.append({"url": entry, "domain": extract_domain(entry)})
        elif isinstance(entry, dict) and entry.get("url"):
            citation = dict(entry)
            citation.setdefault("domain", extract_domain(str(entry["url"])))
            citations.append(citation)
    return citations


class HTTPProviderAdapter(ProviderAdapter):
    """
    Provider reached through `{base_url}/test-prompt-{key}`.

    Attributes:
        max_attempts: Attempts per invocation for retryable failures (default: 2)
        retry_delay: Initial retry delay in seconds (default: 1.0)
        timeout: Request timeout in seconds (default: 60.0)
    """

    def __init__(
        self,
        key: str,
        display_name: str,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(key=key, display_name=display_name)
        self.base_url = (base_url or settings.PROVIDER_PROXY_URL).rstrip("/")
        self.api_key = api_key or settings.PROVIDER_API_KEY
        self.timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT_SECONDS
        self.max_attempts = max_attempts if max_attempts is not None else settings.PROVIDER_MAX_ATTEMPTS
        self.retry_delay = retry_delay if retry_delay is not None else settings.PROVIDER_RETRY_DELAY_SECONDS
        self._client = client

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/test-prompt-{self.key}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _post(self, client: httpx.AsyncClient, prompt: str) -> httpx.Response:
        """
        POST the prompt with retry logic and exponential backoff.

        Raises:
            ProviderAuthenticationError: For 401/403
            ProviderRateLimitError: For 429
            ProviderServerError: For 5xx after max attempts
            ProviderTimeoutError: For timeouts after max attempts
        """
        context = {"provider_key": self.key, "endpoint": self.endpoint}

        for attempt in range(self.max_attempts):
            is_last = attempt == self.max_attempts - 1
            delay = self.retry_delay * (2 ** attempt)

            try:
                response = await client.post(
                    self.endpoint,
                    json={"prompt": prompt},
                    headers=self._headers(),
                    timeout=self.timeout
                )
            except httpx.TimeoutException as e:
                if not is_last:
                    logger.warning(f"{self.key} timed out. Retrying in {delay} seconds")
                    await asyncio.sleep(delay)
                    continue
                raise ProviderTimeoutError(
                    f"{self.key} timed out after {self.max_attempts} attempts",
                    context={**context, "timeout": self.timeout, "attempt": attempt + 1},
                    original_exception=e
                )
            except httpx.HTTPError as e:
                if not is_last:
                    logger.warning(f"{self.key} network error. Retrying in {delay} seconds")
                    await asyncio.sleep(delay)
                    continue
                raise ProviderServerError(
                    f"{self.key} network error after {self.max_attempts} attempts",
                    context={**context, "attempt": attempt + 1},
                    original_exception=e
                )

            if response.status_code in (401, 403):
                raise ProviderAuthenticationError(
                    f"Authentication failed for {self.key}",
                    context={**context, "status_code": response.status_code}
                )

            if response.status_code == 429:
                retry_after = response.headers.get("Retry-After")
                raise ProviderRateLimitError(
                    f"Rate limit exceeded for {self.key}",
                    context={**context, "status_code": 429},
                    retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None
                )

            if response.status_code >= 500:
                if not is_last:
                    logger.warning(
                        f"{self.key} server error {response.status_code}. "
                        f"Retrying in {delay} seconds (attempt {attempt + 1}/{self.max_attempts})"
                    )
                    await asyncio.sleep(delay)
                    continue
                raise ProviderServerError(
                    f"{self.key} server error after {self.max_attempts} attempts",
                    context={
                        **context,
                        "status_code": response.status_code,
                        "attempt": attempt + 1,
                        "response_body": response.text[:500]
                    }
                )

            if response.status_code >= 400:
                raise ProviderError(
                    f"{self.key} rejected the request",
                    context={**context, "status_code": response.status_code, "response_body": response.text[:500]}
                )

            return response

        raise ProviderError("Max attempts exceeded", context=context)

    async def invoke(self, prompt: str) -> ProviderResult:
        if self._client is not None:
            response = await self._post(self._client, prompt)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await self._post(client, prompt)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(
                f"{self.key} returned a non-JSON body",
                context={"provider_key": self.key, "response_body": response.text[:500]},
                original_exception=e
            )

        response_text = (data.get("response") or "") if isinstance(data, dict) else ""
        if not response_text.strip():
            raise EmptyResponseError(
                f"No response from {self.key}",
                context={"provider_key": self.key}
            )

        return ProviderResult(
            response_text=response_text,
            citations=normalize_citations(data.get("citations"))
        )
