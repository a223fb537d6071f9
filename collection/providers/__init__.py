from collection.providers.base import ProviderAdapter
from collection.providers.http_provider import HTTPProviderAdapter
from collection.providers.registry import (
    PROVIDER_CATALOGUE,
    FREE_PROVIDERS,
    PRO_PROVIDERS,
    build_providers,
    build_providers_for_tier,
    provider_keys_for_tier,
)

__all__ = [
    "ProviderAdapter",
    "HTTPProviderAdapter",
    "PROVIDER_CATALOGUE",
    "FREE_PROVIDERS",
    "PRO_PROVIDERS",
    "build_providers",
    "build_providers_for_tier",
    "provider_keys_for_tier",
]
