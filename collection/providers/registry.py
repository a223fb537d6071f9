"""
Provider catalogue and entitlement tiers
"""

from typing import Dict, List, Optional, Iterable
import httpx
from collection.providers.base import ProviderAdapter
from collection.providers.http_provider import HTTPProviderAdapter
from models.base import SubscriptionTier
from core.exceptions import ConfigurationError

# key -> display name, in collection order
PROVIDER_CATALOGUE: Dict[str, str] = {
    "openai": "ChatGPT",
    "perplexity": "Perplexity",
    "gemini": "Gemini",
    "deepseek": "DeepSeek",
    "google-ai-overviews": "Google AI",
}

FREE_PROVIDERS = ["openai", "perplexity", "google-ai-overviews"]
PRO_PROVIDERS = ["openai", "perplexity", "gemini", "deepseek", "google-ai-overviews"]


def provider_keys_for_tier(tier: SubscriptionTier) -> List[str]:
    """Provider keys a caller on the given tier is entitled to."""
    if tier == SubscriptionTier.PRO:
        return list(PRO_PROVIDERS)
    return list(FREE_PROVIDERS)


def build_providers(
    keys: Iterable[str],
    client: Optional[httpx.AsyncClient] = None
) -> List[ProviderAdapter]:
    """
    Build HTTP adapters for the given provider keys.

    Raises:
        ConfigurationError: If a key is not in the catalogue
    """
    providers: List[ProviderAdapter] = []
    for key in keys:
        if key not in PROVIDER_CATALOGUE:
            raise ConfigurationError(
                f"Unknown provider: {key}",
                context={"provider_key": key, "known": list(PROVIDER_CATALOGUE)}
            )
        providers.append(HTTPProviderAdapter(key=key, display_name=PROVIDER_CATALOGUE[key], client=client))
    return providers


def build_providers_for_tier(
    tier: SubscriptionTier,
    client: Optional[httpx.AsyncClient] = None
) -> List[ProviderAdapter]:
    return build_providers(provider_keys_for_tier(tier), client=client)
