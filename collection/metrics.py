"""
Metrics derived from a provider result before it is stored
"""

from typing import Dict, Any
from schemas.collection import ProviderResult


def derive_metrics(result: ProviderResult) -> Dict[str, Any]:
    domains = sorted({c.get("domain") for c in result.citations if c.get("domain")})
    return {
        "response_length": len(result.response_text),
        "citation_count": len(result.citations),
        "cited_domains": domains,
    }
