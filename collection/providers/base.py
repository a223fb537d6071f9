"""
Abstract base class for AI-model providers
"""

from abc import ABC, abstractmethod
from schemas.collection import ProviderResult


class ProviderAdapter(ABC):
    """
    Uniform call contract to a heterogeneous AI backend.

    The orchestrator only relies on `key` (stable identifier used for
    existence lookups and persistence) and `display_name` (progress
    labels); everything else is the concrete adapter's business.
    """

    def __init__(self, key: str, display_name: str):
        self.key = key
        self.display_name = display_name

    @abstractmethod
    async def invoke(self, prompt: str) -> ProviderResult:
        """
        Send one prompt and return the response text and citations.

        Raises:
            ProviderError: For any failed invocation
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(key={self.key!r})"
