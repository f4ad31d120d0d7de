"""
Grok Provider - xAI, served through the OpenAI-compatible endpoint.
"""

try:
    from openai import AsyncOpenAI
    HAS_OPENAI = True
except ImportError:
    HAS_OPENAI = False

from .base import AIProviderType
from .openai_provider import OpenAIProvider


class GrokProvider(OpenAIProvider):
    """Same request handling as OpenAIProvider; endpoint and catalogue differ."""

    MODELS = {
        "grok-2-latest": "Grok 2",
        "grok-beta": "Grok Beta",
    }

    DEFAULT_MODEL = "grok-2-latest"
    BASE_URL = "https://api.x.ai/v1"

    @property
    def provider_type(self) -> AIProviderType:
        return AIProviderType.GROK

    async def initialize(self) -> None:
        if not HAS_OPENAI:
            raise ImportError("openai package not installed. Run: pip install openai")
        self._client = AsyncOpenAI(
            api_key=self.config.api_key,
            base_url=self.config.base_url or self.BASE_URL,
        )
