"""
AI Provider Manager

Manages multiple AI providers and allows easy switching.
"""

import os
from typing import Optional, Dict, List, Type
from dataclasses import dataclass

from config.constants import DEFAULT_MAX_OUTPUT_TOKENS, MODEL_MAX_OUTPUT_TOKENS
from config.logging_config import get_logger

from .base import BaseAIProvider, AIProviderType, AIConfig, AIResponse, AIMessage
from .claude_provider import ClaudeProvider
from .openai_provider import OpenAIProvider
from .gemini_provider import GeminiProvider
from .grok_provider import GrokProvider
from .usage import call_with_rate_limit_retry

logger = get_logger(__name__)


@dataclass
class ProviderInfo:
    """Information about an AI provider"""
    type: AIProviderType
    name: str
    description: str
    models: Dict[str, str]
    default_model: str
    env_key: str  # Environment variable name for API key


# Registry of all available providers
PROVIDER_REGISTRY: Dict[AIProviderType, Type[BaseAIProvider]] = {
    AIProviderType.CLAUDE: ClaudeProvider,
    AIProviderType.OPENAI: OpenAIProvider,
    AIProviderType.GEMINI: GeminiProvider,
    AIProviderType.GROK: GrokProvider,
}

# Provider information
PROVIDER_INFO: Dict[AIProviderType, ProviderInfo] = {
    AIProviderType.CLAUDE: ProviderInfo(
        type=AIProviderType.CLAUDE,
        name="Anthropic Claude",
        description="Claude - careful, instruction-following edits",
        models=ClaudeProvider.MODELS,
        default_model=ClaudeProvider.DEFAULT_MODEL,
        env_key="ANTHROPIC_API_KEY"
    ),
    AIProviderType.OPENAI: ProviderInfo(
        type=AIProviderType.OPENAI,
        name="OpenAI GPT",
        description="GPT-4o family - versatile, JSON mode",
        models=OpenAIProvider.MODELS,
        default_model=OpenAIProvider.DEFAULT_MODEL,
        env_key="OPENAI_API_KEY"
    ),
    AIProviderType.GEMINI: ProviderInfo(
        type=AIProviderType.GEMINI,
        name="Google Gemini",
        description="Gemini - fast, long context",
        models=GeminiProvider.MODELS,
        default_model=GeminiProvider.DEFAULT_MODEL,
        env_key="GOOGLE_API_KEY"
    ),
    AIProviderType.GROK: ProviderInfo(
        type=AIProviderType.GROK,
        name="xAI Grok",
        description="Grok - OpenAI-compatible endpoint",
        models=GrokProvider.MODELS,
        default_model=GrokProvider.DEFAULT_MODEL,
        env_key="XAI_API_KEY"
    ),
}

PROVIDER_ALIASES: Dict[str, AIProviderType] = {
    "claude": AIProviderType.CLAUDE,
    "anthropic": AIProviderType.CLAUDE,
    "openai": AIProviderType.OPENAI,
    "gpt": AIProviderType.OPENAI,
    "gemini": AIProviderType.GEMINI,
    "google": AIProviderType.GEMINI,
    "grok": AIProviderType.GROK,
    "xai": AIProviderType.GROK,
}


def resolve_provider_type(name) -> AIProviderType:
    """Map a provider name (or enum) to AIProviderType"""
    if isinstance(name, AIProviderType):
        return name
    ptype = PROVIDER_ALIASES.get(str(name).lower())
    if not ptype:
        raise ValueError(f"Unknown provider: {name}")
    return ptype


def max_output_tokens_for(model: Optional[str]) -> int:
    """Output token ceiling for a model, capped at the per-operation default"""
    limit = MODEL_MAX_OUTPUT_TOKENS.get(model or "", DEFAULT_MAX_OUTPUT_TOKENS)
    return min(limit, DEFAULT_MAX_OUTPUT_TOKENS)


class AIProviderManager:
    """
    Manages multiple AI providers and handles switching between them.

    Usage:
        manager = AIProviderManager()

        response = await manager.complete(messages, system_prompt)

        # Use specific provider/model for one call
        response = await manager.complete(
            messages, provider=AIProviderType.GEMINI, model="gemini-1.5-pro"
        )
    """

    def __init__(
        self,
        default_provider: AIProviderType = AIProviderType.OPENAI,
        api_keys: Optional[Dict[AIProviderType, str]] = None
    ):
        """
        Initialize the provider manager.

        Args:
            default_provider: Default AI provider to use
            api_keys: Optional dict of API keys for each provider.
                     If not provided, will use environment variables.
        """
        self._current_provider = default_provider
        self._api_keys = api_keys or {}
        self._providers: Dict[str, BaseAIProvider] = {}
        self._initialized: Dict[str, bool] = {}

    def _get_api_key(self, provider_type: AIProviderType) -> str:
        """Get API key for a provider from dict or environment"""
        if provider_type in self._api_keys:
            return self._api_keys[provider_type]

        info = PROVIDER_INFO[provider_type]
        key = os.environ.get(info.env_key)

        if not key:
            raise ValueError(
                f"API key not found for {info.name}. "
                f"Set {info.env_key} environment variable or pass api_keys dict."
            )

        return key

    def _create_provider(
        self,
        provider_type: AIProviderType,
        model: Optional[str] = None
    ) -> BaseAIProvider:
        """Create a provider instance"""
        info = PROVIDER_INFO[provider_type]
        provider_class = PROVIDER_REGISTRY[provider_type]
        selected_model = model or info.default_model

        config = AIConfig(
            api_key=self._get_api_key(provider_type),
            model=selected_model,
            max_tokens=max_output_tokens_for(selected_model),
        )

        return provider_class(config)

    async def get_provider(
        self,
        provider_type: Optional[AIProviderType] = None,
        model: Optional[str] = None
    ) -> BaseAIProvider:
        """
        Get a provider instance, initializing if needed.

        Args:
            provider_type: Provider to get (uses current if None)
            model: Specific model to use
        """
        ptype = provider_type or self._current_provider

        # Create new if model differs or not cached
        cache_key = f"{ptype.value}:{model or 'default'}"

        if cache_key not in self._providers:
            self._providers[cache_key] = self._create_provider(ptype, model)

        provider = self._providers[cache_key]

        if cache_key not in self._initialized:
            await provider.initialize()
            self._initialized[cache_key] = True

        return provider

    @property
    def current_provider(self) -> AIProviderType:
        """Get current provider type"""
        return self._current_provider

    def get_available_providers(self) -> List[ProviderInfo]:
        """Get list of providers that have API keys configured"""
        available = []
        for ptype, info in PROVIDER_INFO.items():
            try:
                self._get_api_key(ptype)
                available.append(info)
            except ValueError:
                pass
        return available

    async def complete(
        self,
        messages: List[AIMessage],
        system_prompt: Optional[str] = None,
        provider: Optional[AIProviderType] = None,
        model: Optional[str] = None,
        **kwargs
    ) -> AIResponse:
        """Generate completion using specified or current provider, retrying rate limits"""
        p = await self.get_provider(provider, model)
        return await call_with_rate_limit_retry(
            lambda: p.complete(messages, system_prompt, **kwargs)
        )


# ========== Factory function ==========

def create_provider_manager(
    default_provider: str = "openai",
    api_keys: Optional[Dict[str, str]] = None
) -> AIProviderManager:
    """
    Factory function to create a provider manager.

    Args:
        default_provider: Name of default provider ("claude", "openai", "gemini", "grok")
        api_keys: Optional dict with provider names as keys and API keys as values

    Returns:
        Configured AIProviderManager instance
    """
    default_type = resolve_provider_type(default_provider)

    typed_keys = None
    if api_keys:
        typed_keys = {}
        for name, key in api_keys.items():
            ptype = PROVIDER_ALIASES.get(name.lower())
            if ptype:
                typed_keys[ptype] = key

    return AIProviderManager(default_provider=default_type, api_keys=typed_keys)
