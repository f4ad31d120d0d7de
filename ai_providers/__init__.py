"""
AI Providers Package
Pluggable completion capability for suggestion generators.

Supports:
- Anthropic Claude
- OpenAI GPT
- Google Gemini
- xAI Grok (OpenAI-compatible)

Usage:
    from ai_providers import create_provider_manager, AIMessage

    manager = create_provider_manager("openai")
    response = await manager.complete(
        [AIMessage(role="user", content="Hello")],
        system_prompt="You are an editor.",
        json_mode=True,
    )
    print(response.content)
"""

from .base import (
    BaseAIProvider,
    AIProviderType,
    AIMessage,
    AIResponse,
    AIConfig
)

from .claude_provider import ClaudeProvider
from .openai_provider import OpenAIProvider
from .gemini_provider import GeminiProvider
from .grok_provider import GrokProvider

from .manager import (
    AIProviderManager,
    ProviderInfo,
    PROVIDER_REGISTRY,
    PROVIDER_INFO,
    create_provider_manager,
    resolve_provider_type,
    max_output_tokens_for,
)

from .usage import (
    ProviderErrorKind,
    UsageStats,
    CumulativeStats,
    classify_error,
    parse_retry_delay,
    call_with_rate_limit_retry,
)

__all__ = [
    # Base classes
    "BaseAIProvider",
    "AIProviderType",
    "AIMessage",
    "AIResponse",
    "AIConfig",

    # Providers
    "ClaudeProvider",
    "OpenAIProvider",
    "GeminiProvider",
    "GrokProvider",

    # Manager
    "AIProviderManager",
    "ProviderInfo",
    "PROVIDER_REGISTRY",
    "PROVIDER_INFO",
    "create_provider_manager",
    "resolve_provider_type",
    "max_output_tokens_for",

    # Usage & errors
    "ProviderErrorKind",
    "UsageStats",
    "CumulativeStats",
    "classify_error",
    "parse_retry_delay",
    "call_with_rate_limit_retry",
]

__version__ = "1.0.0"
