"""
Claude Provider - Anthropic Messages API.

The API has no JSON switch, so json_mode is carried in the system prompt.
"""

from typing import Any, Dict, List, Optional

try:
    import anthropic
    HAS_ANTHROPIC = True
except ImportError:
    HAS_ANTHROPIC = False

from .base import (
    AIMessage,
    AIProviderType,
    AIResponse,
    BaseAIProvider,
    CompletionParams,
)


class ClaudeProvider(BaseAIProvider):
    """Anthropic Claude"""

    MODELS = {
        "claude-sonnet-4-20250514": "Claude Sonnet 4",
        "claude-3-5-sonnet-20241022": "Claude 3.5 Sonnet",
        "claude-3-5-haiku-20241022": "Claude 3.5 Haiku (Fast)",
    }

    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    @property
    def provider_type(self) -> AIProviderType:
        return AIProviderType.CLAUDE

    async def initialize(self) -> None:
        if not HAS_ANTHROPIC:
            raise ImportError("anthropic package not installed. Run: pip install anthropic")
        self._client = anthropic.AsyncAnthropic(api_key=self.config.api_key, base_url=self.config.base_url)

    @staticmethod
    def build_messages(messages: List[AIMessage]) -> List[Dict[str, Any]]:
        # system text travels in its own parameter
        return [{"role": m.role, "content": m.content} for m in messages if m.role != "system"]

    async def _generate(
        self,
        messages: List[AIMessage],
        system_prompt: Optional[str],
        params: CompletionParams,
    ) -> AIResponse:
        response = await self._client.messages.create(
            model=params.model,
            max_tokens=params.max_tokens,
            temperature=params.temperature,
            system=self.system_text(system_prompt, params),
            messages=self.build_messages(messages),
        )

        text = "".join(
            block.text for block in response.content
            if getattr(block, "type", "text") == "text"
        )
        return AIResponse(
            content=text,
            model=response.model,
            provider=self.provider_type,
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
            },
            finish_reason=response.stop_reason,
            raw_response=response,
        )
