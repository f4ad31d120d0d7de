"""
OpenAI Provider - GPT-4o family, native JSON mode.
"""

from typing import Any, Dict, List, Optional

try:
    from openai import AsyncOpenAI
    HAS_OPENAI = True
except ImportError:
    HAS_OPENAI = False

from .base import (
    AIMessage,
    AIProviderType,
    AIResponse,
    BaseAIProvider,
    CompletionParams,
)


class OpenAIProvider(BaseAIProvider):
    """OpenAI chat completions"""

    MODELS = {
        "gpt-4o": "GPT-4o",
        "gpt-4o-mini": "GPT-4o Mini (Fast)",
        "gpt-4-turbo": "GPT-4 Turbo",
    }

    DEFAULT_MODEL = "gpt-4o-mini"

    @property
    def provider_type(self) -> AIProviderType:
        return AIProviderType.OPENAI

    @property
    def supports_json_mode(self) -> bool:
        return True

    async def initialize(self) -> None:
        if not HAS_OPENAI:
            raise ImportError("openai package not installed. Run: pip install openai")
        self._client = AsyncOpenAI(api_key=self.config.api_key, base_url=self.config.base_url)

    @staticmethod
    def build_messages(messages: List[AIMessage], system_prompt: str) -> List[Dict[str, Any]]:
        converted = [{"role": "system", "content": system_prompt}] if system_prompt else []
        converted.extend({"role": m.role, "content": m.content} for m in messages)
        return converted

    async def _generate(
        self,
        messages: List[AIMessage],
        system_prompt: Optional[str],
        params: CompletionParams,
    ) -> AIResponse:
        request: Dict[str, Any] = {
            "model": params.model,
            "max_tokens": params.max_tokens,
            "temperature": params.temperature,
            "messages": self.build_messages(messages, self.system_text(system_prompt, params)),
        }
        if params.json_mode:
            request["response_format"] = {"type": "json_object"}

        response = await self._client.chat.completions.create(**request)
        choice = response.choices[0]

        usage = None
        if response.usage:
            usage = {
                "input_tokens": response.usage.prompt_tokens,
                "output_tokens": response.usage.completion_tokens,
            }
        return AIResponse(
            content=choice.message.content or "",
            model=response.model,
            provider=self.provider_type,
            usage=usage,
            finish_reason=choice.finish_reason,
            raw_response=response,
        )
