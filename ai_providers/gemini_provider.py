"""
Gemini Provider - google-generativeai.

One GenerativeModel is kept per model name; JSON is requested through the
response mime type.
"""

from typing import Any, Dict, List, Optional

try:
    import google.generativeai as genai
    from google.generativeai.types import HarmCategory, HarmBlockThreshold
    HAS_GEMINI = True
except ImportError:
    HAS_GEMINI = False

from .base import (
    AIMessage,
    AIProviderType,
    AIResponse,
    BaseAIProvider,
    CompletionParams,
)


class GeminiProvider(BaseAIProvider):
    """Google Gemini"""

    MODELS = {
        "gemini-2.0-flash": "Gemini 2.0 Flash",
        "gemini-1.5-pro": "Gemini 1.5 Pro",
        "gemini-1.5-flash": "Gemini 1.5 Flash",
    }

    DEFAULT_MODEL = "gemini-2.0-flash"

    def __init__(self, config):
        super().__init__(config)
        self._models: Dict[str, Any] = {}
        self._safety_settings = None

    @property
    def provider_type(self) -> AIProviderType:
        return AIProviderType.GEMINI

    @property
    def supports_json_mode(self) -> bool:
        return True

    async def initialize(self) -> None:
        if not HAS_GEMINI:
            raise ImportError(
                "google-generativeai package not installed. "
                "Run: pip install google-generativeai"
            )
        genai.configure(api_key=self.config.api_key)

        # Chapter text routinely trips the default filters
        self._safety_settings = {
            HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_NONE,
            HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_NONE,
            HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_NONE,
            HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_NONE,
        }
        self._client = self._model(self.config.model)

    def _model(self, name: str):
        if name not in self._models:
            self._models[name] = genai.GenerativeModel(model_name=name, safety_settings=self._safety_settings)
        return self._models[name]

    @staticmethod
    def build_contents(messages: List[AIMessage], system_prompt: str) -> List[Dict[str, Any]]:
        """Gemini has no system role here; the system text leads the first turn."""
        contents = []
        for i, msg in enumerate(messages):
            text = msg.content
            if i == 0 and system_prompt:
                text = f"{system_prompt}\n\n{text}"
            contents.append({"role": "user" if msg.role == "user" else "model", "parts": [text]})
        return contents

    async def _generate(
        self,
        messages: List[AIMessage],
        system_prompt: Optional[str],
        params: CompletionParams,
    ) -> AIResponse:
        generation_config = {
            "temperature": params.temperature,
            "max_output_tokens": params.max_tokens,
        }
        if params.json_mode:
            generation_config["response_mime_type"] = "application/json"

        response = await self._model(params.model).generate_content_async(
            self.build_contents(messages, self.system_text(system_prompt, params)),
            generation_config=generation_config,
        )

        usage = None
        metadata = getattr(response, "usage_metadata", None)
        if metadata is not None:
            usage = {
                "input_tokens": metadata.prompt_token_count,
                "output_tokens": metadata.candidates_token_count,
            }
        return AIResponse(
            content=response.text,
            model=params.model,
            provider=self.provider_type,
            usage=usage,
            finish_reason=response.candidates[0].finish_reason.name if response.candidates else None,
            raw_response=response,
        )
