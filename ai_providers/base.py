"""
Base AI Provider

Every suggestion generator reaches a model through this contract. The
public complete() resolves per-call parameters against the provider's
config and initializes the client on first use; subclasses implement only
the wire call in _generate().
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class AIProviderType(Enum):
    """Supported AI Providers"""
    CLAUDE = "claude"
    OPENAI = "openai"
    GEMINI = "gemini"
    GROK = "grok"


@dataclass
class AIMessage:
    """Unified message format across providers"""
    role: str  # "user", "assistant", "system"
    content: str


@dataclass
class AIResponse:
    """Unified response format"""
    content: str
    model: str
    provider: AIProviderType
    usage: Optional[Dict[str, int]] = None  # input_tokens / output_tokens
    finish_reason: Optional[str] = None
    raw_response: Optional[Any] = None


@dataclass
class AIConfig:
    """Provider configuration"""
    api_key: str
    model: str
    max_tokens: int = 8000
    temperature: float = 0.3
    base_url: Optional[str] = None  # For OpenAI-compatible endpoints


@dataclass
class CompletionParams:
    """Parameters of one completion call after defaults are applied"""
    model: str
    max_tokens: int
    temperature: float
    json_mode: bool = False


class BaseAIProvider(ABC):
    """
    Abstract base class for AI providers.

    complete() accepts model, max_tokens, temperature and json_mode as
    keyword overrides; anything else is ignored.
    """

    MODELS: Dict[str, str] = {}
    DEFAULT_MODEL: str = ""

    # Appended to the system prompt when the API has no native JSON mode
    JSON_INSTRUCTION = "Respond with a single JSON object and nothing else."

    def __init__(self, config: AIConfig):
        self.config = config
        self._client = None

    @property
    @abstractmethod
    def provider_type(self) -> AIProviderType:
        pass

    @property
    def supported_models(self) -> List[str]:
        return list(self.MODELS.keys())

    @property
    def supports_json_mode(self) -> bool:
        """Whether the API itself can be forced to answer with JSON"""
        return False

    @abstractmethod
    async def initialize(self) -> None:
        """Create the SDK client"""
        pass

    def resolve_params(self, **kwargs) -> CompletionParams:
        return CompletionParams(
            model=kwargs.get("model") or self.config.model,
            max_tokens=kwargs.get("max_tokens") or self.config.max_tokens,
            temperature=self.config.temperature if kwargs.get("temperature") is None else kwargs["temperature"],
            json_mode=bool(kwargs.get("json_mode")),
        )

    def system_text(self, system_prompt: Optional[str], params: CompletionParams) -> str:
        """System prompt, with the JSON instruction when the API cannot enforce it"""
        text = system_prompt or ""
        if params.json_mode and not self.supports_json_mode:
            text = f"{text}\n\n{self.JSON_INSTRUCTION}".strip()
        return text

    async def complete(
        self,
        messages: List[AIMessage],
        system_prompt: Optional[str] = None,
        **kwargs
    ) -> AIResponse:
        """Generate a completion; initializes the client on first use."""
        if self._client is None:
            await self.initialize()
        return await self._generate(messages, system_prompt, self.resolve_params(**kwargs))

    @abstractmethod
    async def _generate(
        self,
        messages: List[AIMessage],
        system_prompt: Optional[str],
        params: CompletionParams,
    ) -> AIResponse:
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} model={self.config.model}>"
