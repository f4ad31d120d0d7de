"""
Usage accounting and provider error handling.

- Token usage and cost estimation per call and per operation
- Error classification (billing / rate limit / invalid key)
- Rate-limit retry honouring the provider's "retry in X s" hint
"""

import asyncio
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Callable, Awaitable

from config.constants import RATE_LIMIT_MAX_ATTEMPTS, RATE_LIMIT_DEFAULT_DELAY
from config.logging_config import get_logger

from .base import AIResponse

logger = get_logger(__name__)


class ProviderErrorKind(Enum):
    """Classification of a provider failure"""
    NO_CREDIT = "no_credit"
    INVALID_KEY = "invalid_key"
    RATE_LIMITED = "rate_limited"
    ERROR = "error"


BILLING_ERROR_PATTERNS = [
    "credit balance is too low",
    "insufficient_quota",
    "billing",
    "exceeded your current quota",
    "payment required",
    "insufficient funds",
]

RATE_LIMIT_PATTERNS = [
    "rate_limit",
    "rate limit",
    "too many requests",
    "resource_exhausted",
    "429",
]

INVALID_KEY_PATTERNS = [
    "invalid api key",
    "invalid_api_key",
    "authentication",
    "unauthorized",
    "api key not valid",
    "incorrect api key",
]

_RETRY_HINT = re.compile(r"retry in\s+([\d.]+)\s*s", re.IGNORECASE)


def classify_error(error: Exception) -> ProviderErrorKind:
    """Classify an error into a status type."""
    error_str = str(error).lower()

    if any(p in error_str for p in BILLING_ERROR_PATTERNS):
        return ProviderErrorKind.NO_CREDIT
    if any(p in error_str for p in RATE_LIMIT_PATTERNS):
        return ProviderErrorKind.RATE_LIMITED
    if any(p in error_str for p in INVALID_KEY_PATTERNS):
        return ProviderErrorKind.INVALID_KEY
    return ProviderErrorKind.ERROR


def parse_retry_delay(error: Exception, default: float = RATE_LIMIT_DEFAULT_DELAY) -> float:
    """Seconds to wait before retrying, from a 'Please retry in 12.5s' style hint."""
    match = _RETRY_HINT.search(str(error))
    if match:
        try:
            return float(match.group(1))
        except ValueError:
            return default
    return default


async def call_with_rate_limit_retry(
    call: Callable[[], Awaitable[AIResponse]],
    max_attempts: int = RATE_LIMIT_MAX_ATTEMPTS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> AIResponse:
    """
    Run a provider call, retrying only when the failure is a rate limit.

    Any other failure, or the last rate-limit failure, propagates unchanged.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await call()
        except Exception as e:
            if classify_error(e) != ProviderErrorKind.RATE_LIMITED or attempt >= max_attempts:
                raise
            delay = parse_retry_delay(e)
            logger.warning(
                f"Rate limited (attempt {attempt}/{max_attempts}), retrying in {delay:.1f}s"
            )
            await sleep(delay)


@dataclass
class UsageStats:
    """Token usage statistics for a single call"""
    input_tokens: int = 0
    output_tokens: int = 0
    provider: str = ""
    model: str = ""

    # Cost per 1M tokens (input/output) - approximate rates
    COST_RATES = {
        "gpt-4o": (2.50, 10.00),
        "gpt-4o-mini": (0.15, 0.60),
        "gpt-4-turbo": (10.00, 30.00),
        "claude-sonnet-4-20250514": (3.00, 15.00),
        "claude-3-5-sonnet-20241022": (3.00, 15.00),
        "claude-3-5-haiku-20241022": (0.80, 4.00),
        "gemini-2.0-flash": (0.10, 0.40),
        "gemini-1.5-pro": (1.25, 5.00),
        "gemini-1.5-flash": (0.075, 0.30),
        "grok-2-latest": (2.00, 10.00),
    }

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def cost_usd(self) -> float:
        """Estimate cost in USD"""
        rates = self.COST_RATES.get(self.model, (1.0, 3.0))
        input_cost = (self.input_tokens / 1_000_000) * rates[0]
        output_cost = (self.output_tokens / 1_000_000) * rates[1]
        return round(input_cost + output_cost, 6)

    @classmethod
    def from_response(cls, response: AIResponse) -> 'UsageStats':
        usage = response.usage or {}
        return cls(
            input_tokens=usage.get("input_tokens") or 0,
            output_tokens=usage.get("output_tokens") or 0,
            provider=response.provider.value,
            model=response.model,
        )

    def to_dict(self) -> Dict:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "total_tokens": self.total_tokens,
            "cost_usd": self.cost_usd,
            "provider": self.provider,
            "model": self.model,
        }


@dataclass
class CumulativeStats:
    """Cumulative statistics across the calls of one operation"""
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_calls: int = 0
    total_cost_usd: float = 0.0
    calls_by_provider: Dict[str, int] = field(default_factory=dict)

    def add(self, stats: UsageStats):
        """Add stats from a single call"""
        self.total_input_tokens += stats.input_tokens
        self.total_output_tokens += stats.output_tokens
        self.total_calls += 1
        self.total_cost_usd = round(self.total_cost_usd + stats.cost_usd, 6)
        self.calls_by_provider[stats.provider] = self.calls_by_provider.get(stats.provider, 0) + 1

    @property
    def total_tokens(self) -> int:
        return self.total_input_tokens + self.total_output_tokens

    def to_dict(self) -> Dict:
        return {
            "total_input_tokens": self.total_input_tokens,
            "total_output_tokens": self.total_output_tokens,
            "total_tokens": self.total_tokens,
            "total_calls": self.total_calls,
            "calls_by_provider": self.calls_by_provider,
            "estimated_cost_usd": self.total_cost_usd,
        }
