"""
Suggestion Generator - shared machinery.

A document is processed section by section, and long sections in bounded
paragraph batches. Each batch is one model call. A failed batch is logged
and skipped; what earlier batches produced is kept. Only when every batch
fails does generation raise, carrying the last underlying message.
"""

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ai_providers.base import AIMessage
from ai_providers.manager import resolve_provider_type
from ai_providers.usage import CumulativeStats, UsageStats
from config.constants import DEFAULT_CONFIDENCE
from config.logging_config import get_logger
from core.documents.parser import DocumentParser, Paragraph, ParsedDocument
from core.errors import GenerationError
from core.models import OperationKind, Suggestion
from core.references import ProcessedReference

logger = get_logger(__name__)

ProgressCallback = Callable[[float], Awaitable[None]]

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


@dataclass
class GenerationContext:
    """Inputs beyond the document text itself"""
    references: List[ProcessedReference] = field(default_factory=list)
    retrieval_context: str = ""
    document_title: str = ""


@dataclass
class WorkUnit:
    """One model call worth of paragraphs from a single section"""
    index: int
    section_title: str
    paragraphs: List[Paragraph]

    @property
    def text(self) -> str:
        return "\n\n".join(p.text for p in self.paragraphs)


@dataclass
class GenerationResult:
    suggestions: List[Suggestion]
    usage: CumulativeStats = field(default_factory=CumulativeStats)
    total_units: int = 0
    failed_units: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def cost_usd(self) -> float:
        return self.usage.total_cost_usd


def parse_json_response(text: str) -> Dict[str, Any]:
    """Parse a model reply as a JSON object, tolerating markdown fences."""
    cleaned = _FENCE_RE.sub("", (text or "").strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        # Some models wrap the object in prose
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start < 0 or end <= start:
            raise
        data = json.loads(cleaned[start:end + 1])
    if not isinstance(data, dict):
        raise ValueError("Model response is not a JSON object")
    return data


class SuggestionGenerator(ABC):
    """
    Base class for the five operation kinds.

    Subclasses provide the prompt and the mapping from the model's JSON
    to Suggestion objects; batching, failure isolation, progress and usage
    accounting live here.
    """

    kind: OperationKind
    default_batch_size: int = 20
    system_prompt: str = (
        "You are an expert document editor. You always answer with a single "
        "valid JSON object in the exact format requested."
    )

    def __init__(self, provider_manager, batch_size: Optional[int] = None, parser: Optional[DocumentParser] = None):
        self.provider_manager = provider_manager
        self.batch_size = batch_size or self.default_batch_size
        self.parser = parser or DocumentParser()

    # ----- hooks -----

    def include_headings(self) -> bool:
        return False

    def temperature(self, config: Dict[str, Any]) -> float:
        return 0.3

    def should_skip(self, config: Dict[str, Any], context: GenerationContext) -> Optional[str]:
        """Reason to produce no suggestions at all without calling the model"""
        return None

    def prepare(self, parsed: ParsedDocument, config: Dict[str, Any], context: GenerationContext) -> None:
        """Per-run setup before the first unit"""
        pass

    @abstractmethod
    def build_prompt(self, unit: WorkUnit, config: Dict[str, Any], context: GenerationContext) -> str:
        pass

    @abstractmethod
    def parse_suggestions(
        self,
        data: Dict[str, Any],
        unit: WorkUnit,
        config: Dict[str, Any],
        context: GenerationContext,
    ) -> List[Suggestion]:
        pass

    # ----- driver -----

    def build_units(self, parsed: ParsedDocument) -> List[WorkUnit]:
        units: List[WorkUnit] = []
        for section in parsed.sections:
            if self.include_headings():
                paragraphs = parsed.paragraphs[section.start_index:section.end_index + 1]
            else:
                paragraphs = parsed.section_paragraphs(section)
            for start in range(0, len(paragraphs), self.batch_size):
                batch = paragraphs[start:start + self.batch_size]
                if batch:
                    units.append(WorkUnit(len(units), section.title, batch))
        return units

    async def _complete(self, prompt: str, config: Dict[str, Any]):
        provider = config.get("provider")
        return await self.provider_manager.complete(
            [AIMessage(role="user", content=prompt)],
            system_prompt=self.system_prompt,
            provider=resolve_provider_type(provider) if provider else None,
            model=config.get("model"),
            temperature=self.temperature(config),
            json_mode=True,
        )

    async def generate(
        self,
        content: str,
        context: Optional[GenerationContext] = None,
        config: Optional[Dict[str, Any]] = None,
        progress_cb: Optional[ProgressCallback] = None,
    ) -> GenerationResult:
        context = context or GenerationContext()
        config = dict(config or {})
        result = GenerationResult(suggestions=[])

        skip_reason = self.should_skip(config, context)
        if skip_reason:
            logger.info(f"[{self.kind.value.upper()}] Skipping generation: {skip_reason}")
            if progress_cb:
                await progress_cb(100.0)
            return result

        parsed = self.parser.parse_text(content)
        self.prepare(parsed, config, context)
        units = self.build_units(parsed)
        result.total_units = len(units)
        logger.info(
            f"[{self.kind.value.upper()}] {len(parsed.paragraphs)} paragraphs, "
            f"{len(parsed.sections)} sections, {len(units)} batches"
        )

        last_error: Optional[Exception] = None
        for unit in units:
            try:
                response = await self._complete(self.build_prompt(unit, config, context), config)
                result.usage.add(UsageStats.from_response(response))
                data = parse_json_response(response.content)
                result.suggestions.extend(self.parse_suggestions(data, unit, config, context))
            except Exception as e:
                last_error = e
                result.failed_units += 1
                result.errors.append(str(e))
                logger.warning(
                    f"[{self.kind.value.upper()}] Batch {unit.index + 1}/{len(units)} "
                    f"('{unit.section_title[:50]}') failed: {e}"
                )

            if progress_cb:
                await progress_cb((unit.index + 1) / len(units) * 100.0)

        if units and result.failed_units == len(units):
            raise GenerationError(str(last_error), cause=last_error)

        logger.info(
            f"[{self.kind.value.upper()}] Generated {len(result.suggestions)} suggestions "
            f"({result.failed_units} failed batches)"
        )
        return result

    # ----- helpers for subclasses -----

    @staticmethod
    def numbered_paragraphs(unit: WorkUnit) -> str:
        return "\n\n".join(f"[{i}] {p.text}" for i, p in enumerate(unit.paragraphs))

    @staticmethod
    def confidence(value: Any, default: float = DEFAULT_CONFIDENCE) -> float:
        try:
            return min(1.0, max(0.0, float(value)))
        except (TypeError, ValueError):
            return default

    @staticmethod
    def is_real_edit(original: str, replacement: str) -> bool:
        return bool(original and original.strip()) and replacement is not None and replacement != original
