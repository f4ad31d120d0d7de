"""Style / audience adaptation"""

from typing import Any, Dict, List, Optional

from config.constants import ADAPT_BATCH_SIZE, ADAPT_TEMPERATURE, DEFAULT_CONFIDENCE
from core.generation.base import GenerationContext, SuggestionGenerator, WorkUnit
from core.generation.prompts import ADAPTATION_TYPES, adapt_prompt
from core.models import OperationKind, Suggestion, new_id


class AdaptGenerator(SuggestionGenerator):
    kind = OperationKind.ADAPT
    default_batch_size = ADAPT_BATCH_SIZE

    def temperature(self, config: Dict[str, Any]) -> float:
        return ADAPT_TEMPERATURE

    def should_skip(self, config: Dict[str, Any], context: GenerationContext) -> Optional[str]:
        if config.get("style", "professional") == "custom" and not config.get("target_audience"):
            return "custom style without a target audience"
        return None

    def build_prompt(self, unit: WorkUnit, config: Dict[str, Any], context: GenerationContext) -> str:
        return adapt_prompt(
            paragraphs=self.numbered_paragraphs(unit),
            section_title=unit.section_title,
            style=config.get("style", "professional"),
            target_audience=config.get("target_audience"),
            retrieval_context=context.retrieval_context,
        )

    def parse_suggestions(
        self,
        data: Dict[str, Any],
        unit: WorkUnit,
        config: Dict[str, Any],
        context: GenerationContext,
    ) -> List[Suggestion]:
        suggestions = []
        for item in data.get("suggestions") or []:
            original = item.get("originalText")
            adapted = item.get("adaptedText")
            if not self.is_real_edit(original, adapted):
                continue
            adaptation_type = (item.get("adaptationType") or "").lower()
            suggestions.append(Suggestion(
                id=new_id("sug_"),
                original_text=original,
                improved_text=adapted,
                reason=item.get("reason") or "",
                confidence=DEFAULT_CONFIDENCE,
                section_title=unit.section_title,
                sub_type=adaptation_type if adaptation_type in ADAPTATION_TYPES else "style",
            ))
        return suggestions
