"""
Instruction-guided rewrite.

Edits are scoped to what the user's instructions ask for. Creativity (0-10)
controls how freely the instructions are applied and maps directly onto the
sampling temperature.
"""

from typing import Any, Dict, List, Optional

from config.constants import ADJUST_BATCH_SIZE, DEFAULT_CONFIDENCE
from core.generation.base import GenerationContext, SuggestionGenerator, WorkUnit
from core.generation.prompts import adjust_prompt
from core.models import OperationKind, Suggestion, new_id


class AdjustGenerator(SuggestionGenerator):
    kind = OperationKind.ADJUST
    default_batch_size = ADJUST_BATCH_SIZE

    @staticmethod
    def creativity(config: Dict[str, Any]) -> int:
        try:
            value = int(config.get("creativity", 5))
        except (TypeError, ValueError):
            value = 5
        return min(10, max(0, value))

    def temperature(self, config: Dict[str, Any]) -> float:
        return self.creativity(config) / 10

    def should_skip(self, config: Dict[str, Any], context: GenerationContext) -> Optional[str]:
        if not (config.get("instructions") or "").strip():
            return "no instructions given"
        return None

    def build_prompt(self, unit: WorkUnit, config: Dict[str, Any], context: GenerationContext) -> str:
        return adjust_prompt(
            paragraphs=self.numbered_paragraphs(unit),
            section_title=unit.section_title,
            instructions=config["instructions"].strip(),
            creativity=self.creativity(config),
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
        for item in data.get("adjustments") or []:
            original = item.get("originalText")
            if not original:
                # Fall back to the paragraph the model pointed at
                idx = item.get("paragraphIndex")
                if isinstance(idx, int) and 0 <= idx < len(unit.paragraphs):
                    original = unit.paragraphs[idx].text
            adjusted = item.get("adjustedText")
            if not self.is_real_edit(original, adjusted):
                continue
            suggestions.append(Suggestion(
                id=new_id("sug_"),
                original_text=original,
                improved_text=adjusted,
                reason=item.get("reason") or "",
                confidence=DEFAULT_CONFIDENCE,
                section_title=unit.section_title,
                sub_type=item.get("instructionReference"),
            ))
        return suggestions
