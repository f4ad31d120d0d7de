"""
Open-ended quality improvements, each tagged with a sub-type.

The outline of section titles gives every batch a view of the whole
document without an extra model call.
"""

from typing import Any, Dict, List

from config.constants import IMPROVE_BATCH_SIZE, IMPROVE_TEMPERATURE
from core.documents.parser import ParsedDocument
from core.generation.base import GenerationContext, SuggestionGenerator, WorkUnit
from core.generation.prompts import IMPROVEMENT_TYPES, improve_prompt
from core.models import OperationKind, Suggestion, new_id


class ImproveGenerator(SuggestionGenerator):
    kind = OperationKind.IMPROVE
    default_batch_size = IMPROVE_BATCH_SIZE

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._outline = ""

    def temperature(self, config: Dict[str, Any]) -> float:
        return IMPROVE_TEMPERATURE

    def prepare(self, parsed: ParsedDocument, config: Dict[str, Any], context: GenerationContext) -> None:
        titles = [s.title for s in parsed.sections]
        if context.document_title:
            titles.insert(0, context.document_title)
        self._outline = "\n".join(f"- {t}" for t in titles) if len(titles) > 1 else ""

    def build_prompt(self, unit: WorkUnit, config: Dict[str, Any], context: GenerationContext) -> str:
        focus = config.get("focus") or []
        if isinstance(focus, str):
            focus = [focus]
        return improve_prompt(
            paragraphs=self.numbered_paragraphs(unit),
            section_title=unit.section_title,
            outline=self._outline,
            focus=", ".join(focus),
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
        for item in data.get("improvements") or []:
            original = item.get("originalText")
            improved = item.get("improvedText")
            if not self.is_real_edit(original, improved):
                continue
            sub_type = (item.get("type") or "").lower()
            suggestions.append(Suggestion(
                id=new_id("sug_"),
                original_text=original,
                improved_text=improved,
                reason=item.get("reason") or "",
                confidence=self.confidence(item.get("confidence")),
                section_title=unit.section_title,
                sub_type=sub_type if sub_type in IMPROVEMENT_TYPES else "style",
            ))
        return suggestions
