"""
Reference-grounded update.

Only edits backed by attached reference content are allowed. Every
suggestion carries the id of the reference that supports it; suggestions
citing a reference we do not know are dropped.
"""

import re
from typing import Any, Dict, List, Optional

from config.constants import UPDATE_BATCH_SIZE, UPDATE_TEMPERATURE
from config.logging_config import get_logger
from core.generation.base import GenerationContext, SuggestionGenerator, WorkUnit
from core.generation.prompts import update_prompt
from core.models import OperationKind, Suggestion, new_id
from core.references import format_references_for_prompt

logger = get_logger(__name__)

_REF_LABEL_RE = re.compile(r"^\[?\s*(?:REF\s+)?([^\]\s]+)\s*\]?$", re.IGNORECASE)


def normalize_reference_id(value: Any) -> Optional[str]:
    """'[REF abc]', 'REF abc' and 'abc' all name reference 'abc'"""
    if value is None:
        return None
    match = _REF_LABEL_RE.match(str(value).strip())
    return match.group(1) if match else None


class UpdateGenerator(SuggestionGenerator):
    kind = OperationKind.UPDATE
    default_batch_size = UPDATE_BATCH_SIZE

    def temperature(self, config: Dict[str, Any]) -> float:
        return UPDATE_TEMPERATURE

    def should_skip(self, config: Dict[str, Any], context: GenerationContext) -> Optional[str]:
        if not any(ref.is_ready for ref in context.references):
            return "no usable reference content"
        return None

    def build_prompt(self, unit: WorkUnit, config: Dict[str, Any], context: GenerationContext) -> str:
        return update_prompt(
            paragraphs=self.numbered_paragraphs(unit),
            section_title=unit.section_title,
            references=format_references_for_prompt(context.references),
            instructions=(config.get("instructions") or "").strip(),
            retrieval_context=context.retrieval_context,
        )

    def parse_suggestions(
        self,
        data: Dict[str, Any],
        unit: WorkUnit,
        config: Dict[str, Any],
        context: GenerationContext,
    ) -> List[Suggestion]:
        known = {ref.id for ref in context.references if ref.is_ready}
        suggestions = []
        for item in data.get("updates") or []:
            original = item.get("originalText")
            updated = item.get("updatedText")
            if not self.is_real_edit(original, updated):
                continue

            reference_id = normalize_reference_id(item.get("referenceId"))
            if reference_id not in known:
                logger.debug(f"[UPDATE] Dropping suggestion citing unknown reference {item.get('referenceId')!r}")
                continue

            suggestions.append(Suggestion(
                id=new_id("sug_"),
                original_text=original,
                improved_text=updated,
                reason=item.get("reason") or "",
                confidence=self.confidence(item.get("confidence")),
                section_title=unit.section_title,
                reference_id=reference_id,
            ))
        return suggestions
