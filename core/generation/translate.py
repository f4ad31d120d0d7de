"""
Paragraph translation.

Headings are translated along with body text so the translated version is
complete. Each (original, translated) paragraph pair becomes an ordinary
suggestion.
"""

import re
from typing import Any, Dict, List, Optional

from config.constants import TRANSLATE_BATCH_SIZE, TRANSLATION_CONFIDENCE, TRANSLATION_TEMPERATURE
from core.generation.base import GenerationContext, SuggestionGenerator, WorkUnit
from core.generation.prompts import translate_prompt
from core.models import OperationKind, Suggestion, new_id

_HEADING_PREFIX_RE = re.compile(r"^(#{1,6})\s+")


class TranslateGenerator(SuggestionGenerator):
    kind = OperationKind.TRANSLATE
    default_batch_size = TRANSLATE_BATCH_SIZE
    system_prompt = (
        "You are a professional translator. You always answer with a single "
        "valid JSON object in the exact format requested."
    )

    def include_headings(self) -> bool:
        return True

    def temperature(self, config: Dict[str, Any]) -> float:
        return TRANSLATION_TEMPERATURE

    def should_skip(self, config: Dict[str, Any], context: GenerationContext) -> Optional[str]:
        if not config.get("target_language"):
            return "no target language"
        return None

    def build_prompt(self, unit: WorkUnit, config: Dict[str, Any], context: GenerationContext) -> str:
        return translate_prompt(
            paragraphs=self.numbered_paragraphs(unit),
            source_language=config.get("source_language"),
            target_language=config["target_language"],
        )

    def parse_suggestions(
        self,
        data: Dict[str, Any],
        unit: WorkUnit,
        config: Dict[str, Any],
        context: GenerationContext,
    ) -> List[Suggestion]:
        suggestions = []
        for item in data.get("translations") or []:
            idx = item.get("index")
            if not isinstance(idx, int) or not 0 <= idx < len(unit.paragraphs):
                continue
            paragraph = unit.paragraphs[idx]
            translated = (item.get("translatedText") or "").strip()

            if paragraph.is_header:
                marker = "#" * paragraph.level
                translated = f"{marker} {_HEADING_PREFIX_RE.sub('', translated)}"

            if not self.is_real_edit(paragraph.text, translated):
                continue
            suggestions.append(Suggestion(
                id=new_id("sug_"),
                original_text=paragraph.text,
                improved_text=translated,
                reason=f"Translation to {config['target_language']}",
                confidence=TRANSLATION_CONFIDENCE,
                section_title=unit.section_title,
            ))
        return suggestions
