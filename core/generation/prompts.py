"""
Prompt templates for the suggestion generators.
"""

from typing import Optional

ADAPT_STYLE_DESCRIPTIONS = {
    "academic": "formal academic style with precise terminology, citations, and scholarly tone",
    "professional": "professional business style with clear, concise language suitable for corporate environments",
    "simplified": "simplified language accessible to general audiences, avoiding jargon and complex terms",
}

IMPROVEMENT_TYPES = ("grammar", "clarity", "style", "coherence", "conciseness")
ADAPTATION_TYPES = ("style", "tone", "terminology", "structure")


def creativity_guidance(creativity: int) -> str:
    if creativity < 3:
        return "(Conservative - apply instructions with minimal changes, stay as close as possible to the original text)"
    if creativity < 7:
        return "(Moderate - apply instructions with some flexibility in rephrasing, but ONLY make changes related to the instructions)"
    return "(Creative - apply instructions with freedom to rephrase significantly, but ONLY make changes that fulfill the instructions)"


def retrieval_block(retrieval_context: Optional[str]) -> str:
    if not retrieval_context:
        return ""
    return f"""
RELATED MATERIAL (for consistency; cite nothing, edit only the paragraphs below):
{retrieval_context}
"""


def adjust_prompt(paragraphs: str, section_title: str, instructions: str, creativity: int,
                  retrieval_context: str = "") -> str:
    return f"""You have been given the following instructions by the user:

INSTRUCTIONS:
{instructions}

SECTION: "{section_title}"
{retrieval_block(retrieval_context)}
PARAGRAPHS:
{paragraphs}

TASK:
Suggest adjustments that follow the user's instructions EXACTLY AND ONLY. Do NOT suggest improvements, clarifications, or changes that are not explicitly requested in the instructions above.

Creativity level: {creativity}/10
{creativity_guidance(creativity)}

Return your response as JSON in this exact format:
{{
  "adjustments": [
    {{
      "paragraphIndex": 0,
      "originalText": "exact original text",
      "adjustedText": "your adjusted version that addresses the instructions",
      "reason": "why this change was made to fulfill the instructions",
      "instructionReference": "which part of the instructions this addresses"
    }}
  ]
}}

CRITICAL RULES:
- ONLY make changes that directly address the user's instructions
- Do NOT improve clarity, grammar, style, or anything else unless explicitly instructed to do so
- Only include paragraphs that need adjustment to fulfill the instructions
- Match the originalText EXACTLY as it appears
- The creativity level controls HOW you apply the instructions, NOT whether to make additional improvements
- If creativity is 0, make minimal changes (only those absolutely required by instructions)
"""


def update_prompt(paragraphs: str, section_title: str, references: str,
                  instructions: str = "", retrieval_context: str = "") -> str:
    extra = f"\nADDITIONAL INSTRUCTIONS:\n{instructions}\n" if instructions else ""
    return f"""You update documents so they agree with the supplied reference material.

REFERENCES:
{references}
{extra}
SECTION: "{section_title}"
{retrieval_block(retrieval_context)}
PARAGRAPHS:
{paragraphs}

TASK:
Find statements in the paragraphs that are outdated or contradicted by the references (figures, dates, names, rules, citations) and propose the corrected text.

Return your response as JSON in this exact format:
{{
  "updates": [
    {{
      "originalText": "exact original text",
      "updatedText": "corrected text",
      "reason": "what the reference says",
      "referenceId": "the id shown after REF for the supporting reference",
      "confidence": 0.9
    }}
  ]
}}

CRITICAL RULES:
- Every update MUST be supported by one of the references above; never rely on outside knowledge
- Do not change wording, style or anything the references do not contradict
- Match the originalText EXACTLY as it appears
- Return an empty list when nothing needs updating
"""


def improve_prompt(paragraphs: str, section_title: str, outline: str = "",
                   focus: str = "", retrieval_context: str = "") -> str:
    outline_block = f"\nDOCUMENT OUTLINE:\n{outline}\n" if outline else ""
    focus_block = f"\nFOCUS: {focus}\n" if focus else ""
    return f"""Review the paragraphs below and suggest improvements to the writing.
{outline_block}{focus_block}
SECTION: "{section_title}"
{retrieval_block(retrieval_context)}
PARAGRAPHS:
{paragraphs}

Each improvement must have a type, one of: {", ".join(IMPROVEMENT_TYPES)}.

Return your response as JSON in this exact format:
{{
  "improvements": [
    {{
      "originalText": "exact original text (a sentence or paragraph)",
      "improvedText": "improved version",
      "reason": "brief explanation",
      "type": "clarity",
      "confidence": 0.85
    }}
  ]
}}

RULES:
- Keep the author's meaning and voice
- Match the originalText EXACTLY as it appears
- Only include changes that clearly improve the text
"""


def adapt_prompt(paragraphs: str, section_title: str, style: str,
                 target_audience: Optional[str], retrieval_context: str = "") -> str:
    style_description = ADAPT_STYLE_DESCRIPTIONS.get(style) or target_audience or "general audience"
    audience_text = f" for {target_audience}" if target_audience and style != "custom" else ""
    return f"""You are a document adaptation expert. Analyze the following text from section "{section_title}" and suggest adaptations to {style_description}{audience_text}.
{retrieval_block(retrieval_context)}
For each paragraph that needs adaptation, provide:
- originalText: the exact original text (unchanged)
- adaptedText: the adapted version in the target style
- reason: brief explanation of the adaptation (why this change improves style/audience fit)
- adaptationType: one of: {", ".join(f'"{t}"' for t in ADAPTATION_TYPES)}

Focus on paragraphs that would significantly benefit from adaptation. Skip paragraphs that are already appropriate for the target style.

Paragraphs to analyze:
{paragraphs}

Respond with ONLY a JSON object in this format:
{{
  "suggestions": [
    {{
      "originalText": "...",
      "adaptedText": "...",
      "reason": "...",
      "adaptationType": "..."
    }}
  ]
}}"""


def translate_prompt(paragraphs: str, source_language: Optional[str], target_language: str) -> str:
    source = source_language or "the source language (detect it)"
    return f"""Translate each numbered paragraph from {source} to {target_language}.

Guidelines:
- Preserve the original meaning, tone, and style
- Keep technical terms, proper nouns, numbers and formulas intact
- Keep leading markdown heading markers (#) unchanged
- Translate every paragraph; do not merge or split paragraphs

PARAGRAPHS:
{paragraphs}

Return your response as JSON in this exact format:
{{
  "translations": [
    {{"index": 0, "translatedText": "..."}}
  ]
}}"""
