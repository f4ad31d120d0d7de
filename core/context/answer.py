"""
Question answering over retrieved context.

The question itself is the retrieval query. The model answers only from the
cited passages, citing them in the mode the context was built with.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ai_providers.base import AIMessage
from ai_providers.manager import resolve_provider_type
from ai_providers.usage import UsageStats
from config.constants import ANSWER_TEMPERATURE, CONTEXT_TOP_K, CONTEXT_TOP_K_PER_VERSION
from config.logging_config import get_logger
from core.errors import ContextBuildError

from .builder import ContextBuilder, ContextResult, format_context_for_prompt
from .citations import CitationMode, format_citation

logger = get_logger(__name__)

ANSWER_SYSTEM_PROMPT = (
    "You answer questions about a document using only the passages provided. "
    "Every claim must cite the passage it comes from using the citation shown "
    "in brackets before that passage. If the passages do not contain the "
    "answer, say so."
)


def answer_prompt(question: str, context_block: str, citation_example: str) -> str:
    return f"""PASSAGES:
{context_block}

QUESTION:
{question}

Answer in the language of the question. Cite sources inline exactly as they appear, for example [{citation_example}]."""


@dataclass
class ContextAnswer:
    question: str
    answer: str
    context: ContextResult
    usage: UsageStats

    @property
    def cost_usd(self) -> float:
        return self.usage.cost_usd

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question": self.question,
            "answer": self.answer,
            "citation_mode": self.context.citation_mode.value,
            "chunks": [c.to_dict() for c in self.context.chunks],
            "chapters_included": list(self.context.chapters_included),
            "provider": self.usage.provider,
            "model": self.usage.model,
            "cost_usd": round(self.cost_usd, 6),
        }


class ContextAnswerer:
    """
    Usage:
        answerer = ContextAnswerer(context_builder, provider_manager)
        answer = await answerer.ask([v1, v2], "Which rates changed in 2024?")
    """

    def __init__(self, context_builder: ContextBuilder, provider_manager):
        self.context_builder = context_builder
        self.provider_manager = provider_manager

    async def ask(
        self,
        version_ids: List[str],
        question: str,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        top_k_per_version: int = CONTEXT_TOP_K_PER_VERSION,
        top_k: int = CONTEXT_TOP_K,
        citation_mode: Optional[CitationMode] = None,
    ) -> ContextAnswer:
        if not question or not question.strip():
            raise ValueError("Question cannot be empty")
        if not version_ids:
            raise ValueError("At least one version is required")

        context = self.context_builder.build_context(
            version_ids,
            question,
            top_k_per_version=top_k_per_version,
            top_k=top_k,
            citation_mode=citation_mode,
        )
        if not context.chunks:
            raise ContextBuildError("No relevant context found")

        prompt = answer_prompt(
            question.strip(),
            format_context_for_prompt(context),
            format_citation(context.chunks[0], context.citation_mode),
        )
        response = await self.provider_manager.complete(
            [AIMessage(role="user", content=prompt)],
            system_prompt=ANSWER_SYSTEM_PROMPT,
            provider=resolve_provider_type(provider) if provider else None,
            model=model,
            temperature=ANSWER_TEMPERATURE,
        )
        usage = UsageStats.from_response(response)

        logger.info(
            f"[ANSWER] {len(context.chunks)} chunks from {len(context.chapters_included)} versions, "
            f"citation mode {context.citation_mode.value}, {usage.provider}/{usage.model}, ${usage.cost_usd:.4f}"
        )
        return ContextAnswer(
            question=question.strip(),
            answer=response.content.strip(),
            context=context,
            usage=usage,
        )
