"""
Context Builder - multi-version retrieval context.

Loads the chunk index of each requested version (through the index cache),
queries each one independently, and concatenates the per-version top hits
in request order before truncating to the overall limit. Hits are not
re-ranked across versions.
"""

from dataclasses import dataclass, field, asdict
from typing import List, Dict, Optional

from config.constants import CONTEXT_TOP_K, CONTEXT_TOP_K_PER_VERSION
from config.logging_config import get_logger
from core.errors import ContextBuildError, NotFoundError
from core.storage.repository import RevisionRepository

from .citations import CitationMode, determine_citation_mode, format_citation
from .index_cache import VersionIndexCache

logger = get_logger(__name__)


@dataclass
class ContextChunk:
    """A retrieved chunk with the provenance needed for citations"""
    version_id: str
    chunk_index: int
    text: str
    page_from: int
    page_to: int
    score: float
    chapter_id: str
    chapter_title: str
    chapter_order: int
    version_number: int
    document_id: str
    document_title: str

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class ContextResult:
    chunks: List[ContextChunk]
    chapters_included: List[Dict] = field(default_factory=list)
    total_chunks_searched: int = 0
    citation_mode: CitationMode = CitationMode.MINIMAL

    def to_dict(self) -> Dict:
        return {
            "chunks": [c.to_dict() for c in self.chunks],
            "chapters_included": list(self.chapters_included),
            "total_chunks_searched": self.total_chunks_searched,
            "citation_mode": self.citation_mode.value,
        }


class ContextBuilder:
    """
    Usage:
        builder = ContextBuilder(repository, VersionIndexCache())
        result = builder.build_context([v1, v2], "carbon tax rates")
        prompt_block = format_context_for_prompt(result)
    """

    def __init__(self, repository: RevisionRepository, cache: Optional[VersionIndexCache] = None):
        self.repository = repository
        self.cache = cache if cache is not None else VersionIndexCache()

    def _version_metadata(self, version_id: str) -> Dict:
        version = self.repository.get_version(version_id)
        if not version:
            raise NotFoundError("Version", version_id)
        chapter = self.repository.get_chapter(version.chapter_id)
        if not chapter:
            raise NotFoundError("Chapter", version.chapter_id)
        document = self.repository.get_document(chapter["document_id"]) or {}
        return {
            "chapter_id": chapter["id"],
            "chapter_title": chapter["title"],
            "chapter_order": chapter["chapter_order"],
            "version_number": version.sequence,
            "document_id": chapter["document_id"],
            "document_title": document.get("title", ""),
        }

    def build_context(
        self,
        version_ids: List[str],
        query: str,
        top_k_per_version: int = CONTEXT_TOP_K_PER_VERSION,
        top_k: int = CONTEXT_TOP_K,
        citation_mode: Optional[CitationMode] = None,
    ) -> ContextResult:
        """
        Per-version top hits in request order, truncated to top_k.

        citation_mode forces a mode (e.g. full); by default it is derived
        from the chunks selected.
        """
        logger.info(
            f"[CONTEXT] Building context for {len(version_ids)} versions "
            f"(top_k_per_version={top_k_per_version}, top_k={top_k})"
        )

        loaded = []
        for version_id in version_ids:
            try:
                metadata = self._version_metadata(version_id)
                index = self.cache.get_or_build(version_id, self.repository.get_chunks)
                loaded.append((version_id, metadata, index))
            except Exception as e:
                logger.warning(f"[CONTEXT] Failed to load version {version_id}: {e}")

        if not loaded:
            raise ContextBuildError("No versions could be loaded")

        all_results: List[ContextChunk] = []
        searched = 0
        for version_id, metadata, index in loaded:
            searched += len(index.chunks)
            for chunk, score in index.search(query, top_k_per_version):
                all_results.append(ContextChunk(
                    version_id=version_id,
                    chunk_index=chunk.chunk_index,
                    text=chunk.text,
                    page_from=chunk.page_from,
                    page_to=chunk.page_to,
                    score=score,
                    **metadata,
                ))

        top_results = all_results[:top_k]

        chapters_included = []
        for _, metadata, _ in loaded:
            chapters_included.append({
                "chapter_id": metadata["chapter_id"],
                "chapter_title": metadata["chapter_title"],
                "chapter_order": metadata["chapter_order"],
                "version_number": metadata["version_number"],
            })

        result = ContextResult(
            chunks=top_results,
            chapters_included=chapters_included,
            total_chunks_searched=searched,
            citation_mode=CitationMode(citation_mode) if citation_mode else determine_citation_mode(top_results),
        )
        logger.info(
            f"[CONTEXT] {len(top_results)} chunks selected, citation mode {result.citation_mode.value}"
        )
        return result


def format_context_for_prompt(result: ContextResult) -> str:
    """Render retrieved chunks as a cited evidence block"""
    if not result.chunks:
        return ""
    lines = []
    for chunk in result.chunks:
        lines.append(f"[{format_citation(chunk, result.citation_mode)}]\n{chunk.text}")
    return "\n\n".join(lines)
