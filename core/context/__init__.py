"""
Retrieval context: chunking, per-version keyword indexes, citations.
"""

from .chunker import chunk_document
from .index_cache import VersionIndex, VersionIndexCache, IndexCacheStats, tokenize
from .citations import CitationMode, determine_citation_mode, format_citation
from .builder import ContextBuilder, ContextChunk, ContextResult, format_context_for_prompt
from .answer import ContextAnswer, ContextAnswerer

__all__ = [
    'chunk_document',
    'VersionIndex',
    'VersionIndexCache',
    'IndexCacheStats',
    'tokenize',
    'CitationMode',
    'determine_citation_mode',
    'format_citation',
    'ContextBuilder',
    'ContextChunk',
    'ContextResult',
    'format_context_for_prompt',
    'ContextAnswer',
    'ContextAnswerer',
]
