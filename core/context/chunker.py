"""
Chunker

Slices a version's canonical text into retrieval chunks on paragraph
boundaries, each carrying the page range it spans.
"""

from typing import List

from config.constants import CHUNK_TARGET_CHARS, CHARS_PER_PAGE
from core.models import Chunk
from core.documents.parser import ParsedDocument


def _page_for_offset(offset: int, pages: int) -> int:
    return min(pages, offset // CHARS_PER_PAGE + 1)


def _split_long(text: str, limit: int) -> List[str]:
    """Split an oversized paragraph on whitespace near the limit."""
    pieces = []
    while len(text) > limit:
        cut = text.rfind(" ", 0, limit)
        if cut <= 0:
            cut = limit
        pieces.append(text[:cut].strip())
        text = text[cut:].strip()
    if text:
        pieces.append(text)
    return pieces


def chunk_document(
    version_id: str,
    parsed: ParsedDocument,
    target_chars: int = CHUNK_TARGET_CHARS,
) -> List[Chunk]:
    """
    Build chunks for a parsed document.

    Offsets are measured against ParsedDocument.text so page bounds agree
    with ParsedDocument.pages.
    """
    pages = max(1, parsed.pages)
    chunks: List[Chunk] = []

    buffer: List[str] = []
    buffer_start = 0
    offset = 0

    def flush(end_offset: int):
        if not buffer:
            return
        chunks.append(Chunk(
            version_id=version_id,
            chunk_index=len(chunks),
            text="\n\n".join(buffer),
            page_from=_page_for_offset(buffer_start, pages),
            page_to=_page_for_offset(max(buffer_start, end_offset - 1), pages),
        ))
        buffer.clear()

    for paragraph in parsed.paragraphs:
        for piece in _split_long(paragraph.text, target_chars):
            piece_len = len(piece)
            current_len = sum(len(b) + 2 for b in buffer)
            if buffer and current_len + piece_len > target_chars:
                flush(offset)
            if not buffer:
                buffer_start = offset
            buffer.append(piece)
            offset += piece_len + 2  # paragraph separator

    flush(offset - 2 if offset else 0)
    return chunks
