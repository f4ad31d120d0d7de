"""
Citation modes.

The level of detail in a citation follows from how many chapters and
versions the retrieved chunks come from:

    one chapter, one version        -> minimal   "p. 5"
    one chapter, several versions   -> version   "Ch 2 v3, p. 5"
    several chapters, one version each -> chapter "Ch 2, p. 5"
    anything else                   -> version

full ("Doc" - Ch 2: Title (v3), p. 5) is never derived, only requested.
"""

from enum import Enum
from typing import Dict, Iterable, Set


class CitationMode(str, Enum):
    MINIMAL = "minimal"
    CHAPTER = "chapter"
    VERSION = "version"
    FULL = "full"


def determine_citation_mode(chunks: Iterable) -> CitationMode:
    """Derive the mode from the (chapter_id, version_number) pairs of the chunks."""
    versions_by_chapter: Dict[str, Set[int]] = {}
    for chunk in chunks:
        versions_by_chapter.setdefault(chunk.chapter_id, set()).add(chunk.version_number)

    if len(versions_by_chapter) <= 1:
        only = next(iter(versions_by_chapter.values()), set())
        return CitationMode.MINIMAL if len(only) <= 1 else CitationMode.VERSION

    if all(len(versions) == 1 for versions in versions_by_chapter.values()):
        return CitationMode.CHAPTER
    return CitationMode.VERSION


def _pages(chunk) -> str:
    if chunk.page_to != chunk.page_from:
        return f"p. {chunk.page_from}-{chunk.page_to}"
    return f"p. {chunk.page_from}"


def format_citation(chunk, mode: CitationMode) -> str:
    mode = CitationMode(mode)
    if mode is CitationMode.MINIMAL:
        return _pages(chunk)
    if mode is CitationMode.CHAPTER:
        return f"Ch {chunk.chapter_order}, {_pages(chunk)}"
    if mode is CitationMode.VERSION:
        return f"Ch {chunk.chapter_order} v{chunk.version_number}, {_pages(chunk)}"
    return (
        f'"{chunk.document_title}" - Ch {chunk.chapter_order}: {chunk.chapter_title} '
        f"(v{chunk.version_number}), {_pages(chunk)}"
    )
