"""
Document parsing and rendering.
"""

from .parser import (
    DocumentParser,
    ParsedDocument,
    Paragraph,
    Section,
    split_paragraphs,
    build_sections,
    estimate_pages,
    normalize_ext,
)

__all__ = [
    'DocumentParser',
    'ParsedDocument',
    'Paragraph',
    'Section',
    'split_paragraphs',
    'build_sections',
    'estimate_pages',
    'normalize_ext',
]
