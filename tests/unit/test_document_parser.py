"""
Unit tests for core/documents/parser.py and core/context/chunker.py
"""
import io

import pytest
from docx import Document

from config.constants import CHARS_PER_PAGE
from core.context.chunker import chunk_document
from core.documents.parser import (
    DocumentParser,
    build_sections,
    estimate_pages,
    normalize_ext,
    split_paragraphs,
)
from tests.conftest import SAMPLE_CHAPTER


class TestSplitParagraphs:

    def test_headings_flagged(self):
        paragraphs = split_paragraphs(SAMPLE_CHAPTER)

        assert [p.is_header for p in paragraphs] == [True, False, False, True, False]
        assert paragraphs[0].level == 1
        assert paragraphs[0].text == "# Introduction"

    def test_blank_lines_and_crlf(self):
        paragraphs = split_paragraphs("One\r\n\r\n\r\n  Two  \n   \nThree")
        assert [p.text for p in paragraphs] == ["One", "Two", "Three"]
        assert [p.index for p in paragraphs] == [0, 1, 2]

    def test_multiline_block_is_not_heading(self):
        [paragraph] = split_paragraphs("# Looks like a heading\nbut continues")
        assert not paragraph.is_header


class TestBuildSections:

    def test_sections_by_heading(self):
        sections = build_sections(split_paragraphs(SAMPLE_CHAPTER))

        assert [(s.title, s.start_index, s.end_index) for s in sections] == [
            ("Introduction", 0, 2),
            ("Pricing", 3, 4),
        ]

    def test_leading_text_gets_untitled_section(self):
        sections = build_sections(split_paragraphs("Preface.\n\n## Part\n\nBody."))
        assert [s.title for s in sections] == ["Document", "Part"]

    def test_empty(self):
        assert build_sections([]) == []


class TestDocumentParser:

    def test_normalize_ext(self):
        assert normalize_ext(".MD") == "md"
        assert normalize_ext(None) == "txt"
        with pytest.raises(ValueError, match="Unsupported"):
            normalize_ext("pdf")

    def test_pages(self):
        assert estimate_pages("") == 1
        assert estimate_pages("x" * (CHARS_PER_PAGE + 1)) == 2

    def test_text_bom_stripped(self):
        parsed = DocumentParser().parse("\ufeffHello".encode("utf-8"), "txt")
        assert parsed.text == "Hello"

    def test_docx_render_and_parse(self):
        parser = DocumentParser()
        data = parser.render(SAMPLE_CHAPTER, "docx")

        assert data[:2] == b"PK"
        assert parser.extract_text(data, "docx") == SAMPLE_CHAPTER

    def test_text_render_is_utf8(self):
        assert DocumentParser().render("Café", "md") == "Café".encode("utf-8")

    def test_render_parts(self):
        parser = DocumentParser()

        assert parser.render_parts(["# A\n\nOne.\n", "Two."], "txt") == b"# A\n\nOne.\n\nTwo."

        data = parser.render_parts(["# A\n\nOne.", "# B\n\nTwo."], "docx")
        assert parser.extract_text(data, "docx") == "# A\n\nOne.\n\n# B\n\nTwo."
        # headings and paragraphs of both parts plus the page break between them
        assert len(Document(io.BytesIO(data)).paragraphs) == 5


class TestChunkDocument:

    def test_small_document_single_chunk(self):
        parsed = DocumentParser().parse_text(SAMPLE_CHAPTER)
        chunks = chunk_document("ver_1", parsed)

        assert len(chunks) == 1
        assert chunks[0].text == SAMPLE_CHAPTER
        assert (chunks[0].page_from, chunks[0].page_to) == (1, 1)

    def test_paragraph_boundaries_and_pages(self):
        paragraphs = [f"Paragraph {i} " + "word " * 150 for i in range(12)]
        parsed = DocumentParser().parse_text("\n\n".join(paragraphs))
        chunks = chunk_document("ver_1", parsed, target_chars=1200)

        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
        assert all(len(c.text) <= 1200 for c in chunks)
        assert chunks[-1].page_to == parsed.pages
        assert all(c.page_from <= c.page_to for c in chunks)
        assert "\n\n".join(c.text for c in chunks) == parsed.text

    def test_oversized_paragraph_split(self):
        parsed = DocumentParser().parse_text("word " * 1000)
        chunks = chunk_document("ver_1", parsed, target_chars=500)

        assert len(chunks) > 1
        assert all(len(c.text) <= 500 for c in chunks)

    def test_empty(self):
        assert chunk_document("ver_1", DocumentParser().parse_text("")) == []
