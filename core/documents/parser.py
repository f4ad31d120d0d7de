"""
Document Parser

Turns stored bytes (.txt, .md, .docx) into the canonical text form used by
generators, the apply engine and the chunker, and renders edited text back
into the original container format.

Canonical text: paragraphs separated by a blank line, headings written as
markdown ("# Title", "## Subtitle").
"""

import io
import math
import re
from dataclasses import dataclass, field
from typing import List, Optional

from docx import Document

from config.constants import CHARS_PER_PAGE, SUPPORTED_EXTENSIONS
from config.logging_config import get_logger

logger = get_logger(__name__)

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.*)$")
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")


@dataclass
class Paragraph:
    index: int
    text: str
    is_header: bool = False
    level: int = 0


@dataclass
class Section:
    """Heading plus the paragraph index range it governs (inclusive)."""
    title: str
    start_index: int
    end_index: int


@dataclass
class ParsedDocument:
    paragraphs: List[Paragraph]
    sections: List[Section] = field(default_factory=list)
    pages: int = 1

    @property
    def text(self) -> str:
        return "\n\n".join(p.text for p in self.paragraphs)

    def section_paragraphs(self, section: Section) -> List[Paragraph]:
        """Body (non-heading) paragraphs of a section"""
        return [
            p for p in self.paragraphs[section.start_index:section.end_index + 1]
            if not p.is_header
        ]


def normalize_ext(ext: Optional[str]) -> str:
    ext = (ext or "txt").lower().lstrip(".")
    if f".{ext}" not in SUPPORTED_EXTENSIONS:
        raise ValueError(f"Unsupported document format: .{ext}")
    return ext


def estimate_pages(text: str) -> int:
    return max(1, math.ceil(len(text) / CHARS_PER_PAGE))


def split_paragraphs(text: str) -> List[Paragraph]:
    """Split canonical text into paragraphs, flagging markdown headings."""
    paragraphs = []
    for block in _PARAGRAPH_SPLIT_RE.split(text.replace("\r\n", "\n")):
        block = block.strip()
        if not block:
            continue
        match = _HEADING_RE.match(block)
        if match and "\n" not in block:
            paragraphs.append(Paragraph(len(paragraphs), block, True, len(match.group(1))))
        else:
            paragraphs.append(Paragraph(len(paragraphs), block))
    return paragraphs


def build_sections(paragraphs: List[Paragraph]) -> List[Section]:
    """One section per heading; leading body text gets its own untitled section."""
    if not paragraphs:
        return []

    sections: List[Section] = []
    current_title = None
    start = 0
    for p in paragraphs:
        if p.is_header:
            if p.index > start or current_title is not None:
                sections.append(Section(current_title or "Document", start, p.index - 1))
            current_title = _HEADING_RE.match(p.text).group(2).strip()
            start = p.index
    sections.append(Section(current_title or "Document", start, len(paragraphs) - 1))
    return sections


class DocumentParser:
    """Parse and render documents in the supported formats."""

    def parse(self, data: bytes, ext: str) -> ParsedDocument:
        ext = normalize_ext(ext)
        if ext == "docx":
            text = self._docx_to_text(data)
        else:
            text = data.decode("utf-8-sig")
        return self.parse_text(text)

    def parse_text(self, text: str) -> ParsedDocument:
        paragraphs = split_paragraphs(text)
        parsed = ParsedDocument(
            paragraphs=paragraphs,
            sections=build_sections(paragraphs),
        )
        parsed.pages = estimate_pages(parsed.text)
        return parsed

    def extract_text(self, data: bytes, ext: str) -> str:
        return self.parse(data, ext).text

    def render(self, text: str, ext: str) -> bytes:
        """Render canonical text back into the container format."""
        ext = normalize_ext(ext)
        if ext == "docx":
            return self._text_to_docx(text)
        return text.encode("utf-8")

    def _docx_to_text(self, data: bytes) -> str:
        doc = Document(io.BytesIO(data))
        blocks = []
        for para in doc.paragraphs:
            text = para.text.strip()
            if not text:
                continue

            # Detect headings by style
            style_name = para.style.name.lower() if para.style else ""
            if "heading 1" in style_name or style_name == "title":
                blocks.append(f"# {text}")
            elif "heading 2" in style_name:
                blocks.append(f"## {text}")
            elif "heading 3" in style_name:
                blocks.append(f"### {text}")
            else:
                blocks.append(text)
        return "\n\n".join(blocks)

    def render_parts(self, parts: List[str], ext: str) -> bytes:
        """Render several texts as one document; in docx each part starts a new page."""
        ext = normalize_ext(ext)
        if ext == "docx":
            return self._text_to_docx(*parts)
        return "\n\n".join(part.strip() for part in parts).encode("utf-8")

    def _text_to_docx(self, *parts: str) -> bytes:
        doc = Document()
        for i, text in enumerate(parts):
            if i:
                doc.add_page_break()
            for p in split_paragraphs(text):
                if p.is_header:
                    title = _HEADING_RE.match(p.text).group(2).strip()
                    doc.add_heading(title, level=min(p.level, 9))
                else:
                    doc.add_paragraph(p.text)
        buffer = io.BytesIO()
        doc.save(buffer)
        return buffer.getvalue()
