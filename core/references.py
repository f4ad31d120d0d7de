"""
Reference Processing

Turns attached links/files into plain text for reference-grounded
generation. Each reference is processed on its own; a failure is recorded
on that reference and never stops its siblings.
"""

from dataclasses import dataclass, asdict
from typing import Callable, Dict, List, Optional

from config.constants import REFERENCE_MAX_CHARS
from config.logging_config import get_logger
from core.errors import ReferenceProcessingError
from core.models import new_id

logger = get_logger(__name__)

REFERENCE_READY = "ready"
REFERENCE_ERROR = "error"

# (kind, source) -> extracted text; supplied by whoever can fetch/parse
Extractor = Callable[[str, str], str]


@dataclass
class ProcessedReference:
    id: str
    kind: str                     # link | file
    title: str
    source: str                   # url or filename
    content: Optional[str] = None
    status: str = REFERENCE_READY
    error: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        return self.status == REFERENCE_READY and bool(self.content)

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'ProcessedReference':
        return cls(
            id=data["id"],
            kind=data["kind"],
            title=data.get("title") or "",
            source=data.get("source") or "",
            content=data.get("content"),
            status=data.get("status", REFERENCE_READY),
            error=data.get("error"),
        )


def _process_one(reference: Dict, extractor: Optional[Extractor]) -> ProcessedReference:
    kind = reference.get("kind", "file")
    source = reference.get("source") or reference.get("url") or reference.get("filename") or ""
    processed = ProcessedReference(
        id=reference.get("id") or new_id("ref_"),
        kind=kind,
        title=reference.get("title") or source or "Reference",
        source=source,
    )

    try:
        content = reference.get("content")
        if not content:
            if extractor is None:
                raise ReferenceProcessingError(f"No content and no extractor for {kind} reference '{source}'")
            content = extractor(kind, source)
        content = (content or "").strip()
        if not content:
            raise ReferenceProcessingError(f"Reference '{source}' produced no text")
        processed.content = content[:REFERENCE_MAX_CHARS]
    except Exception as e:
        processed.status = REFERENCE_ERROR
        processed.error = str(e)
        logger.warning(f"[REFERENCES] {processed.id} failed: {e}")

    return processed


def process_references(
    references: List[Dict],
    extractor: Optional[Extractor] = None,
) -> List[ProcessedReference]:
    """Process every reference independently, keeping input order."""
    processed = [_process_one(ref, extractor) for ref in references or []]
    ready = sum(1 for p in processed if p.is_ready)
    if processed:
        logger.info(f"[REFERENCES] {ready}/{len(processed)} references ready")
    return processed


def format_references_for_prompt(references: List[ProcessedReference]) -> str:
    """[REF id] blocks for every usable reference"""
    blocks = []
    for ref in references:
        if not ref.is_ready:
            continue
        header = f"[REF {ref.id}] {ref.title}"
        if ref.source and ref.source != ref.title:
            header += f" ({ref.source})"
        blocks.append(f"{header}\n{ref.content}")
    return "\n\n".join(blocks)
