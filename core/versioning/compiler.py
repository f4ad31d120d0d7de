"""
Document Compiler

Builds one document out of a chosen version of each chapter, in chapter
order, optionally behind a cover page. Each compilation is stored as a new
object and numbered per document; chapter versions are only read.
"""

import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from config.logging_config import get_logger
from core.documents.parser import normalize_ext
from core.errors import NotFoundError
from core.models import new_id
from core.storage.object_store import ObjectStore, compilation_path
from core.storage.repository import RevisionRepository

from .version_store import VersionStore

logger = get_logger(__name__)


def _output_ext(exts: List[str]) -> str:
    if "docx" in exts:
        return "docx"
    if "md" in exts:
        return "md"
    return "txt"


def cover_page(title: str, compiled_at: float) -> str:
    date = datetime.fromtimestamp(compiled_at).strftime("%d %B %Y")
    return f"# {title}\n\nCompiled on {date}"


class DocumentCompiler:
    """
    Usage:
        compiler = DocumentCompiler(repository, version_store, object_store)
        record = compiler.compile(document_id, [{"chapter_id": c1, "version_id": v3}])
        data = compiler.download(record["id"])
    """

    def __init__(self, repository: RevisionRepository, version_store: VersionStore, object_store: ObjectStore):
        self.repository = repository
        self.version_store = version_store
        self.object_store = object_store

    def _resolve_selections(self, document_id: str, selections: Optional[List[Dict[str, str]]]) -> List[Dict[str, Any]]:
        """Validated selections sorted by chapter order; None means every chapter's current version."""
        if selections is None:
            selections = [
                {"chapter_id": ch["id"], "version_id": ch["current_version_id"]}
                for ch in self.repository.list_chapters(document_id)
                if ch["current_version_id"]
            ]
        if not selections:
            raise ValueError("No chapters selected for compilation")

        resolved = []
        seen = set()
        for selection in selections:
            chapter_id = selection["chapter_id"]
            if chapter_id in seen:
                raise ValueError(f"Chapter {chapter_id} selected more than once")
            seen.add(chapter_id)

            chapter = self.repository.get_chapter(chapter_id)
            if not chapter or chapter["document_id"] != document_id:
                raise NotFoundError("Chapter", f"{chapter_id} in document {document_id}")

            version_id = selection.get("version_id") or chapter["current_version_id"]
            version = self.version_store.get_version(version_id) if version_id else None
            if version is None or version.chapter_id != chapter_id:
                raise NotFoundError("Version", f"{version_id} in chapter {chapter_id}")

            resolved.append({
                "chapter_id": chapter_id,
                "chapter_title": chapter["title"],
                "chapter_order": chapter["chapter_order"],
                "version_id": version.id,
                "version_number": version.sequence,
                "pages": version.pages,
                "file_ext": version.file_ext,
            })

        resolved.sort(key=lambda s: s["chapter_order"])
        return resolved

    def compile(
        self,
        document_id: str,
        selections: Optional[List[Dict[str, str]]] = None,
        include_cover_page: bool = False,
        custom_title: Optional[str] = None,
        file_ext: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Compile the selected chapter versions into one stored document.

        The output format defaults to docx when any chapter is docx. Returns
        the compilation record.
        """
        document = self.repository.get_document(document_id)
        if not document:
            raise NotFoundError("Document", document_id)

        chosen = self._resolve_selections(document_id, selections)
        ext = normalize_ext(file_ext) if file_ext else _output_ext([s["file_ext"] for s in chosen])
        compiled_at = time.time()

        parts = []
        if include_cover_page:
            parts.append(cover_page(custom_title or document["title"], compiled_at))
        parts.extend(self.version_store.load_text(s["version_id"]) for s in chosen)

        content = self.version_store.parser.render_parts(parts, ext)
        compilation_id = new_id("comp_")
        path = compilation_path(document_id, compilation_id, ext)
        self.object_store.put(path, content)

        chapters = [
            {k: s[k] for k in ("chapter_id", "chapter_title", "chapter_order", "version_id", "version_number")}
            for s in chosen
        ]
        record = {
            "id": compilation_id,
            "document_id": document_id,
            "storage_path": path,
            "file_ext": ext,
            "total_pages": sum(s["pages"] or 0 for s in chosen),
            "chapters": chapters,
            "options": {"include_cover_page": include_cover_page, "custom_title": custom_title},
            "created_at": compiled_at,
        }
        try:
            record["sequence"] = self.repository.save_compilation(record)
        except Exception:
            self.object_store.delete(path)
            raise

        logger.info(
            f"[COMPILE {compilation_id}] Document {document_id} v{record['sequence']}: "
            f"{len(chosen)} chapters, {record['total_pages']} pages, {len(content)} bytes ({ext})"
        )
        return record

    def get(self, compilation_id: str) -> Dict[str, Any]:
        record = self.repository.get_compilation(compilation_id)
        if not record:
            raise NotFoundError("Compilation", compilation_id)
        return record

    def list_compilations(self, document_id: str) -> List[Dict[str, Any]]:
        return self.repository.list_compilations(document_id)

    def download(self, compilation_id: str) -> bytes:
        return self.object_store.get(self.get(compilation_id)["storage_path"])
