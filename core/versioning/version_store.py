"""
Version Store

Append-only graph of immutable chapter versions. A version is written as
an object in the object store plus a row (and its chunks) in the
repository; either both exist or neither does.
"""

from typing import Optional, Dict, Any, List

from config.logging_config import get_logger
from core.context.chunker import chunk_document
from core.documents.parser import DocumentParser, normalize_ext
from core.errors import NotFoundError
from core.models import Version, UPLOAD_KIND, new_id
from core.storage.object_store import ObjectStore, version_object_path
from core.storage.repository import RevisionRepository

logger = get_logger(__name__)


class VersionStore:
    """
    Creates and reads versions.

    Usage:
        store = VersionStore(repository, object_store)
        chapter_id, root_id = store.upload_chapter(doc_id, "Intro", data, "intro.docx")
        child_id = store.create_version(chapter_id, root_id, new_bytes, "adjust", {...})
    """

    def __init__(
        self,
        repository: RevisionRepository,
        object_store: ObjectStore,
        parser: Optional[DocumentParser] = None,
    ):
        self.repository = repository
        self.object_store = object_store
        self.parser = parser or DocumentParser()

    def upload_chapter(
        self,
        document_id: str,
        title: str,
        content: bytes,
        filename: str,
        chapter_order: Optional[int] = None,
    ) -> tuple:
        """Create a chapter with its root version. Returns (chapter_id, version_id)."""
        if not self.repository.get_document(document_id):
            raise NotFoundError("Document", document_id)

        ext = normalize_ext(filename.rsplit(".", 1)[-1] if "." in filename else "txt")
        chapter_id = self.repository.create_chapter(document_id, title, chapter_order)
        version_id = self.create_version(
            chapter_id,
            None,
            content,
            UPLOAD_KIND,
            {"filename": filename},
            file_ext=ext,
        )
        return chapter_id, version_id

    def create_version(
        self,
        chapter_id: str,
        parent_version_id: Optional[str],
        content: bytes,
        operation_kind: str,
        metadata: Optional[Dict[str, Any]] = None,
        file_ext: Optional[str] = None,
        make_current: bool = True,
    ) -> str:
        """
        Register new content as a child of parent_version_id.

        sequence = parent.sequence + 1, or 1 for a root. The object is
        stored first; if the row insert fails the object is removed again.
        """
        chapter = self.repository.get_chapter(chapter_id)
        if not chapter:
            raise NotFoundError("Chapter", chapter_id)

        sequence = 1
        parent = None
        if parent_version_id is not None:
            parent = self.repository.get_version(parent_version_id)
            if not parent or parent.chapter_id != chapter_id:
                raise NotFoundError("Version", parent_version_id)
            sequence = parent.sequence + 1

        ext = normalize_ext(file_ext or (parent.file_ext if parent else "txt"))
        parsed = self.parser.parse(content, ext)

        version_id = new_id("ver_")
        chunks = chunk_document(version_id, parsed)
        storage_path = version_object_path(chapter["document_id"], chapter_id, version_id, ext)

        version = Version(
            id=version_id,
            chapter_id=chapter_id,
            parent_id=parent_version_id,
            sequence=sequence,
            storage_path=storage_path,
            file_ext=ext,
            pages=parsed.pages,
            chunks_count=len(chunks),
            operation_kind=operation_kind,
            metadata=dict(metadata or {}),
        )

        self.object_store.put(storage_path, content)
        try:
            self.repository.insert_version(version, chunks, make_current=make_current)
        except Exception:
            self.object_store.delete(storage_path)
            logger.error(f"Version insert failed, removed object {storage_path}")
            raise

        logger.info(
            f"Created version {version_id} (chapter={chapter_id}, seq={sequence}, "
            f"kind={operation_kind}, parent={parent_version_id})"
        )
        return version_id

    def get_version(self, version_id: str) -> Version:
        version = self.repository.get_version(version_id)
        if not version:
            raise NotFoundError("Version", version_id)
        return version

    def load_content(self, version_id: str) -> bytes:
        version = self.get_version(version_id)
        return self.object_store.get(version.storage_path)

    def load_text(self, version_id: str) -> str:
        """Canonical text of a version"""
        version = self.get_version(version_id)
        return self.parser.extract_text(self.object_store.get(version.storage_path), version.file_ext)

    def list_versions(self, chapter_id: str) -> List[Version]:
        if not self.repository.get_chapter(chapter_id):
            raise NotFoundError("Chapter", chapter_id)
        return self.repository.list_versions(chapter_id)

    def current_version_id(self, chapter_id: str) -> Optional[str]:
        chapter = self.repository.get_chapter(chapter_id)
        if not chapter:
            raise NotFoundError("Chapter", chapter_id)
        return chapter["current_version_id"]

    def lineage(self, version_id: str) -> List[Version]:
        """Path from the root version down to version_id."""
        path = []
        seen = set()
        current = self.get_version(version_id)
        while current is not None and current.id not in seen:
            seen.add(current.id)
            path.append(current)
            current = self.repository.get_version(current.parent_id) if current.parent_id else None
        return list(reversed(path))
