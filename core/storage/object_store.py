"""
Object Store

Raw document bytes addressed by deterministic paths. Objects are written
once and never mutated in place.
"""

from abc import ABC, abstractmethod
from pathlib import Path

from config.logging_config import get_logger

logger = get_logger(__name__)


def version_object_path(document_id: str, chapter_id: str, version_id: str, ext: str) -> str:
    """{document}/{chapter}/{version-id}.{ext}"""
    return f"{document_id}/{chapter_id}/{version_id}.{ext.lstrip('.')}"


def pipeline_artifact_path(pipeline_id: str, operation_index: int, operation: str, ext: str) -> str:
    """pipelines/{pipeline}/{index}_{operation}.{ext}"""
    return f"pipelines/{pipeline_id}/{operation_index}_{operation}.{ext.lstrip('.')}"


def pipeline_final_path(pipeline_id: str, ext: str) -> str:
    return f"pipelines/{pipeline_id}/final.{ext.lstrip('.')}"


def compilation_path(document_id: str, compilation_id: str, ext: str) -> str:
    """documents/{document}/compiled/{compilation-id}.{ext}"""
    return f"documents/{document_id}/compiled/{compilation_id}.{ext.lstrip('.')}"


class ObjectStore(ABC):
    """Abstract binary object store"""

    @abstractmethod
    def put(self, path: str, data: bytes) -> None:
        """Store bytes at path; raises FileExistsError if the path is taken"""
        pass

    @abstractmethod
    def get(self, path: str) -> bytes:
        """Read bytes; raises FileNotFoundError if missing"""
        pass

    @abstractmethod
    def delete(self, path: str) -> bool:
        """Remove an object, return whether it existed"""
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass


class LocalObjectStore(ObjectStore):
    """
    Filesystem-backed object store rooted at a directory.

    Writes go to a temp file and are renamed into place, so a reader never
    sees a partially written object.
    """

    def __init__(self, root: str):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        full = (self.root / path).resolve()
        if self.root.resolve() not in full.parents:
            raise ValueError(f"Object path escapes store root: {path}")
        return full

    def put(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        if target.exists():
            raise FileExistsError(f"Object already exists: {path}")
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(target.name + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(target)
        logger.debug(f"Stored object {path} ({len(data)} bytes)")

    def get(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.exists():
            raise FileNotFoundError(f"Object not found: {path}")
        return target.read_bytes()

    def delete(self, path: str) -> bool:
        target = self._resolve(path)
        if target.exists():
            target.unlink()
            return True
        return False

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()
