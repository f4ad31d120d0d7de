"""
Storage layer: SQLite repository for records, object store for bytes.
"""

from .object_store import (
    ObjectStore,
    LocalObjectStore,
    version_object_path,
    pipeline_artifact_path,
    pipeline_final_path,
    compilation_path,
)
from .repository import RevisionRepository, get_repository

__all__ = [
    'ObjectStore',
    'LocalObjectStore',
    'version_object_path',
    'pipeline_artifact_path',
    'pipeline_final_path',
    'compilation_path',
    'RevisionRepository',
    'get_repository',
]
