"""
Version lineage and suggestion application.
"""

from .version_store import VersionStore
from .compiler import DocumentCompiler
from .apply_engine import (
    ApplyReport,
    apply_accepted_edits,
    resolve_positions,
    locate_span,
    iter_spans,
)

__all__ = [
    'VersionStore',
    'DocumentCompiler',
    'ApplyReport',
    'apply_accepted_edits',
    'resolve_positions',
    'locate_span',
    'iter_spans',
]
