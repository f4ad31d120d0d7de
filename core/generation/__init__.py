"""
Suggestion generators, one per operation kind.
"""

from .base import (
    GenerationContext,
    GenerationResult,
    SuggestionGenerator,
    WorkUnit,
    parse_json_response,
)
from .adjust import AdjustGenerator
from .update import UpdateGenerator
from .improve import ImproveGenerator
from .adapt import AdaptGenerator
from .translate import TranslateGenerator
from .registry import GENERATORS, create_generator

__all__ = [
    'GenerationContext',
    'GenerationResult',
    'SuggestionGenerator',
    'WorkUnit',
    'parse_json_response',
    'AdjustGenerator',
    'UpdateGenerator',
    'ImproveGenerator',
    'AdaptGenerator',
    'TranslateGenerator',
    'GENERATORS',
    'create_generator',
]
