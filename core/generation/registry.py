"""
Operation kind -> generator dispatch.

The table is closed over OperationKind and checked at import time.
"""

from typing import Dict, Optional, Type

from core.generation.adapt import AdaptGenerator
from core.generation.adjust import AdjustGenerator
from core.generation.base import SuggestionGenerator
from core.generation.improve import ImproveGenerator
from core.generation.translate import TranslateGenerator
from core.generation.update import UpdateGenerator
from core.models import OperationKind

GENERATORS: Dict[OperationKind, Type[SuggestionGenerator]] = {
    OperationKind.ADJUST: AdjustGenerator,
    OperationKind.UPDATE: UpdateGenerator,
    OperationKind.IMPROVE: ImproveGenerator,
    OperationKind.ADAPT: AdaptGenerator,
    OperationKind.TRANSLATE: TranslateGenerator,
}

_missing = set(OperationKind) - set(GENERATORS)
if _missing:
    raise RuntimeError(f"No generator registered for: {sorted(k.value for k in _missing)}")


def create_generator(
    kind: OperationKind,
    provider_manager,
    batch_size: Optional[int] = None,
) -> SuggestionGenerator:
    """Instantiate the generator for an operation kind"""
    return GENERATORS[OperationKind(kind)](provider_manager, batch_size=batch_size)
