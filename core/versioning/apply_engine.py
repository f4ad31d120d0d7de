"""
Apply Engine

Applies accepted suggestions to a base text. Edits are located in the base
text, each on an occurrence no other edit has claimed, then applied by
descending start position so an edit never shifts the offsets of edits
still waiting to be applied. Anything that cannot be applied is skipped
and reported, never raised.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Dict, Iterable, Iterator

from config.logging_config import get_logger
from core.models import Suggestion

logger = get_logger(__name__)

NOT_FOUND = "not_found"
OVERLAP = "overlap"


@dataclass
class ApplyReport:
    """Accounting for one apply pass"""
    applied_ids: List[str] = field(default_factory=list)
    unmatched_ids: List[str] = field(default_factory=list)
    unmatched_reasons: Dict[str, str] = field(default_factory=dict)

    @property
    def applied_count(self) -> int:
        return len(self.applied_ids)

    @property
    def unmatched_count(self) -> int:
        return len(self.unmatched_ids)

    def to_dict(self) -> Dict:
        return {
            "applied_count": self.applied_count,
            "unmatched_count": self.unmatched_count,
            "applied_ids": list(self.applied_ids),
            "unmatched_ids": list(self.unmatched_ids),
            "unmatched_reasons": dict(self.unmatched_reasons),
        }


def _whitespace_pattern(text: str) -> Optional[re.Pattern]:
    tokens = text.split()
    if not tokens:
        return None
    return re.compile(r"\s+".join(re.escape(t) for t in tokens))


def iter_spans(text: str, original: str) -> Iterator[Tuple[int, int]]:
    """
    Every place original occurs in text: exact occurrences in order, then
    whitespace-tolerant matches at other positions.
    """
    if not original or not original.strip():
        return

    exact = set()
    idx = text.find(original)
    while idx >= 0:
        span = (idx, idx + len(original))
        exact.add(span)
        yield span
        idx = text.find(original, idx + 1)

    pattern = _whitespace_pattern(original)
    if pattern is None:
        return
    for match in pattern.finditer(text):
        if match.span() not in exact:
            yield match.span()


def locate_span(text: str, original: str) -> Optional[Tuple[int, int]]:
    """
    Find original in text: exact substring first, then a match that
    tolerates differences in whitespace.
    """
    return next(iter_spans(text, original), None)


def _overlaps(span: Tuple[int, int], claimed: List[Tuple[int, int]]) -> bool:
    start, end = span
    return any(start < c_end and c_start < end for c_start, c_end in claimed)


def resolve_positions(full_text: str, suggestions: Iterable[Suggestion]) -> List[Suggestion]:
    """Annotate suggestions with their {start, end} in full_text when found."""
    resolved = []
    for s in suggestions:
        span = locate_span(full_text, s.original_text)
        resolved.append(s.with_position(*span) if span else s)
    return resolved


def apply_accepted_edits(base_text: str, suggestions: List[Suggestion]) -> Tuple[str, ApplyReport]:
    """
    Apply suggestions to base_text.

    Suggestions claim spans by descending start of their first occurrence.
    One whose first occurrence is already claimed takes the next unclaimed
    occurrence of its text, and is reported as overlap only when none is
    left. Claimed spans never overlap, so they are applied back to front.

    Returns the edited text and a report. The same inputs always produce
    the same output and the same report.
    """
    report = ApplyReport()
    located = []

    for order, s in enumerate(suggestions):
        span = locate_span(base_text, s.original_text)
        if span is None:
            report.unmatched_ids.append(s.id)
            report.unmatched_reasons[s.id] = NOT_FOUND
            continue
        located.append((span[0], order, s))

    # Descending start; equal starts keep input order
    located.sort(key=lambda item: (-item[0], item[1]))

    claimed: List[Tuple[int, int]] = []
    edits = []
    for _, _, s in located:
        span = next(
            (candidate for candidate in iter_spans(base_text, s.original_text) if not _overlaps(candidate, claimed)),
            None,
        )
        if span is None:
            report.unmatched_ids.append(s.id)
            report.unmatched_reasons[s.id] = OVERLAP
            continue
        claimed.append(span)
        edits.append((span[0], span[1], s.improved_text))
        report.applied_ids.append(s.id)

    result = base_text
    for start, end, replacement in sorted(edits, key=lambda edit: -edit[0]):
        result = result[:start] + replacement + result[end:]

    if report.unmatched_count:
        logger.info(
            f"Applied {report.applied_count} edits, {report.unmatched_count} unmatched"
        )
    return result, report
